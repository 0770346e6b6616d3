"""
earnledger.services.admin_service — Admin Mutation & Dashboard Layer
=====================================================================

Account moderation and dashboard figures for the admin API.

Block toggles go through the same versioned write path as the ledger
operations, so they interleave safely with in-flight taps and withdrawals:
  1. Read the account at version v
  2. Conditional UPDATE to v+1 with the new ``is_blocked``
  3. Write admin_log with before/after snapshots
  4. Commit (or retry on conflict)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from earnledger.constants import ZERO, to_money
from earnledger.database.models import (
    Account,
    AdminActionType,
    WithdrawalRequest,
    WithdrawalStatus,
)
from earnledger.engine.snapshot import AccountState
from earnledger.services import account_store
from earnledger.services.audit import log_admin_action
from earnledger.services.ledger_service import RetryPolicy, transact

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Account moderation
# ---------------------------------------------------------------------------

def set_blocked(
    engine,
    account_id: str,
    blocked: bool,
    *,
    actor_id: str,
    reason: str | None = None,
    policy: RetryPolicy | None = None,
) -> AccountState:
    """Block or unblock *account_id*.  A no-op toggle writes nothing."""

    def _attempt(session: Session) -> AccountState:
        current = account_store.get(session, account_id)
        if current.is_blocked == blocked:
            return current
        written = account_store.conditional_update(
            session,
            account_id,
            lambda latest: replace(latest, is_blocked=blocked),
            current.version,
        )
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=(
                AdminActionType.BLOCK.value if blocked else AdminActionType.UNBLOCK.value
            ),
            target_table="accounts",
            target_id=account_id,
            before=current.to_dict(),
            after=written.to_dict(),
            reason=reason,
        )
        return written

    state = transact(engine, "set_blocked", _attempt, policy)
    logger.info(
        "Account %s %s by %s", account_id, "blocked" if state.is_blocked else "unblocked",
        actor_id,
    )
    return state


def toggle_blocked(engine, account_id: str, *, actor_id: str) -> AccountState:
    """Flip the current block flag."""
    current = account_store.get_account(engine, account_id)
    return set_blocked(engine, account_id, not current.is_blocked, actor_id=actor_id)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_accounts: int
    total_account_balance: Decimal
    total_withdrawals: int
    pending_withdrawals: int
    pending_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_accounts": self.total_accounts,
            "total_account_balance": str(self.total_account_balance),
            "total_withdrawals": self.total_withdrawals,
            "pending_withdrawals": self.pending_withdrawals,
            "pending_amount": str(self.pending_amount),
        }


def get_dashboard_stats(engine) -> DashboardStats:
    """Aggregate counts and totals across all accounts and requests."""
    pending = WithdrawalStatus.PENDING.value
    with Session(engine) as session:
        total_accounts = session.scalar(select(func.count()).select_from(Account)) or 0
        total_balance = session.scalar(select(func.sum(Account.balance)))
        total_withdrawals = session.scalar(
            select(func.count()).select_from(WithdrawalRequest)
        ) or 0
        pending_count = session.scalar(
            select(func.count())
            .select_from(WithdrawalRequest)
            .where(WithdrawalRequest.status == pending)
        ) or 0
        pending_amount = session.scalar(
            select(func.sum(WithdrawalRequest.amount))
            .where(WithdrawalRequest.status == pending)
        )

    return DashboardStats(
        total_accounts=total_accounts,
        total_account_balance=to_money(total_balance) if total_balance is not None else ZERO,
        total_withdrawals=total_withdrawals,
        pending_withdrawals=pending_count,
        pending_amount=to_money(pending_amount) if pending_amount is not None else ZERO,
    )
