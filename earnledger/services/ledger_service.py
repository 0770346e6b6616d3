"""
earnledger.services.ledger_service — Transaction Engine
=========================================================

The atomic ledger operations: tap registration, withdrawal creation and
withdrawal decisions, plus the read-only withdrawal listing.

Every mutating operation runs through :func:`transact`, an explicit
optimistic-concurrency loop:

  1. Open a fresh session
  2. Read the current versioned state
  3. Compute the new state with the pure engine functions
  4. Issue conditional writes (``version`` / ``status`` guarded)
  5. Commit — or, on :class:`VersionConflict`, roll back and start over

After ``max_attempts`` conflicts the caller gets
:class:`TemporarilyUnavailable`.  Any other error rolls the attempt back and
propagates unchanged, so no operation ever commits a partial effect.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from earnledger.config import DEFAULT_TX_MAX_ATTEMPTS, DEFAULT_TX_RETRY_DELAY
from earnledger.database.models import (
    AdminActionType,
    WithdrawalRequest,
    WithdrawalStatus,
)
from earnledger.engine.errors import (
    RefundTargetMissing,
    RequestNotFound,
    TemporarilyUnavailable,
    ValidationError,
    VersionConflict,
)
from earnledger.engine.snapshot import AccountState, ensure_utc, utcnow
from earnledger.engine.taps import Advisory, calculate_taps, check_batch_size
from earnledger.engine.withdrawals import (
    apply_debit,
    apply_refund,
    check_minimum,
    next_status,
    parse_amount,
)
from earnledger.services import account_store
from earnledger.services.audit import log_admin_action
from earnledger.services.settings_service import read_system_config

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_FACTOR = 2.0


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounds for the optimistic retry loop."""

    max_attempts: int = DEFAULT_TX_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_TX_RETRY_DELAY  # first back-off, in seconds


_policy = RetryPolicy()


def configure_retry_policy(max_attempts: int, retry_delay: float) -> RetryPolicy:
    """Replace the process-wide retry policy (called once at startup)."""
    global _policy
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    _policy = RetryPolicy(max_attempts=max_attempts, retry_delay=max(retry_delay, 0.0))
    return _policy


def get_retry_policy() -> RetryPolicy:
    return _policy


def transact(
    engine: Engine,
    op_name: str,
    attempt: Callable[[Session], T],
    policy: RetryPolicy | None = None,
) -> T:
    """Run *attempt* in its own transaction, retrying on version conflicts."""
    policy = policy or _policy
    delay = policy.retry_delay

    for n in range(1, policy.max_attempts + 1):
        with Session(engine, expire_on_commit=False) as session:
            try:
                result = attempt(session)
                session.commit()
                return result
            except VersionConflict as exc:
                session.rollback()
                if n == policy.max_attempts:
                    logger.error(
                        "%s: giving up after %d conflicting attempts (%s)",
                        op_name, n, exc.message,
                    )
                    break
                logger.info(
                    "%s: version conflict, retry %d/%d", op_name, n, policy.max_attempts - 1
                )
            except Exception:
                session.rollback()
                raise

        if delay > 0:
            time.sleep(delay * (1 + random.random()))
            delay *= BACKOFF_FACTOR

    raise TemporarilyUnavailable(
        "Ledger is busy; please try again shortly.", operation=op_name
    )


def _resolve_now(now: datetime | None) -> datetime:
    return ensure_utc(now) if now is not None else utcnow()


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TapResult:
    """Committed outcome of :func:`register_taps`."""

    account: AccountState
    credited: int
    advisory: Advisory | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account.to_dict(),
            "credited": self.credited,
            "advisory": self.advisory.value if self.advisory else None,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class WithdrawalView:
    """Detached snapshot of a ``withdrawal_requests`` row."""

    id: str
    account_id: str
    account_label: str
    amount: Decimal
    destination_ref: str
    status: WithdrawalStatus
    created_at: datetime
    processed_at: datetime | None = None
    processed_by: str | None = None

    @classmethod
    def from_row(cls, row: WithdrawalRequest) -> WithdrawalView:
        return cls(
            id=row.id,
            account_id=row.account_id,
            account_label=row.account_label,
            amount=Decimal(row.amount),
            destination_ref=row.destination_ref,
            status=WithdrawalStatus(row.status),
            created_at=ensure_utc(row.created_at),
            processed_at=ensure_utc(row.processed_at),
            processed_by=row.processed_by,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_label": self.account_label,
            "amount": str(self.amount),
            "destination_ref": self.destination_ref,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "processed_by": self.processed_by,
        }


# ---------------------------------------------------------------------------
# register_taps
# ---------------------------------------------------------------------------
def register_taps(
    engine: Engine,
    account_id: str,
    batch_count: int,
    *,
    now: datetime | None = None,
    policy: RetryPolicy | None = None,
) -> TapResult:
    """Credit a batch of taps to *account_id*.

    Oversized batches are rejected before the database is touched.  The
    cooldown decision is recomputed from the state read in each attempt.
    """
    check_batch_size(batch_count)

    def _attempt(session: Session) -> TapResult:
        at = _resolve_now(now)
        current = account_store.get(session, account_id)
        outcome = calculate_taps(current, batch_count, at)
        written = account_store.conditional_update(
            session, account_id, lambda _latest: outcome.state, current.version
        )
        return TapResult(
            account=written,
            credited=outcome.credited,
            advisory=outcome.advisory,
            message=outcome.message,
        )

    result = transact(engine, "register_taps", _attempt, policy)
    logger.debug(
        "Taps: account=%s sent=%d credited=%d coins=%d balance=%s advisory=%s",
        account_id, batch_count, result.credited, result.account.coins,
        result.account.balance, result.advisory,
    )
    if result.advisory is Advisory.LIMIT_REACHED:
        logger.info(
            "Account %s hit the session cap; cooldown until %s",
            account_id, result.account.cooldown_until,
        )
    return result


# ---------------------------------------------------------------------------
# create_withdrawal
# ---------------------------------------------------------------------------
def create_withdrawal(
    engine: Engine,
    account_id: str,
    amount: Decimal | int | float | str,
    destination_ref: str,
    *,
    now: datetime | None = None,
    policy: RetryPolicy | None = None,
) -> WithdrawalView:
    """Debit *amount* and append a PENDING request, atomically."""
    value = parse_amount(amount)
    destination = (destination_ref or "").strip()
    if not destination:
        raise ValidationError("Payout destination is required.")

    def _attempt(session: Session) -> WithdrawalView:
        at = _resolve_now(now)
        config = read_system_config(session)
        check_minimum(value, config.min_withdrawal_amount)

        current = account_store.get(session, account_id)
        debited = apply_debit(current, value)
        account_store.conditional_update(
            session, account_id, lambda _latest: debited, current.version
        )

        request = WithdrawalRequest(
            id=uuid.uuid4().hex,
            account_id=account_id,
            account_label=current.label,
            amount=value,
            destination_ref=destination,
            status=WithdrawalStatus.PENDING.value,
            created_at=at,
        )
        session.add(request)
        session.flush()
        return WithdrawalView.from_row(request)

    view = transact(engine, "create_withdrawal", _attempt, policy)
    logger.info(
        "Withdrawal %s created: account=%s amount=%s", view.id, account_id, view.amount
    )
    return view


# ---------------------------------------------------------------------------
# process_withdrawal
# ---------------------------------------------------------------------------
def process_withdrawal(
    engine: Engine,
    request_id: str,
    approve: bool,
    *,
    actor_id: str | None = None,
    now: datetime | None = None,
    policy: RetryPolicy | None = None,
) -> WithdrawalView:
    """Approve or reject a PENDING request.

    Rejection refunds the amount to the owning account in the same
    transaction.  If that account is gone the request stays PENDING and
    :class:`RefundTargetMissing` is raised for an operator to resolve.
    """

    def _attempt(session: Session) -> WithdrawalView:
        at = _resolve_now(now)
        row = session.scalar(
            select(WithdrawalRequest)
            .where(WithdrawalRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        if row is None:
            raise RequestNotFound(
                "Withdrawal request not found.", request_id=request_id
            )
        before = WithdrawalView.from_row(row)
        target = next_status(before.status, approve)

        if target is WithdrawalStatus.REJECTED:
            owner = account_store.find(session, before.account_id)
            if owner is None:
                raise RefundTargetMissing(
                    "Account not found; cannot refund a rejected withdrawal.",
                    request_id=request_id,
                    account_id=before.account_id,
                )
            account_store.conditional_update(
                session,
                before.account_id,
                lambda latest: apply_refund(latest, before.amount),
                owner.version,
            )

        result = session.execute(
            update(WithdrawalRequest)
            .where(
                WithdrawalRequest.id == request_id,
                WithdrawalRequest.status == WithdrawalStatus.PENDING.value,
            )
            .values(status=target.value, processed_at=at, processed_by=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise VersionConflict(f"Withdrawal {request_id} was decided concurrently")

        after = replace(before, status=target, processed_at=at, processed_by=actor_id)
        if actor_id is not None:
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=(
                    AdminActionType.APPROVE_WITHDRAWAL.value
                    if approve else AdminActionType.REJECT_WITHDRAWAL.value
                ),
                target_table="withdrawal_requests",
                target_id=request_id,
                before=before.to_dict(),
                after=after.to_dict(),
            )
        return after

    try:
        view = transact(engine, "process_withdrawal", _attempt, policy)
    except RefundTargetMissing:
        logger.error(
            "Withdrawal %s left PENDING: refund target account is missing", request_id
        )
        raise

    logger.info(
        "Withdrawal %s %s by %s (amount=%s)",
        request_id, view.status.value, actor_id or "system", view.amount,
    )
    return view


# ---------------------------------------------------------------------------
# list_withdrawals — best-effort read, not part of the retry protocol
# ---------------------------------------------------------------------------
def list_withdrawals(
    engine: Engine,
    account_id: str | None = None,
    *,
    status: WithdrawalStatus | str | None = None,
    limit: int | None = None,
) -> list[WithdrawalView]:
    """Withdrawal requests, newest first.

    Scoped to *account_id* when given, otherwise every account (admin view).
    """
    query = select(WithdrawalRequest).order_by(
        WithdrawalRequest.created_at.desc(), WithdrawalRequest.id.desc()
    )
    if account_id is not None:
        query = query.where(WithdrawalRequest.account_id == account_id)
    if status is not None:
        try:
            status_value = WithdrawalStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown withdrawal status: {status!r}") from None
        query = query.where(WithdrawalRequest.status == status_value)
    if limit is not None:
        query = query.limit(limit)

    with Session(engine) as session:
        return [WithdrawalView.from_row(r) for r in session.scalars(query).all()]


def get_withdrawal(engine: Engine, request_id: str) -> WithdrawalView:
    with Session(engine) as session:
        row = session.get(WithdrawalRequest, request_id)
        if row is None:
            raise RequestNotFound("Withdrawal request not found.", request_id=request_id)
        return WithdrawalView.from_row(row)
