"""
earnledger.services.account_store — Versioned Account Reads & Writes
======================================================================

The only code that writes to ``accounts``.  Every write is a conditional
UPDATE on ``version``::

    UPDATE accounts
       SET balance = …, coins = …, version = version + 1
     WHERE id = :id AND version = :expected_version

Zero rows affected means another writer got there first; the caller's
retry loop re-reads and recomputes.  There is no blind overwrite.

The session-scoped functions (``get``, ``conditional_update``) run inside a
transaction owned by :mod:`earnledger.services.ledger_service`.  The
engine-scoped ones (``create_account``, ``get_account``, ``list_accounts``)
open their own session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from earnledger.database.models import Account
from earnledger.engine.errors import AccountNotFound, ValidationError, VersionConflict
from earnledger.engine.snapshot import AccountState

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

Mutator = Callable[[AccountState], AccountState]


# ---------------------------------------------------------------------------
# Transaction-scoped primitives
# ---------------------------------------------------------------------------
def get(session: Session, account_id: str) -> AccountState:
    """Read the current state of *account_id*.

    Always hits the database (``populate_existing``) so a retry never works
    from an identity-map copy left over from an earlier attempt.
    """
    row = session.scalar(
        select(Account)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    if row is None:
        raise AccountNotFound(f"Account {account_id} not found", account_id=account_id)
    return AccountState.from_row(row)


def find(session: Session, account_id: str) -> AccountState | None:
    """Like :func:`get` but returns ``None`` for a missing account."""
    try:
        return get(session, account_id)
    except AccountNotFound:
        return None


def conditional_update(
    session: Session,
    account_id: str,
    mutator: Mutator,
    expected_version: int,
) -> AccountState:
    """Apply *mutator* to the account if it is still at *expected_version*.

    Returns the written state (with the bumped version).

    Raises
    ------
    AccountNotFound
        The account does not exist.
    VersionConflict
        The stored version is not *expected_version*.
    """
    current = get(session, account_id)
    if current.version != expected_version:
        raise VersionConflict(
            f"Account {account_id} is at v{current.version}, expected v{expected_version}"
        )

    new_state = mutator(current)
    result = session.execute(
        update(Account)
        .where(Account.id == account_id, Account.version == expected_version)
        .values(**new_state.mutable_fields(), version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Version conflict on account %s (expected v%d)", account_id, expected_version
        )
        raise VersionConflict(
            f"Account {account_id} changed concurrently (expected v{expected_version})"
        )

    return replace(new_state, version=expected_version + 1)


# ---------------------------------------------------------------------------
# Engine-scoped helpers
# ---------------------------------------------------------------------------
def create_account(engine: Engine, account_id: str, label: str) -> AccountState:
    """Register *account_id* with every numeric field at zero.

    Idempotent: an existing account is returned unchanged (its label is not
    rewritten, since accounts are only mutated through versioned writes).
    """
    account_id = (account_id or "").strip()
    label = (label or "").strip()
    if not account_id:
        raise ValidationError("Account id is required.")
    if not label:
        raise ValidationError("Account label is required.")

    with Session(engine) as session:
        existing = find(session, account_id)
        if existing is not None:
            return existing

        session.add(Account(id=account_id, label=label))
        try:
            session.commit()
        except IntegrityError:
            # Registered concurrently by another request
            session.rollback()
            return get(session, account_id)

        logger.info("Registered account %s (%s)", account_id, label)
        return get(session, account_id)


def get_account(engine: Engine, account_id: str) -> AccountState:
    with Session(engine) as session:
        return get(session, account_id)


def list_accounts(engine: Engine) -> list[AccountState]:
    """Every account, newest registration first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Account).order_by(Account.created_at.desc(), Account.id)
        ).all()
        return [AccountState.from_row(r) for r in rows]
