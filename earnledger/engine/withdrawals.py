"""
earnledger.engine.withdrawals — Withdrawal Rules & State Machine
==================================================================

PENDING → APPROVED   (terminal, no balance effect)
PENDING → REJECTED   (terminal, compensating refund of ``amount``)

Pure functions only.  The ledger service applies the returned states with
conditional writes in a single transaction.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from earnledger.constants import MAX_MONEY, ZERO, has_sub_cent_precision, to_money
from earnledger.database.models import WithdrawalStatus
from earnledger.engine.errors import (
    AccountBlocked,
    AlreadyProcessed,
    BelowMinimumWithdrawal,
    InsufficientBalance,
    ValidationError,
)
from earnledger.engine.snapshot import AccountState

__all__ = [
    "apply_debit",
    "apply_refund",
    "check_minimum",
    "next_status",
    "parse_amount",
]

def parse_amount(raw: Decimal | int | float | str) -> Decimal:
    """Validate a requested withdrawal amount and return it as money.

    Raises :class:`ValidationError` for non-numbers, non-positive or
    out-of-range values and amounts finer than one cent.
    """
    if isinstance(raw, bool):
        raise ValidationError("Amount must be a number.")
    try:
        exact = Decimal(str(raw)) if isinstance(raw, float) else Decimal(raw)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError("Amount must be a number.") from None
    if not exact.is_finite():
        raise ValidationError("Amount must be a number.")
    if exact <= ZERO:
        raise ValidationError("Amount must be greater than zero.")
    if exact > MAX_MONEY:
        raise ValidationError(f"Amount cannot exceed {MAX_MONEY}.")
    if has_sub_cent_precision(exact):
        raise ValidationError("Amount cannot have more than two decimal places.")
    return to_money(exact)


def check_minimum(amount: Decimal, min_amount: Decimal) -> None:
    if amount < min_amount:
        raise BelowMinimumWithdrawal(
            f"Minimum withdrawal is {min_amount}", min_amount=str(min_amount)
        )


def apply_debit(state: AccountState, amount: Decimal) -> AccountState:
    """Debit *amount* for a new withdrawal from *state*."""
    if state.is_blocked:
        raise AccountBlocked("Account is blocked.")
    if amount > state.balance:
        raise InsufficientBalance(
            "Insufficient wallet balance.", balance=str(state.balance)
        )
    return replace(state, balance=to_money(state.balance - amount))


def apply_refund(state: AccountState, amount: Decimal) -> AccountState:
    """Compensating credit for a rejected withdrawal."""
    return replace(state, balance=to_money(state.balance + amount))


def next_status(current: str, approve: bool) -> WithdrawalStatus:
    """Target status for a decision on a request currently in *current*."""
    if current != WithdrawalStatus.PENDING:
        raise AlreadyProcessed(
            "This request is not pending (already processed).", status=current
        )
    return WithdrawalStatus.APPROVED if approve else WithdrawalStatus.REJECTED
