"""
earnledger.engine.conversion — Coins → Currency Normalization
===============================================================

Exactly ``COINS_PER_UNIT`` coins become one currency unit, applied
repeatedly until fewer than ``COINS_PER_UNIT`` coins remain.
"""

from __future__ import annotations

from dataclasses import replace

from earnledger.constants import COINS_PER_UNIT, ONE_UNIT, to_money
from earnledger.engine.snapshot import AccountState

__all__ = ["normalize_coins"]


def normalize_coins(state: AccountState) -> tuple[AccountState, int]:
    """Drain whole units out of the coin accumulator.

    Returns ``(new_state, units_converted)``.  Both ``balance`` and
    ``total_earned`` grow by the converted units.
    """
    coins = state.coins
    balance = state.balance
    total_earned = state.total_earned
    units = 0
    while coins >= COINS_PER_UNIT:
        coins -= COINS_PER_UNIT
        balance += ONE_UNIT
        total_earned += ONE_UNIT
        units += 1

    if units == 0:
        return state, 0
    return (
        replace(
            state,
            coins=coins,
            balance=to_money(balance),
            total_earned=to_money(total_earned),
        ),
        units,
    )
