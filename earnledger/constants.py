"""
earnledger.constants — Shared Constants & Helpers
===================================================

Single source of truth for the tap economy limits and money rounding.
Import from here instead of duplicating in the engine, services, and API.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# ---------------------------------------------------------------------------
# Tap economy
# ---------------------------------------------------------------------------
SESSION_TAP_CAP = 1000          # taps per earning window
COOLDOWN_DURATION = timedelta(minutes=5)
MAX_TAPS_PER_BATCH = 200        # anything above is rejected as automation
COINS_PER_UNIT = 1000           # 1000 coins == 1 currency unit

# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
ONE_UNIT = Decimal("1.00")
MAX_MONEY = Decimal("9999999999.99")  # Numeric(12, 2)


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize *value* to two decimal places (half-up).

    Floats go through ``str`` first so ``0.1`` becomes ``Decimal("0.10")``
    rather than its binary expansion.

    Raises
    ------
    ValueError
        If *value* is not a finite number or exceeds :data:`MAX_MONEY`.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not dec.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    if abs(dec) > MAX_MONEY:
        raise ValueError(f"Amount out of range: {value!r}")
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def has_sub_cent_precision(value: Decimal) -> bool:
    """True if *value* carries digits below one cent (e.g. ``10.005``)."""
    return value != value.quantize(CENT)
