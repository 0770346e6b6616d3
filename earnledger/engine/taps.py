"""
earnledger.engine.taps — Tap Registration Pipeline
====================================================

Pure calculation pipeline.  No DB I/O inside the engine.

Pipeline stages:
  batch size check → block check → open session (cooldown) → cap credit
  → coin conversion → TapOutcome
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from earnledger.constants import MAX_TAPS_PER_BATCH
from earnledger.engine.conversion import normalize_coins
from earnledger.engine.errors import AccountBlocked, SuspiciousActivity, ValidationError
from earnledger.engine.session import apply_session_credit, open_session
from earnledger.engine.snapshot import AccountState

logger = logging.getLogger(__name__)

__all__ = ["Advisory", "TapOutcome", "calculate_taps", "check_batch_size"]


class Advisory(enum.StrEnum):
    """Non-error notice attached to a successful tap registration."""
    LIMIT_REACHED = "LIMIT_REACHED"
    CONVERSION_OCCURRED = "CONVERSION_OCCURRED"


ADVISORY_MESSAGES: dict[Advisory, str] = {
    Advisory.LIMIT_REACHED: "Limit reached! 5 min cooldown started.",
    Advisory.CONVERSION_OCCURRED: "1000 Coins converted to 1 unit!",
}


@dataclass(frozen=True, slots=True)
class TapOutcome:
    """Result of running one batch through the pipeline."""

    state: AccountState
    credited: int
    units_converted: int
    advisory: Advisory | None = None

    @property
    def message(self) -> str | None:
        return ADVISORY_MESSAGES[self.advisory] if self.advisory else None


def check_batch_size(batch_count: int) -> None:
    """Reject malformed or implausibly large batches before any DB work."""
    if isinstance(batch_count, bool) or not isinstance(batch_count, int):
        raise ValidationError("Tap count must be an integer.")
    if batch_count < 1:
        raise ValidationError("Tap count must be at least 1.")
    if batch_count > MAX_TAPS_PER_BATCH:
        raise SuspiciousActivity("Suspicious activity detected.", batch_count=batch_count)


def calculate_taps(state: AccountState, batch_count: int, now: datetime) -> TapOutcome:
    """Run *batch_count* taps against *state* at *now*.

    This is a PURE function; the caller persists ``outcome.state`` with a
    conditional write keyed on ``state.version``.

    Raises
    ------
    ValidationError, SuspiciousActivity
        Bad batch size.
    AccountBlocked
        The account is blocked.
    CooldownActive
        The cooldown deadline is still in the future.
    """
    check_batch_size(batch_count)
    if state.is_blocked:
        raise AccountBlocked("Account blocked")

    # 1. Lazy COOLDOWN → ACTIVE transition
    opened = open_session(state, now)

    # 2. Credit against the session cap (may start a new cooldown)
    credited_state, credited, limit_reached = apply_session_credit(
        opened, batch_count, now
    )

    # 3. Conversion always drains fully, cap hit or not
    final_state, units = normalize_coins(credited_state)

    # At most one advisory; LIMIT_REACHED takes precedence.
    advisory = None
    if limit_reached:
        advisory = Advisory.LIMIT_REACHED
    elif units:
        advisory = Advisory.CONVERSION_OCCURRED

    if credited < batch_count:
        logger.debug(
            "Account %s: %d of %d taps credited (session cap)",
            state.id, credited, batch_count,
        )

    return TapOutcome(
        state=final_state,
        credited=credited,
        units_converted=units,
        advisory=advisory,
    )
