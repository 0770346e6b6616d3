"""
earnledger.engine.session — Session / Cooldown State Machine
==============================================================

An account is either ACTIVE (accepting taps) or in COOLDOWN (a
``cooldown_until`` deadline in the future).  There is no background timer:
COOLDOWN → ACTIVE happens lazily, when the next tap registration observes
that the deadline has passed, and the session counter is reset as part of
that same call's transaction.

Pure functions only — no DB I/O.
"""

from __future__ import annotations

import enum
from dataclasses import replace
from datetime import datetime

from earnledger.constants import COOLDOWN_DURATION, SESSION_TAP_CAP
from earnledger.engine.errors import CooldownActive
from earnledger.engine.snapshot import AccountState

__all__ = ["SessionPhase", "apply_session_credit", "open_session", "session_phase"]


class SessionPhase(enum.StrEnum):
    ACTIVE = "ACTIVE"
    COOLDOWN = "COOLDOWN"


def session_phase(state: AccountState, now: datetime) -> SessionPhase:
    """Which phase *state* is in at *now*."""
    if state.cooldown_until is not None and now < state.cooldown_until:
        return SessionPhase.COOLDOWN
    return SessionPhase.ACTIVE


def open_session(state: AccountState, now: datetime) -> AccountState:
    """Return *state* ready to accept taps at *now*.

    Raises :class:`CooldownActive` if the cooldown is still running.  An
    elapsed cooldown is cleared and ``session_taps`` reset to zero; the
    caller persists that together with the credit.
    """
    if state.cooldown_until is None:
        return state
    if now < state.cooldown_until:
        raise CooldownActive(state.cooldown_until)
    return replace(state, cooldown_until=None, session_taps=0)


def apply_session_credit(
    state: AccountState, requested: int, now: datetime
) -> tuple[AccountState, int, bool]:
    """Credit up to *requested* taps against the session cap.

    Returns ``(new_state, credited, limit_reached)``.  Taps beyond the cap
    are not credited and not carried over anywhere.  Reaching the cap starts
    the cooldown at ``now + COOLDOWN_DURATION``.
    """
    room = max(SESSION_TAP_CAP - state.session_taps, 0)
    credited = min(requested, room)
    session_taps = state.session_taps + credited
    limit_reached = session_taps >= SESSION_TAP_CAP

    new_state = replace(
        state,
        session_taps=session_taps,
        coins=state.coins + credited,
        cooldown_until=now + COOLDOWN_DURATION if limit_reached else state.cooldown_until,
    )
    return new_state, credited, limit_reached
