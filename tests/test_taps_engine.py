"""
tests/test_taps_engine.py — Unit Tests for the Tap Pipeline
=============================================================

Tests the pure session / conversion / tap calculation (no I/O, no database).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from earnledger.constants import COOLDOWN_DURATION
from earnledger.engine.conversion import normalize_coins
from earnledger.engine.errors import (
    AccountBlocked,
    CooldownActive,
    SuspiciousActivity,
    ValidationError,
)
from earnledger.engine.session import (
    SessionPhase,
    apply_session_credit,
    open_session,
    session_phase,
)
from earnledger.engine.taps import Advisory, calculate_taps, check_batch_size
from earnledger.engine.snapshot import AccountState

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _state(**overrides) -> AccountState:
    base = AccountState(
        id="acct-1",
        label="Alice",
        balance=Decimal("0.00"),
        total_earned=Decimal("0.00"),
        coins=0,
        session_taps=0,
        cooldown_until=None,
        is_blocked=False,
        version=1,
    )
    return replace(base, **overrides)


# ===========================================================================
# Batch size guard
# ===========================================================================
class TestCheckBatchSize:
    @pytest.mark.parametrize("count", [1, 50, 200])
    def test_accepts_plausible_batches(self, count):
        check_batch_size(count)

    def test_rejects_oversized_batch(self):
        with pytest.raises(SuspiciousActivity):
            check_batch_size(201)

    @pytest.mark.parametrize("count", [0, -5])
    def test_rejects_non_positive(self, count):
        with pytest.raises(ValidationError):
            check_batch_size(count)

    @pytest.mark.parametrize("count", [True, 2.5, "10", None])
    def test_rejects_non_integers(self, count):
        with pytest.raises(ValidationError):
            check_batch_size(count)


# ===========================================================================
# Session / cooldown state machine
# ===========================================================================
class TestSessionPhase:
    def test_active_without_deadline(self):
        assert session_phase(_state(), NOW) is SessionPhase.ACTIVE

    def test_cooldown_while_deadline_in_future(self):
        state = _state(cooldown_until=NOW + timedelta(seconds=1))
        assert session_phase(state, NOW) is SessionPhase.COOLDOWN

    def test_active_once_deadline_passed(self):
        state = _state(cooldown_until=NOW - timedelta(seconds=1))
        assert session_phase(state, NOW) is SessionPhase.ACTIVE


class TestOpenSession:
    def test_running_cooldown_raises_with_deadline(self):
        until = NOW + timedelta(minutes=2)
        with pytest.raises(CooldownActive) as exc_info:
            open_session(_state(session_taps=1000, cooldown_until=until), NOW)
        assert exc_info.value.cooldown_until == until

    def test_elapsed_cooldown_resets_session(self):
        state = _state(session_taps=1000, cooldown_until=NOW - timedelta(seconds=1))
        opened = open_session(state, NOW)
        assert opened.session_taps == 0
        assert opened.cooldown_until is None

    def test_deadline_exactly_now_counts_as_elapsed(self):
        opened = open_session(_state(session_taps=1000, cooldown_until=NOW), NOW)
        assert opened.session_taps == 0

    def test_active_state_untouched(self):
        state = _state(session_taps=400)
        assert open_session(state, NOW) is state


class TestApplySessionCredit:
    def test_credit_below_cap(self):
        new, credited, limit = apply_session_credit(_state(session_taps=100), 50, NOW)
        assert credited == 50
        assert new.session_taps == 150
        assert new.coins == 50
        assert limit is False
        assert new.cooldown_until is None

    def test_credit_clamped_at_cap_starts_cooldown(self):
        new, credited, limit = apply_session_credit(_state(session_taps=950), 200, NOW)
        assert credited == 50
        assert new.session_taps == 1000
        assert limit is True
        assert new.cooldown_until == NOW + COOLDOWN_DURATION

    def test_exactly_reaching_cap_starts_cooldown(self):
        new, credited, limit = apply_session_credit(_state(session_taps=900), 100, NOW)
        assert credited == 100
        assert limit is True


# ===========================================================================
# Coin conversion
# ===========================================================================
class TestNormalizeCoins:
    def test_no_conversion_below_threshold(self):
        state, units = normalize_coins(_state(coins=999))
        assert units == 0
        assert state.coins == 999

    def test_converts_every_full_thousand(self):
        state, units = normalize_coins(
            _state(coins=2150, balance=Decimal("3.00"), total_earned=Decimal("7.00"))
        )
        assert units == 2
        assert state.coins == 150
        assert state.balance == Decimal("5.00")
        assert state.total_earned == Decimal("9.00")


# ===========================================================================
# Full pipeline
# ===========================================================================
class TestCalculateTaps:
    def test_simple_credit(self):
        outcome = calculate_taps(_state(), 40, NOW)
        assert outcome.credited == 40
        assert outcome.state.coins == 40
        assert outcome.state.session_taps == 40
        assert outcome.advisory is None
        assert outcome.message is None

    def test_conversion_crossing(self):
        """990 coins + 20 taps → 1 unit, 10 coins left."""
        outcome = calculate_taps(
            _state(coins=990, session_taps=300, balance=Decimal("4.00")), 20, NOW
        )
        assert outcome.state.coins == 10
        assert outcome.state.balance == Decimal("5.00")
        assert outcome.state.total_earned == Decimal("1.00")
        assert outcome.units_converted == 1
        assert outcome.advisory is Advisory.CONVERSION_OCCURRED
        assert outcome.message == "1000 Coins converted to 1 unit!"

    def test_cap_clamp(self):
        """950 session taps + 200 → 50 credited, cooldown starts."""
        outcome = calculate_taps(_state(session_taps=950, coins=100), 200, NOW)
        assert outcome.credited == 50
        assert outcome.state.session_taps == 1000
        assert outcome.state.coins == 150
        assert outcome.state.cooldown_until == NOW + timedelta(minutes=5)
        assert outcome.advisory is Advisory.LIMIT_REACHED
        assert outcome.message == "Limit reached! 5 min cooldown started."

    def test_limit_advisory_wins_over_conversion(self):
        outcome = calculate_taps(_state(session_taps=900, coins=950), 100, NOW)
        assert outcome.units_converted == 1
        assert outcome.state.coins == 50
        assert outcome.advisory is Advisory.LIMIT_REACHED

    def test_cooldown_rejects_without_change(self):
        state = _state(session_taps=1000, cooldown_until=NOW + timedelta(minutes=1))
        with pytest.raises(CooldownActive):
            calculate_taps(state, 10, NOW)

    def test_elapsed_cooldown_starts_fresh_session(self):
        state = _state(
            session_taps=1000, coins=10, cooldown_until=NOW - timedelta(seconds=5)
        )
        outcome = calculate_taps(state, 25, NOW)
        assert outcome.state.session_taps == 25
        assert outcome.state.coins == 35
        assert outcome.state.cooldown_until is None

    def test_blocked_account_rejected(self):
        with pytest.raises(AccountBlocked):
            calculate_taps(_state(is_blocked=True), 5, NOW)

    def test_oversized_batch_checked_before_block(self):
        with pytest.raises(SuspiciousActivity):
            calculate_taps(_state(is_blocked=True), 500, NOW)

    def test_input_state_not_mutated(self):
        state = _state(coins=10)
        calculate_taps(state, 5, NOW)
        assert state.coins == 10
        assert state.session_taps == 0

    def test_invariants_hold_after_many_batches(self):
        state = _state()
        now = NOW
        for _ in range(30):
            try:
                state = calculate_taps(state, 200, now).state
            except CooldownActive:
                now += timedelta(minutes=6)
                continue
            assert 0 <= state.coins < 1000
            assert 0 <= state.session_taps <= 1000
            assert state.balance == state.total_earned
