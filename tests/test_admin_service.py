"""
tests/test_admin_service.py — Moderation, Dashboard & Audit
=============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from earnledger.engine.errors import AccountBlocked, AccountNotFound
from earnledger.services import account_store, admin_service, ledger_service
from earnledger.services.audit import get_audit_log

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class TestSetBlocked:
    def test_block_is_versioned_and_audited(self, db_engine, account_factory):
        account_factory("acct-1")
        state = admin_service.set_blocked(
            db_engine, "acct-1", True, actor_id="admin-1", reason="bot"
        )
        assert state.is_blocked is True
        assert state.version == 2

        [entry] = get_audit_log(db_engine)
        assert entry["action_type"] == "BLOCK"
        assert entry["target_id"] == "acct-1"
        assert entry["reason"] == "bot"
        assert entry["before"]["is_blocked"] is False
        assert entry["after"]["is_blocked"] is True

    def test_blocked_account_cannot_tap(self, db_engine, account_factory):
        account_factory("acct-1")
        admin_service.set_blocked(db_engine, "acct-1", True, actor_id="admin-1")
        with pytest.raises(AccountBlocked):
            ledger_service.register_taps(db_engine, "acct-1", 5, now=T0)

    def test_noop_toggle_writes_nothing(self, db_engine, account_factory):
        account_factory("acct-1")
        state = admin_service.set_blocked(db_engine, "acct-1", False, actor_id="admin-1")
        assert state.version == 1
        assert get_audit_log(db_engine) == []

    def test_toggle_flips(self, db_engine, account_factory):
        account_factory("acct-1")
        assert admin_service.toggle_blocked(db_engine, "acct-1", actor_id="a").is_blocked
        assert not admin_service.toggle_blocked(db_engine, "acct-1", actor_id="a").is_blocked
        actions = [e["action_type"] for e in get_audit_log(db_engine)]
        assert sorted(actions) == ["BLOCK", "UNBLOCK"]

    def test_unknown_account(self, db_engine):
        with pytest.raises(AccountNotFound):
            admin_service.set_blocked(db_engine, "ghost", True, actor_id="admin-1")

    def test_block_does_not_touch_balances(self, db_engine, account_factory):
        account_factory("acct-1", balance=Decimal("12.00"), coins=40)
        admin_service.set_blocked(db_engine, "acct-1", True, actor_id="admin-1")
        stored = account_store.get_account(db_engine, "acct-1")
        assert stored.balance == Decimal("12.00")
        assert stored.coins == 40


class TestDashboardStats:
    def test_empty_ledger(self, db_engine):
        stats = admin_service.get_dashboard_stats(db_engine)
        assert stats.total_accounts == 0
        assert stats.total_account_balance == Decimal("0.00")
        assert stats.total_withdrawals == 0
        assert stats.pending_withdrawals == 0

    def test_aggregates(self, db_engine, account_factory):
        account_factory("acct-1", balance=Decimal("250.00"))
        account_factory("acct-2", label="Bob", balance=Decimal("300.00"))
        first = ledger_service.create_withdrawal(db_engine, "acct-1", "100", "A", now=T0)
        ledger_service.create_withdrawal(db_engine, "acct-2", "150", "B", now=T0)
        ledger_service.process_withdrawal(db_engine, first.id, True, now=T0)

        stats = admin_service.get_dashboard_stats(db_engine)
        assert stats.total_accounts == 2
        assert stats.total_account_balance == Decimal("300.00")
        assert stats.total_withdrawals == 2
        assert stats.pending_withdrawals == 1
        assert stats.pending_amount == Decimal("150.00")
        assert stats.to_dict()["total_account_balance"] == "300.00"


class TestAuditLog:
    def test_newest_first_and_filtered(self, db_engine, account_factory):
        account_factory("acct-1")
        admin_service.set_blocked(db_engine, "acct-1", True, actor_id="admin-1")
        admin_service.set_blocked(db_engine, "acct-1", False, actor_id="admin-2")

        entries = get_audit_log(db_engine)
        assert [e["actor_id"] for e in entries] == ["admin-2", "admin-1"]
        assert [e["actor_id"] for e in get_audit_log(db_engine, actor_id="admin-1")] == [
            "admin-1"
        ]
        assert get_audit_log(db_engine, target_table="settings") == []
        assert len(get_audit_log(db_engine, limit=1)) == 1
