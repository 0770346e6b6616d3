"""
tests/test_settings_service.py — SystemConfig Read & Write
============================================================
"""

from __future__ import annotations

import json
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from earnledger.database.models import AdminLog, Setting
from earnledger.database.seed import MIN_WITHDRAWAL_KEY, seed_default_settings
from earnledger.engine.errors import ValidationError
from earnledger.services import settings_service


class TestDefaults:
    def test_seeded_defaults(self, db_engine):
        config = settings_service.get_system_config(db_engine)
        assert config.min_withdrawal_amount == Decimal("100.00")
        assert config.affiliate_link == "https://earnbit.com/ref/global"
        assert config.affiliate_message.startswith("Join EarnBit today")

    def test_seed_is_idempotent_and_keeps_edits(self, db_engine):
        settings_service.update_system_config(
            db_engine, actor_id="admin-1", min_withdrawal_amount="25"
        )
        seed_default_settings(db_engine)
        config = settings_service.get_system_config(db_engine)
        assert config.min_withdrawal_amount == Decimal("25.00")
        with Session(db_engine) as session:
            assert len(session.scalars(select(Setting)).all()) == 3

    def test_missing_rows_fall_back_to_defaults(self, db_engine):
        with Session(db_engine) as session:
            session.query(Setting).delete()
            session.commit()
        config = settings_service.get_system_config(db_engine)
        assert config.min_withdrawal_amount == Decimal("100.00")

    def test_corrupt_minimum_uses_default(self, db_engine):
        with Session(db_engine) as session:
            session.get(Setting, MIN_WITHDRAWAL_KEY).value_json = json.dumps("lots")
            session.commit()
        config = settings_service.get_system_config(db_engine)
        assert config.min_withdrawal_amount == Decimal("100.00")


class TestUpdateSystemConfig:
    def test_updates_and_audits_each_changed_key(self, db_engine):
        config = settings_service.update_system_config(
            db_engine,
            actor_id="admin-1",
            min_withdrawal_amount="50.5",
            affiliate_link="https://example.com/r/1",
        )
        assert config.min_withdrawal_amount == Decimal("50.50")
        assert config.affiliate_link == "https://example.com/r/1"

        with Session(db_engine) as session:
            entries = session.scalars(
                select(AdminLog).where(AdminLog.target_table == "settings")
            ).all()
        assert sorted(e.target_id for e in entries) == [
            "affiliate.link", "withdrawal.min_amount",
        ]
        minimum = next(e for e in entries if e.target_id == MIN_WITHDRAWAL_KEY)
        assert minimum.before_snapshot == {"key": MIN_WITHDRAWAL_KEY, "value": "100.00"}
        assert minimum.after_snapshot == {"key": MIN_WITHDRAWAL_KEY, "value": "50.50"}

    def test_unchanged_value_not_audited(self, db_engine):
        settings_service.update_system_config(
            db_engine, actor_id="admin-1", min_withdrawal_amount="100.00"
        )
        with Session(db_engine) as session:
            assert session.scalars(select(AdminLog)).all() == []

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "1e30", "10000000000"])
    def test_rejects_invalid_minimum(self, db_engine, value):
        with pytest.raises(ValidationError):
            settings_service.update_system_config(
                db_engine, actor_id="admin-1", min_withdrawal_amount=value
            )
        assert settings_service.get_system_config(db_engine).min_withdrawal_amount == Decimal(
            "100.00"
        )
