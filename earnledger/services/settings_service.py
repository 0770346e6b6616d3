"""
earnledger.services.settings_service — SystemConfig Read & Write
==================================================================

Provides typed read/write access to the ``settings`` table.  The ledger only
ever reads from here (``min_withdrawal_amount``); writes come from the admin
API and are audit-logged.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from earnledger.constants import ZERO, to_money
from earnledger.database.models import AdminActionType, Setting
from earnledger.database.seed import (
    AFFILIATE_LINK_KEY,
    AFFILIATE_MESSAGE_KEY,
    DEFAULT_SETTINGS,
    MIN_WITHDRAWAL_KEY,
)
from earnledger.engine.errors import ValidationError
from earnledger.services.audit import log_admin_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SystemConfig:
    """Business configuration supplied to the ledger."""

    min_withdrawal_amount: Decimal
    affiliate_link: str
    affiliate_message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "min_withdrawal_amount": str(self.min_withdrawal_amount),
            "affiliate_link": self.affiliate_link,
            "affiliate_message": self.affiliate_message,
        }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session.

    Returns the JSON-decoded value, or *default* when the key does not
    exist.  Invalid JSON is returned as the raw string.
    """
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def _default(key: str):
    return DEFAULT_SETTINGS[key][0]


def read_system_config(session: Session) -> SystemConfig:
    """Build a :class:`SystemConfig` inside an existing session.

    Missing keys fall back to the seeded defaults.  A stored minimum that is
    not a valid amount is logged and replaced by the default.
    """
    raw_min = get_setting_value(session, MIN_WITHDRAWAL_KEY, _default(MIN_WITHDRAWAL_KEY))
    try:
        min_amount = to_money(raw_min)
    except ValueError:
        logger.error("Invalid %s setting %r; using default", MIN_WITHDRAWAL_KEY, raw_min)
        min_amount = to_money(_default(MIN_WITHDRAWAL_KEY))

    return SystemConfig(
        min_withdrawal_amount=min_amount,
        affiliate_link=str(
            get_setting_value(session, AFFILIATE_LINK_KEY, _default(AFFILIATE_LINK_KEY))
        ),
        affiliate_message=str(
            get_setting_value(
                session, AFFILIATE_MESSAGE_KEY, _default(AFFILIATE_MESSAGE_KEY)
            )
        ),
    )


def get_system_config(engine) -> SystemConfig:
    with Session(engine) as session:
        return read_system_config(session)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _upsert(session: Session, key: str, value: Any) -> tuple[Any, Any]:
    """Write *value* under *key*; returns ``(before, after)`` parsed values."""
    value_json = json.dumps(value)
    existing = session.get(Setting, key)
    before = None
    if existing is not None:
        before = get_setting_value(session, key)
        existing.value_json = value_json
    else:
        _, category, description = DEFAULT_SETTINGS.get(key, (None, "general", None))
        session.add(Setting(
            key=key,
            value_json=value_json,
            category=category,
            description=description,
        ))
    return before, value


def update_system_config(
    engine,
    *,
    actor_id: str,
    min_withdrawal_amount: Decimal | str | None = None,
    affiliate_link: str | None = None,
    affiliate_message: str | None = None,
) -> SystemConfig:
    """Update any subset of the SystemConfig fields.

    Each changed key gets its own ``admin_log`` row with before/after
    snapshots, committed together with the change.
    """
    changes: dict[str, Any] = {}
    if min_withdrawal_amount is not None:
        try:
            amount = to_money(min_withdrawal_amount)
        except ValueError as exc:
            raise ValidationError(f"Invalid minimum withdrawal: {exc}") from None
        if amount <= ZERO:
            raise ValidationError("Minimum withdrawal must be greater than zero.")
        changes[MIN_WITHDRAWAL_KEY] = str(amount)
    if affiliate_link is not None:
        changes[AFFILIATE_LINK_KEY] = affiliate_link
    if affiliate_message is not None:
        changes[AFFILIATE_MESSAGE_KEY] = affiliate_message

    with Session(engine) as session:
        for key, value in changes.items():
            before, after = _upsert(session, key, value)
            if before == after:
                continue
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.UPDATE.value,
                target_table="settings",
                target_id=key,
                before={"key": key, "value": before},
                after={"key": key, "value": after},
            )
        session.commit()
        config = read_system_config(session)

    if changes:
        logger.info("System config updated by %s: %s", actor_id, sorted(changes))
    return config
