"""
earnledger.database.seed — Default Settings Seeder
====================================================

Baseline system settings seeded on first startup so withdrawals work before
an admin has touched the configuration screen.

Idempotent — only inserts keys that don't already exist.  Values changed by
an admin are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine

from earnledger.database.engine import get_session
from earnledger.database.models import Setting

logger = logging.getLogger(__name__)

MIN_WITHDRAWAL_KEY = "withdrawal.min_amount"
AFFILIATE_LINK_KEY = "affiliate.link"
AFFILIATE_MESSAGE_KEY = "affiliate.message"


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    MIN_WITHDRAWAL_KEY: (
        "100.00", "withdrawal", "Smallest amount an account may withdraw",
    ),
    AFFILIATE_LINK_KEY: (
        "https://earnbit.com/ref/global", "affiliate", "Shared affiliate link",
    ),
    AFFILIATE_MESSAGE_KEY: (
        "Join EarnBit today and start earning rewards immediately!",
        "affiliate",
        "Message shown next to the affiliate link",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``.

Money values are stored as strings so the JSON round trip never goes
through a binary float.
"""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    inserted = 0
    with get_session(engine) as session:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
