"""
earnledger.engine.snapshot — AccountState value object
========================================================

The immutable view of one ``accounts`` row that the pure engine functions
consume and produce.  Services read a row into an :class:`AccountState`,
hand it to the engine, and write the returned state back with a versioned
conditional UPDATE.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from earnledger.database.models import Account

__all__ = ["AccountState", "ensure_utc", "utcnow"]


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True, slots=True)
class AccountState:
    """Snapshot of an account at a specific ``version``."""

    id: str
    label: str
    balance: Decimal
    total_earned: Decimal
    coins: int
    session_taps: int
    cooldown_until: datetime | None
    is_blocked: bool
    version: int

    @classmethod
    def from_row(cls, row: Account) -> AccountState:
        return cls(
            id=row.id,
            label=row.label,
            balance=Decimal(row.balance),
            total_earned=Decimal(row.total_earned),
            coins=row.coins,
            session_taps=row.session_taps,
            cooldown_until=ensure_utc(row.cooldown_until),
            is_blocked=row.is_blocked,
            version=row.version,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountState:
        """Inverse of :meth:`to_dict` (used by clients reading API snapshots)."""
        raw_cooldown = data.get("cooldown_until")
        return cls(
            id=data["id"],
            label=data.get("label", ""),
            balance=Decimal(str(data["balance"])),
            total_earned=Decimal(str(data["total_earned"])),
            coins=int(data["coins"]),
            session_taps=int(data["session_taps"]),
            cooldown_until=(
                ensure_utc(datetime.fromisoformat(raw_cooldown)) if raw_cooldown else None
            ),
            is_blocked=bool(data.get("is_blocked", False)),
            version=int(data.get("version", 0)),
        )

    def mutable_fields(self) -> dict[str, Any]:
        """Columns the account store may write (everything but id/label/version)."""
        return {
            "balance": self.balance,
            "total_earned": self.total_earned,
            "coins": self.coins,
            "session_taps": self.session_taps,
            "cooldown_until": self.cooldown_until,
            "is_blocked": self.is_blocked,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "balance": str(self.balance),
            "total_earned": str(self.total_earned),
            "coins": self.coins,
            "session_taps": self.session_taps,
            "cooldown_until": (
                self.cooldown_until.isoformat() if self.cooldown_until else None
            ),
            "is_blocked": self.is_blocked,
            "version": self.version,
        }
