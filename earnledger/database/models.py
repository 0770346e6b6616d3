"""
earnledger.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- accounts             — Per-account balance, coin accumulator, session state
- withdrawal_requests  — Append-mostly payout requests (PENDING → terminal)
- settings             — Admin-configurable key-value store (SystemConfig)
- admin_log            — Append-only audit trail of admin mutations

Every write to ``accounts`` is a versioned conditional UPDATE issued by
:mod:`earnledger.services.account_store`; the ORM classes here are only used
for inserts and reads.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from earnledger.constants import SESSION_TAP_CAP

MONEY = Numeric(12, 2)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all EarnLedger ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class WithdrawalStatus(enum.StrEnum):
    """Lifecycle of a withdrawal request.  Only PENDING is non-terminal."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    APPROVE_WITHDRAWAL = "APPROVE_WITHDRAWAL"
    REJECT_WITHDRAWAL = "REJECT_WITHDRAWAL"
    BLOCK = "BLOCK"
    UNBLOCK = "UNBLOCK"
    UPDATE = "UPDATE"


# ---------------------------------------------------------------------------
# Accounts — one row per registered user
# ---------------------------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    total_earned: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0.00")
    )
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    session_taps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cooldown_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    withdrawals: Mapped[list[WithdrawalRequest]] = relationship(
        back_populates="account"
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        CheckConstraint("coins >= 0", name="ck_accounts_coins_non_negative"),
        CheckConstraint(
            f"session_taps >= 0 AND session_taps <= {SESSION_TAP_CAP}",
            name="ck_accounts_session_taps_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id!r} balance={self.balance} v{self.version}>"


# ---------------------------------------------------------------------------
# WithdrawalRequest — payout requests awaiting an admin decision
# ---------------------------------------------------------------------------
class WithdrawalRequest(Base):
    """A request to move currency out of the ledger.

    The balance is debited when the row is inserted.  A rejection refunds it;
    an approval changes nothing but the status.  ``account_id`` deliberately
    has no ``ON DELETE`` action: accounts are never deleted, and a missing
    refund target must surface as an error rather than cascade away.
    """
    __tablename__ = "withdrawal_requests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("accounts.id"), nullable=False
    )
    account_label: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    destination_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WithdrawalStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    processed_by: Mapped[str | None] = mapped_column(String(128), default=None)

    account: Mapped[Account] = relationship(back_populates="withdrawals")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdrawals_amount_positive"),
        Index("ix_withdrawals_account_created", "account_id", "created_at"),
        Index("ix_withdrawals_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<WithdrawalRequest id={self.id!r} account={self.account_id!r} "
            f"amount={self.amount} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Business knobs (minimum withdrawal, affiliate display text) live here so
    admins can adjust them without redeploying.  Values are stored as JSON
    strings; typed access goes through
    :func:`earnledger.services.settings_service.get_system_config`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
