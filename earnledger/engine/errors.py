"""
earnledger.engine.errors — Ledger Error Taxonomy
==================================================

Every failure a ledger operation can report is a subclass of
:class:`LedgerError` with a stable ``code`` (used on the wire) and the HTTP
status the API maps it to.  :class:`VersionConflict` is internal: it only
travels between the account store and the retry loop.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

__all__ = [
    "AccountBlocked",
    "AccountNotFound",
    "AlreadyProcessed",
    "BelowMinimumWithdrawal",
    "CooldownActive",
    "InsufficientBalance",
    "LedgerError",
    "RefundTargetMissing",
    "RequestNotFound",
    "SuspiciousActivity",
    "TemporarilyUnavailable",
    "ValidationError",
    "VersionConflict",
    "error_from_code",
]


class LedgerError(Exception):
    """Base class for every typed ledger failure."""

    code: str = "LEDGER_ERROR"
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation used by the API and read back by clients."""
        payload: dict[str, Any] = {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }
        for key, value in self.context.items():
            payload[key] = value.isoformat() if isinstance(value, datetime) else value
        return payload


class ValidationError(LedgerError):
    """Input failed validation."""
    code = "VALIDATION_ERROR"
    http_status = 422


class AccountNotFound(LedgerError):
    """Account does not exist."""
    code = "ACCOUNT_NOT_FOUND"
    http_status = 404


class AccountBlocked(LedgerError):
    """Account is blocked by an administrator."""
    code = "ACCOUNT_BLOCKED"
    http_status = 403


class CooldownActive(LedgerError):
    """Session limit reached; taps are paused until the cooldown ends."""
    code = "COOLDOWN_ACTIVE"
    http_status = 429

    def __init__(self, cooldown_until: datetime, message: str | None = None) -> None:
        super().__init__(message, cooldown_until=cooldown_until)
        self.cooldown_until = cooldown_until


class SuspiciousActivity(LedgerError):
    """Tap batch exceeds any plausible human tap rate."""
    code = "SUSPICIOUS_ACTIVITY"
    http_status = 400


class InsufficientBalance(LedgerError):
    """Insufficient wallet balance."""
    code = "INSUFFICIENT_BALANCE"
    http_status = 409


class BelowMinimumWithdrawal(LedgerError):
    """Amount is below the minimum withdrawal."""
    code = "BELOW_MINIMUM_WITHDRAWAL"
    http_status = 422


class RequestNotFound(LedgerError):
    """Withdrawal request not found."""
    code = "REQUEST_NOT_FOUND"
    http_status = 404


class AlreadyProcessed(LedgerError):
    """Withdrawal request is not pending (already processed)."""
    code = "ALREADY_PROCESSED"
    http_status = 409


class RefundTargetMissing(LedgerError):
    """Account for this request no longer exists; refund not applied."""
    code = "REFUND_TARGET_MISSING"
    http_status = 409
    retryable = True


class TemporarilyUnavailable(LedgerError):
    """Too much contention on this record; try again shortly."""
    code = "TEMPORARILY_UNAVAILABLE"
    http_status = 503
    retryable = True


class VersionConflict(LedgerError):
    """Record changed between read and conditional write."""
    code = "VERSION_CONFLICT"
    http_status = 409
    retryable = True


_BY_CODE: dict[str, type[LedgerError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        AccountNotFound,
        AccountBlocked,
        SuspiciousActivity,
        InsufficientBalance,
        BelowMinimumWithdrawal,
        RequestNotFound,
        AlreadyProcessed,
        RefundTargetMissing,
        TemporarilyUnavailable,
    )
}


def error_from_code(payload: dict[str, Any]) -> LedgerError:
    """Rebuild a :class:`LedgerError` from its :meth:`LedgerError.to_dict` form.

    Unknown codes come back as a plain :class:`LedgerError` carrying the
    original code so nothing is silently reclassified.
    """
    code = payload.get("error", "")
    detail = payload.get("detail")
    if code == CooldownActive.code:
        return CooldownActive(
            datetime.fromisoformat(payload["cooldown_until"]), detail
        )
    cls = _BY_CODE.get(code)
    if cls is None:
        err = LedgerError(detail)
        err.code = code or LedgerError.code
        return err
    extra = {
        k: v for k, v in payload.items()
        if k not in ("error", "detail", "retryable")
    }
    return cls(detail, **extra)
