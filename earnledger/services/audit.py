"""
earnledger.services.audit — Admin Audit Trail
===============================================

Every admin mutation (withdrawal decisions, block toggles, config edits)
writes one ``admin_log`` row inside the same transaction as the change, so
the trail and the data can never disagree.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from earnledger.database.models import AdminLog
from earnledger.engine.snapshot import ensure_utc


def log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _entry_to_dict(row: AdminLog) -> dict[str, Any]:
    ts: datetime | None = ensure_utc(row.timestamp)
    return {
        "id": row.id,
        "actor_id": row.actor_id,
        "action_type": row.action_type,
        "target_table": row.target_table,
        "target_id": row.target_id,
        "before": row.before_snapshot,
        "after": row.after_snapshot,
        "reason": row.reason,
        "timestamp": ts.isoformat() if ts else None,
    }


def get_audit_log(
    engine,
    *,
    limit: int = 100,
    target_table: str | None = None,
    actor_id: str | None = None,
) -> list[dict[str, Any]]:
    """Most recent audit entries first, optionally filtered."""
    query = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
    if target_table is not None:
        query = query.where(AdminLog.target_table == target_table)
    if actor_id is not None:
        query = query.where(AdminLog.actor_id == actor_id)
    query = query.limit(max(1, min(limit, 500)))

    with Session(engine) as session:
        return [_entry_to_dict(r) for r in session.scalars(query).all()]
