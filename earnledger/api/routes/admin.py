"""
earnledger.api.routes.admin — Admin endpoints (JWT‑protected)
===============================================================
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from earnledger.api.deps import get_current_admin, get_engine
from earnledger.database.models import WithdrawalStatus
from earnledger.services import account_store, admin_service, ledger_service, settings_service
from earnledger.services.audit import get_audit_log

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BlockBody(BaseModel):
    blocked: bool | None = None  # omitted → toggle
    reason: str | None = None


class ConfigUpdate(BaseModel):
    min_withdrawal_amount: Decimal | None = None
    affiliate_link: str | None = Field(default=None, max_length=500)
    affiliate_message: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------
@router.get("/withdrawals")
def list_withdrawals(
    status: WithdrawalStatus | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = ledger_service.list_withdrawals(engine, status=status, limit=limit)
    return {"withdrawals": [w.to_dict() for w in rows]}


@router.post("/withdrawals/{request_id}/approve")
def approve_withdrawal(
    request_id: str,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    view = ledger_service.process_withdrawal(
        engine, request_id, True, actor_id=str(admin["sub"])
    )
    return {"withdrawal": view.to_dict()}


@router.post("/withdrawals/{request_id}/reject")
def reject_withdrawal(
    request_id: str,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    view = ledger_service.process_withdrawal(
        engine, request_id, False, actor_id=str(admin["sub"])
    )
    return {"withdrawal": view.to_dict()}


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
@router.get("/accounts")
def list_accounts(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"accounts": [a.to_dict() for a in account_store.list_accounts(engine)]}


@router.post("/accounts/{account_id}/block")
def block_account(
    account_id: str,
    body: BlockBody,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if body.blocked is None:
        state = admin_service.toggle_blocked(engine, account_id, actor_id=str(admin["sub"]))
    else:
        state = admin_service.set_blocked(
            engine, account_id, body.blocked,
            actor_id=str(admin["sub"]), reason=body.reason,
        )
    return {"account": state.to_dict()}


# ---------------------------------------------------------------------------
# Dashboard & config
# ---------------------------------------------------------------------------
@router.get("/stats")
def get_stats(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return admin_service.get_dashboard_stats(engine).to_dict()


@router.get("/config")
def get_config(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return settings_service.get_system_config(engine).to_dict()


@router.put("/config")
def put_config(
    body: ConfigUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(400, "No fields to update")
    config = settings_service.update_system_config(
        engine, actor_id=str(admin["sub"]), **fields
    )
    return config.to_dict()


@router.get("/audit")
def audit_log(
    limit: int = Query(default=100, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"entries": get_audit_log(engine, limit=limit)}
