"""
earnledger.api.routes.ledger — Account-scoped ledger endpoints (JWT)
=====================================================================

The account id always comes from the token's ``sub`` claim; a caller can
only ever act on their own account.
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from earnledger.api.deps import get_current_account, get_engine
from earnledger.services import account_store, ledger_service

router = APIRouter(tags=["ledger"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RegisterBody(BaseModel):
    label: str | None = Field(default=None, max_length=255)


class TapBatch(BaseModel):
    count: int


class WithdrawalCreate(BaseModel):
    amount: Decimal
    destination_ref: str = Field(max_length=255)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
@router.post("/accounts/register")
def register_account(
    body: RegisterBody,
    account: dict = Depends(get_current_account),
    engine=Depends(get_engine),
):
    label = body.label or account.get("username") or account.get("email") or account["sub"]
    state = account_store.create_account(engine, account["sub"], label)
    return {"account": state.to_dict()}


@router.get("/accounts/me")
def get_me(
    account: dict = Depends(get_current_account),
    engine=Depends(get_engine),
):
    return {"account": account_store.get_account(engine, account["sub"]).to_dict()}


# ---------------------------------------------------------------------------
# Taps
# ---------------------------------------------------------------------------
@router.post("/taps")
def post_taps(
    body: TapBatch,
    account: dict = Depends(get_current_account),
    engine=Depends(get_engine),
):
    result = ledger_service.register_taps(engine, account["sub"], body.count)
    return result.to_dict()


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------
@router.post("/withdrawals", status_code=201)
def create_withdrawal(
    body: WithdrawalCreate,
    account: dict = Depends(get_current_account),
    engine=Depends(get_engine),
):
    view = ledger_service.create_withdrawal(
        engine, account["sub"], body.amount, body.destination_ref
    )
    return {"withdrawal": view.to_dict()}


@router.get("/withdrawals")
def list_my_withdrawals(
    account: dict = Depends(get_current_account),
    engine=Depends(get_engine),
):
    rows = ledger_service.list_withdrawals(engine, account["sub"])
    return {"withdrawals": [w.to_dict() for w in rows]}
