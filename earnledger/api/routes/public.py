"""
earnledger.api.routes.public — Read-only public endpoints
===========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from earnledger.api.deps import get_engine
from earnledger.services.settings_service import get_system_config

router = APIRouter(tags=["public"])


@router.get("/config")
def public_config(engine=Depends(get_engine)):
    """Minimum withdrawal and affiliate display fields."""
    return get_system_config(engine).to_dict()
