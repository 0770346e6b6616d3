"""
earnledger.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn earnledger.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from earnledger.api.deps import get_config, get_engine  # noqa: E402
from earnledger.api.routes.admin import router as admin_router  # noqa: E402
from earnledger.api.routes.ledger import router as ledger_router  # noqa: E402
from earnledger.api.routes.public import router as public_router  # noqa: E402
from earnledger.database.engine import init_db  # noqa: E402
from earnledger.engine.errors import LedgerError  # noqa: E402
from earnledger.services.ledger_service import configure_retry_policy  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — verify schema, apply retry budget."""
    cfg = get_config()
    configure_retry_policy(cfg.tx_max_attempts, cfg.tx_retry_delay)
    engine = get_engine()
    init_db(engine)
    logger.info(
        "%s API started — engine ready (%s), %d tx attempts",
        cfg.app_name, engine.url.database, cfg.tx_max_attempts,
    )
    yield
    logger.info("%s API shutting down", cfg.app_name)


app = FastAPI(
    title="EarnLedger API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.retryable:
        logger.warning("%s %s → %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# Mount routers
app.include_router(public_router, prefix="/api")
app.include_router(ledger_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
