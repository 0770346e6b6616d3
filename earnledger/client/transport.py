"""
earnledger.client.transport — Tap Batch Transports
====================================================

A transport delivers one batch to ``register_taps`` and returns the
:meth:`TapResult.to_dict` payload.  Ledger rejections are raised as the same
:class:`LedgerError` subclasses the engine uses; anything that leaves the
commit status unknown (network failure, timeout, garbled response) is a
:class:`TransportError`.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from earnledger.database.engine import run_db
from earnledger.engine.errors import error_from_code
from earnledger.services.ledger_service import register_taps

logger = logging.getLogger(__name__)

TAPS_PATH = "/api/taps"


class TransportError(Exception):
    """The batch may or may not have been committed."""


class TapTransport(Protocol):
    async def send_taps(self, batch_count: int) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# HTTP — talks to the FastAPI adapter
# ---------------------------------------------------------------------------
class HttpTapTransport:
    """POSTs batches to ``/api/taps`` with a bearer token."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=0),
        )

    async def send_taps(self, batch_count: int) -> dict[str, Any]:
        try:
            resp = await self._client.post(
                TAPS_PATH,
                json={"count": batch_count},
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Tap request failed: {exc!r}") from exc

        try:
            payload = resp.json()
        except ValueError:
            raise TransportError(
                f"Unreadable response from ledger (HTTP {resp.status_code})"
            ) from None

        if resp.status_code >= 400:
            if isinstance(payload, dict) and "error" in payload:
                raise error_from_code(payload)
            raise TransportError(f"Ledger returned HTTP {resp.status_code}")
        if not isinstance(payload, dict) or not isinstance(payload.get("account"), dict):
            raise TransportError("Ledger response carries no account snapshot")
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# In-process — same engine, bridged onto a worker thread
# ---------------------------------------------------------------------------
class LocalTapTransport:
    """Calls :func:`register_taps` directly for *account_id*."""

    def __init__(self, engine, account_id: str) -> None:
        self._engine = engine
        self._account_id = account_id

    async def send_taps(self, batch_count: int) -> dict[str, Any]:
        result = await run_db(register_taps, self._engine, self._account_id, batch_count)
        return result.to_dict()

    async def aclose(self) -> None:
        return None
