"""
earnledger.client.batcher — Client-side Tap Batching & Reconciliation
=======================================================================

Taps are counted locally and shown immediately; a background task sends the
accumulated count to the ledger at most once per ``interval`` seconds.

- The ledger's answer is authoritative.  After every successful flush the
  displayed counters are rebuilt from the returned account snapshot plus
  whatever was tapped while the flush was in flight.
- ``CooldownActive`` records the deadline and drops the batch.
- A flush whose outcome is unknown (:class:`TransportError`) forfeits the
  batch.  It is never resent, since it may already have been credited.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from earnledger.client.transport import TapTransport, TransportError
from earnledger.config import DEFAULT_CLIENT_FLUSH_SECONDS, LedgerConfig
from earnledger.constants import MAX_TAPS_PER_BATCH
from earnledger.engine.errors import CooldownActive, LedgerError
from earnledger.engine.session import SessionPhase, session_phase
from earnledger.engine.snapshot import AccountState, utcnow
from earnledger.engine.taps import calculate_taps

logger = logging.getLogger(__name__)


class TapBatcher:
    """Accumulates taps and flushes them through a :class:`TapTransport`.

    ``snapshot`` is the last account state the ledger returned;
    :attr:`displayed` is that state with the unconfirmed taps projected on
    top using the same pure pipeline the ledger runs.
    """

    def __init__(
        self,
        transport: TapTransport,
        snapshot: AccountState,
        *,
        interval: float = DEFAULT_CLIENT_FLUSH_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.transport = transport
        self.snapshot = snapshot
        self.interval = interval
        self._clock = clock
        self._pending = 0
        self._in_flight = 0
        self._flush_task: asyncio.Task | None = None

        self.last_message: str | None = None
        self.last_error: LedgerError | None = None
        self.forfeited = 0

    @classmethod
    def from_config(
        cls, transport: TapTransport, snapshot: AccountState, cfg: LedgerConfig
    ) -> TapBatcher:
        return cls(transport, snapshot, interval=cfg.client_flush_seconds)

    # -- local side ---------------------------------------------------------

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def displayed(self) -> AccountState:
        """Snapshot plus unconfirmed taps, as the user should see it."""
        now = self._clock()
        state = self.snapshot
        for batch in (self._in_flight, self._pending):
            if batch <= 0:
                continue
            try:
                state = calculate_taps(state, batch, now).state
            except LedgerError:
                break
        return state

    def tap(self, count: int = 1) -> bool:
        """Record *count* local taps.  Returns ``False`` if they were refused.

        Taps are refused while the displayed account is blocked or cooling
        down, and when they would push the pending batch past the per-batch
        ceiling.
        """
        if count < 1:
            return False
        shown = self.displayed
        if shown.is_blocked:
            return False
        if session_phase(shown, self._clock()) is SessionPhase.COOLDOWN:
            return False
        if self._pending + count > MAX_TAPS_PER_BATCH:
            logger.debug("Pending batch full (%d); tap ignored", self._pending)
            return False
        self._pending += count
        return True

    # -- flush --------------------------------------------------------------

    async def flush_once(self) -> dict[str, Any] | None:
        """Send the pending batch, if any, and reconcile with the response.

        Returns the ledger response on success, otherwise ``None``.
        """
        if self._pending == 0 or self._in_flight:
            return None

        batch, self._pending = self._pending, 0
        self._in_flight = batch
        try:
            response = await self.transport.send_taps(batch)
        except CooldownActive as exc:
            self._in_flight = 0
            self.snapshot = replace(self.snapshot, cooldown_until=exc.cooldown_until)
            self.last_error = exc
            logger.info("Batch of %d dropped: cooling down until %s", batch, exc.cooldown_until)
            return None
        except LedgerError as exc:
            self._in_flight = 0
            self.last_error = exc
            logger.warning("Batch of %d rejected by ledger: %s", batch, exc.code)
            return None
        except TransportError as exc:
            self._in_flight = 0
            self.forfeited += batch
            logger.warning("Batch of %d forfeited: %s", batch, exc)
            return None

        try:
            snapshot = AccountState.from_dict(response["account"])
        except (ArithmeticError, KeyError, TypeError, ValueError) as exc:
            self._in_flight = 0
            self.forfeited += batch
            logger.warning("Batch of %d forfeited: unreadable response (%r)", batch, exc)
            return None

        self._in_flight = 0
        self.snapshot = snapshot
        self.last_message = response.get("message")
        self.last_error = None
        credited = response.get("credited", batch)
        if credited < batch:
            logger.info("Ledger credited %d of %d taps", credited, batch)
        return response

    # -- background task ----------------------------------------------------

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the background flush task."""
        if self._flush_task is not None:
            return

        async def _flush_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.flush_once()
                except Exception:
                    # Outcome unknown; forfeit like a transport failure
                    self.forfeited += self._in_flight
                    self._in_flight = 0
                    logger.exception("Tap flush error")

        self._flush_task = loop.create_task(_flush_loop(), name="tap-flush")

    def stop(self) -> None:
        """Cancel the flush task.  Unsent taps stay in :attr:`pending`."""
        if self._flush_task:
            self._flush_task.cancel()
            self._flush_task = None
