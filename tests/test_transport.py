"""
tests/test_transport.py — HTTP Tap Transport
==============================================
HttpTapTransport against an httpx.MockTransport: success payloads, ledger
error payloads mapped back to LedgerError subclasses, and failures whose
commit status is unknown.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest

from earnledger.client.transport import HttpTapTransport, TransportError
from earnledger.engine.errors import CooldownActive, LedgerError, SuspiciousActivity


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def _transport(handler) -> HttpTapTransport:
    client = httpx.AsyncClient(
        base_url="http://ledger.test", transport=httpx.MockTransport(handler)
    )
    return HttpTapTransport("http://ledger.test", "tok-123", client=client)


class TestHttpTapTransport:
    def test_posts_count_with_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"account": {}, "credited": 9})

        result = run_async(_transport(handler).send_taps(9))
        assert result["credited"] == 9
        assert seen == {"path": "/api/taps", "auth": "Bearer tok-123", "body": {"count": 9}}

    def test_error_payload_becomes_ledger_error(self):
        def handler(request):
            return httpx.Response(
                400, json=SuspiciousActivity("Suspicious activity detected.").to_dict()
            )

        with pytest.raises(SuspiciousActivity, match="Suspicious activity"):
            run_async(_transport(handler).send_taps(500))

    def test_cooldown_payload_keeps_deadline(self):
        until = datetime(2026, 3, 1, 12, 5, tzinfo=UTC)

        def handler(request):
            return httpx.Response(429, json=CooldownActive(until).to_dict())

        with pytest.raises(CooldownActive) as exc_info:
            run_async(_transport(handler).send_taps(5))
        assert exc_info.value.cooldown_until == until

    def test_unknown_error_code_is_preserved(self):
        def handler(request):
            return httpx.Response(409, json={"error": "NEW_THING", "detail": "?"})

        with pytest.raises(LedgerError) as exc_info:
            run_async(_transport(handler).send_taps(5))
        assert exc_info.value.code == "NEW_THING"

    def test_network_failure_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            run_async(_transport(handler).send_taps(5))

    def test_timeout_is_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError):
            run_async(_transport(handler).send_taps(5))

    def test_non_json_failure_is_transport_error(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(TransportError):
            run_async(_transport(handler).send_taps(5))

    def test_non_ledger_json_error_is_transport_error(self):
        def handler(request):
            return httpx.Response(500, json={"detail": "Internal Server Error"})

        with pytest.raises(TransportError):
            run_async(_transport(handler).send_taps(5))

    def test_success_without_account_is_transport_error(self):
        def handler(request):
            return httpx.Response(200, json={"credited": 5})

        with pytest.raises(TransportError, match="no account snapshot"):
            run_async(_transport(handler).send_taps(5))
