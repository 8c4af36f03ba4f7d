import asyncio

import httpx
import pytest

from core.executor import execute_resilient
from core.transport import ApiTransport


class SlowTransport(httpx.AsyncBaseTransport):
    """Answers after `delay` seconds, honouring the request's read timeout like httpcore does."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.timeouts = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        read = request.extensions["timeout"]["read"]
        self.timeouts.append(read)
        if read is not None and read < self.delay:
            await asyncio.sleep(read)
            raise httpx.ReadTimeout("read timed out", request=request)
        await asyncio.sleep(self.delay)
        return httpx.Response(200, json={"ok": True})


def slow_api(delay: float, client_timeout: float) -> tuple[ApiTransport, SlowTransport]:
    backend = SlowTransport(delay)
    client = httpx.AsyncClient(transport=backend, base_url="http://test", timeout=client_timeout)

    async def token():
        return "test-token"

    return ApiTransport(token, client=client), backend


@pytest.mark.anyio
async def test_operation_timeout_outlasts_client_default():
    api, backend = slow_api(delay=0.2, client_timeout=0.05)

    result = await execute_resilient(
        lambda key: api.request_json("POST", "/slow", idempotency_key=key, timeout_ms=2000),
        max_attempts=1,
        timeout_ms=2000,
    )

    assert result.ok
    assert result.result == {"ok": True}
    assert backend.timeouts == [2.0]


@pytest.mark.anyio
async def test_client_default_applies_without_operation_timeout():
    api, backend = slow_api(delay=0.2, client_timeout=0.05)

    result = await execute_resilient(
        lambda key: api.request_json("POST", "/slow", idempotency_key=key),
        max_attempts=1,
        timeout_ms=2000,
    )

    assert not result.ok
    assert result.error.timeout is True
    assert backend.timeouts == [0.05]
