"""Shared fixtures: fake HTTP backends and an instant, recording sleep."""

import json
import os
from typing import Any, Awaitable, Callable, Dict, List

os.environ.setdefault("APP_ENV", "prod")

import httpx  # noqa: E402
import pytest  # noqa: E402

from core.transport import ApiTransport  # noqa: E402

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
    return "asyncio"


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps():
    return RecordingSleep()


@pytest.fixture
def make_transport():
    def _make(handler: Handler, token: str | None = "test-token") -> ApiTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")

        async def _token() -> str | None:
            return token

        return ApiTransport(_token, client=client)

    return _make


def frames(*events: Dict[str, Any], prefix: str = "data: ") -> bytes:
    return b"".join((prefix + json.dumps(e) + "\n").encode("utf-8") for e in events)


def stream_response(content: Any) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=content)


@pytest.fixture
def streaming():
    return stream_response
