# config/client.py
from typing import Optional
import httpx
from config.settings import settings

_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            base_url=settings.API_BASE_URL,
            timeout=httpx.Timeout(
                settings.DEFAULT_TIMEOUT_MS / 1000,
                connect=settings.STREAM_CONNECT_TIMEOUT_SECONDS,
            ),
            headers={"Accept": "application/json"},
        )
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
