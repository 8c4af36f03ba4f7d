import pytest

from config.client import close_http_client, get_http_client
from config.settings import settings


@pytest.mark.anyio
async def test_shared_client_is_reused_until_closed():
    client = get_http_client()

    assert get_http_client() is client
    assert str(client.base_url).rstrip("/") == settings.API_BASE_URL.rstrip("/")

    await close_http_client()
    assert client.is_closed

    fresh = get_http_client()
    assert fresh is not client
    await close_http_client()
