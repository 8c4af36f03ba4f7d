# core/transport.py
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, Optional
import httpx
from config.client import get_http_client
from config.settings import settings
from core.retry_policy import error_from_response
from model.attachment import Attachment
from util.constants import IDEMPOTENCY_HEADER
from util.enums import ErrorMessage
from util.errors import ClientError, StreamInitError
from util.functions import clip_text
from util.types import TokenProvider

logger = logging.getLogger(__name__)


def multipart_files(
    attachments: Iterable[Attachment], field: str = "files"
) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [(field, (a.filename, a.content, a.content_type)) for a in attachments]


def form_fields(body: Dict[str, Any]) -> Dict[str, str]:
    # Multipart form parts are text; drop unset values like JSON.stringify does.
    return {k: str(v) for k, v in body.items() if v is not None}


class ApiTransport:
    """
    Thin HTTP boundary for the core:
    - bearer token fetched from the provider for every request, never cached
    - JSON request/response exchange with typed errors for non-2xx replies
    - streamed POST for long-running jobs
    Transport-level failures (httpx.RequestError) propagate untouched so the
    caller's classifier decides whether they are retryable.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        client: Optional[httpx.AsyncClient] = None,
        already_done_messages: Optional[Iterable[str]] = None,
    ) -> None:
        self._token_provider = token_provider
        self._client = client
        self._already_done = tuple(
            settings.ALREADY_DONE_MESSAGES
            if already_done_messages is None
            else already_done_messages
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    async def _headers(self, idempotency_key: str | None = None) -> Dict[str, str]:
        token = await self._token_provider()
        if not token:
            raise ClientError.of(ErrorMessage.AUTH_REQUIRED)
        headers = {"Authorization": f"Bearer {token}"}
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key
        return headers

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, str]] = None,
        files: Any = None,
        idempotency_key: str | None = None,
        timeout_ms: int | None = None,
    ) -> Dict[str, Any]:
        """
        One request/response exchange. Returns the JSON object body ({} when the
        body is empty or not an object). Raises the mapped AppError for non-2xx.
        `timeout_ms` replaces the client default for this call, so an operation
        may run as long as its own deadline allows.
        """
        headers = await self._headers(idempotency_key)
        res = await self.client.request(
            method,
            path,
            json=json,
            params=params,
            data=data,
            files=files,
            headers=headers,
            timeout=(
                httpx.Timeout(timeout_ms / 1000)
                if timeout_ms
                else httpx.USE_CLIENT_DEFAULT
            ),
        )
        if not res.is_success:
            err = error_from_response(res, self._already_done)
            logger.info(
                "transport.reply method=%s path=%s status=%d err=%s",
                method,
                path,
                res.status_code,
                type(err).__name__,
            )
            raise err
        try:
            payload = res.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {"data": payload}

    @asynccontextmanager
    async def open_stream(
        self,
        path: str,
        *,
        json: Any = None,
        data: Optional[Dict[str, str]] = None,
        files: Any = None,
        timeout: Optional[httpx.Timeout] = None,
    ) -> AsyncIterator[httpx.Response]:
        """
        POST and hand back the response with its body still unread.
        Anything that prevents a usable stream raises StreamInitError.
        The response is closed when the context exits, including on cancellation.
        """
        headers = await self._headers()
        headers["Accept"] = "text/event-stream"
        request = self.client.build_request(
            "POST",
            path,
            json=json,
            data=data,
            files=files,
            headers=headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise StreamInitError.of(ErrorMessage.TIMEOUT) from e
        except httpx.RequestError as e:
            logger.warning("transport.stream.connect_error err=%s", type(e).__name__)
            raise StreamInitError.of(ErrorMessage.NETWORK) from e

        try:
            if not response.is_success:
                await response.aread()
                raise StreamInitError(
                    f"HTTP {response.status_code}: {clip_text(response.text)}",
                    response.status_code,
                )
            content_type = response.headers.get("content-type", "")
            if content_type.startswith("application/json"):
                await response.aread()
                raise StreamInitError.of(ErrorMessage.NO_RESPONSE_BODY)
            yield response
        finally:
            await response.aclose()
