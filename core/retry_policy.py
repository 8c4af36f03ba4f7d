# core/retry_policy.py
import json
import logging
from typing import Iterable
import httpx
from fastapi import status
from util.constants import RETRYABLE_STATUSES
from util.enums import ErrorMessage
from util.errors import (
    AlreadyDone,
    AppError,
    ClientError,
    ServerError,
    TransportError,
)
from util.functions import clip_text

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    status.HTTP_400_BAD_REQUEST: ErrorMessage.INVALID_INPUT,
    status.HTTP_401_UNAUTHORIZED: ErrorMessage.AUTH_REQUIRED,
    status.HTTP_403_FORBIDDEN: ErrorMessage.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorMessage.NOT_FOUND,
    status.HTTP_429_TOO_MANY_REQUESTS: ErrorMessage.RATE_LIMITED,
}


def is_retryable_status(http_status: int) -> bool:
    return http_status >= 500 or http_status in RETRYABLE_STATUSES


def should_retry(error: BaseException, attempt: int, max_attempts: int) -> bool:
    """
    Pure function of (status, error class, attempt, max_attempts).
    `attempt` is the 1-indexed attempt that just failed.
    """
    if attempt >= max_attempts:
        return False
    if isinstance(error, AlreadyDone):
        return False
    if isinstance(error, TransportError):
        return True
    if isinstance(error, ServerError):
        return is_retryable_status(error.http_status)
    return False


def _error_text(response: httpx.Response) -> str:
    """
    Server error text: `error`/`message`/`detail` from a JSON body, else raw text.
    """
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return clip_text(response.text)
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            val = data.get(key)
            if isinstance(val, str) and val:
                return val
    return ""


def error_from_response(
    response: httpx.Response, already_done_messages: Iterable[str] = ()
) -> AppError:
    """
    Map a non-2xx response to the error taxonomy.
    Server text is surfaced verbatim for client errors; generic copy otherwise.
    """
    code = response.status_code
    text = _error_text(response)

    if text and any(m.lower() in text.lower() for m in already_done_messages):
        return AlreadyDone(text, code)

    if is_retryable_status(code):
        return ServerError(
            text or ErrorMessage.SERVER_ERROR.value.message,
            code,
        )

    fallback = _STATUS_MESSAGES.get(code, ErrorMessage.UNKNOWN).value.message
    return ClientError(text or fallback, code)


def classify_exception(exc: BaseException) -> AppError:
    """
    Default classifier: taxonomy errors pass through; transport failures map to
    TransportError; anything else is a non-retryable AppError.
    """
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return TransportError.of(ErrorMessage.TIMEOUT, timeout=True)
    if isinstance(exc, httpx.RequestError):
        logger.warning("transport.error kind=%s", type(exc).__name__)
        return TransportError.of(ErrorMessage.NETWORK)
    if isinstance(exc, httpx.HTTPStatusError):
        return error_from_response(exc.response)
    logger.error("classify.unexpected kind=%s", type(exc).__name__, exc_info=exc)
    return AppError.of(ErrorMessage.UNKNOWN)
