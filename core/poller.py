# core/poller.py
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def poll_until(
    read_fn: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    max_attempts: int,
    delay_ms: int,
    *,
    initial_delay_ms: int = 0,
    label: str = "poll",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> Optional[T]:
    """
    Read until `predicate(value)` holds or `max_attempts` reads were made.
    Exhaustion is not an error: the last observed value is returned and the
    caller decides how to degrade. A read that raises still counts as an
    attempt; if every read raised the result is None.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    if initial_delay_ms > 0:
        await sleep(initial_delay_ms / 1000)

    last: Optional[T] = None
    for attempt in range(1, max_attempts + 1):
        try:
            last = await read_fn()
        except Exception as e:
            logger.warning(
                "%s.read_error attempt=%d/%d err=%s",
                label,
                attempt,
                max_attempts,
                type(e).__name__,
            )
        else:
            if predicate(last):
                logger.info("%s.satisfied attempt=%d/%d", label, attempt, max_attempts)
                return last
            logger.debug("%s.pending attempt=%d/%d", label, attempt, max_attempts)

        if attempt < max_attempts:
            await sleep(delay_ms / 1000)

    logger.warning("%s.exhausted attempts=%d", label, max_attempts)
    return last
