# core/executor.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from config.settings import settings
from core.retry_policy import classify_exception, should_retry
from model.operation import OperationResult, RetryableOperation
from util.enums import ErrorMessage, OperationStatus
from util.errors import AlreadyDone, AppError
from util.functions import backoff_delay_ms, new_idempotency_key
from util.logger import log_context
from util.timing import timed

logger = logging.getLogger(__name__)

OperationFn = Callable[[str], Awaitable[Any]]
ErrorClassifier = Callable[[BaseException], AppError]
StatusListener = Callable[[OperationResult], None]
Sleep = Callable[[float], Awaitable[Any]]


class ResilientMutationExecutor:
    """
    Runs one logical mutation with bounded retries.

    - `operation_fn(idempotency_key)` performs exactly one network attempt.
    - The same idempotency key reaches every attempt; it is dropped once the
      action is terminal, so the next action gets a fresh one.
    - A second `execute` while one is in flight joins the running action
      instead of issuing a duplicate request.
    """

    def __init__(
        self,
        *,
        max_attempts: int | None = None,
        backoff_base_ms: int | None = None,
        timeout_ms: int | None = None,
        key_prefix: str = "op",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._max_attempts = max_attempts or settings.DEFAULT_MAX_ATTEMPTS
        self._backoff_base_ms = (
            settings.DEFAULT_BACKOFF_BASE_MS if backoff_base_ms is None else backoff_base_ms
        )
        self._timeout_ms = timeout_ms or settings.DEFAULT_TIMEOUT_MS
        self._key_prefix = key_prefix
        self._sleep = sleep
        self._pending_key: Optional[str] = None
        self._operation: Optional[RetryableOperation] = None
        self._inflight: Optional[asyncio.Future] = None
        self._retry_pending = False

    # ---------------- UI feedback ----------------

    @property
    def attempt(self) -> int:
        return self._operation.attempt if self._operation else 0

    @property
    def max_attempts(self) -> int:
        return self._operation.max_attempts if self._operation else self._max_attempts

    @property
    def retry_pending(self) -> bool:
        return self._retry_pending

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def idempotency_key(self) -> Optional[str]:
        if self._operation:
            return self._operation.idempotency_key
        return self._pending_key

    def prepare(self, idempotency_key: str | None = None) -> str:
        """
        Fix the key for the next logical action ahead of its first attempt.
        """
        if self._pending_key is None or idempotency_key is not None:
            self._pending_key = idempotency_key or new_idempotency_key(self._key_prefix)
        return self._pending_key

    # ---------------- Execution ----------------

    async def execute(
        self,
        operation_fn: OperationFn,
        classify_error: ErrorClassifier = classify_exception,
        *,
        max_attempts: int | None = None,
        backoff_base_ms: int | None = None,
        timeout_ms: int | None = None,
        idempotency_key: str | None = None,
        on_status: StatusListener | None = None,
    ) -> OperationResult:
        if self.in_flight:
            logger.info("executor.duplicate.suppressed op=%s", self.idempotency_key)
            return await asyncio.shield(self._inflight)

        self._inflight = asyncio.get_running_loop().create_future()
        inflight = self._inflight
        try:
            result = await self._run(
                operation_fn,
                classify_error,
                max_attempts=max_attempts or self._max_attempts,
                backoff_base_ms=(
                    self._backoff_base_ms if backoff_base_ms is None else backoff_base_ms
                ),
                timeout_ms=timeout_ms or self._timeout_ms,
                idempotency_key=idempotency_key,
                on_status=on_status,
            )
        except BaseException as e:
            # Joiners get a failed result; only the leader sees the exception.
            error = (
                AppError.of(ErrorMessage.OPERATION_CANCELLED)
                if isinstance(e, asyncio.CancelledError)
                else classify_exception(e)
            )
            inflight.set_result(
                OperationResult(
                    status=OperationStatus.FAILED,
                    attempt=self.attempt,
                    max_attempts=self.max_attempts,
                    error=error,
                )
            )
            logger.info("executor.aborted op=%s err=%s", self.idempotency_key, type(e).__name__)
            self._operation = None
            self._retry_pending = False
            raise
        else:
            inflight.set_result(result)
            return result
        finally:
            self._inflight = None

    async def _run(
        self,
        operation_fn: OperationFn,
        classify_error: ErrorClassifier,
        *,
        max_attempts: int,
        backoff_base_ms: int,
        timeout_ms: int,
        idempotency_key: str | None,
        on_status: StatusListener | None,
    ) -> OperationResult:
        key = idempotency_key or self.prepare()
        self._pending_key = None
        op = RetryableOperation(
            idempotency_key=key,
            max_attempts=max_attempts,
            backoff_base_ms=backoff_base_ms,
            timeout_ms=timeout_ms,
        )
        self._operation = op
        with log_context(f"op:{key}"):
            return await self._attempts(op, operation_fn, classify_error, on_status)

    async def _attempts(
        self,
        op: RetryableOperation,
        operation_fn: OperationFn,
        classify_error: ErrorClassifier,
        on_status: StatusListener | None,
    ) -> OperationResult:
        key = op.idempotency_key
        last_error: Optional[AppError] = None

        while not op.exhausted:
            op.attempt += 1
            self._retry_pending = False
            try:
                with timed(
                    logger, "executor.attempt", logging.DEBUG, op=key, attempt=op.attempt
                ):
                    async with asyncio.timeout(op.timeout_ms / 1000):
                        value = await operation_fn(key)
            except Exception as exc:
                error = classify_error(exc)
            else:
                if op.attempt > 1:
                    logger.info(
                        "executor.recovered op=%s attempt=%d/%d",
                        key,
                        op.attempt,
                        op.max_attempts,
                    )
                return self._finish(
                    OperationResult(
                        status=OperationStatus.SUCCESS,
                        attempt=op.attempt,
                        max_attempts=op.max_attempts,
                        result=value,
                    ),
                    on_status,
                )

            if isinstance(error, AlreadyDone):
                logger.info("executor.already_done op=%s msg=%s", key, error.message)
                return self._finish(
                    OperationResult(
                        status=OperationStatus.SUCCESS,
                        attempt=op.attempt,
                        max_attempts=op.max_attempts,
                        already_done=True,
                    ),
                    on_status,
                )

            last_error = error
            if not should_retry(error, op.attempt, op.max_attempts):
                break

            delay_ms = backoff_delay_ms(op.backoff_base_ms, op.attempt)
            self._retry_pending = True
            logger.warning(
                "executor.retry op=%s attempt=%d/%d delay_ms=%d err=%s status=%d",
                key,
                op.attempt,
                op.max_attempts,
                delay_ms,
                type(error).__name__,
                error.http_status,
            )
            if on_status:
                on_status(
                    OperationResult(
                        status=OperationStatus.RETRYING,
                        attempt=op.attempt,
                        max_attempts=op.max_attempts,
                        error=error,
                    )
                )
            await self._sleep(delay_ms / 1000)

        logger.error(
            "executor.failed op=%s attempts=%d err=%s status=%s",
            key,
            op.attempt,
            type(last_error).__name__,
            last_error.http_status if last_error else None,
        )
        return self._finish(
            OperationResult(
                status=OperationStatus.FAILED,
                attempt=op.attempt,
                max_attempts=op.max_attempts,
                error=last_error,
            ),
            on_status,
        )

    def _finish(
        self, result: OperationResult, on_status: StatusListener | None
    ) -> OperationResult:
        # Terminal: the key belonged to this action only.
        self._operation = None
        self._retry_pending = False
        if on_status:
            on_status(result)
        return result


async def execute_resilient(
    operation_fn: OperationFn,
    classify_error: ErrorClassifier = classify_exception,
    *,
    max_attempts: int | None = None,
    backoff_base_ms: int | None = None,
    timeout_ms: int | None = None,
    idempotency_key: str | None = None,
    on_status: StatusListener | None = None,
    sleep: Sleep = asyncio.sleep,
) -> OperationResult:
    """One-shot form of ResilientMutationExecutor.execute for call sites without UI state."""
    executor = ResilientMutationExecutor(
        max_attempts=max_attempts,
        backoff_base_ms=backoff_base_ms,
        timeout_ms=timeout_ms,
        sleep=sleep,
    )
    return await executor.execute(
        operation_fn,
        classify_error,
        idempotency_key=idempotency_key,
        on_status=on_status,
    )
