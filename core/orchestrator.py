# core/orchestrator.py
import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
import httpx
from config.settings import settings
from core.attachments import validate_attachments
from core.frame_decoder import decode_events
from core.transport import ApiTransport, form_fields, multipart_files
from model.events import CompleteEvent, ErrorEvent, ProgressEvent, ResultEvent, StreamEvent
from model.job import GenerationJob, GenerationRequest
from repository.job_repository import JobRepository
from util.enums import ErrorMessage, JobPhase
from util.errors import AppError, ClientError
from util.logger import log_context
from util.timing import timed

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent, str], None]
JobListener = Callable[[GenerationJob], None]


class GenerationOrchestrator:
    """
    Flow:
    - start_generation(job_key) opens one streamed POST and folds its events
      into the job's snapshot until a terminal event, an error, or cancellation.
    - At most one stream per job key; a duplicate start returns the current
      snapshot without a second request.
    - Listeners see a snapshot after every write; on_event sees every event.
    """

    def __init__(
        self,
        transport: ApiTransport,
        jobs: Optional[JobRepository] = None,
        *,
        event_prefix: str | None = None,
        connect_timeout_seconds: float | None = None,
        idle_timeout_seconds: float | None = None,
        max_duration_seconds: float | None = None,
        job_idle_timeout_seconds: float | None = None,
    ) -> None:
        self._transport = transport
        self._jobs = jobs or JobRepository()
        self._prefix = settings.EVENT_PREFIX if event_prefix is None else event_prefix
        connect = connect_timeout_seconds or settings.STREAM_CONNECT_TIMEOUT_SECONDS
        self._stream_timeout = httpx.Timeout(
            connect=connect,
            read=idle_timeout_seconds or settings.STREAM_IDLE_TIMEOUT_SECONDS,
            write=connect,
            pool=connect,
        )
        self._max_duration = max_duration_seconds or settings.STREAM_MAX_DURATION_SECONDS
        self._job_idle_timeout = (
            job_idle_timeout_seconds or settings.JOB_IDLE_TIMEOUT_SECONDS
        )
        self._tasks: Dict[str, asyncio.Task] = {}
        self._listeners: List[JobListener] = []

    # ---------------- Reads ----------------

    def get(self, job_key: str) -> Optional[GenerationJob]:
        return self._jobs.get(job_key)

    def jobs(self) -> List[GenerationJob]:
        return self._jobs.all()

    def is_running(self, job_key: str) -> bool:
        task = self._tasks.get(job_key)
        return (task is not None and not task.done()) or self._jobs.is_active(job_key)

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------------- Lifecycle ----------------

    async def start_generation(
        self,
        job_key: str,
        request: Optional[GenerationRequest] = None,
        on_event: Optional[EventCallback] = None,
    ) -> GenerationJob:
        """
        Run one generation to a terminal state and return the final snapshot.
        Failures are recorded on the job, not raised. Cancelling the calling
        task cancels the stream and propagates.
        """
        if not job_key or not str(job_key).strip():
            raise ClientError("A job key is required to start a generation")
        job_key = str(job_key)
        self.sweep()
        await self._drain_abandoned(job_key)

        # Check-and-set without an await in between: single flight per key.
        if self.is_running(job_key):
            logger.info("generation.duplicate.suppressed job=%s", job_key)
            return self._jobs.get(job_key)

        request = request or GenerationRequest()
        self._save(
            job_key,
            create=True,
            phase=JobPhase.INITIALIZING,
            progress=0,
            message="Starting application generation...",
        )
        task = asyncio.create_task(
            self._run(job_key, request, on_event), name=f"generation:{job_key}"
        )
        self._tasks[job_key] = task
        try:
            await task
        except asyncio.CancelledError:
            # Cancelled before the task body ran: nothing recorded it yet.
            self._fail(job_key, ErrorMessage.CANCELLED.value.message, on_event)
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        finally:
            if self._tasks.get(job_key) is task:
                del self._tasks[job_key]
        return self._jobs.get(job_key)

    def cancel(self, job_key: str) -> bool:
        task = self._tasks.get(job_key)
        if task is None or task.done():
            return False
        logger.info("generation.cancel job=%s", job_key)
        task.cancel()
        return True

    def reset(self, job_key: str) -> bool:
        """
        Return a terminal job to idle. Refused while its stream is running.
        """
        if self.is_running(job_key) or self._jobs.get(job_key) is None:
            return False
        self._save(
            job_key,
            phase=JobPhase.IDLE,
            progress=0,
            message="",
            stage="",
            result_url=None,
            error=None,
        )
        return True

    def sweep(self) -> int:
        """
        - Active jobs with no activity for `job_idle_timeout` are abandoned
          and their streams cancelled.
        - Terminal jobs past the repository's retention window are dropped.
        Returns how many jobs were abandoned.
        """
        abandoned = self._jobs.idle_active(self._job_idle_timeout)
        for job_key in abandoned:
            logger.warning("generation.abandoned job=%s", job_key)
            self._fail(job_key, ErrorMessage.ABANDONED.value.message)
            task = self._tasks.get(job_key)
            if task is not None and not task.done():
                task.cancel()
        pruned = self._jobs.prune_terminal()
        if pruned:
            logger.info("generation.pruned count=%d", pruned)
        return len(abandoned)

    async def _drain_abandoned(self, job_key: str) -> None:
        # A job already failed by sweep() may still have its cancelled task
        # unwinding; wait for it so a restart is not taken for a duplicate.
        while True:
            task = self._tasks.get(job_key)
            job = self._jobs.get(job_key)
            if task is None or task.done() or not task.cancelling():
                return
            if job is None or not job.is_terminal:
                return
            logger.info("generation.restart.wait job=%s", job_key)
            await asyncio.wait({task})

    # ---------------- Stream ----------------

    async def _run(
        self, job_key: str, request: GenerationRequest, on_event: Optional[EventCallback]
    ) -> None:
        logger.info("generation.start job=%s scope=%s", job_key, request.scope.value)
        with log_context(f"job:{job_key}"), timed(logger, "generation.stream", job=job_key):
            try:
                async with asyncio.timeout(self._max_duration):
                    await self._consume(job_key, request, on_event)
            except asyncio.CancelledError:
                self._fail(job_key, ErrorMessage.CANCELLED.value.message, on_event)
                raise
            except TimeoutError:
                self._fail(job_key, ErrorMessage.GENERATION_TIME_LIMIT.value.message, on_event)
            except httpx.TimeoutException:
                self._fail(job_key, ErrorMessage.STREAM_STALLED.value.message, on_event)
            except httpx.RequestError as e:
                logger.warning("generation.connection_lost job=%s err=%s", job_key, type(e).__name__)
                self._fail(job_key, ErrorMessage.NETWORK.value.message, on_event)
            except AppError as e:
                self._fail(job_key, e.message, on_event)
            except Exception:
                logger.exception("generation.crashed job=%s", job_key)
                self._fail(job_key, ErrorMessage.UNKNOWN.value.message, on_event)

    async def _consume(
        self, job_key: str, request: GenerationRequest, on_event: Optional[EventCallback]
    ) -> None:
        body = request.body(job_key)
        payload: Dict[str, Any]
        if request.attachments:
            attachments = validate_attachments(request.attachments)
            payload = {"data": form_fields(body), "files": multipart_files(attachments)}
        else:
            payload = {"json": body}

        async with self._transport.open_stream(
            request.route(), timeout=self._stream_timeout, **payload
        ) as response:
            logger.info("generation.stream.open job=%s status=%d", job_key, response.status_code)
            chunks = self._chunks(job_key, response)
            async with aclosing(decode_events(chunks, self._prefix)) as events:
                async for event in events:
                    stop = self._apply(job_key, event)
                    self._emit(job_key, event, on_event)
                    if stop:
                        break

        job = self._jobs.get(job_key)
        if job is not None and not job.is_terminal:
            logger.warning("generation.stream.ended job=%s progress=%s", job_key, job.progress)
            self._fail(job_key, ErrorMessage.STREAM_ENDED.value.message, on_event)
        elif job is not None:
            logger.info("generation.finish job=%s phase=%s", job_key, job.phase.value)

    async def _chunks(self, job_key: str, response: httpx.Response) -> AsyncIterator[bytes]:
        async for chunk in response.aiter_bytes():
            self._jobs.touch(job_key)
            yield chunk

    def _apply(self, job_key: str, event: StreamEvent) -> bool:
        """
        Fold one event into the job. Returns True once no further events matter.
        - progress never decreases, and is ignored after a terminal phase
        - complete ends the job but a trailing result may still carry its URL
        - result and error stop the stream
        """
        job = self._jobs.get(job_key)
        if job is None:
            return True

        if isinstance(event, ResultEvent):
            if job.phase == JobPhase.ERROR:
                return True
            self._save(
                job_key,
                phase=JobPhase.COMPLETE,
                progress=100,
                result_url=event.result_url or job.result_url,
                message=job.message or "Generation complete",
            )
            return True

        if job.is_terminal:
            return job.phase == JobPhase.ERROR

        if isinstance(event, ProgressEvent):
            self._save(
                job_key,
                phase=JobPhase.STREAMING,
                progress=max(job.progress, event.percentage),
                message=event.message or job.message,
                stage=event.phase or job.stage,
            )
        elif isinstance(event, CompleteEvent):
            self._save(
                job_key,
                phase=JobPhase.COMPLETE,
                progress=100,
                message=event.message or "Generation complete",
            )
        elif isinstance(event, ErrorEvent):
            logger.info("generation.error_event job=%s timeout=%s", job_key, event.timeout)
            self._save(job_key, phase=JobPhase.ERROR, error=event.error)
            return True
        return False

    # ---------------- Helpers ----------------

    def _fail(
        self, job_key: str, message: str, on_event: Optional[EventCallback] = None
    ) -> None:
        # First terminal write wins; later failures are not recorded.
        job = self._jobs.get(job_key)
        if job is None or job.is_terminal:
            return
        logger.info("generation.fail job=%s err=%s", job_key, message)
        self._save(job_key, phase=JobPhase.ERROR, error=message)
        self._emit(job_key, ErrorEvent(error=message), on_event)

    def _emit(
        self, job_key: str, event: StreamEvent, on_event: Optional[EventCallback]
    ) -> None:
        if on_event is None:
            return
        try:
            on_event(event, job_key)
        except Exception:
            logger.warning("generation.callback_error job=%s", job_key, exc_info=True)

    def _save(self, job_key: str, create: bool = False, **fields) -> None:
        if create:
            snapshot = self._jobs.create(job_key, **fields)
        else:
            snapshot = self._jobs.update(job_key, **fields)
        if snapshot is None:
            return
        for listener in list(self._listeners):
            try:
                listener(snapshot.model_copy(deep=True))
            except Exception:
                logger.warning("generation.listener_error job=%s", job_key, exc_info=True)
