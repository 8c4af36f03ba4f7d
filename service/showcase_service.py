# service/showcase_service.py
import asyncio
import logging
from typing import Dict
from config.settings import settings
from core.executor import ResilientMutationExecutor, Sleep, StatusListener
from core.transport import ApiTransport
from model.api import PostResponse, SubmitPostRequest
from model.operation import OperationResult
from util.constants import ExternalURIs

logger = logging.getLogger(__name__)


class ShowcaseService:
    """
    Showcase mutations, each run through a resilient executor:
    - submit: one executor; its idempotency key doubles as `submissionId`
    - like / delete: one executor per post while an action on it is running,
      so a double click joins the running action; it is dropped once idle
    """

    def __init__(self, transport: ApiTransport, sleep: Sleep = asyncio.sleep) -> None:
        self._transport = transport
        self._sleep = sleep
        self._submitter = ResilientMutationExecutor(
            max_attempts=settings.SUBMIT_MAX_ATTEMPTS,
            backoff_base_ms=settings.SUBMIT_BACKOFF_BASE_MS,
            timeout_ms=settings.SUBMIT_TIMEOUT_MS,
            key_prefix="sub",
            sleep=sleep,
        )
        self._likers: Dict[str, ResilientMutationExecutor] = {}
        self._deleters: Dict[str, ResilientMutationExecutor] = {}

    @property
    def submitter(self) -> ResilientMutationExecutor:
        return self._submitter

    @property
    def busy_posts(self) -> set[str]:
        return set(self._likers) | set(self._deleters)

    def liker(self, post_id: str) -> ResilientMutationExecutor:
        if post_id not in self._likers:
            self._likers[post_id] = ResilientMutationExecutor(
                max_attempts=settings.LIKE_MAX_ATTEMPTS,
                backoff_base_ms=settings.LIKE_BACKOFF_BASE_MS,
                timeout_ms=settings.LIKE_TIMEOUT_MS,
                key_prefix="like",
                sleep=self._sleep,
            )
        return self._likers[post_id]

    def deleter(self, post_id: str) -> ResilientMutationExecutor:
        if post_id not in self._deleters:
            self._deleters[post_id] = ResilientMutationExecutor(
                max_attempts=settings.DELETE_MAX_ATTEMPTS,
                backoff_base_ms=settings.DELETE_BACKOFF_BASE_MS,
                timeout_ms=settings.DELETE_TIMEOUT_MS,
                key_prefix="del",
                sleep=self._sleep,
            )
        return self._deleters[post_id]

    @staticmethod
    def _release(
        executors: Dict[str, ResilientMutationExecutor],
        post_id: str,
        executor: ResilientMutationExecutor,
    ) -> None:
        if executors.get(post_id) is executor and not executor.in_flight:
            del executors[post_id]

    async def submit_post(
        self, post: SubmitPostRequest, on_status: StatusListener | None = None
    ) -> OperationResult:
        body = post.model_dump(mode="json", exclude_none=True)

        async def _attempt(key: str) -> PostResponse:
            payload = await self._transport.request_json(
                "POST",
                ExternalURIs.HACKATHON,
                json={**body, "submissionId": key},
                idempotency_key=key,
                timeout_ms=settings.SUBMIT_TIMEOUT_MS,
            )
            return PostResponse.model_validate(payload)

        result = await self._submitter.execute(_attempt, on_status=on_status)
        logger.info(
            "showcase.submit status=%s attempts=%d",
            result.status.value,
            result.attempt,
        )
        return result

    async def like_post(
        self, post_id: str, clerk_id: str, on_status: StatusListener | None = None
    ) -> OperationResult:
        async def _attempt(key: str) -> PostResponse:
            payload = await self._transport.request_json(
                "POST",
                ExternalURIs.HACKATHON_LIKE.format(post_id=post_id),
                json={"clerkId": clerk_id},
                idempotency_key=key,
                timeout_ms=settings.LIKE_TIMEOUT_MS,
            )
            return PostResponse.model_validate(payload)

        executor = self.liker(post_id)
        try:
            result = await executor.execute(_attempt, on_status=on_status)
        finally:
            self._release(self._likers, post_id, executor)
        logger.info(
            "showcase.like post=%s status=%s already=%s",
            post_id,
            result.status.value,
            result.already_done,
        )
        return result

    async def delete_post(
        self, post_id: str, clerk_id: str, on_status: StatusListener | None = None
    ) -> OperationResult:
        async def _attempt(key: str) -> PostResponse:
            payload = await self._transport.request_json(
                "DELETE",
                ExternalURIs.HACKATHON_POST.format(post_id=post_id),
                json={"clerkId": clerk_id},
                idempotency_key=key,
                timeout_ms=settings.DELETE_TIMEOUT_MS,
            )
            return PostResponse.model_validate(payload)

        executor = self.deleter(post_id)
        try:
            result = await executor.execute(_attempt, on_status=on_status)
        finally:
            self._release(self._deleters, post_id, executor)
        logger.info("showcase.delete post=%s status=%s", post_id, result.status.value)
        return result
