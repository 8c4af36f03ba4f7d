# service/subscription_service.py
import asyncio
import logging
from typing import Optional
from config.settings import settings
from core.executor import Sleep
from core.poller import poll_until
from core.transport import ApiTransport
from model.api import SubscriptionStatusResponse
from util.constants import ExternalURIs

logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Reads subscription state and waits for a payment to be reflected.
    The payment provider notifies the backend asynchronously, so right after
    checkout the status is usually still inactive.
    """

    def __init__(self, transport: ApiTransport, sleep: Sleep = asyncio.sleep) -> None:
        self._transport = transport
        self._sleep = sleep

    async def get_status(self, clerk_id: str) -> SubscriptionStatusResponse:
        payload = await self._transport.request_json(
            "GET", ExternalURIs.SUBSCRIPTION_STATUS, params={"clerkId": clerk_id}
        )
        return SubscriptionStatusResponse.model_validate(payload)

    async def wait_for_activation(
        self,
        clerk_id: str,
        *,
        initial_delay_ms: int | None = None,
        delay_ms: int | None = None,
        max_attempts: int | None = None,
    ) -> Optional[SubscriptionStatusResponse]:
        """
        Returns the first active status, or the last one read when the budget
        runs out. Callers show a "still processing" notice on an inactive result.
        """
        status = await poll_until(
            lambda: self.get_status(clerk_id),
            lambda s: s.is_active,
            max_attempts or settings.SUBSCRIPTION_POLL_MAX_ATTEMPTS,
            settings.SUBSCRIPTION_POLL_DELAY_MS if delay_ms is None else delay_ms,
            initial_delay_ms=(
                settings.SUBSCRIPTION_POLL_INITIAL_WAIT_MS
                if initial_delay_ms is None
                else initial_delay_ms
            ),
            label="subscription.poll",
            sleep=self._sleep,
        )
        if status is None or not status.is_active:
            logger.warning("subscription.not_active user=%s", clerk_id)
        return status
