# service/account_service.py
import asyncio
import logging
from typing import Optional
from config.settings import settings
from core.executor import Sleep
from core.poller import poll_until
from core.transport import ApiTransport
from model.api import CreditsResponse
from util.constants import ExternalURIs

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, transport: ApiTransport, sleep: Sleep = asyncio.sleep) -> None:
        self._transport = transport
        self._sleep = sleep

    async def fetch_credits(self, clerk_id: str) -> CreditsResponse:
        payload = await self._transport.request_json(
            "POST", ExternalURIs.USER_CREDITS, json={"clerkId": clerk_id}
        )
        return CreditsResponse.model_validate(payload)

    async def wait_for_signup_credits(self, clerk_id: str) -> Optional[CreditsResponse]:
        # New accounts get their signup grant shortly after the user record exists;
        # a payload without a `signup` figure has nothing to wait for.
        credits = await poll_until(
            lambda: self.fetch_credits(clerk_id),
            lambda c: c.signup is None or c.signup > 0,
            settings.CREDITS_POLL_MAX_ATTEMPTS,
            settings.CREDITS_POLL_DELAY_MS,
            label="credits.poll",
            sleep=self._sleep,
        )
        logger.info(
            "credits.ready user=%s total=%s", clerk_id, credits.total if credits else None
        )
        return credits
