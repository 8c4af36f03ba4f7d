# service/asset_service.py
import asyncio
import logging
from typing import Any, Dict, Iterable
from config.settings import settings
from core.attachments import validate_attachments
from core.executor import Sleep, StatusListener, execute_resilient
from core.transport import ApiTransport, multipart_files
from model.attachment import Attachment
from model.operation import OperationResult
from util.constants import ExternalURIs

logger = logging.getLogger(__name__)


class AssetService:
    def __init__(self, transport: ApiTransport, sleep: Sleep = asyncio.sleep) -> None:
        self._transport = transport
        self._sleep = sleep

    async def upload(
        self,
        project_id: str | int,
        attachments: Iterable[Attachment],
        on_status: StatusListener | None = None,
    ) -> OperationResult:
        """
        Multipart upload of project assets. Files are validated locally first;
        an AttachmentRejected is raised before any request is made.
        """
        files = validate_attachments(attachments)
        form = {"projectId": str(project_id)}

        async def _attempt(key: str) -> Dict[str, Any]:
            return await self._transport.request_json(
                "POST",
                ExternalURIs.UPLOAD_ASSETS,
                data=form,
                files=multipart_files(files),
                idempotency_key=key,
                timeout_ms=settings.UPLOAD_TIMEOUT_MS,
            )

        result = await execute_resilient(
            _attempt,
            timeout_ms=settings.UPLOAD_TIMEOUT_MS,
            on_status=on_status,
            sleep=self._sleep,
        )
        logger.info(
            "assets.upload project=%s files=%d status=%s",
            project_id,
            len(files),
            result.status.value,
        )
        return result
