# model/job.py
import time
from typing import Any
from pydantic import BaseModel, ConfigDict, Field
from model.attachment import Attachment
from util.constants import ExternalURIs
from util.enums import GenerationScope, JobPhase


class GenerationJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_key: str = Field(alias="jobKey")
    phase: JobPhase = JobPhase.IDLE
    progress: float = 0
    message: str = ""
    stage: str = ""
    result_url: str | None = Field(default=None, alias="resultUrl")
    error: str | None = None
    started_at: float = Field(default_factory=time.monotonic, alias="startedAt")
    updated_at: float = Field(default_factory=time.monotonic, alias="updatedAt")

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def is_active(self) -> bool:
        return self.phase in (JobPhase.INITIALIZING, JobPhase.STREAMING)


class ExternalServiceCredentials(BaseModel):
    supabaseUrl: str | None = None
    supabaseAnonKey: str | None = None
    supabaseToken: str | None = None
    databaseUrl: str | None = None


class GenerationRequest(BaseModel):
    """
    Caller-supplied parameters for one generation run.
    `scope` picks the request shape; the orchestrator does not look inside it.
    """

    scope: GenerationScope = GenerationScope.FRONTEND
    credentials: ExternalServiceCredentials | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    def route(self) -> str:
        if self.scope == GenerationScope.FRONTEND:
            return ExternalURIs.GENERATE_FRONTEND_ONLY
        return ExternalURIs.GENERATE_FULLSTACK

    def body(self, job_key: str) -> dict[str, Any]:
        body: dict[str, Any] = {"projectId": _project_id(job_key)}
        if self.scope == GenerationScope.FULLSTACK and self.credentials:
            body.update(self.credentials.model_dump(exclude_none=True))
        return body


def _project_id(job_key: str) -> int | str:
    return int(job_key) if job_key.isdigit() else job_key
