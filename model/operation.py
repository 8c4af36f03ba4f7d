# model/operation.py
from typing import Any
from pydantic import BaseModel, ConfigDict, Field
from util.enums import OperationStatus
from util.errors import AppError


class RetryableOperation(BaseModel):
    """
    Bookkeeping for one logical user action across its attempts.
    The idempotency key is fixed at creation and reused by every retry.
    """

    model_config = ConfigDict(populate_by_name=True)

    idempotency_key: str = Field(alias="idempotencyKey")
    attempt: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=2, ge=1, alias="maxAttempts")
    backoff_base_ms: int = Field(default=500, ge=0, alias="backoffBaseMs")
    timeout_ms: int = Field(default=10_000, gt=0, alias="timeoutMs")

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


class OperationResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: OperationStatus
    attempt: int
    max_attempts: int
    result: Any = None
    error: AppError | None = None
    already_done: bool = False

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None

    def unwrap(self) -> Any:
        if self.error is not None and not self.ok:
            raise self.error
        return self.result
