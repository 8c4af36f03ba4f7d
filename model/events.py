# model/events.py
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class _Event(BaseModel):
    # Servers add bookkeeping keys (buildId, ts, ...) we do not interpret.
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class ProgressEvent(_Event):
    type: Literal["progress"] = "progress"
    phase: str = ""
    percentage: float = 0
    message: str = ""

    @field_validator("percentage", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        if v is None:
            return 0
        return max(0.0, min(100.0, float(v)))

    @field_validator("phase", "message", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else v


class CompleteEvent(_Event):
    type: Literal["complete"] = "complete"
    message: str = ""


class ResultEvent(_Event):
    type: Literal["result"] = "result"
    result_url: str | None = Field(default=None, alias="resultUrl")
    payload: Any = None

    @model_validator(mode="before")
    @classmethod
    def _lift_nested_result(cls, data: Any) -> Any:
        # Wire shape: {"type":"result","result":{"previewUrl":...,...}}
        if isinstance(data, dict) and "result" in data:
            nested = data.get("result")
            data = dict(data)
            if data.get("payload") is None:
                data["payload"] = nested
            if not data.get("resultUrl") and isinstance(nested, dict):
                data["resultUrl"] = nested.get("resultUrl") or nested.get("previewUrl")
        return data


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    error: str = "Unknown error"
    timeout: bool = False

    @field_validator("error", mode="before")
    @classmethod
    def _default_message(cls, v: Any) -> str:
        return v or "Unknown error"


StreamEvent = Annotated[
    Union[ProgressEvent, CompleteEvent, ResultEvent, ErrorEvent],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)
