# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class GenerationScope(str, Enum):
    FRONTEND = "frontend"
    FULLSTACK = "fullstack"


class JobPhase(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.COMPLETE, JobPhase.ERROR)


class OperationStatus(str, Enum):
    SUCCESS = "success"
    RETRYING = "retrying"
    FAILED = "failed"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    AUTH_REQUIRED = ErrorInfo(
        "Authentication required. Please sign in again.",
        status.HTTP_401_UNAUTHORIZED,
    )
    INVALID_INPUT = ErrorInfo(
        "Invalid submission data. Please check your form and try again.",
        status.HTTP_400_BAD_REQUEST,
    )
    FORBIDDEN = ErrorInfo(
        "Authentication error. Please sign in again and retry.",
        status.HTTP_403_FORBIDDEN,
    )
    NOT_FOUND = ErrorInfo("Not found", status.HTTP_404_NOT_FOUND)
    RATE_LIMITED = ErrorInfo(
        "Too many requests. Please wait a few minutes before trying again.",
        status.HTTP_429_TOO_MANY_REQUESTS,
    )
    SERVER_ERROR = ErrorInfo(
        "Server error. We're working to fix this. Please try again in a few minutes.",
        status.HTTP_502_BAD_GATEWAY,
    )
    TIMEOUT = ErrorInfo(
        "Request timeout. Please check your connection and try again.",
        status.HTTP_504_GATEWAY_TIMEOUT,
    )
    NETWORK = ErrorInfo(
        "Network error. Please check your connection and try again.",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    NO_RESPONSE_BODY = ErrorInfo("No response body", status.HTTP_502_BAD_GATEWAY)
    STREAM_ENDED = ErrorInfo(
        "Generation stream ended unexpectedly", status.HTTP_502_BAD_GATEWAY
    )
    STREAM_STALLED = ErrorInfo(
        "Connection timeout. Please check your internet connection and try again.",
        status.HTTP_504_GATEWAY_TIMEOUT,
    )
    GENERATION_TIME_LIMIT = ErrorInfo(
        "Maximum generation time reached. Please try again with a smaller request.",
        status.HTTP_504_GATEWAY_TIMEOUT,
    )
    CANCELLED = ErrorInfo("Generation cancelled", 499)
    OPERATION_CANCELLED = ErrorInfo("Request cancelled", 499)
    ABANDONED = ErrorInfo("Generation abandoned", status.HTTP_410_GONE)
    UNKNOWN = ErrorInfo(
        "Something went wrong. Please try again.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
