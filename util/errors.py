# util/errors.py
from fastapi import status
from util.enums import ErrorInfo, ErrorMessage


class AppError(Exception):
    # Flow: every failure the core surfaces carries a displayable message & status.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    @classmethod
    def of(cls, info: ErrorMessage | ErrorInfo, **kwargs):
        value = info.value if isinstance(info, ErrorMessage) else info
        return cls(value.message, value.http_status, **kwargs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, http_status={self.http_status})"


class ClientError(AppError):
    """4xx-equivalent: bad input, unauthorized, forbidden, not found. Never retried."""


class AttachmentRejected(ClientError):
    def __init__(
        self,
        message: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        filename: str | None = None,
    ) -> None:
        super().__init__(message, http_status)
        self.filename = filename


class ServerError(AppError):
    """5xx-equivalent or an explicitly retryable status."""

    def __init__(
        self, message: str, http_status: int = status.HTTP_502_BAD_GATEWAY
    ) -> None:
        super().__init__(message, http_status)


class TransportError(AppError):
    """No response received: connect/read failure or an attempt timeout."""

    def __init__(
        self,
        message: str,
        http_status: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        timeout: bool = False,
    ) -> None:
        super().__init__(message, http_status)
        self.timeout = timeout


class AlreadyDone(AppError):
    """The server reports this exact logical action already succeeded."""

    def __init__(self, message: str, http_status: int = status.HTTP_409_CONFLICT):
        super().__init__(message, http_status)


class MalformedFrame(AppError):
    def __init__(
        self,
        message: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        line: str | None = None,
    ) -> None:
        super().__init__(message, http_status)
        self.line = line


class StreamInitError(AppError):
    """The long-running request could not be established."""

    def __init__(
        self, message: str, http_status: int = status.HTTP_502_BAD_GATEWAY
    ) -> None:
        super().__init__(message, http_status)
