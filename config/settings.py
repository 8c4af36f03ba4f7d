# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    API_BASE_URL: str = Field(
        default="http://localhost:3000", validation_alias="API_BASE_URL"
    )

    # Stream framing
    EVENT_PREFIX: str = Field(default="data: ", validation_alias="EVENT_PREFIX")

    # Generation stream
    STREAM_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10.0, validation_alias="STREAM_CONNECT_TIMEOUT_SECONDS"
    )
    STREAM_IDLE_TIMEOUT_SECONDS: float = Field(
        default=120.0, validation_alias="STREAM_IDLE_TIMEOUT_SECONDS"
    )
    STREAM_MAX_DURATION_SECONDS: float = Field(
        default=600.0, validation_alias="STREAM_MAX_DURATION_SECONDS"
    )

    # Job registry (cleanup policy for abandoned jobs)
    JOB_IDLE_TIMEOUT_SECONDS: int = Field(
        default=900, validation_alias="JOB_IDLE_TIMEOUT_SECONDS"
    )
    JOB_RETENTION_SECONDS: int = Field(
        default=24 * 60 * 60, validation_alias="JOB_RETENTION_SECONDS"
    )

    # Mutations
    DEFAULT_MAX_ATTEMPTS: int = Field(default=2, validation_alias="DEFAULT_MAX_ATTEMPTS")
    DEFAULT_BACKOFF_BASE_MS: int = Field(
        default=500, validation_alias="DEFAULT_BACKOFF_BASE_MS"
    )
    DEFAULT_TIMEOUT_MS: int = Field(default=10_000, validation_alias="DEFAULT_TIMEOUT_MS")
    SUBMIT_TIMEOUT_MS: int = 30_000
    SUBMIT_BACKOFF_BASE_MS: int = 1_000
    SUBMIT_MAX_ATTEMPTS: int = 3
    LIKE_TIMEOUT_MS: int = 10_000
    LIKE_BACKOFF_BASE_MS: int = 500
    LIKE_MAX_ATTEMPTS: int = 3
    DELETE_TIMEOUT_MS: int = 15_000
    DELETE_BACKOFF_BASE_MS: int = 1_000
    DELETE_MAX_ATTEMPTS: int = 3
    UPLOAD_TIMEOUT_MS: int = 60_000
    ALREADY_DONE_MESSAGES: list[str] = [
        "You have already liked this post",
    ]

    # Reconciliation polling
    SUBSCRIPTION_POLL_INITIAL_WAIT_MS: int = 60_000
    SUBSCRIPTION_POLL_DELAY_MS: int = 3_000
    SUBSCRIPTION_POLL_MAX_ATTEMPTS: int = 20
    CREDITS_POLL_DELAY_MS: int = 800
    CREDITS_POLL_MAX_ATTEMPTS: int = 5

    # Attachments
    MAX_ATTACHMENT_MB: int = Field(default=5, validation_alias="MAX_ATTACHMENT_MB")
    MAX_PDF_PAGES: int = 5
    ALLOWED_ATTACHMENT_EXTENSIONS: tuple[str, ...] = (
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".webp",
        ".svg",
        ".ico",
        ".pdf",
    )

    # Logging knobs
    LOGGER_NAME: str = "remote-ops"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    @property
    def MAX_ATTACHMENT_BYTES(self) -> int:
        return self.MAX_ATTACHMENT_MB * 1024 * 1024


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
