# util/logger.py
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from typing import Iterator
from config.settings import settings

logging.captureWarnings(True)

TEXT_FMT = "%(asctime)s %(levelname)s %(name)s [%(ctx)s] - %(message)s"
DATE_FMT = "%Y-%m-%dT%H:%M:%S%z"

# Key of the job or operation the current task is working on ("-" when none).
_log_ctx: ContextVar[str] = ContextVar("log_ctx", default="-")


@contextmanager
def log_context(value: str) -> Iterator[None]:
    """
    Tag every record emitted inside the block, e.g. log_context("job:42").
    Each asyncio task runs in its own context copy, so concurrent streams
    do not see each other's tag.
    """
    token = _log_ctx.set(value)
    try:
        yield
    finally:
        _log_ctx.reset(token)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.ctx = _log_ctx.get()
        return True


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[37m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Colorize a copy so file handlers sharing the record stay plain
        if getattr(record, "_colorize", False):
            record = logging.makeLogRecord(record.__dict__)
            lvl = record.levelname
            record.levelname = f"{self.COLORS.get(lvl, self.RESET)}{lvl}{self.RESET}"
        return super().format(record)


class _ConsoleHandler(logging.StreamHandler):
    def emit(self, record: logging.LogRecord) -> None:
        record._colorize = True  # type: ignore[attr-defined]
        try:
            super().emit(record)
        finally:
            record._colorize = False  # type: ignore[attr-defined]


def _console_handler(level: int) -> logging.Handler:
    handler = _ConsoleHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(TEXT_FMT, datefmt=DATE_FMT))
    handler.addFilter(ContextFilter())
    return handler


def _file_handler(level: int) -> logging.Handler:
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(settings.LOG_DIR, settings.LOG_FILE_NAME),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(TEXT_FMT, datefmt=DATE_FMT))
    handler.addFilter(ContextFilter())
    return handler


def init_logger() -> logging.Logger:
    """
    Idempotent logger init for an embedding app or a test session:
    - stdout always, colored by level
    - rotating file under LOG_DIR only when LOG_TO_FILE is set
    - every line carries the job/operation tag set via log_context()
    """
    root = logging.getLogger()
    if getattr(root, "_remote_ops_inited", False):
        return logging.getLogger(settings.LOGGER_NAME)

    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    root.addHandler(_console_handler(level))
    if settings.LOG_TO_FILE:
        root.addHandler(_file_handler(level))

    # Per-request transport chatter stays out of the app log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root._remote_ops_inited = True  # type: ignore[attr-defined]
    logger = logging.getLogger(settings.LOGGER_NAME)
    logger.debug("logger.ready level=%s file=%s", logging.getLevelName(level), settings.LOG_TO_FILE)
    return logger
