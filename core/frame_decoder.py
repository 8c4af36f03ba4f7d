# core/frame_decoder.py
import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator, Final
from pydantic import ValidationError
from config.settings import settings
from model.events import StreamEvent, stream_event_adapter
from util.errors import MalformedFrame
from util.functions import clip_text

LINE_SEP: Final[str] = "\n"
logger = logging.getLogger(__name__)


def parse_frame(payload: str) -> StreamEvent:
    """
    Parse one frame payload (the text after the event prefix) into a StreamEvent.
    Raises MalformedFrame for anything that is not a known, well-formed event.
    """
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedFrame(f"Invalid JSON frame: {e.msg}", line=payload) from e
    try:
        return stream_event_adapter.validate_python(obj)
    except ValidationError as e:
        raise MalformedFrame(
            f"Unrecognised frame ({e.error_count()} errors)", line=payload
        ) from e


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Re-frame an arbitrary byte stream into complete text lines.
    - One carry-over buffer holds the unterminated tail between chunks.
    - UTF-8 is decoded incrementally, so a character split across chunks survives.
    - On clean exhaustion the last unterminated fragment is emitted as a final line.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split(LINE_SEP)
        for line in lines:
            yield line.rstrip("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


async def decode_events(
    chunks: AsyncIterable[bytes], prefix: str | None = None
) -> AsyncIterator[StreamEvent]:
    """
    Lazy, single-pass decode of a prefixed event stream:
      - lines without the prefix are transport noise and skipped
      - a malformed payload is dropped; decoding continues
      - errors raised by the byte source propagate to the consumer
    """
    prefix = settings.EVENT_PREFIX if prefix is None else prefix
    dropped = 0
    async for line in iter_lines(chunks):
        if not line.startswith(prefix):
            continue
        try:
            event = parse_frame(line[len(prefix):])
        except MalformedFrame as e:
            dropped += 1
            logger.debug(
                "frames.malformed err=%s line=%s", e.message, clip_text(e.line or "", 120)
            )
            continue
        yield event
    if dropped:
        logger.info("frames.done dropped=%d", dropped)
