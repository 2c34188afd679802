"""Server-sent event framing for generation runs.

Every message is one frame::

    data: <single-line JSON>\\n\\n

``json.dumps`` escapes newlines inside strings, so a blank line can only
ever mean "end of frame".  Readers split on it and decode each frame
strictly; a frame that does not decode is an error, never something to
scrape.

Message kinds, in the ``status`` field:

- ``generating``: keepalive heartbeat;
- ``progress``: one pipeline stage finished, with its event;
- ``done``: terminal, carries the itinerary as ``trip``;
- ``error``: terminal, carries a short single-line ``error`` string.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import re
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

from fastapi.encoders import jsonable_encoder

import config
from workflows.errors import FramingError, GenerationError
from workflows.state import Itinerary, PipelineEvent, TripPreferences

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data: "
FRAME_TERMINATOR = "\n\n"
TERMINAL_STATUSES = frozenset({"done", "error"})
KNOWN_STATUSES = TERMINAL_STATUSES | {"generating", "progress"}

_WHITESPACE = re.compile(r"\s+")


# ----------------------------------------------------------------------
# Messages
# ----------------------------------------------------------------------

def sanitize_error(message: Any, max_length: Optional[int] = None) -> str:
    """Short, single-line, double-quote free error text."""
    max_length = max_length or config.ERROR_MESSAGE_MAX_LENGTH
    text = _WHITESPACE.sub(" ", str(message or "")).replace('"', "'").strip()
    if not text:
        text = "Unknown error"
    if len(text) > max_length:
        text = text[: max(0, max_length - 3)].rstrip() + "..."
    return text


def heartbeat_message() -> Dict[str, Any]:
    return {"status": "generating"}


def progress_message(event: PipelineEvent) -> Dict[str, Any]:
    return {"status": "progress", "event": jsonable_encoder(event)}


def done_message(itinerary: Itinerary) -> Dict[str, Any]:
    return {"status": "done", "trip": jsonable_encoder(itinerary)}


def error_message(error: Any) -> Dict[str, Any]:
    return {"status": "error", "error": sanitize_error(error)}


def encode_frame(message: Dict[str, Any]) -> str:
    return f"{FRAME_PREFIX}{json.dumps(message, ensure_ascii=False, allow_nan=False)}{FRAME_TERMINATOR}"


def decode_frame(raw: str) -> Dict[str, Any]:
    if not raw.startswith(FRAME_PREFIX):
        raise FramingError(f"Frame does not start with '{FRAME_PREFIX.strip()}': {raw[:40]!r}")
    try:
        message = json.loads(raw[len(FRAME_PREFIX):])
    except json.JSONDecodeError as exc:
        raise FramingError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(message, dict) or message.get("status") not in KNOWN_STATUSES:
        raise FramingError(f"Frame has no known status: {raw[:80]!r}")
    return message


# ----------------------------------------------------------------------
# Server side
# ----------------------------------------------------------------------

class EventChannel:
    """Append-only frame queue. Nothing is written after the terminal frame."""

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, message: Dict[str, Any]) -> None:
        if self._closed:
            logger.debug(f"Channel closed; dropping '{message.get('status')}' message")
            return
        self._queue.put_nowait(encode_frame(message))

    def close(self, terminal: Dict[str, Any]) -> None:
        if self._closed:
            logger.warning("Channel already closed; ignoring second terminal message")
            return
        try:
            frame = encode_frame(terminal)
        except (TypeError, ValueError) as exc:
            logger.exception("Terminal message could not be serialized")
            frame = encode_frame(error_message(f"Could not serialize the result: {exc}"))
        self._queue.put_nowait(frame)
        self._queue.put_nowait(None)
        self._closed = True

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


async def stream_generation(pipeline: Any, preferences: TripPreferences) -> AsyncIterator[str]:
    """Run ``pipeline`` and yield its frames, ending with exactly one terminal frame."""
    channel = EventChannel()

    def on_progress(event: PipelineEvent) -> None:
        channel.write(progress_message(event))

    def on_heartbeat() -> None:
        channel.write(heartbeat_message())

    async def produce() -> None:
        try:
            itinerary = await pipeline.run(preferences, on_progress, on_heartbeat)
        except GenerationError as exc:
            channel.close(error_message(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected pipeline failure")
            channel.close(error_message(f"Internal error: {exc}"))
            return
        try:
            terminal = done_message(itinerary)
        except (TypeError, ValueError) as exc:
            logger.exception("Itinerary could not be serialized")
            terminal = error_message(f"Could not serialize the itinerary: {exc}")
        channel.close(terminal)

    task = asyncio.create_task(produce())
    try:
        # open the stream right away so proxies see bytes
        yield encode_frame(heartbeat_message())
        async for frame in channel.frames():
            yield frame
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)


# ----------------------------------------------------------------------
# Client side
# ----------------------------------------------------------------------

class FrameDecoder:
    """Reassemble frames from arbitrarily split chunks."""

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")()

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: Union[str, bytes]) -> List[Dict[str, Any]]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk.replace("\r\n", "\n")
        messages = []
        while FRAME_TERMINATOR in self._buffer:
            raw, self._buffer = self._buffer.split(FRAME_TERMINATOR, 1)
            if raw.strip():
                messages.append(decode_frame(raw.lstrip("\n")))
        return messages


def read_stream(
    chunks: Iterable[Union[str, bytes]],
    on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> Dict[str, Any]:
    """Consume a whole stream and return the itinerary from its ``done`` frame.

    Raises :class:`GenerationError` for an ``error`` terminal or a stream that
    ends without one, :class:`FramingError` for malformed framing.
    """
    decoder = FrameDecoder()
    terminal: Optional[Dict[str, Any]] = None
    for chunk in chunks:
        for message in decoder.feed(chunk):
            if terminal is not None:
                raise FramingError(f"Message after terminal frame: {message.get('status')}")
            if on_message is not None:
                on_message(message)
            if message["status"] in TERMINAL_STATUSES:
                terminal = message

    if decoder.pending.strip():
        raise FramingError("Stream ended in the middle of a frame")
    if terminal is None:
        raise GenerationError("Stream ended without a terminal message")
    if terminal["status"] != "done":
        raise GenerationError(terminal.get("error") or "Generation failed")
    return terminal["trip"]
