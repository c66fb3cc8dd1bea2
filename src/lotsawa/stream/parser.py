"""Incremental parser for ``data:``-prefixed, newline-delimited event streams.

The body of a stage response is a sequence of records, one per line:

    data: {"type": "initialization", "total_texts": 3, ...}
    data: {"type": "text_completed", "text_number": 1, ...}

Chunks arrive at arbitrary boundaries, including the middle of a UTF-8
code point or of a JSON object, so decoding and line splitting are both
incremental: only complete lines are parsed, and the trailing fragment
waits in the buffer for the next chunk.

Proxies sometimes double the ``data:`` prefix or glue records together.
Lines that fail the strict parse get one recovery pass; whatever is still
unparseable is logged and skipped, except plain-text authentication
failures, which end the stream with an ``AuthenticationError``.
"""

from __future__ import annotations

import codecs
import json
import re
from typing import Callable

import anyio
import httpx
from rich.markup import escape

from lotsawa.core.errors import (
    AuthenticationError,
    LotsawaError,
    ProtocolError,
    ServiceUnavailableError,
    StreamError,
)
from lotsawa.core.events import (
    CompletionEvent,
    ErrorEvent,
    EventCallback,
    StreamEvent,
    decode_event,
)
from lotsawa.core.models import STAGE_INFO, Stage
from lotsawa.stream.cancellation import CancellationToken
from lotsawa.stream.transport import StreamHandle
from lotsawa.utils.console import console

_PREFIXES = ("data: ", "data:")
_LEADING_MARKERS = re.compile(r"^(?:data:\s*)+")
_EMBEDDED_MARKERS = re.compile(r"data:\s*(?=\{)")
_AUTH_SIGNATURES = ("authentication", "unauthorized", "401")


class LineBuffer:
    """Incremental UTF-8 decoder plus newline splitter.

    Partial multi-byte sequences and the final, possibly incomplete line
    are held back until more bytes arrive.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the lines it completed."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return lines

    def flush(self) -> list[str]:
        """Return the unterminated tail at end of stream, if it has content."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return [tail] if tail.strip() else []


def extract_payload(line: str) -> str:
    """Strip whitespace and a single leading ``data:`` prefix from a line."""
    text = line.strip()
    for prefix in _PREFIXES:
        if text.startswith(prefix):
            return text[len(prefix) :].strip()
    return text


def has_auth_signature(line: str) -> bool:
    lowered = line.lower()
    return any(signature in lowered for signature in _AUTH_SIGNATURES)


def _strict_parse(payload: str) -> dict | None:
    if not (payload.startswith("{") and payload.endswith("}")):
        return None
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _recover(payload: str) -> dict | None:
    """Second attempt for records mangled by doubled ``data:`` markers."""
    cleaned = _EMBEDDED_MARKERS.sub("", _LEADING_MARKERS.sub("", payload)).strip()
    if not cleaned.startswith("{"):
        return None
    try:
        data = json.loads(cleaned)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_record(line: str, stage: Stage = Stage.TRANSLATE) -> StreamEvent | None:
    """Decode one complete line of the stream.

    Returns None for blank lines and for noise that cannot be recovered.

    Raises:
        AuthenticationError: If an undecodable line reports an auth failure.
    """
    payload = extract_payload(line)
    if not payload:
        return None

    data = _strict_parse(payload)
    if data is None:
        data = _recover(payload)

    if data is not None:
        try:
            return decode_event(data)
        except ProtocolError as e:
            console.print(f"[dim]Skipping malformed stream record:[/dim] {escape(e.message)}")
    else:
        console.print(f"[dim]Skipping non-JSON stream data:[/dim] {escape(line.strip())}")

    if has_auth_signature(line):
        label = STAGE_INFO[stage].label.lower()
        raise AuthenticationError(f"Authentication error during {label}. Please log in again.")
    return None


def stream_error(stage: Stage, event: ErrorEvent) -> StreamError:
    return StreamError(f"{STAGE_INFO[stage].label} error: {event.reason}", details=event.details)


async def consume_stream(
    handle: StreamHandle,
    on_event: EventCallback,
    on_complete: Callable[[], None] | None = None,
    on_error: Callable[[LotsawaError], None] | None = None,
    token: CancellationToken | None = None,
    stage: Stage = Stage.TRANSLATE,
) -> None:
    """Read a stage stream until it ends, dispatching each decoded event.

    - ``completion`` and ``error`` records are terminal: the loop stops
      after the first one and nothing behind it is dispatched, even if
      more records are already buffered or the server keeps the
      connection open.
    - ``completion`` is dispatched to ``on_event`` and then calls
      ``on_complete``; ``error`` goes to ``on_error`` only.
    - A stream that ends without either also calls ``on_complete``.
    - Once the token is signalled, the loop returns without calling
      anything else; a partially received record is dropped.

    The handle is always closed on return.
    """
    finished = False

    def cancelled() -> bool:
        return token is not None and token.cancelled

    def fail(error: LotsawaError) -> None:
        if on_error is not None:
            on_error(error)

    def handle_lines(lines: list[str]) -> bool:
        """Dispatch complete lines. Returns False once the stream must stop."""
        nonlocal finished
        for line in lines:
            if cancelled():
                return False
            try:
                event = parse_record(line, stage)
            except AuthenticationError as e:
                fail(e)
                return False
            if event is None:
                continue
            if isinstance(event, ErrorEvent):
                fail(stream_error(stage, event))
                return False
            on_event(event)
            if isinstance(event, CompletionEvent):
                finished = True
                return False
        return not cancelled()

    buffer = LineBuffer()
    try:
        async for chunk in handle.aiter_chunks():
            if cancelled() or not handle_lines(buffer.feed(chunk)):
                break
        else:
            if handle_lines(buffer.flush()):
                finished = True
    except (httpx.TransportError, httpx.StreamError) as e:
        if cancelled():
            return
        label = STAGE_INFO[stage].label
        fail(ServiceUnavailableError(f"{label} stream was interrupted: {e}"))
        return
    finally:
        with anyio.CancelScope(shield=True):
            await handle.aclose()

    if finished and not cancelled() and on_complete is not None:
        on_complete()
