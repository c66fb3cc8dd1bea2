"""Tests for the incremental stream parser."""

import json

import anyio
import httpx
import pytest

from lotsawa.core.errors import AuthenticationError, ServiceUnavailableError, StreamError
from lotsawa.core.events import CompletionEvent, InitializationEvent, ItemCompletedEvent
from lotsawa.core.models import Stage
from lotsawa.stream.cancellation import CancellationToken
from lotsawa.stream.parser import (
    LineBuffer,
    consume_stream,
    extract_payload,
    parse_record,
)


class FakeHandle:
    """Stands in for a StreamHandle, yielding fixed chunks."""

    def __init__(self, chunks, fail_with=None):
        self.chunks = list(chunks)
        self.fail_with = fail_with
        self.closed = False

    async def _iterate(self):
        for chunk in self.chunks:
            await anyio.sleep(0)
            yield chunk
        if self.fail_with is not None:
            raise self.fail_with

    def aiter_chunks(self):
        return self._iterate()

    async def aclose(self):
        self.closed = True


class Recorder:
    def __init__(self):
        self.events = []
        self.errors = []
        self.completed = 0

    def on_event(self, event):
        self.events.append(event)

    def on_complete(self):
        self.completed += 1

    def on_error(self, error):
        self.errors.append(error)


async def _consume(chunks, token=None, stage=Stage.TRANSLATE, fail_with=None):
    recorder = Recorder()
    handle = FakeHandle(chunks, fail_with=fail_with)
    await consume_stream(
        handle,
        recorder.on_event,
        recorder.on_complete,
        recorder.on_error,
        token=token,
        stage=stage,
    )
    assert handle.closed
    return recorder


def _line(record) -> bytes:
    return f"data: {json.dumps(record, ensure_ascii=False)}\n".encode()


STREAM = (
    _line({"type": "initialization", "total_texts": 2})
    + _line({"type": "text_completed", "text_number": 1, "translation_preview": "སེམས → mind"})
    + _line({"type": "batch_completed", "batch_number": 1, "batch_results": [
        {"original_text": "སེམས་ཉིད།", "translated_text": "the nature of mind"}
    ]})
    + _line({"type": "completion"})
)


class TestLineBuffer:
    def test_holds_back_partial_line(self):
        buffer = LineBuffer()
        assert buffer.feed(b"data: {\"a\"") == []
        assert buffer.feed(b": 1}\nda") == ['data: {"a": 1}']
        assert buffer.pending == "da"

    def test_split_multibyte_character(self):
        encoded = "ཀ\n".encode()
        buffer = LineBuffer()
        assert buffer.feed(encoded[:1]) == []
        assert buffer.feed(encoded[1:]) == ["ཀ"]

    def test_flush_returns_unterminated_tail(self):
        buffer = LineBuffer()
        buffer.feed(b"data: {}")
        assert buffer.flush() == ["data: {}"]
        assert buffer.flush() == []


class TestParseRecord:
    def test_extract_payload(self):
        assert extract_payload("  data: {\"x\": 1}  ") == '{"x": 1}'
        assert extract_payload("data:{}") == "{}"
        assert extract_payload("plain") == "plain"

    def test_blank_lines_are_skipped(self):
        assert parse_record("   ") is None
        assert parse_record("data: ") is None

    def test_duplicated_prefix_is_recovered(self):
        event = parse_record('data: data: {"type":"completion","status":"ok"}')
        assert isinstance(event, CompletionEvent)
        assert event.status == "ok"

    def test_noise_is_skipped(self):
        assert parse_record("data: keep-alive") is None
        assert parse_record('data: {"type": "completion"') is None

    def test_record_without_type_is_skipped(self):
        assert parse_record('data: {"value": 1}') is None

    def test_auth_failure_in_plain_text_is_escalated(self):
        with pytest.raises(AuthenticationError, match="during glossary extraction"):
            parse_record("data: 401 Unauthorized", Stage.GLOSSARY)


@pytest.mark.anyio
async def test_scenario_a_events_split_at_newline():
    first = _line({"type": "initialization", "total_items": 2})
    second = _line({"type": "item_completed", "item_number": 1})
    recorder = await _consume([first, second], stage=Stage.GLOSSARY)
    assert [type(e) for e in recorder.events] == [InitializationEvent, ItemCompletedEvent]
    assert recorder.completed == 1
    assert recorder.errors == []


@pytest.mark.anyio
async def test_scenario_b_duplicated_prefix_still_completes():
    recorder = await _consume([b'data: data: {"type":"completion","total_completed":1}\n'])
    assert len(recorder.events) == 1
    assert isinstance(recorder.events[0], CompletionEvent)


@pytest.mark.anyio
async def test_chunk_boundaries_do_not_change_events():
    whole = await _consume([STREAM])
    expected = [e.model_dump() for e in whole.events]
    assert len(expected) == 4

    for cut in range(1, len(STREAM)):
        split = await _consume([STREAM[:cut], STREAM[cut:]])
        assert [e.model_dump() for e in split.events] == expected, f"cut at byte {cut}"

    bytewise = await _consume([STREAM[i : i + 1] for i in range(len(STREAM))])
    assert [e.model_dump() for e in bytewise.events] == expected


@pytest.mark.anyio
async def test_unterminated_final_record_is_parsed():
    recorder = await _consume([b'data: {"type": "completion"}'])
    assert [e.type for e in recorder.events] == ["completion"]
    assert recorder.completed == 1


@pytest.mark.anyio
async def test_error_event_stops_the_stream():
    chunk = (
        _line({"type": "initialization", "total_texts": 1})
        + _line({"type": "error", "error": "model overloaded"})
        + _line({"type": "completion"})
    )
    recorder = await _consume([chunk])
    assert [e.type for e in recorder.events] == ["initialization"]
    assert recorder.completed == 0
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], StreamError)
    assert recorder.errors[0].message == "Translation error: model overloaded"


@pytest.mark.anyio
async def test_malformed_lines_are_skipped():
    chunk = b"data: not json\n\n: comment\n" + _line({"type": "completion"})
    recorder = await _consume([chunk])
    assert [e.type for e in recorder.events] == ["completion"]
    assert recorder.errors == []


@pytest.mark.anyio
async def test_auth_failure_ends_stream():
    chunk = b"Authentication required\n" + _line({"type": "completion"})
    recorder = await _consume([chunk])
    assert recorder.events == []
    assert recorder.completed == 0
    assert isinstance(recorder.errors[0], AuthenticationError)


@pytest.mark.anyio
async def test_cancellation_drops_remaining_records():
    token = CancellationToken()
    recorder = Recorder()

    def on_event(event):
        recorder.events.append(event)
        token.cancel()

    chunk = _line({"type": "initialization", "total_texts": 2}) + _line({"type": "completion"})
    handle = FakeHandle([chunk, _line({"type": "completion"})])
    await consume_stream(handle, on_event, recorder.on_complete, recorder.on_error, token=token)

    assert [e.type for e in recorder.events] == ["initialization"]
    assert recorder.completed == 0
    assert recorder.errors == []
    assert handle.closed


@pytest.mark.anyio
async def test_interrupted_stream_is_reported():
    recorder = await _consume(
        [_line({"type": "initialization", "total_texts": 1})],
        fail_with=httpx.ReadError("connection reset"),
    )
    assert recorder.completed == 0
    assert isinstance(recorder.errors[0], ServiceUnavailableError)
    assert "stream was interrupted" in recorder.errors[0].message


@pytest.mark.anyio
async def test_interruption_after_cancel_is_silent():
    token = CancellationToken()
    token.cancel()
    recorder = await _consume([], token=token, fail_with=httpx.ReadError("closed"))
    assert recorder.errors == []
    assert recorder.completed == 0


@pytest.mark.anyio
async def test_completion_record_ends_the_stream():
    chunk = (
        _line({"type": "initialization", "total_texts": 1})
        + _line({"type": "completion"})
        + _line({"type": "text_completed", "text_number": 1})
        + _line({"type": "error", "error": "late"})
    )
    recorder = await _consume([chunk, _line({"type": "completion"})])
    assert [e.type for e in recorder.events] == ["initialization", "completion"]
    assert recorder.completed == 1
    assert recorder.errors == []


@pytest.mark.anyio
async def test_completion_in_unterminated_tail_completes_once():
    recorder = await _consume([_line({"type": "initialization"}), b'data: {"type": "completion"}'])
    assert [e.type for e in recorder.events] == ["initialization", "completion"]
    assert recorder.completed == 1
