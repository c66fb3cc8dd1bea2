"""Tests for the stream event taxonomy."""

import pytest

from lotsawa.core.errors import ProtocolError
from lotsawa.core.events import (
    EVENT_TYPES,
    BatchCompletedEvent,
    ErrorEvent,
    EventCallback,
    InitializationEvent,
    ProcessingStartEvent,
    RetranslationCompletedEvent,
    StreamEvent,
    UnknownEvent,
    decode_event,
)


def test_decode_known_event():
    event = decode_event({"type": "initialization", "total_texts": 3, "timestamp": "t0"})
    assert isinstance(event, InitializationEvent)
    assert event.total == 3
    assert event.timestamp == "t0"


def test_initialization_prefers_total_items():
    event = decode_event({"type": "initialization", "total_items": 2, "total_texts": 9})
    assert event.total == 2


def test_decode_batch_completed():
    event = decode_event(
        {
            "type": "batch_completed",
            "batch_number": 1,
            "batch_id": "b1",
            "batch_results": [{"original_text": "a", "translated_text": "b"}],
            "processing_time": 1.5,
        }
    )
    assert isinstance(event, BatchCompletedEvent)
    assert event.batch_results[0]["translated_text"] == "b"


@pytest.mark.parametrize("event_type", ["translation_start", "extraction_start", "glossary_extraction_start"])
def test_processing_start_variants(event_type):
    event = decode_event({"type": event_type})
    assert isinstance(event, ProcessingStartEvent)
    assert event.type == event_type


def test_retranslation_without_index():
    event = decode_event({"type": "retranslation_completed"})
    assert isinstance(event, RetranslationCompletedEvent)
    assert event.index is None


def test_unknown_type_is_kept():
    event = decode_event({"type": "heartbeat", "seq": 4})
    assert isinstance(event, UnknownEvent)
    assert event.type == "heartbeat"
    assert "heartbeat" not in EVENT_TYPES


def test_extra_fields_are_allowed():
    event = decode_event({"type": "planning", "total_batches": 2, "batch_size": 2, "eta": 30})
    assert event.total_batches == 2


def test_error_reason_fallbacks():
    assert ErrorEvent(error="boom").reason == "boom"
    assert ErrorEvent(message="from message").reason == "from message"
    assert ErrorEvent(details={"code": 7}).reason == "{'code': 7}"
    assert ErrorEvent().reason == "Unknown error"


@pytest.mark.parametrize(
    "data",
    [
        ["not", "an", "object"],
        {"no_type": True},
        {"type": ""},
        {"type": "text_completed", "text_number": "first"},
    ],
)
def test_decode_rejects_malformed_records(data):
    with pytest.raises(ProtocolError):
        decode_event(data)


def test_events_are_immutable():
    event = decode_event({"type": "batch_start", "batch_number": 1})
    with pytest.raises(Exception):
        event.batch_number = 2


def test_event_callback_type():
    """EventCallback is a callable type alias accepting any stream event."""
    collected: list[StreamEvent] = []

    def handler(event: StreamEvent) -> None:
        collected.append(event)

    cb: EventCallback = handler
    cb(decode_event({"type": "completion"}))
    assert len(collected) == 1
    assert collected[0].type == "completion"
