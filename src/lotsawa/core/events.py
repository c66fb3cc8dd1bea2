"""Stream event taxonomy.

Each record in a generation stream is a JSON object with a ``type`` field.
The union below is closed: every known ``type`` maps to one model, and
anything else decodes to ``UnknownEvent`` so consumers can log and skip it.
Count and percentage fields are stage-specific and optional, since the
translate, glossary and apply streams fill in different ones.
"""

from __future__ import annotations

from typing import Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from lotsawa.core.errors import ProtocolError


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    timestamp: str | None = None
    message: str | None = None


class InitializationEvent(BaseEvent):
    type: Literal["initialization"] = "initialization"
    total_items: int | None = None
    total_texts: int | None = None

    @property
    def total(self) -> int:
        return self.total_items if self.total_items is not None else (self.total_texts or 0)


class PlanningEvent(BaseEvent):
    type: Literal["planning"] = "planning"
    total_batches: int = 0
    batch_size: int = 0


class BatchStartEvent(BaseEvent):
    type: Literal["batch_start"] = "batch_start"
    batch_number: int = 0
    progress_percent: float | None = None


class ProcessingStartEvent(BaseEvent):
    """Informational marker sent when the model starts working on a batch."""

    type: Literal["translation_start", "extraction_start", "glossary_extraction_start"]


class TextCompletedEvent(BaseEvent):
    type: Literal["text_completed"] = "text_completed"
    text_number: int = 0
    total_texts: int | None = None
    progress_percent: float | None = None
    translation_preview: str | None = None


class ItemCompletedEvent(BaseEvent):
    type: Literal["item_completed"] = "item_completed"
    item_number: int = 0
    total_items: int | None = None
    progress_percent: float | None = None
    glossary_preview: str | None = None


class BatchCompletedEvent(BaseEvent):
    type: Literal["batch_completed"] = "batch_completed"
    batch_number: int = 0
    batch_id: str = ""
    batch_results: list[dict[str, Any]] = Field(default_factory=list)
    cumulative_progress: float | None = None
    processing_time: str | float | None = None


class GlossaryBatchCompletedEvent(BaseEvent):
    type: Literal["glossary_batch_completed"] = "glossary_batch_completed"
    terms: list[dict[str, Any]] = Field(default_factory=list)


class RetranslationStartEvent(BaseEvent):
    type: Literal["retranslation_start"] = "retranslation_start"
    index: int | None = None
    status: str | None = None


class RetranslationCompletedEvent(BaseEvent):
    type: Literal["retranslation_completed"] = "retranslation_completed"
    index: int | None = None
    status: str | None = None
    updated_item: dict[str, Any] | None = None


class CompletionEvent(BaseEvent):
    type: Literal["completion"] = "completion"
    total_completed: int | None = None
    total_items: int | None = None
    total_texts: int | None = None
    status: str | None = None
    glossary_terms: list[dict[str, Any]] | None = None


class ErrorEvent(BaseEvent):
    type: Literal["error"] = "error"
    error: str | None = None
    details: Any = None
    status: str | None = None

    @property
    def reason(self) -> str:
        if self.error or self.message:
            return self.error or self.message
        return str(self.details) if self.details else "Unknown error"


class RawContentEvent(BaseEvent):
    type: Literal["raw_content"] = "raw_content"
    content: str = ""


class UnknownEvent(BaseEvent):
    """A record whose ``type`` is not part of the taxonomy."""

    type: str


StreamEvent = Union[
    InitializationEvent,
    PlanningEvent,
    BatchStartEvent,
    ProcessingStartEvent,
    TextCompletedEvent,
    ItemCompletedEvent,
    BatchCompletedEvent,
    GlossaryBatchCompletedEvent,
    RetranslationStartEvent,
    RetranslationCompletedEvent,
    CompletionEvent,
    ErrorEvent,
    RawContentEvent,
    UnknownEvent,
]

EventCallback = Callable[[StreamEvent], None]

_EVENT_MODELS: dict[str, type[BaseEvent]] = {
    "initialization": InitializationEvent,
    "planning": PlanningEvent,
    "batch_start": BatchStartEvent,
    "translation_start": ProcessingStartEvent,
    "extraction_start": ProcessingStartEvent,
    "glossary_extraction_start": ProcessingStartEvent,
    "text_completed": TextCompletedEvent,
    "item_completed": ItemCompletedEvent,
    "batch_completed": BatchCompletedEvent,
    "glossary_batch_completed": GlossaryBatchCompletedEvent,
    "retranslation_start": RetranslationStartEvent,
    "retranslation_completed": RetranslationCompletedEvent,
    "completion": CompletionEvent,
    "error": ErrorEvent,
    "raw_content": RawContentEvent,
}

EVENT_TYPES = frozenset(_EVENT_MODELS)


def decode_event(data: Any) -> StreamEvent:
    """Build a typed event from a decoded JSON record.

    Raises:
        ProtocolError: If the record is not an object, has no string
            ``type``, or its fields do not match the event's schema.
    """
    if not isinstance(data, dict):
        raise ProtocolError(f"Stream record is not a JSON object: {data!r}")
    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ProtocolError("Stream record has no 'type' field")

    model = _EVENT_MODELS.get(event_type, UnknownEvent)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ProtocolError(f"Malformed '{event_type}' event: {e}") from e
