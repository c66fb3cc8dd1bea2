"""Shared data models for Lotsawa."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class Stage(str, Enum):
    """The four generation stages of the translation workflow."""

    TRANSLATE = "translate"
    GLOSSARY = "glossary"
    ANALYZE = "analyze"
    APPLY = "apply"


class StageStatus(str, Enum):
    """Lifecycle of one stage run."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_active(self) -> bool:
        return self in (StageStatus.REQUESTING, StageStatus.STREAMING)

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.ABORTED)


@dataclass(frozen=True)
class StageInfo:
    """User-facing wording for a stage, used in status and error messages."""

    label: str  # "Translation" -> "Translation error: ..."
    service: str  # "... to use translation services."
    operation: str  # "Translation request failed with status 418"
    invalid_message: str
    stopped_message: str
    completed_message: str


STAGE_INFO: dict[Stage, StageInfo] = {
    Stage.TRANSLATE: StageInfo(
        label="Translation",
        service="translation",
        operation="Translation request",
        invalid_message="Invalid translation request parameters.",
        stopped_message="Translation stopped",
        completed_message="Translation completed!",
    ),
    Stage.GLOSSARY: StageInfo(
        label="Glossary extraction",
        service="glossary",
        operation="Glossary extraction request",
        invalid_message="Invalid glossary extraction request parameters.",
        stopped_message="Glossary extraction stopped",
        completed_message="Glossary extraction completed!",
    ),
    Stage.ANALYZE: StageInfo(
        label="Standardization analysis",
        service="standardization",
        operation="Standardization request",
        invalid_message="Invalid standardization request parameters.",
        stopped_message="Standardization analysis stopped",
        completed_message="Standardization analysis completed",
    ),
    Stage.APPLY: StageInfo(
        label="Standardization",
        service="standardization",
        operation="Standardization application",
        invalid_message="Invalid standardization application parameters.",
        stopped_message="Standardization stopped",
        completed_message="Standardization application completed!",
    ),
}


@dataclass(frozen=True)
class LineRange:
    """Character offsets of one editor line."""

    start: int
    end: int

    @classmethod
    def from_dict(cls, data: dict[str, int]) -> LineRange:
        return cls(start=int(data["from"]), end=int(data["to"]))

    def to_dict(self) -> dict[str, int]:
        return {"from": self.start, "to": self.end}


# Editor line number (as a string key) -> offset range
LineNumbers = dict[str, LineRange]

# Source term -> distinct translations observed for it, in order
InconsistentTerms = dict[str, list[str]]


@dataclass
class GlossaryTerm:
    """A source term and its translation, as extracted by the glossary stage."""

    source_term: str
    translated_term: str
    frequency: int | None = None
    context: str | None = None

    def to_payload(self) -> dict[str, str]:
        return {"source_term": self.source_term, "translated_term": self.translated_term}


@dataclass
class PipelineResult:
    """One translated text, created by the translate stage.

    The apply stage supersedes entries in place: ``translated_text`` is
    replaced, the old value moves to ``previous_translated_text`` and
    ``line_numbers`` is kept.
    """

    original_text: str
    translated_text: str
    id: str = ""
    timestamp: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    line_numbers: LineNumbers | None = None
    previous_translated_text: str | None = None
    is_updated: bool = False

    def superseded_by(self, original_text: str, translated_text: str) -> PipelineResult:
        """Return the standardized version of this result."""
        return replace(
            self,
            original_text=original_text or self.original_text,
            translated_text=translated_text,
            previous_translated_text=self.translated_text,
            is_updated=True,
        )


def percent(current: int, total: int) -> int:
    """Whole-number percentage, rounding halves up (12.5 -> 13)."""
    if total <= 0:
        return 0
    return math.floor(current * 100 / total + 0.5)


@dataclass(frozen=True)
class StageProgress:
    """Progress counters of a stage run. Invariant: 0 <= current <= total."""

    current: int = 0
    total: int = 0
    percentage: int = 0

    @classmethod
    def started(cls, total: int) -> StageProgress:
        return cls(current=0, total=max(total, 0), percentage=0)

    def advance(self, total_hint: int | None = None) -> StageProgress:
        """Count one more completed item.

        ``total_hint`` fills in the total when no initialization event set it;
        the total never drops below the completed count.
        """
        current = self.current + 1
        total = max(self.total or (total_hint or 0), current)
        return StageProgress(current=current, total=total, percentage=percent(current, total))

    def finished(self) -> StageProgress:
        return replace(self, percentage=100)


@dataclass(frozen=True)
class BatchPlan:
    total_batches: int
    batch_size: int


@dataclass(frozen=True)
class StageState:
    """Snapshot of one stage's run, produced by the event reducer."""

    stage: Stage
    status: StageStatus = StageStatus.IDLE
    progress: StageProgress = StageProgress()
    current_processing_index: int = -1
    results: tuple[PipelineResult, ...] = ()
    glossary_terms: tuple[GlossaryTerm, ...] = ()
    line_mappings: tuple[LineNumbers | None, ...] = ()
    batch_plan: BatchPlan | None = None
    # (text_number, preview) pairs streamed before their batch result lands
    previews: tuple[tuple[int, str], ...] = ()
    message: str = ""
    error: str | None = None


# ---- Request payloads ----


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class TranslationRequest:
    texts: list[str]
    target_language: str
    text_type: str | None = None
    model_name: str | None = None
    batch_size: int | None = None
    user_rules: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _drop_none(
            {
                "texts": list(self.texts),
                "target_language": self.target_language,
                "text_type": self.text_type,
                "model_name": self.model_name,
                "batch_size": self.batch_size,
                "user_rules": self.user_rules or None,
            }
        )


@dataclass
class GlossaryItem:
    """An original/translated text pair submitted for glossary extraction."""

    original_text: str
    translated_text: str
    metadata: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        return _drop_none(
            {
                "original_text": self.original_text,
                "translated_text": self.translated_text,
                "metadata": self.metadata,
            }
        )


@dataclass
class GlossaryRequest:
    items: list[GlossaryItem]
    model_name: str | None = None
    batch_size: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return _drop_none(
            {
                "items": [item.to_payload() for item in self.items],
                "model_name": self.model_name,
                "batch_size": self.batch_size,
            }
        )


@dataclass
class StandardizationItem:
    original_text: str
    translated_text: str
    glossary: list[GlossaryTerm] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "original_text": self.original_text,
            "translated_text": self.translated_text,
            "glossary": [term.to_payload() for term in self.glossary],
        }


@dataclass
class AnalyzeRequest:
    items: list[StandardizationItem]

    def to_payload(self) -> dict[str, Any]:
        return {"items": [item.to_payload() for item in self.items]}


@dataclass
class StandardizationPair:
    source_word: str
    standardized_translation: str

    def to_payload(self) -> dict[str, str]:
        return {
            "source_word": self.source_word,
            "standardized_translation": self.standardized_translation,
        }


@dataclass
class ApplyRequest:
    items: list[StandardizationItem]
    standardization_pairs: list[StandardizationPair]
    model_name: str
    user_rules: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _drop_none(
            {
                "items": [item.to_payload() for item in self.items],
                "standardization_pairs": [p.to_payload() for p in self.standardization_pairs],
                "model_name": self.model_name,
                "user_rules": self.user_rules or None,
            }
        )
