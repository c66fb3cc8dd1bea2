"""Event dispatcher: a pure reducer from (stage state, event) to stage state.

``reduce_event`` never touches the network or a clock, and never mutates
its input, so every transition of the stage state machine can be tested
with plain values. The ``mark_*`` helpers cover the transitions that are
driven by the orchestrator rather than by stream events (start, failure,
abort, end of stream).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

from rich.markup import escape

from lotsawa.core.events import (
    BatchCompletedEvent,
    BatchStartEvent,
    CompletionEvent,
    ErrorEvent,
    GlossaryBatchCompletedEvent,
    InitializationEvent,
    ItemCompletedEvent,
    PlanningEvent,
    ProcessingStartEvent,
    RawContentEvent,
    RetranslationCompletedEvent,
    RetranslationStartEvent,
    StreamEvent,
    TextCompletedEvent,
)
from lotsawa.core.models import (
    STAGE_INFO,
    BatchPlan,
    GlossaryTerm,
    LineNumbers,
    PipelineResult,
    Stage,
    StageProgress,
    StageState,
    StageStatus,
)
from lotsawa.utils.console import console

def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def glossary_term_from(raw: dict[str, Any]) -> GlossaryTerm | None:
    """Convert a server glossary entry (either naming scheme) to a GlossaryTerm."""
    source = raw.get("source_term") or raw.get("original") or ""
    translated = raw.get("translated_term") or raw.get("translated") or ""
    if not source and not translated:
        return None
    return GlossaryTerm(
        source_term=source,
        translated_term=translated,
        frequency=raw.get("frequency"),
        context=raw.get("context") or raw.get("definition"),
    )


def _glossary_terms(raw_terms: list[dict[str, Any]]) -> tuple[GlossaryTerm, ...]:
    terms = (glossary_term_from(raw) for raw in raw_terms if isinstance(raw, dict))
    return tuple(term for term in terms if term is not None)


# ---- Orchestrator-driven transitions ----


def start_state(
    stage: Stage,
    results: tuple[PipelineResult, ...] = (),
    line_mappings: tuple[LineNumbers | None, ...] = (),
    message: str = "",
) -> StageState:
    """A fresh run: progress reset to zero and nothing in flight."""
    return StageState(
        stage=stage,
        status=StageStatus.REQUESTING,
        progress=StageProgress(),
        current_processing_index=-1,
        results=results,
        line_mappings=line_mappings,
        message=message,
    )


def mark_streaming(state: StageState) -> StageState:
    if state.status is not StageStatus.REQUESTING:
        return state
    return replace(state, status=StageStatus.STREAMING)


def mark_failed(state: StageState, error: str) -> StageState:
    if state.status.is_terminal:
        return state
    return replace(
        state,
        status=StageStatus.FAILED,
        current_processing_index=-1,
        error=error,
        message=error,
    )


def mark_aborted(state: StageState) -> StageState:
    if not state.status.is_active:
        return state
    return replace(
        state,
        status=StageStatus.ABORTED,
        current_processing_index=-1,
        message=STAGE_INFO[state.stage].stopped_message,
    )


def mark_completed(state: StageState) -> StageState:
    """Stream ended without a completion record; treat the end as completion."""
    if state.status.is_terminal:
        return state
    return replace(
        state,
        status=StageStatus.COMPLETED,
        progress=state.progress.finished(),
        current_processing_index=-1,
        message=STAGE_INFO[state.stage].completed_message,
    )


# ---- Event handlers ----


def _on_initialization(state: StageState, event: InitializationEvent) -> StageState:
    total = event.total
    if state.stage is Stage.TRANSLATE:
        message = f"Starting translation of {_plural(total, 'line')}..."
    elif state.stage is Stage.GLOSSARY:
        message = f"Extracting glossary from {_plural(total, 'item')}..."
    else:
        message = f"Starting standardization for {_plural(total, 'item')}..."
    return replace(state, progress=StageProgress.started(total), message=message)


def _on_planning(state: StageState, event: PlanningEvent) -> StageState:
    batches = "1 batch" if event.total_batches == 1 else f"{event.total_batches} batches"
    if state.stage is Stage.APPLY:
        message = f"Planning retranslation in {batches}..."
    else:
        message = f"Created {batches}"
    return replace(
        state,
        batch_plan=BatchPlan(total_batches=event.total_batches, batch_size=event.batch_size),
        message=message,
    )


def _on_batch_start(state: StageState, event: BatchStartEvent) -> StageState:
    if state.batch_plan is not None and state.batch_plan.batch_size > 0 and event.batch_number > 0:
        index = (event.batch_number - 1) * state.batch_plan.batch_size
    else:
        index = len(state.results)
    return replace(
        state,
        current_processing_index=index,
        message=f"Processing batch {event.batch_number}...",
    )


def _on_processing_start(state: StageState, event: ProcessingStartEvent) -> StageState:
    verb = "Translating..." if event.type == "translation_start" else "Extracting glossary..."
    return replace(state, message=verb)


def _on_text_completed(state: StageState, event: TextCompletedEvent) -> StageState:
    progress = state.progress.advance(event.total_texts)
    previews = state.previews
    if event.translation_preview:
        previews = previews + ((event.text_number, event.translation_preview),)
    return replace(
        state,
        progress=progress,
        previews=previews,
        message=f"Completed {progress.current}/{progress.total} lines",
    )


def _on_item_completed(state: StageState, event: ItemCompletedEvent) -> StageState:
    progress = state.progress.advance(event.total_items)
    return replace(
        state,
        progress=progress,
        message=f"Completed {progress.current}/{progress.total} items",
    )


def _translation_results(state: StageState, event: BatchCompletedEvent) -> tuple[PipelineResult, ...]:
    offset = len(state.results)
    added = []
    for i, raw in enumerate(event.batch_results):
        segment_index = offset + i
        line_numbers = (
            state.line_mappings[segment_index] if segment_index < len(state.line_mappings) else None
        )
        added.append(
            PipelineResult(
                id=f"{event.batch_id or event.batch_number}-{segment_index}",
                original_text=raw.get("original_text") or "",
                translated_text=raw.get("translated_text") or "",
                timestamp=event.timestamp,
                metadata={"batch_id": event.batch_id, **(raw.get("metadata") or {})},
                line_numbers=line_numbers,
            )
        )
    return state.results + tuple(added)


def _on_batch_completed(state: StageState, event: BatchCompletedEvent) -> StageState:
    message = f"Batch {event.batch_number} completed"
    if event.processing_time is not None:
        message += f" in {event.processing_time}s"

    if state.stage is Stage.GLOSSARY:
        terms: tuple[GlossaryTerm, ...] = ()
        for raw in event.batch_results:
            terms += _glossary_terms(raw.get("glossary_terms") or [])
        return replace(state, glossary_terms=state.glossary_terms + terms, message=message)

    if state.stage is Stage.TRANSLATE:
        return replace(state, results=_translation_results(state, event), message=message)

    return replace(state, message=message)


def _on_glossary_batch_completed(
    state: StageState, event: GlossaryBatchCompletedEvent
) -> StageState:
    return replace(state, glossary_terms=state.glossary_terms + _glossary_terms(event.terms))


def _on_retranslation_start(state: StageState, event: RetranslationStartEvent) -> StageState:
    if event.index is None:
        return state
    return replace(
        state,
        current_processing_index=event.index,
        message=f"Re-translating item {event.index + 1}...",
    )


def _on_retranslation_completed(
    state: StageState, event: RetranslationCompletedEvent
) -> StageState:
    progress = state.progress.advance()
    results = state.results
    index = event.index
    if index is not None and event.updated_item and 0 <= index < len(results):
        updated = results[index].superseded_by(
            event.updated_item.get("original_text") or "",
            event.updated_item.get("translated_text") or "",
        )
        results = results[:index] + (updated,) + results[index + 1 :]
    message = f"Updated item {index + 1}" if index is not None else state.message
    return replace(state, progress=progress, results=results, message=message)


def _on_completion(state: StageState, event: CompletionEvent) -> StageState:
    glossary_terms = state.glossary_terms
    if state.stage is Stage.GLOSSARY and event.glossary_terms:
        # The final list supersedes the incremental batches
        glossary_terms = _glossary_terms(event.glossary_terms)
    return replace(
        state,
        status=StageStatus.COMPLETED,
        progress=state.progress.finished(),
        current_processing_index=-1,
        glossary_terms=glossary_terms,
        message=STAGE_INFO[state.stage].completed_message,
    )


def _on_error(state: StageState, event: ErrorEvent) -> StageState:
    error = f"{STAGE_INFO[state.stage].label} error: {event.reason}"
    return replace(
        state,
        status=StageStatus.FAILED,
        current_processing_index=-1,
        error=error,
        message=error,
    )


def _on_raw_content(state: StageState, event: RawContentEvent) -> StageState:
    return state


_HANDLERS: dict[type, Callable[[StageState, Any], StageState]] = {
    InitializationEvent: _on_initialization,
    PlanningEvent: _on_planning,
    BatchStartEvent: _on_batch_start,
    ProcessingStartEvent: _on_processing_start,
    TextCompletedEvent: _on_text_completed,
    ItemCompletedEvent: _on_item_completed,
    BatchCompletedEvent: _on_batch_completed,
    GlossaryBatchCompletedEvent: _on_glossary_batch_completed,
    RetranslationStartEvent: _on_retranslation_start,
    RetranslationCompletedEvent: _on_retranslation_completed,
    CompletionEvent: _on_completion,
    ErrorEvent: _on_error,
    RawContentEvent: _on_raw_content,
}


def reduce_event(state: StageState, event: StreamEvent) -> StageState:
    """Apply one stream event to a stage state.

    Events are ignored once the stage has reached a terminal status, and
    unknown event types are logged and ignored.
    """
    if state.status.is_terminal:
        return state

    handler = _HANDLERS.get(type(event))
    if handler is None:
        console.print(
            f"[dim]Ignoring unknown {state.stage.value} event type:[/dim] {escape(event.type)}"
        )
        return state

    if state.status is StageStatus.REQUESTING:
        state = mark_streaming(state)
    return handler(state, event)
