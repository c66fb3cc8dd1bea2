"""Stage orchestrator: sequences translate, glossary, analyze and apply.

All state for one document lives in a ``SessionContext``. The orchestrator
runs one stage at a time against that context, folds stream events into the
stage's ``StageState`` with the pure reducer, and reports back through
callbacks. Nothing is persisted here; callers persist from the callbacks.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable

from lotsawa.core.config import DEFAULT_USER_RULES, WorkflowConfig
from lotsawa.core.errors import LotsawaError, ProtocolError
from lotsawa.core.events import EventCallback, RetranslationCompletedEvent, StreamEvent
from lotsawa.core.models import (
    STAGE_INFO,
    AnalyzeRequest,
    ApplyRequest,
    GlossaryItem,
    GlossaryRequest,
    GlossaryTerm,
    InconsistentTerms,
    LineNumbers,
    PipelineResult,
    Stage,
    StageProgress,
    StageState,
    StageStatus,
    StandardizationItem,
    TranslationRequest,
)
from lotsawa.core.segments import segment_line_mappings, split_lines
from lotsawa.core.standardization import (
    build_standardization_pairs,
    default_selections,
    normalize_inconsistent_terms,
)
from lotsawa.stream.cancellation import CancellationToken
from lotsawa.stream.client import ErrorCallback, request_stage, stream_stage
from lotsawa.stream.dispatcher import (
    mark_aborted,
    mark_completed,
    mark_failed,
    reduce_event,
    start_state,
)
from lotsawa.stream.transport import StreamTransport
from lotsawa.utils.console import console

CompleteCallback = Callable[[StageState], None]
ResultUpdatedCallback = Callable[[int, PipelineResult], None]


@dataclass
class SessionContext:
    """Everything the workflow knows about one document."""

    document_id: str
    results: list[PipelineResult] = field(default_factory=list)
    glossary_terms: list[GlossaryTerm] = field(default_factory=list)
    glossary_source_items: list[GlossaryItem] = field(default_factory=list)
    inconsistent_terms: InconsistentTerms = field(default_factory=dict)
    selections: dict[str, str] = field(default_factory=dict)
    standardized_results: list[PipelineResult] = field(default_factory=list)
    states: dict[Stage, StageState] = field(
        default_factory=lambda: {stage: StageState(stage=stage) for stage in Stage}
    )

    def clear(self) -> None:
        self.results = []
        self.glossary_terms = []
        self.glossary_source_items = []
        self.inconsistent_terms = {}
        self.selections = {}
        self.standardized_results = []
        self.states = {stage: StageState(stage=stage) for stage in Stage}


class SessionStore:
    """Session contexts keyed by document id."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionContext] = {}

    def get(self, document_id: str) -> SessionContext:
        """Return the document's session, creating an empty one on first use."""
        if document_id not in self._sessions:
            self._sessions[document_id] = SessionContext(document_id=document_id)
        return self._sessions[document_id]

    def discard(self, document_id: str) -> None:
        self._sessions.pop(document_id, None)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class StageOrchestrator:
    """Runs the workflow stages for one document session.

    Args:
        session: The document's session context. Mutated in place.
        transport: Transport used for every stage request.
        workflow: Request defaults (language, model, batch size, rules).
    """

    def __init__(
        self,
        session: SessionContext,
        transport: StreamTransport,
        workflow: WorkflowConfig | None = None,
    ) -> None:
        self.session = session
        self.transport = transport
        self.workflow = workflow or WorkflowConfig()
        self._tokens: dict[Stage, CancellationToken] = {}

    # ---- Selectors ----

    def state(self, stage: Stage) -> StageState:
        return self.session.states[stage]

    @property
    def results(self) -> tuple[PipelineResult, ...]:
        return tuple(self.session.results)

    @property
    def glossary_terms(self) -> tuple[GlossaryTerm, ...]:
        return tuple(self.session.glossary_terms)

    @property
    def inconsistent_terms(self) -> InconsistentTerms:
        return {term: list(values) for term, values in self.session.inconsistent_terms.items()}

    @property
    def selections(self) -> dict[str, str]:
        return dict(self.session.selections)

    @property
    def standardized_results(self) -> tuple[PipelineResult, ...]:
        return tuple(self.session.standardized_results)

    @property
    def active_stage(self) -> Stage | None:
        for stage, state in self.session.states.items():
            if state.status.is_active:
                return stage
        return None

    # ---- Control ----

    def stop(self, stage: Stage) -> bool:
        """Stop a running stage. Returns False if it was not running.

        The stage moves to ``aborted`` and neither its completion nor its
        error callback is called.
        """
        state = self.session.states[stage]
        if not state.status.is_active:
            return False
        self.session.states[stage] = mark_aborted(state)
        token = self._tokens.get(stage)
        if token is not None:
            token.cancel()
        return True

    def reset(self) -> None:
        """Stop whatever is running and return every stage to idle."""
        for stage in Stage:
            self.stop(stage)
        self._tokens.clear()
        self.session.clear()

    def select_translation(self, term: str, translation: str) -> None:
        """Choose the standardized translation for an inconsistent term."""
        if term not in self.session.inconsistent_terms:
            raise KeyError(f"Not an inconsistent term: {term}")
        if not translation.strip():
            raise ValueError("Selected translation must be non-empty")
        self.session.selections[term] = translation

    # ---- Stage plumbing ----

    def _ensure_idle(self, stage: Stage) -> None:
        active = self.active_stage
        if active is not None:
            raise LotsawaError(
                f"Cannot start {STAGE_INFO[stage].label.lower()} while "
                f"{STAGE_INFO[active].label.lower()} is running"
            )

    def _begin(self, stage: Stage, state: StageState) -> CancellationToken:
        self._ensure_idle(stage)
        token = CancellationToken()
        self._tokens[stage] = token
        self.session.states[stage] = state
        return token

    def _finish(self, stage: Stage, token: CancellationToken) -> StageState:
        if self._tokens.get(stage) is token:
            del self._tokens[stage]
        state = self.session.states[stage]
        if token.cancelled and state.status.is_active:
            state = self.session.states[stage] = mark_aborted(state)
        return state

    def _sync(self, stage: Stage, state: StageState) -> None:
        self.session.states[stage] = state
        if stage in (Stage.TRANSLATE, Stage.APPLY):
            self.session.results = list(state.results)
        elif stage is Stage.GLOSSARY:
            self.session.glossary_terms = list(state.glossary_terms)

    async def _run_stream(
        self,
        stage: Stage,
        payload: dict[str, Any],
        initial: StageState,
        on_event: EventCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_result_updated: ResultUpdatedCallback | None = None,
    ) -> StageState:
        token = self._begin(stage, initial)

        def handle_event(event: StreamEvent) -> None:
            if token.cancelled or self.session.states[stage].status.is_terminal:
                return
            state = reduce_event(self.session.states[stage], event)
            self._sync(stage, state)
            if (
                on_result_updated is not None
                and isinstance(event, RetranslationCompletedEvent)
                and event.updated_item
                and event.index is not None
                and 0 <= event.index < len(state.results)
            ):
                on_result_updated(event.index, state.results[event.index])
            if on_event is not None:
                on_event(event)

        def handle_complete() -> None:
            if token.cancelled or self.session.states[stage].status in (
                StageStatus.FAILED,
                StageStatus.ABORTED,
            ):
                return
            state = mark_completed(self.session.states[stage])
            self._sync(stage, state)
            if on_complete is not None:
                on_complete(state)

        def handle_error(error: LotsawaError) -> None:
            if token.cancelled or self.session.states[stage].status.is_terminal:
                return
            self.session.states[stage] = mark_failed(self.session.states[stage], error.message)
            console.print(f"[red]{error.message}[/red]")
            if on_error is not None:
                on_error(error)

        await stream_stage(
            self.transport, stage, payload, handle_event, handle_complete, handle_error, token
        )
        return self._finish(stage, token)

    # ---- Stages ----

    async def start_translation(
        self,
        text: str,
        line_numbers: LineNumbers | dict[str, dict[str, int]] | None = None,
        on_event: EventCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StageState:
        """Translate ``text`` line by line.

        Starting a translation discards the previous results and everything
        derived from them (glossary, inconsistencies, selections).
        """
        self._ensure_idle(Stage.TRANSLATE)
        self.session.results = []
        self.session.glossary_terms = []
        self.session.inconsistent_terms = {}
        self.session.selections = {}
        self.session.standardized_results = []

        request = TranslationRequest(
            texts=split_lines(text),
            target_language=self.workflow.target_language,
            text_type=self.workflow.text_type,
            model_name=self.workflow.model_name,
            batch_size=self.workflow.batch_size,
            user_rules=self.workflow.user_rules,
        )
        initial = start_state(
            Stage.TRANSLATE,
            line_mappings=tuple(segment_line_mappings(text, line_numbers)),
            message="Initializing translation...",
        )
        return await self._run_stream(
            Stage.TRANSLATE,
            request.to_payload(),
            initial,
            on_event=on_event,
            on_complete=on_complete,
            on_error=on_error,
        )

    async def start_glossary_extraction(
        self,
        items: list[GlossaryItem] | None = None,
        on_event: EventCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StageState:
        """Extract glossary terms from text pairs.

        ``items`` defaults to the current translation results.
        """
        self._ensure_idle(Stage.GLOSSARY)
        if items is None:
            items = [
                GlossaryItem(original_text=r.original_text, translated_text=r.translated_text)
                for r in self.session.results
            ]
        self.session.glossary_source_items = list(items)
        self.session.glossary_terms = []
        self.session.inconsistent_terms = {}
        self.session.selections = {}

        request = GlossaryRequest(
            items=list(items),
            model_name=self.workflow.model_name,
            batch_size=min(self.workflow.batch_size, self.workflow.glossary_batch_limit),
        )
        initial = start_state(Stage.GLOSSARY, message="Extracting glossary...")
        return await self._run_stream(
            Stage.GLOSSARY,
            request.to_payload(),
            initial,
            on_event=on_event,
            on_complete=on_complete,
            on_error=on_error,
        )

    def _analysis_pairs(self) -> list[tuple[str, str]]:
        if self.session.results:
            return [(r.original_text, r.translated_text) for r in self.session.results]
        # Glossary-only sessions have no translation results
        return [(i.original_text, i.translated_text) for i in self.session.glossary_source_items]

    async def start_standardization_analysis(
        self,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StageState:
        """Find terms translated inconsistently across the results.

        Does nothing when there are no glossary terms or no text to analyze.
        On success every inconsistent term gets its first candidate as the
        default selection.
        """
        pairs = self._analysis_pairs()
        if not pairs or not self.session.glossary_terms:
            console.print(
                "[yellow]Nothing to analyze: translate and extract a glossary first.[/yellow]"
            )
            return self.state(Stage.ANALYZE)

        glossary = list(self.session.glossary_terms)
        request = AnalyzeRequest(
            items=[
                StandardizationItem(original_text=original, translated_text=translated, glossary=glossary)
                for original, translated in pairs
            ]
        )
        stage = Stage.ANALYZE
        initial = replace(
            start_state(stage, message="Analyzing translation consistency..."),
            progress=StageProgress.started(len(pairs)),
        )
        token = self._begin(stage, initial)
        self.session.inconsistent_terms = {}
        self.session.selections = {}

        def handle_error(error: LotsawaError) -> None:
            if token.cancelled:
                return
            message = f"Standardization analysis failed: {error.message}"
            self.session.states[stage] = mark_failed(self.session.states[stage], message)
            console.print(f"[red]{message}[/red]")
            if on_error is not None:
                on_error(error)

        body = await request_stage(self.transport, stage, request.to_payload(), handle_error, token)
        state = self._finish(stage, token)
        if state.status is not StageStatus.REQUESTING:
            return state

        if not isinstance(body, dict) or "inconsistent_terms" not in body:
            handle_error(ProtocolError("Analysis response has no 'inconsistent_terms'"))
            return self.state(stage)

        terms = normalize_inconsistent_terms(body["inconsistent_terms"])
        self.session.inconsistent_terms = terms
        self.session.selections = default_selections(terms)
        message = f"Found {len(terms)} inconsistent terms" if terms else "No inconsistencies found"
        state = self.session.states[stage] = replace(
            state,
            status=StageStatus.COMPLETED,
            progress=StageProgress(current=len(pairs), total=len(pairs), percentage=100),
            message=message,
        )
        if on_complete is not None:
            on_complete(state)
        return state

    def _can_apply(self) -> bool:
        return bool(self.session.results) and bool(self.session.inconsistent_terms)

    async def start_apply_standardization(
        self,
        on_event: EventCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_result_updated: ResultUpdatedCallback | None = None,
    ) -> StageState:
        """Re-translate the results using the selected standard translations.

        Returns without a request when there are no results or no
        inconsistent terms. Each updated result is reported through
        ``on_result_updated`` as it arrives.
        """
        if not self._can_apply():
            console.print(
                "[yellow]Nothing to standardize: no results or no inconsistent terms.[/yellow]"
            )
            return self.state(Stage.APPLY)

        glossary = list(self.session.glossary_terms)
        request = ApplyRequest(
            items=[
                StandardizationItem(
                    original_text=r.original_text, translated_text=r.translated_text, glossary=glossary
                )
                for r in self.session.results
            ],
            standardization_pairs=build_standardization_pairs(
                self.session.inconsistent_terms, self.session.selections
            ),
            model_name=self.workflow.model_name,
            user_rules=self.workflow.user_rules or DEFAULT_USER_RULES,
        )
        results = tuple(self.session.results)
        initial = start_state(
            Stage.APPLY,
            results=results,
            line_mappings=tuple(r.line_numbers for r in results),
            message="Preparing standardization application...",
        )
        return await self._run_stream(
            Stage.APPLY,
            request.to_payload(),
            initial,
            on_event=on_event,
            on_complete=on_complete,
            on_error=on_error,
            on_result_updated=on_result_updated,
        )

    async def start_standardization_translation(
        self,
        on_event: EventCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_result_updated: ResultUpdatedCallback | None = None,
    ) -> StageState:
        """Apply standardization and keep a snapshot of the standardized results.

        The snapshot is taken once apply reaches ``completed`` or ``failed``;
        a failed run keeps the items updated before the failure.
        """
        self.session.standardized_results = []
        if not self._can_apply():
            return await self.start_apply_standardization()

        state = await self.start_apply_standardization(
            on_event=on_event,
            on_complete=on_complete,
            on_error=on_error,
            on_result_updated=on_result_updated,
        )
        if state.status in (StageStatus.COMPLETED, StageStatus.FAILED):
            self.session.standardized_results = list(self.session.results)
        return state

    async def run_workflow(
        self,
        text: str,
        line_numbers: LineNumbers | dict[str, dict[str, int]] | None = None,
        extract_glossary: bool | None = None,
        apply: bool = False,
        on_event: EventCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> SessionContext:
        """Run the stages in order, stopping at the first one that does not complete.

        Glossary extraction runs when enabled, analysis when the glossary is
        non-empty, and apply only when requested and inconsistencies were found.
        """
        if extract_glossary is None:
            extract_glossary = self.workflow.extract_glossary

        state = await self.start_translation(
            text, line_numbers, on_event=on_event, on_error=on_error
        )
        if state.status is not StageStatus.COMPLETED or not extract_glossary:
            return self.session

        state = await self.start_glossary_extraction(on_event=on_event, on_error=on_error)
        if state.status is not StageStatus.COMPLETED or not self.session.glossary_terms:
            return self.session

        state = await self.start_standardization_analysis(on_error=on_error)
        if state.status is not StageStatus.COMPLETED or not apply:
            return self.session

        if self.session.inconsistent_terms:
            await self.start_standardization_translation(on_event=on_event, on_error=on_error)
        return self.session
