"""Shared CLI utilities."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from lotsawa.core.events import EventCallback, StreamEvent
from lotsawa.core.models import GlossaryTerm, InconsistentTerms
from lotsawa.core.orchestrator import StageOrchestrator
from lotsawa.core.standardization import format_inconsistencies_for_display


def read_text(path: Path) -> str:
    """Read a UTF-8 text file, raising FileNotFoundError if it is missing."""
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return path.read_text(encoding="utf-8")


def make_progress(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    )


def progress_reporter(
    progress: Progress, task: TaskID, orchestrator: StageOrchestrator
) -> EventCallback:
    """Build an event callback that mirrors the running stage into a progress bar."""

    def on_event(event: StreamEvent) -> None:
        stage = orchestrator.active_stage
        if stage is None:
            return
        state = orchestrator.state(stage)
        progress.update(
            task,
            description=state.message or stage.value,
            completed=state.progress.percentage,
            total=100,
        )

    return on_event


def glossary_table(terms: tuple[GlossaryTerm, ...] | list[GlossaryTerm]) -> Table:
    table = Table(title=f"Glossary ({len(terms)})")
    table.add_column("Source", style="bold cyan")
    table.add_column("Translation")
    for term in terms:
        table.add_row(term.source_term, term.translated_term)
    return table


def inconsistency_table(inconsistent_terms: InconsistentTerms) -> Table:
    rows = format_inconsistencies_for_display(inconsistent_terms)
    table = Table(title=f"Inconsistent Terms ({len(rows)})")
    table.add_column("Term", style="bold cyan")
    table.add_column("Translations seen")
    table.add_column("Standard", style="green")
    table.add_column("Most frequent", style="dim")
    for row in rows:
        table.add_row(
            row.source_term,
            ", ".join(row.translations),
            row.translations[0],
            row.suggested_translation,
        )
    return table
