"""lotsawa glossary command — extract a glossary from a text and its translation."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import anyio
import typer
from rich.console import Console

from lotsawa.core.config import load_config

console = Console()


def glossary(
    original_file: Annotated[
        Path,
        typer.Argument(help="Source text file."),
    ],
    translated_file: Annotated[
        Path,
        typer.Argument(help="Translation of the source text."),
    ],
    model: Annotated[
        Optional[str],
        typer.Option("--model", "-m", help="Model name used by the backend."),
    ] = None,
    analyze: Annotated[
        bool,
        typer.Option("--analyze", help="Also check the translation for inconsistent terms."),
    ] = False,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the glossary as tab-separated lines."),
    ] = None,
) -> None:
    """Pair two texts by paragraph or sentence and extract their glossary."""
    from lotsawa.cli.utils import (
        glossary_table,
        inconsistency_table,
        make_progress,
        progress_reporter,
        read_text,
    )
    from lotsawa.core.models import Stage, StageStatus
    from lotsawa.core.orchestrator import SessionContext, StageOrchestrator
    from lotsawa.core.segments import extract_text_pairs
    from lotsawa.stream.transport import StreamTransport

    try:
        original = read_text(original_file)
        translated = read_text(translated_file)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    items = extract_text_pairs(original, translated)
    if not items:
        console.print("[red]Both files must contain text.[/red]")
        raise typer.Exit(1)
    method = (items[0].metadata or {}).get("pairing_method", "")
    console.print(f"[bold]Pairs:[/bold] {len(items)} [dim]({method})[/dim]")

    config = load_config(**{"workflow.model_name": model})
    session = SessionContext(document_id=str(original_file))

    async def run() -> None:
        async with StreamTransport(config.server) as transport:
            orchestrator = StageOrchestrator(session, transport, config.workflow)
            with make_progress(console) as progress:
                task = progress.add_task("Extracting glossary...", total=100)
                state = await orchestrator.start_glossary_extraction(
                    items, on_event=progress_reporter(progress, task, orchestrator)
                )
            if analyze and state.status is StageStatus.COMPLETED:
                await orchestrator.start_standardization_analysis()

    anyio.run(run)

    for stage in (Stage.GLOSSARY, Stage.ANALYZE):
        state = session.states[stage]
        if state.status is StageStatus.FAILED:
            # The orchestrator has already reported the error
            raise typer.Exit(1)

    console.print(glossary_table(session.glossary_terms))
    if session.inconsistent_terms:
        console.print(inconsistency_table(session.inconsistent_terms))

    if output is not None:
        lines = [f"{t.source_term}\t{t.translated_term}" for t in session.glossary_terms]
        output.write_text("\n".join(lines) + "\n", encoding="utf-8")
        console.print(f"[green]Saved:[/green] {output}")
