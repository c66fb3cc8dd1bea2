"""lotsawa translate command — translate a text file through the workflow."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import anyio
import typer
from rich.console import Console

from lotsawa.core.config import load_config

console = Console()


def translate(
    input_file: Annotated[
        Path,
        typer.Argument(help="Text file to translate, one segment per line."),
    ],
    to: Annotated[
        Optional[str],
        typer.Option("--to", "-t", help="Target language (run 'lotsawa languages' to list)."),
    ] = None,
    text_type: Annotated[
        Optional[str],
        typer.Option("--type", help="Text type, e.g. sutra or commentary."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", "-m", help="Model name used by the backend."),
    ] = None,
    batch_size: Annotated[
        Optional[int],
        typer.Option("--batch-size", "-b", help="Lines per translation batch (1-10)."),
    ] = None,
    rules: Annotated[
        Optional[str],
        typer.Option("--rules", help="Extra translation rules passed to the model."),
    ] = None,
    glossary: Annotated[
        Optional[bool],
        typer.Option("--glossary/--no-glossary", help="Extract a glossary after translating."),
    ] = None,
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Re-translate with standardized terms when inconsistencies are found."),
    ] = False,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path."),
    ] = None,
) -> None:
    """Translate a text file, then extract a glossary and check term consistency."""
    from lotsawa.cli.utils import (
        glossary_table,
        inconsistency_table,
        make_progress,
        progress_reporter,
        read_text,
    )
    from lotsawa.core.languages import TARGET_LANGUAGES, validate_language, validate_text_type
    from lotsawa.core.models import Stage, StageStatus
    from lotsawa.core.orchestrator import SessionContext, StageOrchestrator
    from lotsawa.stream.transport import StreamTransport

    try:
        target = validate_language(to) if to is not None else None
        if text_type is not None:
            validate_text_type(text_type)
        text = read_text(input_file)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    config = load_config(
        **{
            "workflow.target_language": target,
            "workflow.text_type": text_type,
            "workflow.model_name": model,
            "workflow.batch_size": batch_size,
            "workflow.user_rules": rules,
        }
    )
    console.print(f"[bold]Translating:[/bold] {input_file} -> {config.workflow.target_language}")

    session = SessionContext(document_id=str(input_file))

    async def run() -> None:
        async with StreamTransport(config.server) as transport:
            orchestrator = StageOrchestrator(session, transport, config.workflow)
            with make_progress(console) as progress:
                task = progress.add_task("Starting...", total=100)
                await orchestrator.run_workflow(
                    text,
                    extract_glossary=glossary,
                    apply=apply,
                    on_event=progress_reporter(progress, task, orchestrator),
                )

    anyio.run(run)

    for stage in Stage:
        state = session.states[stage]
        if state.status is StageStatus.FAILED:
            # The orchestrator has already reported the error
            raise typer.Exit(1)

    if not session.results:
        console.print("[yellow]No translations received.[/yellow]")
        raise typer.Exit(1)

    if session.glossary_terms:
        console.print(glossary_table(session.glossary_terms))
    if session.inconsistent_terms:
        console.print(inconsistency_table(session.inconsistent_terms))
    elif session.states[Stage.ANALYZE].status is StageStatus.COMPLETED:
        console.print("[green]No inconsistencies found.[/green]")

    results = session.standardized_results or session.results
    if output is None:
        language = config.workflow.target_language
        code = TARGET_LANGUAGES.get(language, language)
        output = input_file.with_suffix(f".{code}{input_file.suffix or '.txt'}")
    output.write_text("\n".join(r.translated_text for r in results) + "\n", encoding="utf-8")
    console.print(f"[green]Saved:[/green] {output}")
