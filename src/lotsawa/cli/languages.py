"""lotsawa languages command — list target languages, text types and models."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from lotsawa.core.languages import MODEL_NAMES, TARGET_LANGUAGES, TEXT_TYPES

console = Console()


def languages() -> None:
    """List the target languages, text types and models the backend accepts."""
    table = Table(title=f"Target Languages ({len(TARGET_LANGUAGES)})")
    table.add_column("Code", style="bold cyan", width=5)
    table.add_column("Language", width=20)

    for name, code in sorted(TARGET_LANGUAGES.items(), key=lambda item: item[1]):
        table.add_row(code, name.title())

    console.print(table)
    console.print(f"\n[bold]Text types:[/bold] {', '.join(TEXT_TYPES)}")
    console.print(f"[bold]Models:[/bold] {', '.join(MODEL_NAMES)}")
    console.print("\n[dim]Languages can be given by name or code, e.g. --to tibetan or --to bo.[/dim]")
