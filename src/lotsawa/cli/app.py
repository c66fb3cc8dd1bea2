"""Lotsawa CLI entry point."""

from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

from lotsawa import __version__
from lotsawa.cli.glossary import glossary
from lotsawa.cli.languages import languages
from lotsawa.cli.translate import translate

app = typer.Typer(
    name="lotsawa",
    help="Lotsawa — Streaming translation, glossary and standardization workflow.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lotsawa {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
) -> None:
    """Lotsawa — Streaming translation, glossary and standardization workflow."""
    # Load .env file for the API token (LOTSAWA_SERVER__API_TOKEN)
    # Does not override existing env vars; shell exports take precedence
    load_dotenv(override=False)


app.command("translate")(translate)
app.command("glossary")(glossary)
app.command("languages")(languages)
