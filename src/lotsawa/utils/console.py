"""Shared rich console for status output and warnings."""

from rich.console import Console

console = Console(stderr=True)
