"""Lotsawa — streaming translation workflow client."""

__version__ = "0.1.0"
