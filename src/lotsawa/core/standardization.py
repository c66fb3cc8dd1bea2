"""Helpers for the standardization stages: inconsistencies, selections, pairs."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any

from lotsawa.core.models import InconsistentTerms, StandardizationPair


@dataclass
class InconsistencyRow:
    """One inconsistent term, shaped for display."""

    source_term: str
    translations: list[str]
    suggested_translation: str
    inconsistency_count: int


def normalize_inconsistent_terms(raw: Any) -> InconsistentTerms:
    """Coerce an analysis response into ``{term: [translation, ...]}``.

    Accepts both the plain list form and the ``{"suggestions": [...]}``
    form. Terms without any candidate translation are dropped.
    """
    if not isinstance(raw, dict):
        return {}

    terms: InconsistentTerms = {}
    for term, value in raw.items():
        if isinstance(value, dict):
            value = value.get("suggestions")
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            continue
        candidates = [str(candidate) for candidate in value if candidate]
        if candidates:
            terms[str(term)] = candidates
    return terms


def count_inconsistencies(inconsistent_terms: InconsistentTerms) -> int:
    return len(inconsistent_terms)


def default_selections(inconsistent_terms: InconsistentTerms) -> dict[str, str]:
    """Pre-select the first observed translation for every term."""
    return {term: candidates[0] for term, candidates in inconsistent_terms.items() if candidates}


def most_frequent_translation(translations: list[str]) -> str:
    """The translation that occurs most often; ties go to the earliest one.

    Used for display suggestions only. Default selections always use the
    first candidate (see ``default_selections``).
    """
    if not translations:
        return ""
    return Counter(translations).most_common(1)[0][0]


def format_inconsistencies_for_display(
    inconsistent_terms: InconsistentTerms,
) -> list[InconsistencyRow]:
    return [
        InconsistencyRow(
            source_term=term,
            translations=list(translations),
            suggested_translation=most_frequent_translation(translations),
            inconsistency_count=len(translations),
        )
        for term, translations in inconsistent_terms.items()
    ]


def build_standardization_pairs(
    inconsistent_terms: InconsistentTerms,
    selections: dict[str, str] | None = None,
) -> list[StandardizationPair]:
    """One pair per inconsistent term, using the user's selection if present."""
    selections = selections or {}
    pairs = []
    for term, candidates in inconsistent_terms.items():
        chosen = selections.get(term) or (candidates[0] if candidates else "")
        pairs.append(StandardizationPair(source_word=term, standardized_translation=chosen))
    return pairs
