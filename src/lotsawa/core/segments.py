"""Text segmentation: translation lines, editor line mapping, and text pairing."""

from __future__ import annotations

import re
import time

from lotsawa.core.models import GlossaryItem, LineNumbers, LineRange

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"[.!?]+")


def split_lines(text: str) -> list[str]:
    """Split text into the trimmed, non-empty lines sent for translation."""
    return [line.strip() for line in text.split("\n") if line.strip()]


def segment_line_mappings(
    text: str,
    line_numbers: LineNumbers | dict[str, dict[str, int]] | None,
) -> list[LineNumbers | None]:
    """Map each translation segment to the editor line it came from.

    The i-th non-empty line of ``text`` gets the i-th entry of
    ``line_numbers``; segments beyond the available entries get None.
    Returns an empty list when no line numbers were captured.
    """
    if not line_numbers:
        return []

    entries = [
        (key, value if isinstance(value, LineRange) else LineRange.from_dict(value))
        for key, value in line_numbers.items()
    ]
    mappings: list[LineNumbers | None] = []
    for i in range(len(split_lines(text))):
        if i < len(entries):
            key, line_range = entries[i]
            mappings.append({key: line_range})
        else:
            mappings.append(None)
    return mappings


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, falling back to single newlines."""
    paragraphs = _PARAGRAPH_BREAK.split(text)
    if len(paragraphs) <= 1:
        paragraphs = text.split("\n")
    return [p for p in paragraphs if p.strip()]


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_END.split(text) if s.strip()]


def _paired(
    originals: list[str], translations: list[str], method: str, now: float
) -> list[GlossaryItem]:
    items = []
    for index, (original, translated) in enumerate(zip(originals, translations)):
        original, translated = original.strip(), translated.strip()
        if original and translated:
            items.append(
                GlossaryItem(
                    original_text=original,
                    translated_text=translated,
                    metadata={"pairing_method": method, "pair_index": index, "timestamp": now},
                )
            )
    return items


def extract_text_pairs(original: str, translated: str) -> list[GlossaryItem]:
    """Pair an original text with its translation for glossary extraction.

    Tries paragraph pairing first, then sentence pairing when the paragraph
    counts differ, and finally submits both texts whole as a single pair.
    The strategy used is recorded in each item's ``pairing_method``.
    """
    if not original.strip() or not translated.strip():
        return []

    now = time.time()
    originals, translations = split_paragraphs(original), split_paragraphs(translated)
    if len(originals) == len(translations):
        return _paired(originals, translations, "paragraph", now)

    originals, translations = split_sentences(original), split_sentences(translated)
    if len(originals) == len(translations):
        return _paired(originals, translations, "sentence", now)

    return [
        GlossaryItem(
            original_text=original.strip(),
            translated_text=translated.strip(),
            metadata={"pairing_method": "full_text", "pair_index": 0, "timestamp": now},
        )
    ]
