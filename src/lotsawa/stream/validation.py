"""Pre-flight validation of stage request payloads.

Validation runs on the JSON payload exactly as it would be sent, so a
missing field and a field of the wrong shape are both caught here rather
than by the server. Rules are checked in order and the first failure wins.
"""

from __future__ import annotations

from typing import Any

from lotsawa.core.errors import ValidationError
from lotsawa.core.models import Stage

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 10


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _require_list(payload: dict, key: str, message: str) -> list:
    values = payload.get(key)
    if not isinstance(values, list) or not values:
        raise ValidationError(message)
    return values


def _check_glossaries(items: list) -> None:
    for item in items:
        if not isinstance(item.get("glossary"), list):
            raise ValidationError(
                "All items must have non-empty original_text, translated_text, and glossary array"
            )
    for item in items:
        for term in item["glossary"]:
            if not isinstance(term, dict) or _blank(term.get("source_term")) or _blank(
                term.get("translated_term")
            ):
                raise ValidationError(
                    "All glossary terms must have non-empty source_term and translated_term"
                )


def _check_batch_size(payload: dict) -> None:
    batch_size = payload.get("batch_size")
    if batch_size is None:
        return
    if (
        isinstance(batch_size, bool)
        or not isinstance(batch_size, int)
        or not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE
    ):
        raise ValidationError(f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}")


def _validate_translation(payload: dict) -> None:
    texts = _require_list(payload, "texts", "At least one text is required for translation")
    if any(_blank(text) for text in texts):
        raise ValidationError("All texts must be non-empty for translation")
    if _blank(payload.get("target_language")):
        raise ValidationError("Target language is required for translation")
    _check_batch_size(payload)


def _check_item_texts(items: list, message: str) -> None:
    for item in items:
        if (
            not isinstance(item, dict)
            or _blank(item.get("original_text"))
            or _blank(item.get("translated_text"))
        ):
            raise ValidationError(message)


def _validate_glossary(payload: dict) -> None:
    items = _require_list(payload, "items", "At least one item is required for glossary extraction")
    _check_item_texts(
        items,
        "All items must have non-empty original_text and translated_text for glossary extraction",
    )
    _check_batch_size(payload)


def _validate_analyze(payload: dict) -> None:
    items = _require_list(
        payload, "items", "At least one item is required for standardization analysis"
    )
    _check_item_texts(
        items,
        "All items must have non-empty original_text, translated_text, and glossary array",
    )
    _check_glossaries(items)


def _validate_apply(payload: dict) -> None:
    items = _require_list(
        payload, "items", "At least one item is required for standardization application"
    )
    _check_item_texts(
        items,
        "All items must have non-empty original_text, translated_text, and glossary array",
    )
    _check_glossaries(items)

    pairs = _require_list(
        payload, "standardization_pairs", "At least one standardization pair is required"
    )
    for pair in pairs:
        if (
            not isinstance(pair, dict)
            or _blank(pair.get("source_word"))
            or _blank(pair.get("standardized_translation"))
        ):
            raise ValidationError(
                "All standardization pairs must have non-empty source_word "
                "and standardized_translation"
            )
    if _blank(payload.get("model_name")):
        raise ValidationError("Model name is required")
    _check_batch_size(payload)


_VALIDATORS = {
    Stage.TRANSLATE: _validate_translation,
    Stage.GLOSSARY: _validate_glossary,
    Stage.ANALYZE: _validate_analyze,
    Stage.APPLY: _validate_apply,
}


def validate_params(stage: Stage, payload: dict[str, Any]) -> None:
    """Validate a stage's request payload.

    Raises:
        ValidationError: With the reason of the first rule that fails.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request parameters must be an object")
    _VALIDATORS[stage](payload)
