"""Target languages, text types, and model names accepted by the backend.

The backend only translates into a fixed set of languages and recognises a
small catalogue of text genres; the model names are the identifiers its
generation service routes on.
"""

from __future__ import annotations

TARGET_LANGUAGES: dict[str, str] = {
    "english": "en",
    "french": "fr",
    "tibetan": "bo",
    "portuguese": "pt",
    "chinese": "zh",
}

TEXT_TYPES: list[str] = [
    "mantra",
    "sutra",
    "commentary",
    "philosophical treatises",
]

MODEL_NAMES: list[str] = [
    "claude",
    "claude-haiku",
    "claude-opus",
    "gemini-pro",
]

# ISO code -> backend name, so users may pass either form
_CODE_ALIASES = {code: name for name, code in TARGET_LANGUAGES.items()}


def is_valid_language(name: str) -> bool:
    """Check if a target language (name or ISO code) is supported."""
    key = name.strip().lower()
    return key in TARGET_LANGUAGES or key in _CODE_ALIASES


def validate_language(name: str) -> str:
    """Validate a target language and return its backend name.

    Accepts either the backend name ("tibetan") or its ISO code ("bo").
    Raises ValueError if the language is not supported.
    """
    key = name.strip().lower()
    if key in TARGET_LANGUAGES:
        return key
    if key in _CODE_ALIASES:
        return _CODE_ALIASES[key]
    raise ValueError(
        f"Unsupported target language: '{name}'. "
        f"Run 'lotsawa languages' to see all {len(TARGET_LANGUAGES)} supported languages."
    )


def validate_text_type(text_type: str) -> str:
    """Validate a text type, raising ValueError if it is not in the catalogue."""
    if text_type not in TEXT_TYPES:
        raise ValueError(
            f"Unsupported text type: '{text_type}'. Choose one of: {', '.join(TEXT_TYPES)}."
        )
    return text_type
