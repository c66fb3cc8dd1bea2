"""Configuration system for Lotsawa.

Layered config loading (lowest to highest priority):
1. config/default.toml (shipped with package)
2. ~/.config/lotsawa/config.toml (user-level)
3. ./lotsawa.toml (project-level)
4. Environment variables (LOTSAWA_SERVER__BASE_URL, etc.)
5. CLI flags
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent.parent.parent
_DEFAULT_CONFIG = _PACKAGE_ROOT / "config" / "default.toml"
_USER_CONFIG = Path.home() / ".config" / "lotsawa" / "config.toml"
_PROJECT_CONFIG = Path("lotsawa.toml")

DEFAULT_USER_RULES = (
    "Apply standardization consistently while maintaining natural translation flow"
)


class EndpointConfig(BaseModel):
    translate: str = "/translate"
    glossary: str = "/glossary/extract/stream"
    analyze: str = "/standardize/analyze"
    apply: str = "/standardize/apply/stream"


class ServerConfig(BaseModel):
    base_url: str = "http://localhost:9000"
    api_token: str = ""
    connect_timeout: float | None = None  # None = wait indefinitely
    endpoints: EndpointConfig = EndpointConfig()


class WorkflowConfig(BaseModel):
    target_language: str = "english"
    text_type: str = "commentary"
    model_name: str = "claude"
    batch_size: int = 2
    user_rules: str = ""
    extract_glossary: bool = True
    glossary_batch_limit: int = 5  # glossary batches are capped below the translate size


class LotsawaConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOTSAWA_",
        env_nested_delimiter="__",
    )

    server: ServerConfig = ServerConfig()
    workflow: WorkflowConfig = WorkflowConfig()


def _load_toml(path: Path) -> dict:
    """Load a TOML file if it exists, return empty dict otherwise."""
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(**cli_overrides: object) -> LotsawaConfig:
    """Load configuration from all layers and merge.

    Args:
        **cli_overrides: Direct overrides from CLI flags. Keys can be
            dot-separated (e.g. workflow.model_name="claude-opus").
    """
    # Layer 1-3: TOML files
    config_data: dict = {}
    for path in (_DEFAULT_CONFIG, _USER_CONFIG, _PROJECT_CONFIG):
        layer = _load_toml(path)
        config_data = _deep_merge(config_data, layer)

    # Apply CLI overrides (dot-separated keys)
    for key, value in cli_overrides.items():
        if value is None:
            continue
        parts = key.split(".")
        target = config_data
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value

    # Layer 4: env vars are handled by Pydantic BaseSettings
    return LotsawaConfig(**config_data)
