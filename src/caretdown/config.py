"""Centralised configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/caretdown/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_EXTENSIONS: tuple[str, ...] = (
    "blockquote",
    "heading",
    "list",
    "combined-emphasis",
    "bold",
    "italic",
    "strikethrough",
    "underline",
    "link",
    "pipe-link",
    "mention",
    "image",
)


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class EngineConfig(BaseModel):
    """Editing engine configuration."""

    # Registration order is grammar precedence.
    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    max_edit_delegations: int = Field(default=16, ge=1)

    @field_validator("extensions")
    @classmethod
    def no_duplicate_extensions(cls, value: list[str]) -> list[str]:
        seen: set[str] = set()
        for name in value:
            if name in seen:
                msg = f"ENGINE__EXTENSIONS lists '{name}' more than once"
                raise ValueError(msg)
            seen.add(name)
        return value


class LoggingConfig(BaseModel):
    """Logging destinations and verbosity."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    dir: Path = Path("logs")
    file_enabled: bool = False
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``ENGINE__MAX_EDIT_DELEGATIONS``, ``LOGGING__LEVEL``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineConfig = EngineConfig()
    logging: LoggingConfig = LoggingConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None:
        paths = env_file if isinstance(env_file, (list, tuple)) else (env_file,)
        loaded = [str(p) for p in paths if Path(str(p)).is_file()]
        if loaded:
            logger.info("Settings loaded .env from: %s", ", ".join(loaded))
        else:
            logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
