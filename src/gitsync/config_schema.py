"""Configuration schema for gitsync.

Defines Pydantic models for the options of one sync run and for the
unified config file structure (``sync`` and ``logging`` sections).

Usage:
    from gitsync.config_schema import UnifiedConfig, build_config

    raw = load_config_files()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sync options
# ---------------------------------------------------------------------------


def _normalize_dir(value: str) -> str:
    value = value.rstrip("/")
    return value or "."


class SyncConfig(BaseModel):
    """Options of one sync run.

    Glob options accept a single string, which is treated as a
    one-element list.  Trailing slashes are stripped from directories.
    """

    source: str = Field(
        default=".", description="Source repository path or URL"
    )
    target: str = Field(
        default=".", description="Target repository path or URL"
    )
    source_dir: str = Field(description="Tracked subdirectory in source")
    target_dir: str = Field(
        default=".", description="Output subdirectory in target"
    )
    include_branches: list[str] = Field(default_factory=list)
    exclude_branches: list[str] = Field(default_factory=list)
    include_tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)
    after: str | None = Field(
        default=None, description="Only sync commits more recent than this"
    )
    max_count: int | None = Field(
        default=None, ge=1, description="Maximum number of commits walked"
    )
    preserve_commit: bool = Field(
        default=True, description="Copy commit author, committer and dates"
    )
    skip_tags: bool = Field(default=False, description="Do not sync tags")

    model_config = {"frozen": True}

    @field_validator(
        "include_branches",
        "exclude_branches",
        "include_tags",
        "exclude_tags",
        mode="before",
    )
    @classmethod
    def _coerce_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("source_dir", "target_dir")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return _normalize_dir(value)


# ---------------------------------------------------------------------------
# Config file sections
# ---------------------------------------------------------------------------


class SyncDefaults(BaseModel):
    """``sync:`` section of a config file.

    Every field is optional; values act as fallbacks below CLI arguments
    and environment variables.
    """

    source: str | None = None
    target: str | None = None
    source_dir: str | None = None
    target_dir: str | None = None
    include_branches: list[str] | str | None = None
    exclude_branches: list[str] | str | None = None
    include_tags: list[str] | str | None = None
    exclude_tags: list[str] | str | None = None
    after: str | None = None
    max_count: int | None = None
    preserve_commit: bool | None = None
    skip_tags: bool | None = None

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL,
            or ``verbose`` as an alias of DEBUG).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    sync: SyncDefaults = Field(default_factory=SyncDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_config_files()``.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
