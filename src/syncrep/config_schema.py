"""Unified configuration schema for syncrep.

Defines Pydantic models for the unified config structure with dedicated
sections for the sync engine and logging.

Usage:
    from syncrep.config_schema import UnifiedConfig, build_config

    raw = read_config_file(Path(".syncrep/config.yml"))
    unified = build_config(raw)
    print(unified.sync.sync_folder_path)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncConfig(BaseModel):
    """Sync engine settings.

    All fields have defaults so an empty section is valid; an empty
    ``sync_folder_path`` means no external root is configured and every
    sync operation becomes a no-op.
    """

    sync_folder_path: str = Field(
        default="", description="External directory mirrored by the vault"
    )
    sync_on_save: bool = Field(
        default=True, description="Push a file every time it is modified"
    )
    sync_interval: int = Field(
        default=0,
        ge=0,
        description="Seconds between periodic pushes (0 disables)",
    )
    excluded_folders: list[str] = Field(
        default_factory=list,
        description="Vault path prefixes never synced in 'all' mode",
    )
    included_folders: list[str] = Field(
        default_factory=list,
        description="Vault path prefixes synced in 'include' mode",
    )
    external_included_folders: list[str] = Field(
        default_factory=list,
        description="External directories mapped onto top-level vault folders",
    )
    sync_mode: Literal["all", "include"] = Field(
        default="all",
        description="'all' syncs everything except excluded folders, "
        "'include' syncs only included folders",
    )
    debug: bool = Field(default=False, description="Enable debug logging")
    highlight_color: str = Field(
        default="#50fa7b",
        description="Colour used by hosts to highlight synced folders",
    )
    use_polling: bool = Field(
        default=False,
        description="Watch the external store with a polling observer",
    )

    model_config = {"frozen": True}

    @field_validator("excluded_folders", "included_folders")
    @classmethod
    def _strip_separators(cls, value: list[str]) -> list[str]:
        # "notes/" and "notes" must behave the same in prefix matching
        return [item.replace("\\", "/").strip("/") for item in value]


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``"text"`` or ``"json"``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``read_config_file()``.

    Handles missing sections gracefully; anything absent gets defaults.
    Unknown top-level sections are ignored with a warning.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", ", ".join(unknown)
        )

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known and v is not None}
    )
