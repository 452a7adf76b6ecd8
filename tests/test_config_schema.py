"""Tests for the unified config schema.

Tests all Pydantic models in config_schema.py (UnifiedConfig, SyncConfig,
LoggingConfig) and the build_config() factory.
"""

import logging

import pytest
from pydantic import ValidationError

from syncrep.config_schema import (
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
)

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_empty_produces_valid_defaults(self):
        config = UnifiedConfig()
        assert config.sync.sync_folder_path == ""
        assert config.sync.sync_mode == "all"
        assert config.logging.level == "INFO"

    def test_full_config_with_all_sections(self):
        config = UnifiedConfig(
            sync=SyncConfig(
                sync_folder_path="/srv/mirror",
                sync_mode="include",
                included_folders=["work"],
            ),
            logging=LoggingConfig(level="DEBUG", file="/tmp/syncrep.log"),
        )
        assert config.sync.included_folders == ["work"]
        assert config.logging.file == "/tmp/syncrep.log"

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.sync = SyncConfig(sync_folder_path="/x")


# ---------------------------------------------------------------------------
# SyncConfig tests
# ---------------------------------------------------------------------------


class TestSyncConfig:
    """Tests for the sync section."""

    def test_all_fields_optional_zero_config(self):
        config = SyncConfig()
        assert config.sync_on_save is True
        assert config.sync_interval == 0
        assert config.excluded_folders == []
        assert config.included_folders == []
        assert config.external_included_folders == []
        assert config.debug is False
        assert config.use_polling is False

    @pytest.mark.parametrize("mode", ["all", "include"])
    def test_mode_accepts_known_values(self, mode):
        assert SyncConfig(sync_mode=mode).sync_mode == mode

    def test_mode_rejects_invalid_strings(self):
        with pytest.raises(ValidationError):
            SyncConfig(sync_mode="exclude")

    def test_negative_interval_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(sync_interval=-1)

    def test_folder_lists_are_normalised(self):
        config = SyncConfig(
            excluded_folders=["private/", "/archive"],
            included_folders=["work\\notes\\"],
        )
        assert config.excluded_folders == ["private", "archive"]
        assert config.included_folders == ["work/notes"]

    def test_frozen_model(self):
        config = SyncConfig()
        with pytest.raises(ValidationError):
            config.sync_interval = 10

    def test_model_copy_changes_one_field(self):
        config = SyncConfig(sync_folder_path="/a", sync_interval=5)
        updated = config.model_copy(update={"sync_interval": 10})
        assert updated.sync_folder_path == "/a"
        assert updated.sync_interval == 10
        assert config.sync_interval == 5


# ---------------------------------------------------------------------------
# LoggingConfig tests
# ---------------------------------------------------------------------------


class TestLoggingConfig:
    """Tests for the logging section."""

    def test_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file is None
        assert config.format == "text"

    def test_custom_values(self):
        config = LoggingConfig(level="DEBUG", file="/tmp/x.log", format="json")
        assert config.format == "json"

    def test_format_rejects_invalid(self):
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")


# ---------------------------------------------------------------------------
# build_config() tests
# ---------------------------------------------------------------------------


class TestBuildConfig:
    """Tests for the build_config() factory function."""

    def test_empty_dict_returns_defaults(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections_fill_defaults(self):
        config = build_config({"sync": {"sync_folder_path": "/srv/mirror"}})
        assert config.sync.sync_folder_path == "/srv/mirror"
        assert config.logging.level == "INFO"

    def test_full_raw_dict(self):
        config = build_config(
            {
                "sync": {
                    "sync_folder_path": "/srv/mirror",
                    "excluded_folders": ["private"],
                    "external_included_folders": ["/home/me/Projects"],
                    "sync_interval": 60,
                },
                "logging": {"level": "WARNING", "format": "json"},
            }
        )
        assert config.sync.external_included_folders == ["/home/me/Projects"]
        assert config.sync.sync_interval == 60
        assert config.logging.format == "json"

    def test_null_section_gets_defaults(self):
        config = build_config({"sync": None})
        assert config.sync == SyncConfig()

    def test_unknown_sections_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="syncrep.config_schema"):
            config = build_config({"server": {"port": 1}, "sync": {}})
        assert "server" in caplog.text
        assert config.sync == SyncConfig()

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"sync_mode": "nope"}})
