"""Tests for syncrep.lifespan -- engine startup/shutdown lifecycle.

Tests the sync_lifespan() async context manager which:
- Loads config from YAML, env vars and CLI overrides
- Configures logging
- Opens the vault and builds the engine
- Starts and stops the watches when asked to
- Fails fast on config errors
"""

from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from syncrep.config_schema import SyncConfig
from syncrep.lifespan import sync_lifespan
from syncrep.sync.engine import SyncEngine
from syncrep.vault import DirectoryVault

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


@contextmanager
def _quiet(config_file=None):
    """Patch out .env loading, logging setup and stderr output."""
    with (
        patch("syncrep.lifespan.load_dotenv"),
        patch("syncrep.lifespan.setup_logging") as mock_logging,
        patch("syncrep.lifespan._stderr_print"),
        patch(
            "syncrep.lifespan.find_config_file",
            return_value=config_file,
        ),
    ):
        yield mock_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("SYNCREP_FOLDER", "SYNCREP_INTERVAL", "SYNCREP_MODE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


# -------------------------------------------------------------------------
# sync_lifespan() -- successful startup
# -------------------------------------------------------------------------


class TestSyncLifespanSuccess:
    """Tests for the happy path through sync_lifespan()."""

    async def test_yields_config_vault_and_engine(self, tmp_path):
        vault_dir = tmp_path / "vault"
        mirror = tmp_path / "mirror"

        with _quiet():
            async with sync_lifespan(
                {"vault": str(vault_dir), "folder": str(mirror)}
            ) as ctx:
                assert isinstance(ctx["config"], SyncConfig)
                assert ctx["config"].sync_folder_path == str(mirror)
                assert isinstance(ctx["vault"], DirectoryVault)
                assert ctx["vault"].root == vault_dir
                assert isinstance(ctx["engine"], SyncEngine)

        assert vault_dir.is_dir()

    async def test_overrides_reach_load_config(self, tmp_path):
        with (
            _quiet(),
            patch(
                "syncrep.lifespan.load_config",
                return_value=SyncConfig(),
            ) as mock_load,
        ):
            async with sync_lifespan(
                {"vault": str(tmp_path), "interval": 30, "mode": "include"}
            ):
                pass

        kwargs = mock_load.call_args[1]
        assert kwargs["interval"] == 30
        assert kwargs["mode"] == "include"
        assert kwargs["yaml_fallbacks"] is None

    async def test_yaml_sections_are_used(self, tmp_path):
        config_file = tmp_path / "config.yml"
        raw = {
            "sync": {"sync_folder_path": str(tmp_path / "mirror")},
            "logging": {"level": "WARNING", "file": str(tmp_path / "x.log")},
        }

        with (
            _quiet(config_file) as mock_logging,
            patch("syncrep.lifespan.read_config_file", return_value=raw),
        ):
            async with sync_lifespan({"vault": str(tmp_path / "v")}) as ctx:
                assert ctx["config"].sync_folder_path == str(tmp_path / "mirror")

        kwargs = mock_logging.call_args[1]
        assert kwargs["level"] == "WARNING"
        assert kwargs["log_file"] == str(tmp_path / "x.log")

    async def test_relative_folder_in_config_file(self, tmp_path):
        config_file = tmp_path / "vault" / ".syncrep" / "config.yml"
        config_file.parent.mkdir(parents=True)
        config_file.write_text(
            "sync:\n  sync_folder_path: ../../mirror\n", encoding="utf-8"
        )

        with _quiet(config_file):
            async with sync_lifespan({"vault": str(tmp_path / "vault")}) as ctx:
                assert ctx["config"].sync_folder_path == str(tmp_path / "mirror")

    async def test_cli_log_file_beats_yaml(self, tmp_path):
        with _quiet() as mock_logging:
            async with sync_lifespan(
                {"vault": str(tmp_path), "log_file": str(tmp_path / "cli.log")}
            ):
                pass
        assert mock_logging.call_args[1]["log_file"] == str(tmp_path / "cli.log")


# -------------------------------------------------------------------------
# sync_lifespan() -- watching
# -------------------------------------------------------------------------


class TestSyncLifespanWatch:
    async def test_watch_starts_and_stops_everything(self, tmp_path):
        engine = MagicMock()
        engine.start = AsyncMock()
        engine.stop = AsyncMock()
        events = MagicMock()
        events.drain = AsyncMock()

        with (
            _quiet(),
            patch("syncrep.lifespan.SyncEngine", return_value=engine),
            patch("syncrep.lifespan.VaultEventSource", return_value=events),
        ):
            async with sync_lifespan(
                {"vault": str(tmp_path / "v"), "folder": str(tmp_path / "m")},
                watch=True,
            ):
                engine.start.assert_awaited_once_with(initial_sync=True)
                events.start.assert_called_once()

        events.stop.assert_called_once()
        events.drain.assert_awaited_once()
        engine.stop.assert_awaited_once()

    async def test_no_initial_pull_without_sync_folder(self, tmp_path):
        engine = MagicMock()
        engine.start = AsyncMock()
        engine.stop = AsyncMock()
        events = MagicMock()
        events.drain = AsyncMock()

        with (
            _quiet(),
            patch("syncrep.lifespan.SyncEngine", return_value=engine),
            patch("syncrep.lifespan.VaultEventSource", return_value=events),
        ):
            async with sync_lifespan({"vault": str(tmp_path)}, watch=True):
                pass

        engine.start.assert_awaited_once_with(initial_sync=False)

    async def test_engine_stopped_when_body_raises(self, tmp_path):
        engine = MagicMock()
        engine.stop = AsyncMock()

        with (
            _quiet(),
            patch("syncrep.lifespan.SyncEngine", return_value=engine),
        ):
            with pytest.raises(KeyError):
                async with sync_lifespan({"vault": str(tmp_path)}):
                    raise KeyError("boom")

        engine.stop.assert_awaited_once()


# -------------------------------------------------------------------------
# sync_lifespan() -- configuration errors
# -------------------------------------------------------------------------


class TestSyncLifespanConfigErrors:
    async def test_invalid_config_raises_runtime_error(self, tmp_path):
        with _quiet():
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with sync_lifespan(
                    {"vault": str(tmp_path), "folder": "relative/path"}
                ):
                    pass

    async def test_bad_env_interval_raises_runtime_error(
        self, tmp_path, monkeypatch
    ):
        monkeypatch.setenv("SYNCREP_INTERVAL", "soon")
        with _quiet():
            with pytest.raises(RuntimeError, match="SYNCREP_INTERVAL"):
                async with sync_lifespan({"vault": str(tmp_path)}):
                    pass

    async def test_logging_not_configured_on_error(self, tmp_path):
        with _quiet() as mock_logging:
            with pytest.raises(RuntimeError):
                async with sync_lifespan({"mode": "sometimes"}):
                    pass
        mock_logging.assert_not_called()

    async def test_missing_config_file_raises_runtime_error(
        self, tmp_path, monkeypatch
    ):
        monkeypatch.setenv("SYNCREP_CONFIG", str(tmp_path / "missing.yml"))
        with (
            patch("syncrep.lifespan.load_dotenv"),
            patch("syncrep.lifespan.setup_logging"),
            patch("syncrep.lifespan._stderr_print"),
        ):
            with pytest.raises(RuntimeError, match="Config file not found"):
                async with sync_lifespan({"vault": str(tmp_path)}):
                    pass
