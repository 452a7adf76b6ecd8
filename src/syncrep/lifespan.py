"""Lifespan management for sync engine startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .config import load_config
from .config_loader import find_config_file, read_config_file
from .config_schema import LoggingConfig, build_config
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.outbound import Confirm
from .vault import DirectoryVault, VaultEventSource

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def sync_lifespan(
    config_overrides: dict[str, Any] | None = None,
    confirm: Confirm | None = None,
    watch: bool = False,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage engine startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and $VAR folder paths)
    - Load YAML config file if present (``sync`` section as fallbacks, ``logging`` section)
    - Configure logging
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Open the vault and build the engine
    - With ``watch``: pull from the sync folder, then watch both sides

    On shutdown:
    - Stop the vault watcher and the engine

    Args:
        config_overrides: Optional dict with values from the CLI (folder,
            vault, debug, log_file, interval, mode, sync_on_save).
        confirm: Asked before external content is deleted.
        watch: Start watches and the periodic push.

    Yields:
        Dict with ``config``, ``vault`` and ``engine`` keys.

    Raises:
        RuntimeError: If the configuration is invalid.
    """
    overrides = config_overrides or {}

    try:
        # 1. Load .env early (before YAML, so $VAR in folder paths can use .env values)
        load_dotenv()

        # 2. Load YAML config if present
        yaml_fallbacks: dict[str, Any] | None = None
        logging_config = LoggingConfig()
        sources = []
        config_file = find_config_file()
        if config_file is not None:
            unified = build_config(read_config_file(config_file))
            yaml_fallbacks = {
                k: v for k, v in unified.sync.model_dump().items() if v is not None
            }
            logging_config = unified.logging
            sources.append(f"config file: {config_file}")

        # 3. Single call to load_config with all sources merged
        config = load_config(
            folder=overrides.get("folder"),
            sync_on_save=overrides.get("sync_on_save"),
            interval=overrides.get("interval"),
            mode=overrides.get("mode"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )
    except ValueError as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    setup_logging(
        debug=config.debug,
        log_file=overrides.get("log_file") or logging_config.file,
        debug_format=logging_config.format,
        level=logging_config.level,
    )

    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    logger.info("Configuration loaded from: %s", ", ".join(sources))
    logger.info("Sync folder: %s", config.sync_folder_path or "(not configured)")

    vault = DirectoryVault(Path(overrides.get("vault") or Path.cwd()))
    logger.info("Vault: %s", vault.root)
    engine = SyncEngine(vault, config, confirm=confirm)
    events: VaultEventSource | None = None

    if watch:
        await engine.start(initial_sync=bool(config.sync_folder_path))
        events = VaultEventSource(vault, engine, use_polling=config.use_polling)
        events.start()
        _stderr_print(f"Watching {vault.root} <-> {config.sync_folder_path}")

    try:
        yield {"config": config, "vault": vault, "engine": engine}
    finally:
        if events is not None:
            events.stop()
            await events.drain()
        await engine.stop()
        logger.info("Sync engine shut down")
