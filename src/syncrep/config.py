"""Runtime configuration for the sync engine.

Reads sync settings from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SYNCREP_FOLDER: External directory to mirror (optional; empty disables sync)
    SYNCREP_SYNC_ON_SAVE: Push files on every modification (optional, default: true)
    SYNCREP_INTERVAL: Seconds between periodic pushes (optional, default: 0)
    SYNCREP_MODE: "all" or "include" (optional, default: all)
    SYNCREP_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from .config_schema import SyncConfig

logger = logging.getLogger(__name__)


def validate_config(config: SyncConfig) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: SyncConfig instance to validate.

    Raises:
        ValueError: If the sync folder or an external folder is relative.
    """
    if config.sync_folder_path and not Path(
        config.sync_folder_path
    ).expanduser().is_absolute():
        raise ValueError(
            f"Invalid sync folder '{config.sync_folder_path}': must be an absolute path"
        )

    seen: dict[str, str] = {}
    for folder in config.external_included_folders:
        if not Path(folder).expanduser().is_absolute():
            raise ValueError(
                f"Invalid external folder '{folder}': must be an absolute path"
            )
        name = Path(folder).name
        if name in seen:
            # Two folders with the same basename map onto the same vault folder
            logger.warning(
                "External folders %s and %s share the name '%s'; "
                "only the first one will receive vault changes",
                seen[name],
                folder,
                name,
            )
        else:
            seen[name] = folder

    if not config.sync_folder_path:
        logger.warning(
            "No sync folder configured; synchronization is disabled"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    folder: str | None = None,
    sync_on_save: bool | None = None,
    interval: int | None = None,
    mode: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> SyncConfig:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        folder: Override external sync folder.
        sync_on_save: Override the sync-on-save flag.
        interval: Override the periodic sync interval in seconds.
        mode: Override the sync mode (``"all"`` or ``"include"``).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``sync`` section.

    Returns:
        Validated SyncConfig instance.

    Raises:
        ValueError: If any resolved value is invalid.
    """
    fb = dict(yaml_fallbacks or {})

    sync_folder = (
        folder
        or os.getenv("SYNCREP_FOLDER")
        or fb.get("sync_folder_path")
        or ""
    )
    sync_folder = sync_folder.strip()
    fb["sync_folder_path"] = (
        str(Path(sync_folder).expanduser()) if sync_folder else ""
    )

    if sync_on_save is not None:
        fb["sync_on_save"] = sync_on_save
    else:
        env_save = _get_bool_env("SYNCREP_SYNC_ON_SAVE")
        if env_save is not None:
            fb["sync_on_save"] = env_save

    if interval is not None:
        fb["sync_interval"] = interval
    else:
        interval_raw = os.getenv("SYNCREP_INTERVAL")
        if interval_raw is not None:
            try:
                fb["sync_interval"] = int(interval_raw)
            except ValueError:
                raise ValueError(
                    f"Invalid SYNCREP_INTERVAL '{interval_raw}': must be a whole number of seconds"
                ) from None

    final_mode = mode or os.getenv("SYNCREP_MODE")
    if final_mode:
        fb["sync_mode"] = final_mode.strip().lower()

    if debug:
        fb["debug"] = True
    else:
        env_debug = _get_bool_env("SYNCREP_DEBUG")
        if env_debug is not None:
            fb["debug"] = env_debug

    try:
        config = SyncConfig(**fb)
    except ValidationError as exc:
        raise ValueError(f"Invalid sync configuration: {exc}") from exc

    validate_config(config)

    return config
