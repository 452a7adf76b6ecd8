"""
Config file handling for syncrep.

syncrep reads at most one YAML file, the first of these that exists:

    1. ``SYNCREP_CONFIG`` (``--config`` sets it).  It must exist.
    2. ``.syncrep/config.yml`` in the current directory, the default vault.
    3. ``~/.config/syncrep/config.yml``.

Folder paths in the ``sync`` section may use ``~`` and ``$VAR``.  Relative
ones are taken relative to the directory holding the file, so a config
kept beside a vault can point at ``../mirror``.

``syncrep init`` writes a commented starter file and records the folder,
interval and mode given on its command line through ``save_config()``.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .config_schema import SyncConfig
from .file_handler import write_file_atomic

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SYNCREP_CONFIG"

_STARTER_CONFIG = """\
# syncrep configuration
#
# Sync settings can also be set via environment variables:
#   SYNCREP_FOLDER, SYNCREP_SYNC_ON_SAVE, SYNCREP_INTERVAL,
#   SYNCREP_MODE, SYNCREP_DEBUG
#
# Relative folders below are resolved against this file's directory.
#
# sync:
#   sync_folder_path: ~/Documents/mirror
#   sync_on_save: true
#   sync_interval: 0          # seconds, 0 disables periodic sync
#   sync_mode: all            # all | include
#   excluded_folders:
#     - private
#   included_folders: []
#   external_included_folders:
#     - $HOME/Projects/notes
#   use_polling: false
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


# ---------------------------------------------------------------------------
# Locating the file
# ---------------------------------------------------------------------------


def default_config_path() -> Path:
    """The per-vault config file in the current directory."""
    return Path.cwd() / ".syncrep" / "config.yml"


def find_config_file() -> Path | None:
    """Return the config file to read, or ``None`` when there is none.

    Raises:
        ValueError: If ``SYNCREP_CONFIG`` names a file that does not exist.
    """
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser().resolve()
        if not path.is_file():
            raise ValueError(f"Config file not found: {path}")
        return path

    for candidate in (
        default_config_path(),
        Path.home() / ".config" / "syncrep" / "config.yml",
    ):
        if candidate.is_file():
            return candidate
    return None


def config_target() -> Path:
    """The file ``init`` writes: ``SYNCREP_CONFIG``, the file in use, or
    the per-vault default."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser().resolve()
    return find_config_file() or default_config_path()


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def resolve_folder(value: str, base: Path) -> str:
    """Expand ``$VAR`` and ``~`` in *value* and anchor it at *base*.

    An empty value stays empty (no sync folder).
    """
    expanded = os.path.expanduser(os.path.expandvars(value.strip()))
    if not expanded:
        return ""
    if "$" in expanded:
        logger.warning("Unset variable left in folder path: %s", value)
    path = Path(expanded)
    if not path.is_absolute():
        path = base / path
    return os.path.normpath(path)


def _resolve_sync_folders(section: dict[str, Any], base: Path) -> dict[str, Any]:
    resolved = dict(section)
    folder = resolved.get("sync_folder_path")
    if isinstance(folder, str):
        resolved["sync_folder_path"] = resolve_folder(folder, base)
    externals = resolved.get("external_included_folders")
    if isinstance(externals, list):
        resolved["external_included_folders"] = [
            resolve_folder(str(item), base) for item in externals if item
        ]
    return resolved


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {path} must contain a mapping, not {type(data).__name__}"
        )
    return data


def read_config_file(path: Path) -> dict[str, Any]:
    """Load *path* with its ``sync`` folders resolved to absolute paths.

    Raises:
        ValueError: If the file is not valid YAML or its root is not a
            mapping.
    """
    logger.debug("Loading config: %s", path)
    data = _read_yaml(path)
    section = data.get("sync")
    if isinstance(section, dict):
        data["sync"] = _resolve_sync_folders(section, path.resolve().parent)
    return data


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def write_starter_config(path: Path) -> bool:
    """Create *path* with the commented starter text.

    Returns:
        ``False`` when the file already existed and was left alone.
    """
    if path.exists():
        logger.debug("Config file already exists: %s", path)
        return False
    write_file_atomic(path, _STARTER_CONFIG)
    logger.info("Created starter config: %s", path)
    return True


def save_config(config: SyncConfig, path: Path) -> Path:
    """Write *config* as the ``sync`` section of *path*.

    Only settings that differ from the defaults are written.  Other
    top-level sections already in the file are kept, comments are not.
    """
    data = _read_yaml(path) if path.exists() else {}
    data["sync"] = config.model_dump(exclude_defaults=True)
    write_file_atomic(path, yaml.safe_dump(data, sort_keys=False))
    logger.info("Saved sync configuration to %s", path)
    return path
