"""Config-driven path policy for the mirror.

Decides which vault paths participate in sync and translates between vault
paths and external filesystem paths using a ``SyncConfig``.

Participation:

1. **all mode** -- every path except those under an excluded prefix.
2. **include mode** -- only paths under an included prefix (``""`` matches
   everything) or under a top-level folder named after a configured
   external folder.

Mapping:

1. **External folder** -- a path whose top segment equals the basename of a
   configured external folder lives inside that folder on disk.
2. **Sync root** -- every other path is joined under ``sync_folder_path``.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from syncrep.config_schema import SyncConfig
from syncrep.sync.models import FileKind, SyncMode

_BINARY_EXTENSIONS = frozenset(
    {
        # Images
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".webp",
        # Documents
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        # Archives
        ".zip", ".rar", ".7z", ".tar", ".gz",
        # Audio
        ".mp3", ".wav", ".ogg", ".flac", ".m4a",
        # Video
        ".mp4", ".avi", ".mov", ".wmv", ".mkv", ".webm",
        # Executables
        ".exe", ".dll", ".so", ".dylib",
        # Fonts
        ".ttf", ".otf", ".woff", ".woff2",
    }
)


def normalize(path: str) -> str:
    """Normalise a relative path to forward slashes without edge slashes."""
    return path.replace("\\", "/").strip("/")


def _under(path: str, prefix: str) -> bool:
    """True if *path* equals *prefix* or lies beneath it (either separator)."""
    return (
        path == prefix
        or path.startswith(prefix + "/")
        or path.startswith(prefix + "\\")
    )


class PathPolicy:
    """Answer participation and mapping questions for one configuration.

    Args:
        config: The sync settings.  Replace with ``update()`` when the
            configuration is saved.
    """

    def __init__(self, config: SyncConfig) -> None:
        self._config = config

    @property
    def config(self) -> SyncConfig:
        return self._config

    def update(self, config: SyncConfig) -> None:
        self._config = config

    # ------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------

    def should_sync(self, path: str) -> bool:
        """Return ``True`` if the vault *path* participates in sync."""
        if self._config.sync_mode == SyncMode.ALL.value:
            return not self.is_excluded(path)
        return self.is_included(path) or self.is_external_included(path)

    def is_excluded(self, path: str) -> bool:
        return any(
            _under(path, folder) for folder in self._config.excluded_folders
        )

    def is_included(self, path: str) -> bool:
        for folder in self._config.included_folders:
            if folder == "":
                return True
            if _under(path, folder):
                return True
        return False

    def is_external_included(self, path: str) -> bool:
        return any(
            _under(path, Path(folder).name)
            for folder in self._config.external_included_folders
        )

    # ------------------------------------------------------------------
    # Vault -> external
    # ------------------------------------------------------------------

    def external_path(self, managed_path: str) -> Path | None:
        """Map a vault path to its external filesystem path.

        Args:
            managed_path: Vault path (e.g. ``"notes/todo.md"``).

        Returns:
            Absolute external path, or ``None`` when no sync folder is
            configured.
        """
        if not self._config.sync_folder_path:
            return None

        managed_path = normalize(managed_path)
        for folder in self._config.external_included_folders:
            name = Path(folder).name
            if managed_path == name:
                return Path(folder)
            if managed_path.startswith(name + "/"):
                remainder = managed_path[len(name) + 1 :]
                return Path(folder).joinpath(*remainder.split("/"))

        root = Path(self._config.sync_folder_path)
        if not managed_path:
            return root
        return root.joinpath(*managed_path.split("/"))

    # ------------------------------------------------------------------
    # External -> vault
    # ------------------------------------------------------------------

    def managed_path(self, full_path: Path | str, relative_path: str) -> str:
        """Resolve the vault path for an external file.

        Files inside a configured external folder map under a top-level
        vault folder named after it; everything else keeps *relative_path*.

        Args:
            full_path: Absolute external path of the file.
            relative_path: Path relative to the watched root.

        Returns:
            Vault path with ``/`` separators.
        """
        full = Path(full_path)
        for folder in self._config.external_included_folders:
            base = Path(folder)
            if full == base or base in full.parents:
                rel = full.relative_to(base).as_posix()
                if rel == ".":
                    return base.name
                return f"{base.name}/{rel}"
        return normalize(relative_path)

    def relative_to_root(self, full_path: Path | str) -> str | None:
        """Return *full_path* relative to the sync folder, or ``None``."""
        if not self._config.sync_folder_path:
            return None
        try:
            rel = Path(full_path).relative_to(self._config.sync_folder_path)
        except ValueError:
            return None
        return "" if str(rel) == "." else rel.as_posix()

    # ------------------------------------------------------------------
    # Content kind
    # ------------------------------------------------------------------

    @staticmethod
    def file_kind(path: str) -> FileKind:
        """Classify *path* as text or binary by its extension."""
        suffix = PurePosixPath(normalize(path)).suffix.lower()
        return FileKind.BINARY if suffix in _BINARY_EXTENSIONS else FileKind.TEXT
