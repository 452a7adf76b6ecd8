"""Data contracts for the mirror sync engine.

Defines the types shared across all sync modules:

- ``FileKind``: Whether content is transferred as UTF-8 text or bytes.
- ``SyncMode``: Which vault paths participate in sync.
- ``WatchMode``: How an external root is currently being watched.
- ``SyncAction``: Enum of possible per-item sync operations.
- ``SyncResult``: Outcome of syncing one path.
- ``SyncReport``: Aggregate results for a full sync run.

Result models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class FileKind(str, Enum):
    """How a file's content is compared and transferred."""

    TEXT = "text"
    BINARY = "binary"


class SyncMode(str, Enum):
    """Participation policy for vault paths."""

    ALL = "all"
    INCLUDE = "include"


class WatchMode(str, Enum):
    """Watch state of one external root."""

    UNWATCHED = "unwatched"
    RECURSIVE = "recursive"
    PER_DIRECTORY = "per_directory"


class SyncAction(str, Enum):
    """Possible sync operations for a single path."""

    SKIP = "skip"
    CREATE_FILE = "create_file"
    UPDATE_FILE = "update_file"
    CREATE_FOLDER = "create_folder"
    TRASH_FILE = "trash_file"
    TRASH_FOLDER = "trash_folder"
    WRITE_EXTERNAL = "write_external"
    CREATE_EXTERNAL_FOLDER = "create_external_folder"
    RENAME_EXTERNAL = "rename_external"
    DELETE_EXTERNAL = "delete_external"


# Actions that mutate the managed store
STORE_WRITE_ACTIONS = frozenset(
    {
        SyncAction.CREATE_FILE,
        SyncAction.UPDATE_FILE,
        SyncAction.CREATE_FOLDER,
        SyncAction.TRASH_FILE,
        SyncAction.TRASH_FOLDER,
    }
)


class SyncResult(BaseModel):
    """Result of syncing one path.

    Attributes:
        path: Vault path (POSIX separators, relative to the vault root).
        action: Sync action that was performed (or ``SKIP``).
        success: Whether the operation succeeded.
        error: Error message if the operation failed, or the skip reason.
    """

    path: str
    action: SyncAction
    success: bool = True
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full sync run.

    Attributes:
        name: Which run this was (``"push"`` or ``"pull"``).
        results: Individual sync results in processing order.
        started_at: ISO 8601 timestamp when sync started.
        completed_at: ISO 8601 timestamp when sync completed.
    """

    name: str
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> list[SyncResult]:
        """Successful results that created a file or folder on either side."""
        return [
            r
            for r in self.results
            if r.success
            and r.action
            in (
                SyncAction.CREATE_FILE,
                SyncAction.CREATE_FOLDER,
                SyncAction.CREATE_EXTERNAL_FOLDER,
            )
        ]

    @property
    def updated(self) -> list[SyncResult]:
        """Successful results that rewrote file content."""
        return [
            r
            for r in self.results
            if r.success
            and r.action
            in (SyncAction.UPDATE_FILE, SyncAction.WRITE_EXTERNAL)
        ]

    @property
    def trashed(self) -> list[SyncResult]:
        """Results where a vault entry was moved to the trash."""
        return [
            r
            for r in self.results
            if r.success
            and r.action in (SyncAction.TRASH_FILE, SyncAction.TRASH_FOLDER)
        ]

    @property
    def skipped(self) -> list[SyncResult]:
        """Results where action is SKIP."""
        return [r for r in self.results if r.action == SyncAction.SKIP]

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def writes(self) -> int:
        """Number of successful managed-store mutations in this run."""
        return sum(
            1
            for r in self.results
            if r.success and r.action in STORE_WRITE_ACTIONS
        )

    def summary(self) -> str:
        """Format a human-readable summary of the sync run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"Sync report for '{self.name}'",
            f"  Created:  {len(self.created)}",
            f"  Updated:  {len(self.updated)}",
            f"  Trashed:  {len(self.trashed)}",
            f"  Skipped:  {len(self.skipped)}",
            f"  Errors:   {len(self.errors)}",
            f"  Total:    {len(self.results)}",
        ]
        return "\n".join(lines)
