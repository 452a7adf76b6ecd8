"""Outbound propagation: vault changes applied to the external store.

Every write to the external side happens while the change guard is held,
so the watch notifications our own writes cause are dropped.  Deletions of
external content are never performed without asking the confirmation
collaborator first.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

from syncrep.core.async_utils import run_sync
from syncrep.file_handler import write_file_async
from syncrep.sync.guard import ChangeGuard
from syncrep.sync.models import FileKind, SyncAction, SyncReport, SyncResult
from syncrep.sync.policy import PathPolicy
from syncrep.sync.store import ManagedFile, ManagedFolder, ManagedStore, StoreError

logger = logging.getLogger(__name__)

Confirm = Callable[[str], Awaitable[bool]]


async def _decline(message: str) -> bool:
    return False


def move_directory_contents(source: Path, target: Path) -> None:
    """Merge *source* into *target* file by file.

    Files are copied over (overwriting) and then removed from *source*;
    subdirectories are merged recursively and removed once empty.  The
    source directory itself is left in place.
    """
    target.mkdir(parents=True, exist_ok=True)
    for entry in list(source.iterdir()):
        destination = target / entry.name
        if entry.is_dir():
            move_directory_contents(entry, destination)
            if not any(entry.iterdir()):
                entry.rmdir()
        else:
            shutil.copy2(entry, destination)
            entry.unlink()


class OutboundSync:
    """Mirror vault files and folders onto the external store.

    Args:
        store: The managed store to read from.
        policy: Participation and path mapping.
        guard: Guard held around every external write.
        confirm: Asked before any external deletion.  When omitted every
            deletion is declined.
    """

    def __init__(
        self,
        store: ManagedStore,
        policy: PathPolicy,
        guard: ChangeGuard,
        confirm: Confirm | None = None,
    ) -> None:
        self.store = store
        self.policy = policy
        self.guard = guard
        self.confirm: Confirm = confirm or _decline

    # ------------------------------------------------------------------
    # Files and folders
    # ------------------------------------------------------------------

    async def sync_file(self, file: ManagedFile) -> SyncResult:
        """Copy one vault file to its external path, overwriting it."""
        if not self.policy.should_sync(file.path):
            return SyncResult(
                path=file.path, action=SyncAction.SKIP, error="excluded"
            )
        target = self.policy.external_path(file.path)
        if target is None:
            return SyncResult(
                path=file.path,
                action=SyncAction.SKIP,
                error="sync folder not configured",
            )

        try:
            content: str | bytes
            if self.policy.file_kind(file.path) is FileKind.BINARY:
                content = await self.store.read_binary(file)
            else:
                content = await self.store.read(file)
            with self.guard.hold():
                await write_file_async(target, content)
        except (OSError, StoreError) as exc:
            logger.error("Error syncing %s to %s: %s", file.path, target, exc)
            return SyncResult(
                path=file.path,
                action=SyncAction.WRITE_EXTERNAL,
                success=False,
                error=str(exc),
            )

        logger.debug("Synced %s -> %s", file.path, target)
        return SyncResult(path=file.path, action=SyncAction.WRITE_EXTERNAL)

    async def sync_folder(self, folder: ManagedFolder) -> SyncResult:
        """Create the external directory for *folder* if it is missing."""
        if not self.policy.should_sync(folder.path):
            return SyncResult(
                path=folder.path, action=SyncAction.SKIP, error="excluded"
            )
        target = self.policy.external_path(folder.path)
        if target is None:
            return SyncResult(
                path=folder.path,
                action=SyncAction.SKIP,
                error="sync folder not configured",
            )
        if await run_sync(target.is_dir):
            return SyncResult(path=folder.path, action=SyncAction.SKIP)

        try:
            with self.guard.hold():
                await run_sync(target.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Error creating folder %s: %s", target, exc)
            return SyncResult(
                path=folder.path,
                action=SyncAction.CREATE_EXTERNAL_FOLDER,
                success=False,
                error=str(exc),
            )
        logger.debug("Created external folder %s", target)
        return SyncResult(
            path=folder.path, action=SyncAction.CREATE_EXTERNAL_FOLDER
        )

    # ------------------------------------------------------------------
    # Deletions
    # ------------------------------------------------------------------

    async def handle_file_deletion(self, path: str) -> SyncResult:
        """Offer to delete the external copy of a removed vault file."""
        target = self.policy.external_path(path)
        if target is None or not await run_sync(target.is_file):
            return SyncResult(path=path, action=SyncAction.SKIP)

        if not await self.confirm(
            f"File '{path}' was deleted from the vault. "
            f"Delete {target} as well?"
        ):
            logger.info("Kept external file %s", target)
            return SyncResult(
                path=path, action=SyncAction.SKIP, error="declined"
            )

        try:
            with self.guard.hold():
                await run_sync(target.unlink)
        except OSError as exc:
            logger.error("Error deleting %s: %s", target, exc)
            return SyncResult(
                path=path,
                action=SyncAction.DELETE_EXTERNAL,
                success=False,
                error=str(exc),
            )
        logger.info("Deleted external file %s", target)
        return SyncResult(path=path, action=SyncAction.DELETE_EXTERNAL)

    async def handle_folder_deletion(self, path: str) -> SyncResult:
        """Offer to remove the external directory of a removed vault folder."""
        if not self.policy.should_sync(path):
            return SyncResult(path=path, action=SyncAction.SKIP, error="excluded")
        target = self.policy.external_path(path)
        if target is None or not await run_sync(target.is_dir):
            return SyncResult(path=path, action=SyncAction.SKIP)

        if not await self.confirm(
            f"Folder '{path}' was deleted from the vault. "
            f"Delete {target} and everything in it?"
        ):
            logger.info("Kept external folder %s", target)
            return SyncResult(
                path=path, action=SyncAction.SKIP, error="declined"
            )

        try:
            with self.guard.hold():
                await run_sync(shutil.rmtree, target)
        except OSError as exc:
            logger.error("Error deleting folder %s: %s", target, exc)
            return SyncResult(
                path=path,
                action=SyncAction.DELETE_EXTERNAL,
                success=False,
                error=str(exc),
            )
        logger.info("Deleted external folder %s", target)
        return SyncResult(path=path, action=SyncAction.DELETE_EXTERNAL)

    # ------------------------------------------------------------------
    # Renames
    # ------------------------------------------------------------------

    async def handle_file_rename(self, old_path: str, new_path: str) -> bool:
        """Rename the external copy in place.

        Returns:
            ``True`` if the old external file existed and was moved, else
            ``False`` so the caller can fall back to a fresh ``sync_file``.
        """
        source = self.policy.external_path(old_path)
        target = self.policy.external_path(new_path)
        if source is None or target is None:
            return False
        if not await run_sync(source.is_file):
            return False

        try:
            with self.guard.hold():
                await run_sync(target.parent.mkdir, parents=True, exist_ok=True)
                await run_sync(source.replace, target)
        except OSError as exc:
            logger.error("Error renaming %s to %s: %s", source, target, exc)
            return False
        logger.debug("Renamed external %s -> %s", source, target)
        return True

    async def handle_folder_rename(
        self, folder: ManagedFolder, old_path: str
    ) -> SyncResult:
        """Carry a vault folder rename over to the external store.

        The old directory is renamed when the new one does not exist yet;
        when both exist their contents are merged; when the old one is
        gone the new directory is created fresh.
        """
        source = self.policy.external_path(old_path)
        target = self.policy.external_path(folder.path)
        if source is None or target is None:
            return SyncResult(
                path=folder.path,
                action=SyncAction.SKIP,
                error="sync folder not configured",
            )

        source_exists = await run_sync(source.is_dir)
        target_exists = await run_sync(target.is_dir)
        if not source_exists:
            return await self.sync_folder(folder)

        try:
            with self.guard.hold():
                if target_exists:
                    await run_sync(move_directory_contents, source, target)
                    if not await run_sync(lambda: any(source.iterdir())):
                        await run_sync(source.rmdir)
                else:
                    await run_sync(
                        target.parent.mkdir, parents=True, exist_ok=True
                    )
                    await run_sync(source.rename, target)
        except OSError as exc:
            logger.error(
                "Error renaming folder %s to %s: %s", source, target, exc
            )
            return SyncResult(
                path=folder.path,
                action=SyncAction.RENAME_EXTERNAL,
                success=False,
                error=str(exc),
            )
        logger.info("Renamed external folder %s -> %s", source, target)
        return SyncResult(path=folder.path, action=SyncAction.RENAME_EXTERNAL)

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def sync_all_files(self) -> SyncReport:
        """Push every participating vault folder and file outwards.

        Folders go first so empty ones are mirrored too.  Per-item failures
        are recorded in the report and never abort the run.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[SyncResult] = []

        root = self.policy.external_path("")
        if root is None:
            logger.warning("No sync folder configured, nothing to push")
            return SyncReport(
                name="push",
                results=[],
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
            )
        try:
            with self.guard.hold():
                await run_sync(root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create sync folder %s: %s", root, exc)
            results.append(
                SyncResult(
                    path="",
                    action=SyncAction.CREATE_EXTERNAL_FOLDER,
                    success=False,
                    error=str(exc),
                )
            )

        for folder in self.store.list_folders():
            if self.policy.should_sync(folder.path):
                results.append(await self.sync_folder(folder))
        for file in self.store.list_files():
            if self.policy.should_sync(file.path):
                results.append(await self.sync_file(file))

        completed_at = datetime.now(timezone.utc).isoformat()
        logger.info(
            "Pushed %d vault entries to %s", len(results), root
        )
        return SyncReport(
            name="push",
            results=results,
            started_at=started_at,
            completed_at=completed_at,
        )
