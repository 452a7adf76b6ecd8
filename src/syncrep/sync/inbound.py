"""Inbound propagation: external changes applied to the vault.

Content is only written to the vault when it differs from what the vault
already holds, which is what keeps a full sync idempotent and stops the
outbound echo of an inbound write from bouncing back again.  Removals are
always soft deletes through the store's trash.

A full sync runs in two phases over the sync folder and every configured
external folder:

1. **Structure** -- every participating directory, empty or not, is created
   in the vault.  Excluded directories are not descended into.
2. **Files** -- every participating file is created or updated.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from syncrep.core.async_utils import run_sync, settle
from syncrep.file_handler import is_temp_file, read_content_async
from syncrep.sync.guard import ChangeGuard
from syncrep.sync.models import FileKind, SyncAction, SyncReport, SyncResult
from syncrep.sync.policy import PathPolicy, normalize
from syncrep.sync.store import (
    ManagedFile,
    ManagedFolder,
    ManagedStore,
    StoreConflictError,
    StoreError,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 0.2


def _list_entries(directory: Path) -> list[tuple[str, bool]]:
    """Return ``(name, is_dir)`` for every entry of *directory*, sorted."""
    with os.scandir(directory) as it:
        entries = [(entry.name, entry.is_dir()) for entry in it]
    return sorted(entries)


def _join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


class InboundSync:
    """Mirror external files and directories into the vault.

    Args:
        store: The managed store to write to.
        policy: Participation and path mapping.
        guard: Guard held around every vault write.
        retry_delay: Seconds to wait before retrying a create that lost a
            race as a modify.
    """

    def __init__(
        self,
        store: ManagedStore,
        policy: PathPolicy,
        guard: ChangeGuard,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self.store = store
        self.policy = policy
        self.guard = guard
        self.retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Single events
    # ------------------------------------------------------------------

    async def handle_external_file_change(
        self, full_path: Path | str, relative_path: str
    ) -> SyncResult:
        """Bring the vault copy of one external file up to date."""
        managed_path = self.policy.managed_path(full_path, relative_path)
        if not self.policy.should_sync(managed_path):
            logger.debug("Ignoring change to excluded path %s", managed_path)
            return SyncResult(
                path=managed_path, action=SyncAction.SKIP, error="excluded"
            )
        return await self._apply_file(Path(full_path), managed_path)

    async def handle_external_file_deletion(self, relative_path: str) -> SyncResult:
        """Move the vault copy of a removed external file to the trash."""
        path = normalize(relative_path)
        if not self.policy.should_sync(path):
            return SyncResult(path=path, action=SyncAction.SKIP, error="excluded")

        entry = self.store.get(path)
        if not isinstance(entry, ManagedFile):
            return SyncResult(path=path, action=SyncAction.SKIP)
        try:
            with self.guard.hold():
                await self.store.trash(entry)
        except (OSError, StoreError) as exc:
            logger.error("Error trashing %s: %s", path, exc)
            return SyncResult(
                path=path,
                action=SyncAction.TRASH_FILE,
                success=False,
                error=str(exc),
            )
        logger.info("Moved %s to the trash", path)
        return SyncResult(path=path, action=SyncAction.TRASH_FILE)

    async def handle_external_directory_creation(
        self, full_path: Path | str, relative_path: str
    ) -> list[SyncResult]:
        """Create the vault folder for a new external directory, then fill it.

        The folder is created even when the directory is empty.
        """
        managed_path = self.policy.managed_path(full_path, relative_path)
        if not self.policy.should_sync(managed_path):
            return [
                SyncResult(
                    path=managed_path, action=SyncAction.SKIP, error="excluded"
                )
            ]
        results = await self._ensure_folder_result(managed_path)
        results.extend(
            await self.sync_directory_from_external(Path(full_path), managed_path)
        )
        return results

    async def handle_external_directory_deletion(
        self, relative_path: str
    ) -> list[SyncResult]:
        """Trash the vault folder of a removed external directory."""
        path = normalize(relative_path)
        if not self.policy.should_sync(path):
            return [SyncResult(path=path, action=SyncAction.SKIP, error="excluded")]
        if await self.check_for_renamed_directory(path):
            logger.debug("Directory %s was renamed, nothing to trash", path)
            return []
        if not isinstance(self.store.get(path), ManagedFolder):
            return []
        return await self.move_folder_to_trash(path)

    async def check_for_renamed_directory(self, relative_path: str) -> bool:
        """Decide whether a vanished directory was renamed rather than removed.

        The watcher cannot correlate the two halves of a directory rename,
        so every disappearance is treated as a removal.
        """
        return False

    # ------------------------------------------------------------------
    # Vault helpers
    # ------------------------------------------------------------------

    async def ensure_managed_directory(self, path: str) -> list[str]:
        """Create every missing folder along *path*.

        Returns:
            The folder paths that were created, outermost first.
        """
        created: list[str] = []
        current = ""
        for segment in normalize(path).split("/"):
            if not segment:
                continue
            current = _join(current, segment)
            if self.store.get(current) is not None:
                continue
            try:
                with self.guard.hold():
                    await self.store.create_folder(current)
            except StoreConflictError:
                logger.debug("Folder %s appeared concurrently", current)
                continue
            created.append(current)
            logger.debug("Created vault folder %s", current)
        return created

    async def move_folder_to_trash(self, path: str) -> list[SyncResult]:
        """Trash every file below *path*, then the folder itself.

        A file that cannot be trashed is logged and does not stop the rest.
        """
        results: list[SyncResult] = []
        prefix = path + "/"
        for file in self.store.list_files():
            if not file.path.startswith(prefix):
                continue
            try:
                with self.guard.hold():
                    await self.store.trash(file)
            except (OSError, StoreError) as exc:
                logger.error("Error trashing %s: %s", file.path, exc)
                results.append(
                    SyncResult(
                        path=file.path,
                        action=SyncAction.TRASH_FILE,
                        success=False,
                        error=str(exc),
                    )
                )
                continue
            results.append(SyncResult(path=file.path, action=SyncAction.TRASH_FILE))

        folder = self.store.get(path)
        if isinstance(folder, ManagedFolder):
            try:
                with self.guard.hold():
                    await self.store.trash(folder)
            except (OSError, StoreError) as exc:
                logger.error("Error trashing folder %s: %s", path, exc)
                results.append(
                    SyncResult(
                        path=path,
                        action=SyncAction.TRASH_FOLDER,
                        success=False,
                        error=str(exc),
                    )
                )
                return results
            results.append(SyncResult(path=path, action=SyncAction.TRASH_FOLDER))
            logger.info("Moved folder %s to the trash", path)
        return results

    # ------------------------------------------------------------------
    # Directory walks
    # ------------------------------------------------------------------

    async def scan_and_create_all_directories(
        self, base: Path, relative_path: str = ""
    ) -> list[SyncResult]:
        """Phase 1: create a vault folder for every participating directory."""
        results: list[SyncResult] = []
        if not await run_sync(base.is_dir):
            logger.debug("Directory does not exist: %s", base)
            return results

        if relative_path:
            if not self.policy.should_sync(relative_path):
                logger.debug("Not descending into excluded %s", relative_path)
                return results
            results.extend(await self._ensure_folder_result(relative_path))

        try:
            entries = await run_sync(_list_entries, base)
        except OSError as exc:
            logger.error("Error scanning %s: %s", base, exc)
            return results
        for name, is_dir in entries:
            if is_dir:
                results.extend(
                    await self.scan_and_create_all_directories(
                        base / name, _join(relative_path, name)
                    )
                )
        return results

    async def sync_directory_from_external(
        self, directory: Path, relative_path: str = ""
    ) -> list[SyncResult]:
        """Phase 2: create or update the vault copy of every file below *directory*."""
        results: list[SyncResult] = []
        if relative_path:
            if not self.policy.should_sync(relative_path):
                return results
            results.extend(await self._ensure_folder_result(relative_path))

        try:
            entries = await run_sync(_list_entries, directory)
        except OSError as exc:
            logger.error("Error reading directory %s: %s", directory, exc)
            results.append(
                SyncResult(
                    path=relative_path,
                    action=SyncAction.SKIP,
                    success=False,
                    error=str(exc),
                )
            )
            return results

        for name, is_dir in entries:
            child = _join(relative_path, name)
            if not self.policy.should_sync(child):
                continue
            if is_dir:
                results.extend(
                    await self.sync_directory_from_external(directory / name, child)
                )
            elif not is_temp_file(name):
                results.append(await self._apply_file(directory / name, child))
        return results

    async def sync_all_external_directories(self) -> SyncReport:
        """Pull the whole external side into the vault in two phases.

        Running it twice with no change in between performs no vault writes
        the second time.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[SyncResult] = []

        root = self.policy.external_path("")
        if root is None or not await run_sync(root.is_dir):
            logger.warning("Sync folder not configured or missing, nothing to pull")
            return SyncReport(
                name="pull",
                results=results,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
            )

        trees: list[tuple[Path, str]] = [(root, "")]
        for folder in self.policy.config.external_included_folders:
            base = Path(folder)
            if await run_sync(base.is_dir):
                trees.append((base, base.name))
            else:
                logger.debug("External folder not found: %s", base)

        logger.debug("Phase 1: creating directory structure")
        for base, relative_path in trees:
            results.extend(
                await self.scan_and_create_all_directories(base, relative_path)
            )

        logger.debug("Phase 2: syncing files")
        for base, relative_path in trees:
            results.extend(
                await self.sync_directory_from_external(base, relative_path)
            )

        report = SyncReport(
            name="pull",
            results=results,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "Pulled from %s: %d writes, %d errors",
            root,
            report.writes,
            len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_folder_result(self, path: str) -> list[SyncResult]:
        try:
            created = await self.ensure_managed_directory(path)
        except (OSError, StoreError) as exc:
            logger.error("Error creating vault folder %s: %s", path, exc)
            return [
                SyncResult(
                    path=path,
                    action=SyncAction.CREATE_FOLDER,
                    success=False,
                    error=str(exc),
                )
            ]
        return [
            SyncResult(path=folder, action=SyncAction.CREATE_FOLDER)
            for folder in created
        ]

    async def _apply_file(self, source: Path, managed_path: str) -> SyncResult:
        """Create or update *managed_path* from *source* when they differ."""
        kind = self.policy.file_kind(managed_path)
        try:
            content = await read_content_async(
                source, binary=kind is FileKind.BINARY
            )
            existing = self.store.get(managed_path)
            if isinstance(existing, ManagedFolder):
                raise StoreError(f"{managed_path} is a folder in the vault")
            if isinstance(existing, ManagedFile):
                return await self._update_if_changed(existing, content, kind)

            parent = str(PurePosixPath(managed_path).parent)
            if parent != ".":
                await self.ensure_managed_directory(parent)
            try:
                with self.guard.hold():
                    if kind is FileKind.BINARY:
                        await self.store.create_binary(managed_path, content)
                    else:
                        await self.store.create(managed_path, content)
            except StoreConflictError:
                logger.debug(
                    "%s already exists, retrying as an update", managed_path
                )
                await settle(self.retry_delay)
                existing = self.store.get(managed_path)
                if not isinstance(existing, ManagedFile):
                    raise
                return await self._update_if_changed(existing, content, kind)
        except (OSError, StoreError) as exc:
            logger.error("Error syncing %s from %s: %s", managed_path, source, exc)
            return SyncResult(
                path=managed_path,
                action=SyncAction.CREATE_FILE,
                success=False,
                error=str(exc),
            )

        logger.info("Created %s from the sync folder", managed_path)
        return SyncResult(path=managed_path, action=SyncAction.CREATE_FILE)

    async def _update_if_changed(
        self, file: ManagedFile, content: str | bytes, kind: FileKind
    ) -> SyncResult:
        if kind is FileKind.BINARY:
            current: str | bytes = await self.store.read_binary(file)
        else:
            current = await self.store.read(file)
        if current == content:
            logger.debug("%s is already up to date", file.path)
            return SyncResult(path=file.path, action=SyncAction.SKIP)

        with self.guard.hold():
            if kind is FileKind.BINARY:
                await self.store.modify_binary(file, content)
            else:
                await self.store.modify(file, content)
        logger.info("Updated %s from the sync folder", file.path)
        return SyncResult(path=file.path, action=SyncAction.UPDATE_FILE)
