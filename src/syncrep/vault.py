"""Directory-backed managed store.

``DirectoryVault`` implements ``ManagedStore`` on top of a plain directory
so the engine can run as a standalone daemon.  Removed entries are never
deleted: they are moved into ``<root>/.trash``.  The trash and the
``<root>/.syncrep`` config directory are invisible to the store.

``VaultEventSource`` watches the vault directory with watchdog and turns
what happens there into ``SyncEngine.on_managed_*`` calls.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from syncrep.core.async_utils import run_sync
from syncrep.file_handler import is_temp_file, read_content, write_file_atomic
from syncrep.sync.policy import normalize
from syncrep.sync.store import (
    ManagedEntry,
    ManagedFile,
    ManagedFolder,
    StoreConflictError,
    StoreError,
)

if TYPE_CHECKING:
    from syncrep.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

TRASH_DIR = ".trash"
CONFIG_DIR = ".syncrep"
_INTERNAL_DIRS = (TRASH_DIR, CONFIG_DIR)


def _is_internal(path: str) -> bool:
    """True for the trash, the config directory and anything below them."""
    return any(path == d or path.startswith(d + "/") for d in _INTERNAL_DIRS)


def _trash_target(trash: Path, name: str) -> Path:
    """Pick a free name in *trash*, suffixing `` 1``, `` 2``... on collision."""
    target = trash / name
    stem, suffix = os.path.splitext(name)
    counter = 1
    while target.exists():
        target = trash / f"{stem} {counter}{suffix}"
        counter += 1
    return target


class DirectoryVault:
    """A managed store rooted at a local directory.

    Args:
        root: Vault directory.  Created if it does not exist.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def trash_dir(self) -> Path:
        return self.root / TRASH_DIR

    def _abs(self, path: str) -> Path:
        path = normalize(path)
        if not path:
            return self.root
        return self.root.joinpath(*path.split("/"))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_files(self) -> list[ManagedFile]:
        files: list[ManagedFile] = []
        for current, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(current).relative_to(self.root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            if not rel_dir:
                dirnames[:] = [d for d in dirnames if d not in _INTERNAL_DIRS]
            for name in filenames:
                if is_temp_file(name):
                    continue
                files.append(ManagedFile(f"{rel_dir}/{name}" if rel_dir else name))
        return sorted(files, key=lambda f: f.path)

    def list_folders(self) -> list[ManagedFolder]:
        folders: list[ManagedFolder] = []
        for current, dirnames, _ in os.walk(self.root):
            rel_dir = Path(current).relative_to(self.root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            if not rel_dir:
                dirnames[:] = [d for d in dirnames if d not in _INTERNAL_DIRS]
            for name in dirnames:
                folders.append(ManagedFolder(f"{rel_dir}/{name}" if rel_dir else name))
        return sorted(folders, key=lambda f: f.path)

    def get(self, path: str) -> ManagedEntry | None:
        path = normalize(path)
        if _is_internal(path):
            return None
        target = self._abs(path)
        if target.is_dir():
            return ManagedFolder(path)
        if target.is_file():
            return ManagedFile(path)
        return None

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def read(self, file: ManagedFile) -> str:
        return await run_sync(read_content, self._abs(file.path))

    async def read_binary(self, file: ManagedFile) -> bytes:
        return await run_sync(self._abs(file.path).read_bytes)

    async def create(self, path: str, content: str) -> ManagedFile:
        return await self._create(path, content)

    async def create_binary(self, path: str, data: bytes) -> ManagedFile:
        return await self._create(path, data)

    async def modify(self, file: ManagedFile, content: str) -> None:
        await self._modify(file, content)

    async def modify_binary(self, file: ManagedFile, data: bytes) -> None:
        await self._modify(file, data)

    async def _create(self, path: str, content: str | bytes) -> ManagedFile:
        path = normalize(path)
        if _is_internal(path):
            raise StoreError(f"Cannot create {path} inside {path.split('/')[0]}")
        if self.get(path) is not None:
            raise StoreConflictError(f"{path} already exists")
        await run_sync(write_file_atomic, self._abs(path), content)
        return ManagedFile(path)

    async def _modify(self, file: ManagedFile, content: str | bytes) -> None:
        target = self._abs(file.path)
        if not target.is_file():
            raise StoreError(f"{file.path} does not exist")
        await run_sync(write_file_atomic, target, content)

    # ------------------------------------------------------------------
    # Folders and trash
    # ------------------------------------------------------------------

    async def create_folder(self, path: str) -> ManagedFolder:
        path = normalize(path)
        if self.get(path) is not None:
            raise StoreConflictError(f"{path} already exists")
        target = self._abs(path)
        if not target.parent.is_dir():
            raise StoreError(f"Parent folder of {path} does not exist")
        await run_sync(target.mkdir)
        return ManagedFolder(path)

    async def trash(self, entry: ManagedEntry) -> None:
        """Move *entry* into ``.trash`` under a collision-free name."""
        if not entry.path:
            raise StoreError("The vault root cannot be trashed")
        source = self._abs(entry.path)
        if not source.exists():
            raise StoreError(f"{entry.path} does not exist")

        def _move() -> Path:
            self.trash_dir.mkdir(exist_ok=True)
            target = _trash_target(self.trash_dir, source.name)
            shutil.move(str(source), str(target))
            return target

        target = await run_sync(_move)
        logger.debug("Trashed %s -> %s", entry.path, target)


# ---------------------------------------------------------------------------
# Change notifications
# ---------------------------------------------------------------------------


class _VaultEventBridge(FileSystemEventHandler):
    def __init__(self, source: VaultEventSource) -> None:
        super().__init__()
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._source.post(event)


class VaultEventSource:
    """Forward vault directory changes to a ``SyncEngine``.

    Writes that the vault performs through a temporary file show up as a
    move from the temporary name; they are reported as modifications.
    Moves into ``.trash`` or ``.syncrep`` are reported as deletions.

    Args:
        vault: The vault to watch.
        engine: Receives the ``on_managed_*`` calls.
        use_polling: Watch with a polling observer.
    """

    def __init__(
        self,
        vault: DirectoryVault,
        engine: SyncEngine,
        use_polling: bool = False,
    ) -> None:
        self.vault = vault
        self.engine = engine
        self.use_polling = use_polling
        self._observer: BaseObserver | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        """Start watching; must be called from the engine's event loop."""
        self._loop = asyncio.get_running_loop()
        self._observer = PollingObserver() if self.use_polling else Observer()
        self._observer.schedule(
            _VaultEventBridge(self), str(self.vault.root), recursive=True
        )
        self._observer.start()
        logger.info("Watching vault %s", self.vault.root)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def post(self, event: FileSystemEvent) -> None:
        """Hand a watchdog event over to the event loop (any thread)."""
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._schedule, event)

    def _schedule(self, event: FileSystemEvent) -> None:
        task = asyncio.ensure_future(self.handle_event(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _relative(self, raw_path: str | bytes) -> str | None:
        try:
            rel = Path(os.fsdecode(raw_path)).relative_to(self.vault.root)
        except ValueError:
            return None
        rel_path = rel.as_posix()
        return "" if rel_path == "." else rel_path

    def _entry(self, path: str, is_directory: bool) -> ManagedEntry:
        return ManagedFolder(path) if is_directory else ManagedFile(path)

    async def handle_event(self, event: FileSystemEvent) -> None:
        """Translate one watchdog event into an engine call."""
        src = self._relative(event.src_path)
        if not src and event.event_type != "moved":
            return

        match event.event_type:
            case "created":
                if _is_internal(src) or is_temp_file(Path(src).name):
                    return
                await self.engine.on_managed_create(
                    self._entry(src, event.is_directory)
                )
            case "modified":
                if event.is_directory or _is_internal(src):
                    return
                if is_temp_file(Path(src).name):
                    return
                await self.engine.on_managed_modify(ManagedFile(src))
            case "deleted":
                if _is_internal(src) or is_temp_file(Path(src).name):
                    return
                await self.engine.on_managed_delete(
                    self._entry(src, event.is_directory)
                )
            case "moved":
                dest = self._relative(event.dest_path)
                if src is None or dest is None or _is_internal(src):
                    return
                if is_temp_file(Path(src).name):
                    if dest and not _is_internal(dest):
                        await self.engine.on_managed_modify(ManagedFile(dest))
                    return
                if _is_internal(dest):
                    await self.engine.on_managed_delete(
                        self._entry(src, event.is_directory)
                    )
                    return
                await self.engine.on_managed_rename(
                    self._entry(dest, event.is_directory), src
                )
