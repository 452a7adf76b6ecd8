"""Watch service for the external side.

Each external root (the sync folder plus every existing external folder) is
watched with a watchdog observer.  A recursive watch is tried first; when
the platform refuses it the root falls back to one non-recursive watch per
directory, and directories created later get a watch of their own.

Watchdog delivers events on its own thread.  They are handed to the
engine's event loop with ``call_soon_threadsafe`` and handled there:

- events that arrive while the change guard is held are dropped;
- directories are created in the vault as soon as they appear;
- paths that no longer exist are removed from the vault, as a folder or as
  a file depending on what the vault holds at that path;
- file changes are debounced per path, a newer event restarting the timer.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from syncrep.core.async_utils import run_sync
from syncrep.file_handler import is_temp_file
from syncrep.sync.guard import ChangeGuard
from syncrep.sync.inbound import InboundSync
from syncrep.sync.models import WatchMode
from syncrep.sync.policy import PathPolicy
from syncrep.sync.store import ManagedFolder, ManagedStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_DELAY = 0.5

# Errors a recursive schedule may raise on platforms that cannot honour it
_RECURSIVE_WATCH_ERRORS = (OSError, NotImplementedError, ValueError)

ObserverFactory = Callable[[], BaseObserver]


class _EventBridge(FileSystemEventHandler):
    """Forward watchdog events from the observer thread to the event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[str, str], None],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        src = os.fsdecode(event.src_path)
        if event.event_type == "moved":
            dest = os.fsdecode(event.dest_path)
            self._loop.call_soon_threadsafe(self._callback, "deleted", src)
            self._loop.call_soon_threadsafe(self._callback, "created", dest)
        elif event.event_type in ("created", "modified", "deleted"):
            self._loop.call_soon_threadsafe(self._callback, event.event_type, src)


def _scan_subdirectories(
    root: Path, keep: Callable[[Path], bool]
) -> list[Path]:
    """Return every directory below *root* for which *keep* is true.

    Directories rejected by *keep* are not descended into.
    """
    found: list[Path] = []
    for current, dirnames, _ in os.walk(root):
        kept = []
        for name in sorted(dirnames):
            path = Path(current) / name
            if keep(path):
                kept.append(name)
                found.append(path)
        dirnames[:] = kept
    return found


class WatchService:
    """Watch the external roots and feed changes to inbound sync.

    Args:
        store: The managed store, consulted to tell folder removals from
            file removals.
        policy: Participation and path mapping.
        inbound: Applies external changes to the vault.
        guard: Events are dropped while it is held.
        debounce_delay: Quiet period before a file change is applied.
        observer_factory: Builds the watchdog observer.  Defaults to a
            polling observer when ``use_polling`` is configured, else the
            platform's native observer.
    """

    def __init__(
        self,
        store: ManagedStore,
        policy: PathPolicy,
        inbound: InboundSync,
        guard: ChangeGuard,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self.store = store
        self.policy = policy
        self.inbound = inbound
        self.guard = guard
        self.debounce_delay = debounce_delay
        self._observer_factory = observer_factory

        self._observer: BaseObserver | None = None
        self._handler: _EventBridge | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._modes: dict[Path, WatchMode] = {}
        self._watched: dict[Path, object] = {}
        self._debounce: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def modes(self) -> dict[Path, WatchMode]:
        """Current watch mode of every external root."""
        return dict(self._modes)

    def mode(self, root: Path | str) -> WatchMode:
        return self._modes.get(Path(root), WatchMode.UNWATCHED)

    def roots(self) -> list[Path]:
        """The external roots that exist and should be watched."""
        roots: list[Path] = []
        if self.policy.config.sync_folder_path:
            root = Path(self.policy.config.sync_folder_path)
            if root.is_dir():
                roots.append(root)
        for folder in self.policy.config.external_included_folders:
            path = Path(folder)
            if path.is_dir():
                roots.append(path)
            else:
                logger.debug("External folder not found, not watching: %s", path)
        return roots

    async def setup(self) -> None:
        """(Re)create watches for every external root.

        Must be awaited on the loop that will handle the events.
        """
        self.close()
        self._loop = asyncio.get_running_loop()
        roots = await run_sync(self.roots)
        if not roots:
            logger.info("No sync folder to watch")
            return

        self._observer = self._make_observer()
        self._handler = _EventBridge(self._loop, self._on_raw_event)
        self._observer.start()

        for root in roots:
            try:
                watch = self._observer.schedule(
                    self._handler, str(root), recursive=True
                )
            except _RECURSIVE_WATCH_ERRORS as exc:
                logger.warning(
                    "Recursive watch unavailable for %s (%s), "
                    "watching each directory instead",
                    root,
                    exc,
                )
                await self._watch_per_directory(root)
                continue
            self._watched[root] = watch
            self._modes[root] = WatchMode.RECURSIVE
            logger.info("Watching %s", root)

    def close(self) -> None:
        """Stop the observer and forget every watch and pending debounce."""
        self.cancel_pending()
        if self._observer is not None:
            self._observer.unschedule_all()
            self._observer.stop()
            if self._observer.is_alive():
                self._observer.join(timeout=5)
            self._observer = None
            logger.debug("Watches closed")
        self._handler = None
        self._watched.clear()
        self._modes.clear()

    def cancel_pending(self) -> None:
        """Cancel pending debounced file changes."""
        for handle in self._debounce.values():
            handle.cancel()
        self._debounce.clear()

    def _make_observer(self) -> BaseObserver:
        if self._observer_factory is not None:
            return self._observer_factory()
        if self.policy.config.use_polling:
            return PollingObserver()
        return Observer()

    async def _watch_per_directory(self, root: Path) -> None:
        directories = [root] + await run_sync(
            _scan_subdirectories, root, self._is_watchable
        )
        watched = 0
        for directory in directories:
            if self._watch_directory(directory):
                watched += 1
        if watched:
            self._modes[root] = WatchMode.PER_DIRECTORY
            logger.info("Watching %d directories under %s", watched, root)
        else:
            self._modes[root] = WatchMode.UNWATCHED
            logger.error("Could not watch any directory under %s", root)

    def _watch_directory(self, directory: Path) -> bool:
        if directory in self._watched:
            return True
        if self._observer is None or self._handler is None:
            return False
        try:
            self._watched[directory] = self._observer.schedule(
                self._handler, str(directory), recursive=False
            )
        except OSError as exc:
            logger.error("Error watching %s: %s", directory, exc)
            return False
        logger.debug("Watching directory %s", directory)
        return True

    async def _unwatch_tree(self, directory: Path) -> None:
        """Unschedule the watches on *directory* and everything below it.

        Watchdog keeps the stopped emitter of a deleted directory registered,
        and scheduling the same path again would reuse it.
        """
        stale = [
            self._watched.pop(path)
            for path in list(self._watched)
            if path == directory or directory in path.parents
        ]
        if stale and self._observer is not None:
            await run_sync(self._unschedule, self._observer, stale)

    @staticmethod
    def _unschedule(observer: BaseObserver, watches: list[object]) -> None:
        for watch in watches:
            try:
                observer.unschedule(watch)
            except KeyError:
                pass

    def _is_watchable(self, directory: Path) -> bool:
        located = self._locate(directory)
        if located is None:
            return False
        _, _, managed_path = located
        return not self.policy.is_excluded(managed_path)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _on_raw_event(self, event_type: str, path: str) -> None:
        task = asyncio.ensure_future(self.handle_event(event_type, path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_event(self, event_type: str, path: str) -> None:
        """Handle one raw ``created``/``modified``/``deleted`` event."""
        if self.guard.held:
            logger.debug("Guard held, dropping %s event for %s", event_type, path)
            return

        full_path = Path(path)
        if is_temp_file(full_path.name):
            return
        located = self._locate(full_path)
        if located is None:
            return
        root, relative_path, managed_path = located
        if not relative_path:
            return
        if self.policy.is_excluded(managed_path):
            logger.debug("Ignoring excluded path %s", managed_path)
            return

        try:
            st = await run_sync(os.stat, full_path)
        except OSError:
            st = None

        if st is not None and stat.S_ISDIR(st.st_mode):
            if event_type != "created":
                return
            if self.mode(root) is WatchMode.PER_DIRECTORY:
                # A recreated directory must not keep the watch of the old one
                await self._unwatch_tree(full_path)
                for directory in [full_path] + await run_sync(
                    _scan_subdirectories, full_path, self._is_watchable
                ):
                    self._watch_directory(directory)
            await self.inbound.handle_external_directory_creation(
                full_path, relative_path
            )
            return

        if st is None:
            if event_type not in ("created", "deleted"):
                return
            self._cancel_debounce(str(full_path))
            await self._unwatch_tree(full_path)
            if isinstance(self.store.get(managed_path), ManagedFolder):
                await self.inbound.handle_external_directory_deletion(managed_path)
            else:
                await self.inbound.handle_external_file_deletion(managed_path)
            return

        if stat.S_ISREG(st.st_mode):
            self._schedule_change(full_path, relative_path)

    def _schedule_change(self, full_path: Path, relative_path: str) -> None:
        key = str(full_path)
        self._cancel_debounce(key)
        loop = self._loop or asyncio.get_running_loop()
        self._debounce[key] = loop.call_later(
            self.debounce_delay, self._fire_change, full_path, relative_path
        )

    def _fire_change(self, full_path: Path, relative_path: str) -> None:
        self._debounce.pop(str(full_path), None)
        task = asyncio.ensure_future(
            self.inbound.handle_external_file_change(full_path, relative_path)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_debounce(self, key: str) -> None:
        handle = self._debounce.pop(key, None)
        if handle is not None:
            handle.cancel()

    async def drain(self) -> None:
        """Wait for every event task started so far (used at shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _locate(self, full_path: Path) -> tuple[Path, str, str] | None:
        """Find the root containing *full_path*.

        Returns:
            ``(root, path relative to root, vault path)`` or ``None`` when
            the path is outside every external root.
        """
        candidates = [
            Path(folder) for folder in self.policy.config.external_included_folders
        ]
        if self.policy.config.sync_folder_path:
            candidates.append(Path(self.policy.config.sync_folder_path))
        for root in candidates:
            if full_path == root or root in full_path.parents:
                relative = full_path.relative_to(root).as_posix()
                relative = "" if relative == "." else relative
                return (
                    root,
                    relative,
                    self.policy.managed_path(full_path, relative),
                )
        return None
