"""Sync engine context tying both directions together.

The ``SyncEngine`` owns the single ``ChangeGuard`` and hands it, with one
shared ``PathPolicy``, to the outbound and inbound halves and to the watch
service.  It:

1. Sets up external watches on ``start()``.
2. Runs an initial pull from the external side when asked to.
3. Pushes every vault file on a fixed interval when one is configured.
4. Routes vault change notifications (``on_managed_*``) outwards.
5. Swaps configuration in every component on ``update_config()``.

Error handling is per item: a failing file never stops a full sync, and
nothing short of shutdown stops the engine.
"""

from __future__ import annotations

import asyncio
import logging

from syncrep.config_schema import SyncConfig
from syncrep.sync.guard import DEFAULT_SETTLE_DELAY, ChangeGuard
from syncrep.sync.inbound import DEFAULT_RETRY_DELAY, InboundSync
from syncrep.sync.models import SyncAction, SyncReport, SyncResult
from syncrep.sync.outbound import Confirm, OutboundSync
from syncrep.sync.policy import PathPolicy
from syncrep.sync.store import ManagedEntry, ManagedFile, ManagedFolder, ManagedStore
from syncrep.sync.watcher import DEFAULT_DEBOUNCE_DELAY, ObserverFactory, WatchService

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keep a managed store and the external sync folder consistent.

    Args:
        store: The managed store (vault).
        config: Sync settings.
        confirm: Asked before external content is deleted.  ``None``
            declines every deletion.
        settle_delay: How long the guard stays raised after a write.
        debounce_delay: Quiet period before an external file change is
            applied.
        retry_delay: Wait before retrying a create that raced as a modify.
        observer_factory: Optional watchdog observer factory (tests).
    """

    def __init__(
        self,
        store: ManagedStore,
        config: SyncConfig,
        confirm: Confirm | None = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self.store = store
        self.config = config

        self.guard = ChangeGuard(settle_delay)
        self.policy = PathPolicy(config)
        self.outbound = OutboundSync(store, self.policy, self.guard, confirm)
        self.inbound = InboundSync(
            store, self.policy, self.guard, retry_delay=retry_delay
        )
        self.watcher = WatchService(
            store,
            self.policy,
            self.inbound,
            self.guard,
            debounce_delay=debounce_delay,
            observer_factory=observer_factory,
        )
        self._periodic: asyncio.Task | None = None

    async def __aenter__(self) -> SyncEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, initial_sync: bool = False) -> None:
        """Watch the external side and start the periodic push.

        Args:
            initial_sync: Pull everything from the external side first.
        """
        if initial_sync:
            await self.sync_from_external()
        await self.watcher.setup()
        self._restart_periodic()
        logger.info("Sync engine started")

    async def stop(self) -> None:
        """Cancel the periodic push and pending events, close the watches."""
        await self._cancel_periodic()
        self.watcher.close()
        await self.watcher.drain()
        self.guard.reset()
        logger.info("Sync engine stopped")

    async def update_config(self, config: SyncConfig) -> None:
        """Apply new settings everywhere, then recreate watches and timer."""
        self.config = config
        self.policy.update(config)
        await self.watcher.setup()
        self._restart_periodic()
        logger.info("Sync configuration updated")

    def _restart_periodic(self) -> None:
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None
        if self.config.sync_interval > 0:
            self._periodic = asyncio.ensure_future(
                self._run_periodic(self.config.sync_interval)
            )
            logger.debug(
                "Periodic push every %d seconds", self.config.sync_interval
            )

    async def _cancel_periodic(self) -> None:
        task, self._periodic = self._periodic, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_periodic(self, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                report = await self.sync_all_files()
            except Exception as exc:
                logger.error("Periodic sync failed: %s", exc)
                continue
            if report.errors:
                logger.warning(
                    "Periodic sync finished with %d errors", len(report.errors)
                )

    # ------------------------------------------------------------------
    # On-demand full syncs
    # ------------------------------------------------------------------

    async def sync_all_files(self) -> SyncReport:
        """Push every participating vault file to the external side."""
        return await self.outbound.sync_all_files()

    async def sync_from_external(self) -> SyncReport:
        """Pull the whole external side, holding the guard throughout."""
        logger.info("Syncing from the external folder")
        with self.guard.hold():
            return await self.inbound.sync_all_external_directories()

    # ------------------------------------------------------------------
    # Vault notifications
    # ------------------------------------------------------------------

    async def on_managed_modify(self, file: ManagedFile) -> SyncResult:
        """A vault file was saved."""
        if not self.config.sync_on_save or not self.policy.should_sync(file.path):
            return SyncResult(path=file.path, action=SyncAction.SKIP)
        return await self.outbound.sync_file(file)

    async def on_managed_create(self, entry: ManagedEntry) -> SyncResult:
        """A vault file or folder was created."""
        if not self.policy.should_sync(entry.path):
            return SyncResult(path=entry.path, action=SyncAction.SKIP)
        match entry:
            case ManagedFile():
                return await self.outbound.sync_file(entry)
            case ManagedFolder():
                return await self.outbound.sync_folder(entry)
        raise TypeError(f"Unknown vault entry: {entry!r}")

    async def on_managed_delete(self, entry: ManagedEntry) -> SyncResult:
        """A vault file or folder was deleted."""
        if not self.policy.should_sync(entry.path):
            return SyncResult(path=entry.path, action=SyncAction.SKIP)
        match entry:
            case ManagedFile():
                return await self.outbound.handle_file_deletion(entry.path)
            case ManagedFolder():
                return await self.outbound.handle_folder_deletion(entry.path)
        raise TypeError(f"Unknown vault entry: {entry!r}")

    async def on_managed_rename(
        self, entry: ManagedEntry, old_path: str
    ) -> SyncResult:
        """A vault file or folder moved from *old_path* to ``entry.path``.

        Files: when both paths participate the external copy is renamed,
        falling back to a fresh copy; when only the old one does the
        external copy is offered for deletion; when only the new one does
        it is copied fresh.  Folders are renamed when either side
        participates.
        """
        old_synced = self.policy.should_sync(old_path)
        new_synced = self.policy.should_sync(entry.path)
        match entry:
            case ManagedFile() if old_synced and new_synced:
                if await self.outbound.handle_file_rename(old_path, entry.path):
                    return SyncResult(
                        path=entry.path, action=SyncAction.RENAME_EXTERNAL
                    )
                return await self.outbound.sync_file(entry)
            case ManagedFile() if old_synced:
                return await self.outbound.handle_file_deletion(old_path)
            case ManagedFile() if new_synced:
                return await self.outbound.sync_file(entry)
            case ManagedFolder() if old_synced or new_synced:
                return await self.outbound.handle_folder_rename(entry, old_path)
        return SyncResult(path=entry.path, action=SyncAction.SKIP)
