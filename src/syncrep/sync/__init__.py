"""Bidirectional mirror between a managed store and a plain directory.

Public API for keeping a vault (any ``ManagedStore``) and an external sync
folder consistent in both directions.

Architecture
------------
There is no persisted state: every decision is made from the current
content of both sides.  Echo loops between the two directions are broken
by a single ``ChangeGuard`` that drops external watch events while the
engine itself is writing, together with inbound writes that only happen
when content actually differs.

Modules:

- ``engine``    -- ``SyncEngine``: owns the guard, watches and timer.
- ``policy``    -- ``PathPolicy``: participation and path mapping.
- ``guard``     -- ``ChangeGuard``: flag with delayed release.
- ``outbound``  -- ``OutboundSync``: vault to external.
- ``inbound``   -- ``InboundSync``: external to vault, two-phase full sync.
- ``watcher``   -- ``WatchService``: watchdog observers and debounce.
- ``store``     -- ``ManagedStore`` protocol, ``ManagedFile``,
  ``ManagedFolder``.
- ``models``    -- ``SyncAction``, ``SyncResult``, ``SyncReport`` and enums.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from syncrep.config import load_config
    from syncrep.sync import SyncEngine, format_sync_report
    from syncrep.vault import DirectoryVault

    config = load_config(folder="/home/me/notes-mirror")
    vault = DirectoryVault("/home/me/vault")

    async with SyncEngine(vault, config) as engine:
        report = await engine.sync_from_external()
        print(format_sync_report(report))
"""

from .engine import SyncEngine
from .guard import ChangeGuard
from .inbound import InboundSync
from .models import (
    FileKind,
    SyncAction,
    SyncMode,
    SyncReport,
    SyncResult,
    WatchMode,
)
from .outbound import Confirm, OutboundSync
from .policy import PathPolicy
from .reporter import format_sync_report, report_to_json
from .store import (
    ManagedEntry,
    ManagedFile,
    ManagedFolder,
    ManagedStore,
    StoreConflictError,
    StoreError,
)
from .watcher import WatchService

__all__ = [
    "ChangeGuard",
    "Confirm",
    "FileKind",
    "InboundSync",
    "ManagedEntry",
    "ManagedFile",
    "ManagedFolder",
    "ManagedStore",
    "OutboundSync",
    "PathPolicy",
    "StoreConflictError",
    "StoreError",
    "SyncAction",
    "SyncEngine",
    "SyncMode",
    "SyncReport",
    "SyncResult",
    "WatchMode",
    "WatchService",
    "format_sync_report",
    "report_to_json",
]
