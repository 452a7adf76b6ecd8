"""Managed-store contract required by the sync engine.

The engine never touches the vault's storage directly.  Anything that can
list, read, create, modify, soft-delete and resolve entries by path can be
mirrored; ``syncrep.vault.DirectoryVault`` is the bundled implementation.

Entries are a tagged variant, ``ManagedFile | ManagedFolder``, meant to be
consumed with ``match``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union


class StoreError(Exception):
    """A managed-store operation failed."""


class StoreConflictError(StoreError):
    """The entry being created already exists."""


@dataclass(frozen=True)
class ManagedFile:
    """A file in the managed store, addressed by its vault path."""

    path: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class ManagedFolder:
    """A folder in the managed store.  The vault root has path ``""``."""

    path: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


ManagedEntry = Union[ManagedFile, ManagedFolder]


class ManagedStore(Protocol):
    """Protocol that every managed store must satisfy.

    Paths use ``/`` separators and are relative to the vault root.
    """

    def list_files(self) -> list[ManagedFile]:
        """Return every file in the store."""
        ...  # pragma: no cover

    def list_folders(self) -> list[ManagedFolder]:
        """Return every folder in the store, the root excluded."""
        ...  # pragma: no cover

    def get(self, path: str) -> ManagedEntry | None:
        """Resolve *path* to an existing entry, or ``None``."""
        ...  # pragma: no cover

    async def read(self, file: ManagedFile) -> str:
        ...  # pragma: no cover

    async def read_binary(self, file: ManagedFile) -> bytes:
        ...  # pragma: no cover

    async def create(self, path: str, content: str) -> ManagedFile:
        """Create a text file.

        Raises:
            StoreConflictError: If an entry already exists at *path*.
        """
        ...  # pragma: no cover

    async def create_binary(self, path: str, data: bytes) -> ManagedFile:
        """Create a binary file.

        Raises:
            StoreConflictError: If an entry already exists at *path*.
        """
        ...  # pragma: no cover

    async def modify(self, file: ManagedFile, content: str) -> None:
        ...  # pragma: no cover

    async def modify_binary(self, file: ManagedFile, data: bytes) -> None:
        ...  # pragma: no cover

    async def create_folder(self, path: str) -> ManagedFolder:
        """Create one folder whose parent already exists.

        Raises:
            StoreConflictError: If an entry already exists at *path*.
        """
        ...  # pragma: no cover

    async def trash(self, entry: ManagedEntry) -> None:
        """Move *entry* (and, for folders, its contents) to the trash."""
        ...  # pragma: no cover
