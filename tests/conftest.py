"""Shared pytest fixtures for syncrep tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from syncrep.config_schema import SyncConfig
from syncrep.sync.guard import ChangeGuard
from syncrep.sync.policy import PathPolicy
from syncrep.sync.store import (
    ManagedEntry,
    ManagedFile,
    ManagedFolder,
    StoreConflictError,
    StoreError,
)


class FakeStore:
    """In-memory ``ManagedStore`` that counts every mutation.

    ``files`` maps vault paths to ``str`` or ``bytes`` content.  Parent
    folders of the initial files are created implicitly.
    """

    def __init__(
        self,
        files: dict[str, str | bytes] | None = None,
        folders: list[str] | None = None,
    ) -> None:
        self.files: dict[str, str | bytes] = dict(files or {})
        self.folders: set[str] = set(folders or [])
        for path in list(self.files) + list(self.folders):
            parts = path.split("/")
            for i in range(1, len(parts)):
                self.folders.add("/".join(parts[:i]))
        self.trashed: list[str] = []
        self.writes = 0
        # Paths whose next create loses a race: another writer puts
        # ``racing_content`` there first and the create raises.
        self.race_on_create: dict[str, str | bytes] = {}
        self.fail_reads: set[str] = set()

    # Listing ----------------------------------------------------------

    def list_files(self) -> list[ManagedFile]:
        return [ManagedFile(p) for p in sorted(self.files)]

    def list_folders(self) -> list[ManagedFolder]:
        return [ManagedFolder(p) for p in sorted(self.folders)]

    def get(self, path: str) -> ManagedEntry | None:
        if path == "":
            return ManagedFolder("")
        if path in self.folders:
            return ManagedFolder(path)
        if path in self.files:
            return ManagedFile(path)
        return None

    # Content ----------------------------------------------------------

    async def read(self, file: ManagedFile) -> str:
        if file.path in self.fail_reads:
            raise StoreError(f"cannot read {file.path}")
        content = self.files[file.path]
        assert isinstance(content, str)
        return content

    async def read_binary(self, file: ManagedFile) -> bytes:
        if file.path in self.fail_reads:
            raise StoreError(f"cannot read {file.path}")
        content = self.files[file.path]
        return content.encode("utf-8") if isinstance(content, str) else content

    async def create(self, path: str, content: str) -> ManagedFile:
        return self._create(path, content)

    async def create_binary(self, path: str, data: bytes) -> ManagedFile:
        return self._create(path, data)

    def _create(self, path: str, content: str | bytes) -> ManagedFile:
        if path in self.race_on_create:
            self.files[path] = self.race_on_create.pop(path)
            raise StoreConflictError(f"{path} already exists")
        if self.get(path) is not None:
            raise StoreConflictError(f"{path} already exists")
        self.files[path] = content
        self.writes += 1
        return ManagedFile(path)

    async def modify(self, file: ManagedFile, content: str) -> None:
        self.files[file.path] = content
        self.writes += 1

    async def modify_binary(self, file: ManagedFile, data: bytes) -> None:
        self.files[file.path] = data
        self.writes += 1

    # Folders and trash ------------------------------------------------

    async def create_folder(self, path: str) -> ManagedFolder:
        if self.get(path) is not None:
            raise StoreConflictError(f"{path} already exists")
        self.folders.add(path)
        self.writes += 1
        return ManagedFolder(path)

    async def trash(self, entry: ManagedEntry) -> None:
        if isinstance(entry, ManagedFolder):
            prefix = entry.path + "/"
            for path in [p for p in self.files if p.startswith(prefix)]:
                del self.files[path]
                self.trashed.append(path)
            for path in [p for p in self.folders if p.startswith(prefix)]:
                self.folders.discard(path)
            self.folders.discard(entry.path)
        else:
            del self.files[entry.path]
        self.trashed.append(entry.path)
        self.writes += 1


@pytest.fixture
def external(tmp_path: Path) -> Path:
    """The external sync folder."""
    path = tmp_path / "external"
    path.mkdir()
    return path


@pytest.fixture
def make_config(external: Path):
    """Factory for a SyncConfig rooted at the ``external`` fixture."""

    def _make(**overrides: Any) -> SyncConfig:
        values: dict[str, Any] = {"sync_folder_path": str(external)}
        values.update(overrides)
        return SyncConfig(**values)

    return _make


@pytest.fixture
def guard() -> ChangeGuard:
    """A guard that releases immediately."""
    return ChangeGuard(settle_delay=0)


@pytest.fixture
def policy(make_config) -> PathPolicy:
    return PathPolicy(make_config())
