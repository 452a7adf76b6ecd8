"""Tests for syncrep.vault -- the directory-backed store and its event source."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from syncrep.sync.store import (
    ManagedFile,
    ManagedFolder,
    StoreConflictError,
    StoreError,
)
from syncrep.vault import DirectoryVault, VaultEventSource

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vault(tmp_path: Path) -> DirectoryVault:
    return DirectoryVault(tmp_path / "vault")


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


# ---------------------------------------------------------------------------
# DirectoryVault
# ---------------------------------------------------------------------------


class TestListing:
    def test_lists_files_and_folders(self, vault):
        _write(vault.root / "a.md", "a")
        _write(vault.root / "dir" / "sub" / "b.md", "b")
        (vault.root / "empty").mkdir()

        assert [f.path for f in vault.list_files()] == ["a.md", "dir/sub/b.md"]
        assert [f.path for f in vault.list_folders()] == ["dir", "dir/sub", "empty"]

    def test_trash_is_invisible(self, vault):
        _write(vault.root / ".trash" / "old.md", "x")
        assert vault.list_files() == []
        assert vault.list_folders() == []
        assert vault.get(".trash/old.md") is None

    def test_config_directory_is_invisible(self, vault):
        _write(vault.root / ".syncrep" / "config.yml", "sync: {}\n")
        assert vault.list_files() == []
        assert vault.list_folders() == []
        assert vault.get(".syncrep/config.yml") is None

    def test_temp_files_are_not_listed(self, vault):
        _write(vault.root / ".a.md.k3j.tmp", "partial")
        assert vault.list_files() == []

    def test_get_resolves_kind(self, vault):
        _write(vault.root / "dir" / "a.md", "a")
        assert vault.get("dir") == ManagedFolder("dir")
        assert vault.get("dir/a.md") == ManagedFile("dir/a.md")
        assert vault.get("") == ManagedFolder("")
        assert vault.get("nope") is None


class TestContent:
    async def test_create_and_read_text(self, vault):
        file = await vault.create("notes/a.md", "héllo")
        assert file == ManagedFile("notes/a.md")
        assert await vault.read(file) == "héllo"

    async def test_create_and_read_binary(self, vault):
        data = bytes(range(256))
        file = await vault.create_binary("pic.png", data)
        assert await vault.read_binary(file) == data

    async def test_create_existing_conflicts(self, vault):
        _write(vault.root / "a.md", "a")
        with pytest.raises(StoreConflictError):
            await vault.create("a.md", "b")

    async def test_modify(self, vault):
        _write(vault.root / "a.md", "a")
        await vault.modify(ManagedFile("a.md"), "b")
        assert (vault.root / "a.md").read_text(encoding="utf-8") == "b"

    async def test_modify_missing_fails(self, vault):
        with pytest.raises(StoreError):
            await vault.modify(ManagedFile("a.md"), "b")


class TestFoldersAndTrash:
    async def test_create_folder(self, vault):
        assert await vault.create_folder("dir") == ManagedFolder("dir")
        assert (vault.root / "dir").is_dir()

    async def test_create_folder_conflict(self, vault):
        (vault.root / "dir").mkdir()
        with pytest.raises(StoreConflictError):
            await vault.create_folder("dir")

    async def test_create_folder_needs_parent(self, vault):
        with pytest.raises(StoreError):
            await vault.create_folder("a/b")

    async def test_trash_moves_file(self, vault):
        _write(vault.root / "a.md", "a")
        await vault.trash(ManagedFile("a.md"))
        assert not (vault.root / "a.md").exists()
        assert (vault.trash_dir / "a.md").read_text(encoding="utf-8") == "a"

    async def test_trash_collisions_get_suffix(self, vault):
        _write(vault.root / "a.md", "first")
        await vault.trash(ManagedFile("a.md"))
        _write(vault.root / "a.md", "second")
        await vault.trash(ManagedFile("a.md"))
        assert (vault.trash_dir / "a.md").read_text(encoding="utf-8") == "first"
        assert (vault.trash_dir / "a 1.md").read_text(encoding="utf-8") == "second"

    async def test_trash_folder(self, vault):
        _write(vault.root / "dir" / "a.md", "a")
        await vault.trash(ManagedFolder("dir"))
        assert not (vault.root / "dir").exists()
        assert (vault.trash_dir / "dir" / "a.md").exists()

    async def test_root_cannot_be_trashed(self, vault):
        with pytest.raises(StoreError):
            await vault.trash(ManagedFolder(""))


# ---------------------------------------------------------------------------
# VaultEventSource
# ---------------------------------------------------------------------------


def _source(vault: DirectoryVault) -> tuple[VaultEventSource, MagicMock]:
    engine = MagicMock()
    engine.on_managed_create = AsyncMock()
    engine.on_managed_modify = AsyncMock()
    engine.on_managed_delete = AsyncMock()
    engine.on_managed_rename = AsyncMock()
    return VaultEventSource(vault, engine), engine


class TestVaultEventSource:
    async def test_file_created(self, vault):
        source, engine = _source(vault)
        await source.handle_event(FileCreatedEvent(str(vault.root / "a.md")))
        engine.on_managed_create.assert_awaited_once_with(ManagedFile("a.md"))

    async def test_folder_created(self, vault):
        source, engine = _source(vault)
        await source.handle_event(DirCreatedEvent(str(vault.root / "dir")))
        engine.on_managed_create.assert_awaited_once_with(ManagedFolder("dir"))

    async def test_file_modified(self, vault):
        source, engine = _source(vault)
        await source.handle_event(FileModifiedEvent(str(vault.root / "a.md")))
        engine.on_managed_modify.assert_awaited_once_with(ManagedFile("a.md"))

    async def test_directory_modified_is_ignored(self, vault):
        source, engine = _source(vault)
        await source.handle_event(DirModifiedEvent(str(vault.root / "dir")))
        engine.on_managed_modify.assert_not_awaited()

    async def test_deleted(self, vault):
        source, engine = _source(vault)
        await source.handle_event(DirDeletedEvent(str(vault.root / "dir")))
        await source.handle_event(FileDeletedEvent(str(vault.root / "a.md")))
        assert engine.on_managed_delete.await_args_list[0].args == (
            ManagedFolder("dir"),
        )
        assert engine.on_managed_delete.await_args_list[1].args == (
            ManagedFile("a.md"),
        )

    async def test_rename(self, vault):
        source, engine = _source(vault)
        await source.handle_event(
            FileMovedEvent(str(vault.root / "a.md"), str(vault.root / "d" / "b.md"))
        )
        engine.on_managed_rename.assert_awaited_once_with(
            ManagedFile("d/b.md"), "a.md"
        )

    async def test_folder_rename(self, vault):
        source, engine = _source(vault)
        await source.handle_event(
            DirMovedEvent(str(vault.root / "old"), str(vault.root / "new"))
        )
        engine.on_managed_rename.assert_awaited_once_with(
            ManagedFolder("new"), "old"
        )

    async def test_move_into_trash_is_a_deletion(self, vault):
        source, engine = _source(vault)
        await source.handle_event(
            FileMovedEvent(
                str(vault.root / "a.md"), str(vault.root / ".trash" / "a.md")
            )
        )
        engine.on_managed_delete.assert_awaited_once_with(ManagedFile("a.md"))
        engine.on_managed_rename.assert_not_awaited()

    async def test_atomic_write_is_a_modification(self, vault):
        source, engine = _source(vault)
        await source.handle_event(
            FileMovedEvent(
                str(vault.root / ".a.md.x7.tmp"), str(vault.root / "a.md")
            )
        )
        engine.on_managed_modify.assert_awaited_once_with(ManagedFile("a.md"))

    async def test_internal_and_temp_events_are_ignored(self, vault):
        source, engine = _source(vault)
        await source.handle_event(FileCreatedEvent(str(vault.root / ".trash" / "x")))
        await source.handle_event(
            FileModifiedEvent(str(vault.root / ".syncrep" / "config.yml"))
        )
        await source.handle_event(FileCreatedEvent(str(vault.root / ".a.md.1.tmp")))
        await source.handle_event(
            FileModifiedEvent(str(vault.root / ".a.md.1.tmp"))
        )
        engine.on_managed_create.assert_not_awaited()
        engine.on_managed_modify.assert_not_awaited()

    async def test_events_outside_root_are_ignored(self, vault, tmp_path):
        source, engine = _source(vault)
        await source.handle_event(FileCreatedEvent(str(tmp_path / "other.md")))
        engine.on_managed_create.assert_not_awaited()
