"""Unit tests for orgzr.storage: Substrate lifecycle, namespace handles,
atomic writes, isolation, and the data-directory lock.
"""
from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from orgzr.storage.atomic import atomic_write_bytes
from orgzr.storage.substrate import (
    StorageError,
    Substrate,
    SubstrateClosedError,
    SubstrateLockedError,
)


@pytest.fixture()
def substrate(data_dir: Path):
    store = Substrate(data_dir, fsync=False)
    store.mount()
    yield store
    store.close()


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestSubstrateLifecycle:
    def test_mount_creates_directory(self, data_dir: Path) -> None:
        store = Substrate(data_dir, fsync=False)
        assert not data_dir.exists()
        store.mount()
        assert data_dir.is_dir()
        assert store.mounted
        store.close()
        assert not store.mounted

    def test_mount_is_idempotent(self, substrate: Substrate) -> None:
        substrate.mount()
        assert substrate.mounted

    def test_close_is_idempotent(self, substrate: Substrate) -> None:
        substrate.close()
        substrate.close()
        assert not substrate.mounted

    def test_open_before_mount_fails(self, data_dir: Path) -> None:
        with pytest.raises(SubstrateClosedError):
            Substrate(data_dir).open("taskz")

    def test_context_manager(self, data_dir: Path) -> None:
        with Substrate(data_dir, fsync=False) as store:
            assert store.mounted
        assert not store.mounted

    def test_mount_failure_is_storage_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            Substrate(blocker / "data").mount()


# ===========================================================================
# Namespaces
# ===========================================================================


class TestNamespaceHandle:
    def test_open_is_idempotent(self, substrate: Substrate) -> None:
        assert substrate.open("taskz") is substrate.open("taskz")

    def test_open_does_not_create_file(self, substrate: Substrate, data_dir: Path) -> None:
        handle = substrate.open("taskz")
        assert not handle.exists()
        assert not (data_dir / "taskz.ns").exists()

    def test_read_of_new_namespace_is_empty(self, substrate: Substrate) -> None:
        assert substrate.open("taskz").read() == b""

    def test_write_then_read(self, substrate: Substrate) -> None:
        handle = substrate.open("taskz")
        handle.write(b"hello")
        assert handle.read() == b"hello"
        assert handle.exists()

    def test_write_replaces_whole_content(self, substrate: Substrate) -> None:
        handle = substrate.open("taskz")
        handle.write(b"a much longer first value")
        handle.write(b"short")
        assert handle.read() == b"short"

    def test_write_rejects_text(self, substrate: Substrate) -> None:
        with pytest.raises(TypeError):
            substrate.open("taskz").write("text")  # type: ignore[arg-type]

    def test_plug_id_property(self, substrate: Substrate) -> None:
        assert substrate.open("mealz").plug_id == "mealz"

    @pytest.mark.parametrize("bad_id", ["", "../etc", "A", "a/b", ".lock"])
    def test_invalid_namespace_id(self, substrate: Substrate, bad_id: str) -> None:
        with pytest.raises(StorageError):
            substrate.open(bad_id)

    def test_persists_across_mounts(self, data_dir: Path) -> None:
        with Substrate(data_dir, fsync=False) as store:
            store.open("taskz").write(b"kept")
        with Substrate(data_dir, fsync=False) as store:
            assert store.open("taskz").read() == b"kept"

    def test_handle_unusable_after_close(self, data_dir: Path) -> None:
        store = Substrate(data_dir, fsync=False)
        store.mount()
        handle = store.open("taskz")
        store.close()
        with pytest.raises(SubstrateClosedError):
            handle.read()
        with pytest.raises(SubstrateClosedError):
            handle.write(b"x")


class TestNamespaceIsolation:
    def test_write_to_one_namespace_invisible_to_another(self, substrate: Substrate) -> None:
        a = substrate.open("alpha")
        b = substrate.open("beta")
        a.write(b"secret")
        assert b.read() == b""
        b.write(b"other")
        assert a.read() == b"secret"

    def test_each_namespace_has_own_file(self, substrate: Substrate, data_dir: Path) -> None:
        substrate.open("alpha").write(b"1")
        substrate.open("beta").write(b"2")
        assert sorted(p.name for p in data_dir.glob("*.ns")) == ["alpha.ns", "beta.ns"]


# ===========================================================================
# Atomicity and flushing
# ===========================================================================


class TestAtomicWrites:
    def test_failed_replace_keeps_old_content(self, substrate: Substrate, data_dir: Path) -> None:
        handle = substrate.open("taskz")
        handle.write(b"old")
        with patch("orgzr.storage.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                handle.write(b"new")
        assert handle.read() == b"old"

    def test_failed_replace_leaves_no_temp_file(self, substrate: Substrate, data_dir: Path) -> None:
        handle = substrate.open("taskz")
        with patch("orgzr.storage.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                handle.write(b"new")
        assert [p.name for p in data_dir.iterdir() if p.name.endswith(".tmp")] == []

    def test_atomic_write_bytes_with_fsync(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.bin"
        atomic_write_bytes(target, b"\x00\x01", fsync=True)
        assert target.read_bytes() == b"\x00\x01"

    def test_flush_clears_dirty_flag(self, data_dir: Path) -> None:
        with Substrate(data_dir, fsync=True) as store:
            handle = store.open("taskz")
            assert not handle.dirty
            handle.write(b"x")
            assert handle.dirty
            handle.flush()
            assert not handle.dirty

    def test_flush_syncs_even_without_per_write_fsync(self, data_dir: Path) -> None:
        with Substrate(data_dir, fsync=False) as store:
            handle = store.open("taskz")
            with patch("orgzr.storage.substrate.fsync_file") as sync:
                handle.write(b"x")
                assert sync.call_count == 0
                handle.flush()
            sync.assert_called_once_with(data_dir / "taskz.ns")
            assert not handle.dirty

    def test_flush_of_clean_handle_is_noop(self, substrate: Substrate) -> None:
        substrate.open("taskz").flush()

    def test_flush_failure_is_storage_error(self, data_dir: Path) -> None:
        with Substrate(data_dir, fsync=True) as store:
            handle = store.open("taskz")
            handle.write(b"x")
            with patch("orgzr.storage.substrate.fsync_file", side_effect=OSError("io")):
                with pytest.raises(StorageError):
                    handle.flush()


# ===========================================================================
# Lock file
# ===========================================================================


class TestSubstrateLock:
    def test_second_mount_on_same_directory_fails(self, data_dir: Path) -> None:
        first = Substrate(data_dir, fsync=False)
        first.mount()
        try:
            with pytest.raises(SubstrateLockedError) as info:
                Substrate(data_dir, fsync=False).mount()
            assert info.value.owner_pid == os.getpid()
        finally:
            first.close()

    def test_lock_released_on_close(self, data_dir: Path) -> None:
        lock = data_dir / Substrate.LOCK_NAME
        store = Substrate(data_dir, fsync=False)
        store.mount()
        assert lock.read_text() == str(os.getpid())
        store.close()
        assert not lock.exists()
        Substrate(data_dir, fsync=False).mount()

    def test_stale_lock_is_reclaimed(self, data_dir: Path) -> None:
        data_dir.mkdir(parents=True)
        (data_dir / Substrate.LOCK_NAME).write_text("999999999")
        with patch("orgzr.storage.substrate._pid_alive", return_value=False):
            store = Substrate(data_dir, fsync=False)
            store.mount()
        assert store.mounted
        store.close()

    def test_live_foreign_lock_blocks(self, data_dir: Path) -> None:
        data_dir.mkdir(parents=True)
        (data_dir / Substrate.LOCK_NAME).write_text("12345")
        with patch("orgzr.storage.substrate._pid_alive", return_value=True):
            with pytest.raises(SubstrateLockedError) as info:
                Substrate(data_dir, fsync=False).mount()
        assert info.value.owner_pid == 12345

    def test_lock_can_be_disabled(self, data_dir: Path) -> None:
        first = Substrate(data_dir, fsync=False, lock=False)
        second = Substrate(data_dir, fsync=False, lock=False)
        first.mount()
        second.mount()
        assert not (data_dir / Substrate.LOCK_NAME).exists()
        first.close()
        second.close()
