"""Tests for the local disk file system."""

import os
from datetime import datetime

import pytest

from flagsync.core.errors import AuthorizationError
from flagsync.core.filesystem.local import LocalFileSystem
from flagsync.core.filesystem.virtual import VirtualFileSystem
from flagsync.core.models import MIN_TIMESTAMP, Outcome


@pytest.fixture
def local():
    return LocalFileSystem()


@pytest.fixture
def tree(tmp_path):
    """tmp_path with src/ (a.txt, b.txt, sub/c.txt) and an empty dst/."""
    src = tmp_path / "src"
    (src / "sub").mkdir(parents=True)
    (src / "a.txt").write_bytes(b"0123456789")
    (src / "b.txt").write_bytes(b"b")
    (src / "sub" / "c.txt").write_bytes(b"ccc")
    (tmp_path / "dst").mkdir()
    return tmp_path


class TestLookups:
    """Tests for resolve, exists and list."""

    def test_resolve_file(self, local, tree):
        info = local.resolve_file(str(tree / "src" / "a.txt"))

        assert info.name == "a.txt"
        assert info.size == 10
        assert info.parent_path == str(tree / "src")
        assert info.last_write_time > MIN_TIMESTAMP

    def test_resolve_missing_file(self, local, tree):
        info = local.resolve_file(str(tree / "src" / "missing.txt"))

        assert info.size == 0
        assert info.last_write_time == MIN_TIMESTAMP

    def test_exists(self, local, tree):
        assert local.file_exists(str(tree / "src" / "a.txt"))
        assert not local.file_exists(str(tree / "src" / "sub"))
        assert local.directory_exists(str(tree / "src" / "sub"))
        assert not local.directory_exists(str(tree / "src" / "a.txt"))

    def test_list(self, local, tree):
        src = local.resolve_directory(str(tree / "src"))

        assert [f.name for f in local.list_files(src)] == ["a.txt", "b.txt"]
        assert [d.name for d in local.list_directories(src)] == ["sub"]

    def test_list_missing_directory(self, local, tree):
        missing = local.resolve_directory(str(tree / "missing"))

        assert local.list_files(missing) == []

    def test_unreadable_directory_raises(self, local, tree, monkeypatch):
        def deny(path="."):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(os, "scandir", deny)
        src = local.resolve_directory(str(tree / "src"))

        with pytest.raises(AuthorizationError) as info:
            local.list_files(src)

        assert info.value.path == str(tree / "src")

    def test_normalize_path(self, local, tree):
        path = local.normalize_path(str(tree / "src" / "sub" / ".." / "a.txt"))

        assert path == str(tree / "src" / "a.txt")


class TestMutations:
    """Tests for the try_* operations."""

    def test_create_directory(self, local, tree):
        outcome = local.try_create_directory(
            local.resolve_directory(str(tree / "src" / "sub")),
            local.resolve_directory(str(tree / "dst")),
        )

        assert outcome is Outcome.OK
        assert (tree / "dst" / "sub").is_dir()

    def test_create_directory_in_missing_parent(self, local, tree):
        outcome = local.try_create_directory(
            local.resolve_directory(str(tree / "src" / "sub")),
            local.resolve_directory(str(tree / "missing")),
        )

        assert outcome is Outcome.FAILED

    def test_permission_error_is_unauthorized(self, local, tree, monkeypatch):
        def deny(path, *args, **kwargs):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(os, "mkdir", deny)

        outcome = local.try_create_directory(
            local.resolve_directory(str(tree / "src" / "sub")),
            local.resolve_directory(str(tree / "dst")),
        )

        assert outcome is Outcome.UNAUTHORIZED

    def test_delete_file(self, local, tree):
        info = local.resolve_file(str(tree / "src" / "b.txt"))

        assert local.try_delete_file(info) is Outcome.OK
        assert not (tree / "src" / "b.txt").exists()

    def test_delete_missing_file_fails(self, local, tree):
        info = local.resolve_file(str(tree / "src" / "missing.txt"))

        assert local.try_delete_file(info) is Outcome.FAILED

    def test_delete_directory(self, local, tree):
        info = local.resolve_directory(str(tree / "src" / "sub"))

        assert local.try_delete_directory(info) is Outcome.OK
        assert not (tree / "src" / "sub").exists()

    def test_copy_file_preserves_timestamp(self, local, tree):
        source_path = tree / "src" / "a.txt"
        stamp = datetime(2021, 3, 4, 5, 6, 7).timestamp()
        os.utime(source_path, (stamp, stamp))
        source = local.resolve_file(str(source_path))

        outcome = local.try_copy_file(local, source, local.resolve_directory(str(tree / "dst")))

        assert outcome is Outcome.OK
        assert (tree / "dst" / "a.txt").read_bytes() == b"0123456789"
        assert local.resolve_file(str(tree / "dst" / "a.txt")).last_write_time == source.last_write_time

    def test_copy_into_missing_directory(self, local, tree):
        source = local.resolve_file(str(tree / "src" / "a.txt"))

        outcome = local.try_copy_file(local, source, local.resolve_directory(str(tree / "missing")))

        assert outcome is Outcome.FAILED

    def test_copy_from_virtual(self, local, tree):
        virtual = VirtualFileSystem()
        source = virtual.add_file("/remote/data.bin", b"\x01\x02\x03")

        outcome = local.try_copy_file(virtual, source, local.resolve_directory(str(tree / "dst")))

        assert outcome is Outcome.OK
        assert (tree / "dst" / "data.bin").read_bytes() == b"\x01\x02\x03"

    def test_cancelled_copy(self, tree):
        local = LocalFileSystem(chunk_size=4)
        local.add_progress_listener(lambda progress: progress.cancel())
        source = local.resolve_file(str(tree / "src" / "a.txt"))

        outcome = local.try_copy_file(local, source, local.resolve_directory(str(tree / "dst")))

        assert outcome is Outcome.CANCELLED
        assert (tree / "dst" / "a.txt").stat().st_size < source.size
