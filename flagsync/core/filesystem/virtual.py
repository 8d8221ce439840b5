"""
In-memory file system.

A complete backend without disk or network access, used to verify the
sync engine. Directories can be locked: a locked directory rejects every
create, delete or copy operation targeting it or its direct children,
which models a path under exclusive control of someone else.
"""

from __future__ import annotations

import io
import logging
import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Optional

from flagsync.core.copy_operation import DEFAULT_CHUNK_SIZE, CopyState
from flagsync.core.errors import PreconditionError
from flagsync.core.filesystem.base import FileSystem
from flagsync.core.models import (
    MIN_TIMESTAMP,
    CancellationToken,
    DirectoryInfo,
    FileInfo,
    Outcome,
    VirtualDirectoryInfo,
    VirtualFileInfo,
)


ROOT = "/"


@dataclass
class _VirtualEntry:
    """Mutable store record behind the immutable descriptors."""
    path: str
    is_directory: bool
    is_locked: bool = False
    data: bytes = b""
    last_write_time: datetime = MIN_TIMESTAMP


class _VirtualWriteStream(io.BytesIO):
    """Write target keeping its content after being closed."""

    def __init__(self):
        super().__init__()
        self.content = b""

    def close(self) -> None:
        if not self.closed:
            self.content = self.getvalue()
        super().close()


class VirtualFileSystem(FileSystem):
    """
    Backend keeping all entries in a dictionary keyed by normalized path.

    The root directory always exists. Paths use '/' separators; '\\'
    is accepted as a separator too.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(chunk_size)
        self._entries: dict[str, _VirtualEntry] = {}
        self._failures: set[str] = set()

    # --- Paths ---

    def normalize_path(self, path: str) -> str:
        if path is None:
            raise PreconditionError("path is required")

        path = re.sub(r'/+', '/', path.replace('\\', '/'))
        if not path.startswith('/'):
            path = '/' + path

        return posixpath.normpath(path)

    def combine_path(self, directory_path: str, name: str) -> str:
        return self.normalize_path(f"{directory_path}/{name}")

    @staticmethod
    def _parent_of(path: str) -> Optional[str]:
        if path == ROOT:
            return None
        return posixpath.dirname(path)

    # --- Test helpers ---

    def add_directory(self, path: str, locked: bool = False) -> VirtualDirectoryInfo:
        """Add a directory, creating missing parents."""
        path = self.normalize_path(path)
        self._ensure_parents(path)

        if path != ROOT:
            entry = self._entries.get(path)
            if entry is None:
                self._entries[path] = _VirtualEntry(path, is_directory=True, is_locked=locked)
            elif entry.is_directory:
                entry.is_locked = locked
            else:
                raise PreconditionError(f"A file already exists at {path}")

        return self.resolve_directory(path)

    def add_file(
        self,
        path: str,
        data: Optional[bytes] = None,
        size: Optional[int] = None,
        last_write_time: Optional[datetime] = None
    ) -> VirtualFileInfo:
        """Add a file, creating missing parents. Without data, size zero bytes are stored."""
        path = self.normalize_path(path)
        if self.directory_exists(path):
            raise PreconditionError(f"A directory already exists at {path}")

        self._ensure_parents(path)

        if data is None:
            data = bytes(size or 0)

        self._entries[path] = _VirtualEntry(
            path,
            is_directory=False,
            data=bytes(data),
            last_write_time=last_write_time or datetime.now(),
        )
        return self.resolve_file(path)

    def lock(self, path: str) -> None:
        self._set_locked(path, True)

    def unlock(self, path: str) -> None:
        self._set_locked(path, False)

    def inject_failure(self, path: str) -> None:
        """Make the next create, delete or copy with this target path fail with a transient error."""
        self._failures.add(self.normalize_path(path))

    def read_bytes(self, path: str) -> bytes:
        entry = self._entries.get(self.normalize_path(path))
        if entry is None or entry.is_directory:
            raise FileNotFoundError(f"File not found: {path}")
        return entry.data

    def _set_locked(self, path: str, locked: bool) -> None:
        path = self.normalize_path(path)
        entry = self._entries.get(path)
        if entry is None or not entry.is_directory:
            raise PreconditionError(f"Directory not found: {path}")
        entry.is_locked = locked

    def _ensure_parents(self, path: str) -> None:
        parent = self._parent_of(path)
        missing = []
        while parent and parent != ROOT and parent not in self._entries:
            missing.append(parent)
            parent = self._parent_of(parent)

        for directory in reversed(missing):
            self._entries[directory] = _VirtualEntry(directory, is_directory=True)

    def _is_locked(self, path: Optional[str]) -> bool:
        if path is None:
            return False
        entry = self._entries.get(path)
        return entry is not None and entry.is_directory and entry.is_locked

    def _consume_failure(self, path: str) -> bool:
        if path in self._failures:
            self._failures.discard(path)
            return True
        return False

    # --- Lookups ---

    def resolve_file(self, path: str) -> VirtualFileInfo:
        path = self.normalize_path(path)
        entry = self._entries.get(path)
        parent = self._parent_of(path)

        if entry is not None and not entry.is_directory:
            return VirtualFileInfo(
                full_name=path,
                name=posixpath.basename(path),
                parent_path=parent,
                size=len(entry.data),
                last_write_time=entry.last_write_time,
                is_locked=entry.is_locked,
            )

        return VirtualFileInfo(
            full_name=path,
            name=posixpath.basename(path),
            parent_path=parent,
        )

    def resolve_directory(self, path: str) -> VirtualDirectoryInfo:
        path = self.normalize_path(path)
        entry = self._entries.get(path)

        return VirtualDirectoryInfo(
            full_name=path,
            name=posixpath.basename(path),
            parent_path=self._parent_of(path),
            is_locked=entry is not None and entry.is_directory and entry.is_locked,
        )

    def file_exists(self, path: str) -> bool:
        entry = self._entries.get(self.normalize_path(path))
        return entry is not None and not entry.is_directory

    def directory_exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        if path == ROOT:
            return True
        entry = self._entries.get(path)
        return entry is not None and entry.is_directory

    def list_files(self, directory: DirectoryInfo) -> list[FileInfo]:
        self._require(directory, "directory")
        parent = self.normalize_path(directory.full_name)
        return [
            self.resolve_file(path)
            for path, entry in sorted(self._entries.items())
            if not entry.is_directory and self._parent_of(path) == parent
        ]

    def list_directories(self, directory: DirectoryInfo) -> list[DirectoryInfo]:
        self._require(directory, "directory")
        parent = self.normalize_path(directory.full_name)
        return [
            self.resolve_directory(path)
            for path, entry in sorted(self._entries.items())
            if entry.is_directory and self._parent_of(path) == parent
        ]

    # --- Mutations ---

    def try_create_directory(
        self,
        source_directory: DirectoryInfo,
        target_parent: DirectoryInfo
    ) -> Outcome:
        self._require(source_directory, "source_directory")
        self._require(target_parent, "target_parent")

        parent = self.normalize_path(target_parent.full_name)
        new_path = self.combine_path(parent, source_directory.name)

        if self._is_locked(parent):
            logging.warning(f"VirtualFileSystem - The parent directory is locked: {parent}")
            return Outcome.UNAUTHORIZED

        if not self.directory_exists(parent):
            logging.error(f"VirtualFileSystem - Parent directory does not exist: {parent}")
            return Outcome.FAILED

        if self.directory_exists(new_path):
            return Outcome.OK

        if self._consume_failure(new_path) or self.file_exists(new_path):
            logging.error(f"VirtualFileSystem - Could not create directory: {new_path}")
            return Outcome.FAILED

        self._entries[new_path] = _VirtualEntry(new_path, is_directory=True)
        return Outcome.OK

    def try_delete_file(self, file: FileInfo) -> Outcome:
        self._require(file, "file")

        path = self.normalize_path(file.full_name)

        if self._is_locked(self._parent_of(path)):
            logging.warning(f"VirtualFileSystem - The parent directory is locked: {path}")
            return Outcome.UNAUTHORIZED

        if not self.file_exists(path) or self._consume_failure(path):
            logging.error(f"VirtualFileSystem - Could not delete file: {path}")
            return Outcome.FAILED

        del self._entries[path]
        return Outcome.OK

    def try_delete_directory(self, directory: DirectoryInfo) -> Outcome:
        self._require(directory, "directory")

        path = self.normalize_path(directory.full_name)
        if path == ROOT:
            raise PreconditionError("The root directory cannot be deleted")

        subtree = [
            p for p in self._entries
            if p == path or p.startswith(path + '/')
        ]

        if self._is_locked(self._parent_of(path)) or any(self._is_locked(p) for p in subtree):
            logging.warning(f"VirtualFileSystem - The directory or its parent is locked: {path}")
            return Outcome.UNAUTHORIZED

        if not self.directory_exists(path) or self._consume_failure(path):
            logging.error(f"VirtualFileSystem - Could not delete directory: {path}")
            return Outcome.FAILED

        for p in subtree:
            del self._entries[p]
        return Outcome.OK

    def try_copy_file(
        self,
        source_file_system: FileSystem,
        source_file: FileInfo,
        target_directory: DirectoryInfo,
        token: Optional[CancellationToken] = None
    ) -> Outcome:
        self._require(source_file_system, "source_file_system")
        self._require(source_file, "source_file")
        self._require(target_directory, "target_directory")

        directory = self.normalize_path(target_directory.full_name)
        target_path = self.combine_path(directory, source_file.name)

        if self._is_locked(directory):
            logging.warning(f"VirtualFileSystem - The target directory is locked: {directory}")
            return Outcome.UNAUTHORIZED

        if not self.directory_exists(directory) or self.directory_exists(target_path):
            logging.error(f"VirtualFileSystem - Cannot copy {source_file.full_name} to {directory}")
            return Outcome.FAILED

        if self._consume_failure(target_path):
            logging.error(
                f"VirtualFileSystem - Simulated I/O error while copying file: "
                f"{source_file.full_name} to directory: {directory}"
            )
            return Outcome.FAILED

        target_stream = _VirtualWriteStream()

        try:
            source_stream = source_file_system.open_read_stream(source_file)
            state = self._copy_stream(source_stream, target_stream, source_file, token)
        except OSError as e:
            logging.error(
                f"VirtualFileSystem - Error while copying file: {source_file.full_name} "
                f"to directory: {directory}: {e}"
            )
            return Outcome.FAILED

        if state is not CopyState.COMPLETED:
            return Outcome.CANCELLED

        # Registered only once the write has completed
        last_write_time = source_file.last_write_time
        if last_write_time == MIN_TIMESTAMP:
            last_write_time = datetime.now()

        self._entries[target_path] = _VirtualEntry(
            target_path,
            is_directory=False,
            data=target_stream.content,
            last_write_time=last_write_time,
        )
        return Outcome.OK

    def open_read_stream(self, file: FileInfo) -> BinaryIO:
        self._require(file, "file")
        return io.BytesIO(self.read_bytes(file.full_name))
