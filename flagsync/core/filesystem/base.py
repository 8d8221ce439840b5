"""
Common contract for all storage backends.

The sync engine only talks to this interface, so the same diff and
replicate algorithm runs over local, FTP and in-memory storage.

Principles:
- resolve_* always returns a descriptor, even for paths that do not exist
  (use file_exists / directory_exists to test presence)
- try_* operations return an Outcome instead of raising for operation
  level failures; invalid arguments raise PreconditionError
- try_copy_file is the only operation crossing backend boundaries
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, Optional

from flagsync.core.copy_operation import DEFAULT_CHUNK_SIZE, CopyState, StreamCopyOperation
from flagsync.core.errors import PreconditionError
from flagsync.core.models import (
    CancellationToken,
    CopyProgress,
    DirectoryInfo,
    FileInfo,
    FileSystemInfo,
    Outcome,
)


ProgressListener = Callable[[CopyProgress], None]


class FileSystem(ABC):
    """
    Base class for storage backends.

    Subclasses implement path handling, lookups and the try_* operations.
    Copy progress listeners and the stream copy plumbing are shared.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self._progress_listeners: list[ProgressListener] = []

    # --- Paths ---

    @abstractmethod
    def normalize_path(self, path: str) -> str:
        """Return the canonical form of a path for this backend."""
        ...

    @abstractmethod
    def combine_path(self, directory_path: str, name: str) -> str:
        """Join a directory path and an entry name."""
        ...

    # --- Lookups ---

    @abstractmethod
    def resolve_file(self, path: str) -> FileInfo:
        """Get a descriptor for the file at path (existing or not)."""
        ...

    @abstractmethod
    def resolve_directory(self, path: str) -> DirectoryInfo:
        """Get a descriptor for the directory at path (existing or not)."""
        ...

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def directory_exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def list_files(self, directory: DirectoryInfo) -> list[FileInfo]:
        """Get the files directly inside a directory, sorted by name."""
        ...

    @abstractmethod
    def list_directories(self, directory: DirectoryInfo) -> list[DirectoryInfo]:
        """Get the subdirectories directly inside a directory, sorted by name."""
        ...

    # --- Mutations ---

    @abstractmethod
    def try_create_directory(
        self,
        source_directory: DirectoryInfo,
        target_parent: DirectoryInfo
    ) -> Outcome:
        """Create a directory named after source_directory inside target_parent."""
        ...

    @abstractmethod
    def try_delete_file(self, file: FileInfo) -> Outcome:
        ...

    @abstractmethod
    def try_delete_directory(self, directory: DirectoryInfo) -> Outcome:
        """Delete a directory with its contents."""
        ...

    @abstractmethod
    def try_copy_file(
        self,
        source_file_system: 'FileSystem',
        source_file: FileInfo,
        target_directory: DirectoryInfo,
        token: Optional[CancellationToken] = None
    ) -> Outcome:
        """Copy a file from any file system into target_directory on this one."""
        ...

    @abstractmethod
    def open_read_stream(self, file: FileInfo) -> BinaryIO:
        """Open a binary stream to read the content of a file."""
        ...

    # --- Lifetime ---

    def close(self) -> None:
        """Release the resources owned by this file system."""
        pass

    def __enter__(self) -> 'FileSystem':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    # --- Copy progress ---

    def add_progress_listener(self, callback: ProgressListener) -> None:
        """Subscribe to the copy progress of this file system."""
        self._progress_listeners.append(callback)

    def remove_progress_listener(self, callback: ProgressListener) -> None:
        if callback in self._progress_listeners:
            self._progress_listeners.remove(callback)

    def _notify_progress(self, progress: CopyProgress) -> None:
        for callback in list(self._progress_listeners):
            callback(progress)

    def _copy_stream(
        self,
        source_stream: BinaryIO,
        target_stream: BinaryIO,
        source_file: FileInfo,
        token: Optional[CancellationToken] = None
    ) -> CopyState:
        """Copy between two open streams, closing both afterwards."""
        operation = StreamCopyOperation(
            source_stream,
            target_stream,
            chunk_size=self.chunk_size,
            total_bytes=source_file.size,
            close_source=True,
            close_target=True,
            token=token or CancellationToken(),
            file_name=source_file.full_name,
        )
        return operation.execute(self._notify_progress)

    # --- Helpers ---

    @staticmethod
    def _require(value: object, name: str) -> None:
        if value is None:
            raise PreconditionError(f"{name} is required")

    @staticmethod
    def _require_type(value: FileSystemInfo, expected: type, name: str) -> None:
        if value is None:
            raise PreconditionError(f"{name} is required")
        if not isinstance(value, expected):
            raise PreconditionError(
                f"{name} must be of type {expected.__name__}, got {type(value).__name__}"
            )
