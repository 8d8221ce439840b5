"""
Local disk implementation of the file system contract.
"""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime
from typing import BinaryIO, Optional

from flagsync.core.copy_operation import DEFAULT_CHUNK_SIZE, CopyState
from flagsync.core.errors import AuthorizationError, PreconditionError
from flagsync.core.filesystem.base import FileSystem
from flagsync.core.models import (
    CancellationToken,
    DirectoryInfo,
    MIN_TIMESTAMP,
    FileInfo,
    Outcome,
)


class LocalFileSystem(FileSystem):
    """
    Backend for the local file system.

    PermissionError is reported as UNAUTHORIZED, any other OSError as
    FAILED. Listing a directory that cannot be read raises
    AuthorizationError, a missing directory lists as empty. A cancelled
    copy may leave a partial target file behind.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        preserve_timestamps: bool = True
    ):
        super().__init__(chunk_size)
        self.preserve_timestamps = preserve_timestamps

    # --- Paths ---

    def normalize_path(self, path: str) -> str:
        if path is None:
            raise PreconditionError("path is required")
        return os.path.abspath(os.path.expanduser(path))

    def combine_path(self, directory_path: str, name: str) -> str:
        return self.normalize_path(os.path.join(directory_path, name))

    # --- Lookups ---

    def resolve_file(self, path: str) -> FileInfo:
        path = self.normalize_path(path)
        size = 0
        last_write_time = MIN_TIMESTAMP

        try:
            if os.path.isfile(path):
                stat = os.stat(path)
                size = stat.st_size
                last_write_time = datetime.fromtimestamp(stat.st_mtime)
        except OSError as e:
            logging.debug(f"LocalFileSystem - Failed to stat {path}: {e}")

        return FileInfo(
            full_name=path,
            name=os.path.basename(path),
            parent_path=os.path.dirname(path),
            size=size,
            last_write_time=last_write_time,
        )

    def resolve_directory(self, path: str) -> DirectoryInfo:
        path = self.normalize_path(path)
        parent = os.path.dirname(path)

        return DirectoryInfo(
            full_name=path,
            name=os.path.basename(path),
            parent_path=parent if parent != path else None,
        )

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(self.normalize_path(path))

    def directory_exists(self, path: str) -> bool:
        return os.path.isdir(self.normalize_path(path))

    def list_files(self, directory: DirectoryInfo) -> list[FileInfo]:
        self._require(directory, "directory")
        return [
            self.resolve_file(entry.path)
            for entry in self._scan(directory.full_name)
            if entry.is_file()
        ]

    def list_directories(self, directory: DirectoryInfo) -> list[DirectoryInfo]:
        self._require(directory, "directory")
        return [
            self.resolve_directory(entry.path)
            for entry in self._scan(directory.full_name)
            if entry.is_dir(follow_symlinks=False)
        ]

    def _scan(self, path: str) -> list[os.DirEntry]:
        path = self.normalize_path(path)
        try:
            with os.scandir(path) as it:
                return sorted(it, key=lambda entry: entry.name)
        except FileNotFoundError:
            return []
        except PermissionError as e:
            logging.error(f"LocalFileSystem - Permission denied scanning directory {path}: {e}")
            raise AuthorizationError(path, "Access denied listing directory") from e

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

        if not os.path.isdir(parent):
            logging.error(f"LocalFileSystem - Parent directory does not exist: {parent}")
            return Outcome.FAILED

        try:
            os.mkdir(new_path)
        except FileExistsError:
            if os.path.isdir(new_path):
                return Outcome.OK
            logging.error(f"LocalFileSystem - A file is in the way of directory: {new_path}")
            return Outcome.FAILED
        except PermissionError as e:
            logging.error(f"LocalFileSystem - Access denied creating directory {new_path}: {e}")
            return Outcome.UNAUTHORIZED
        except OSError as e:
            logging.error(f"LocalFileSystem - Error creating directory {new_path}: {e}")
            return Outcome.FAILED

        return Outcome.OK

    def try_delete_file(self, file: FileInfo) -> Outcome:
        self._require(file, "file")
        path = self.normalize_path(file.full_name)

        try:
            os.remove(path)
        except PermissionError as e:
            logging.error(f"LocalFileSystem - Access denied deleting file {path}: {e}")
            return Outcome.UNAUTHORIZED
        except OSError as e:
            logging.error(f"LocalFileSystem - Error deleting file {path}: {e}")
            return Outcome.FAILED

        return Outcome.OK

    def try_delete_directory(self, directory: DirectoryInfo) -> Outcome:
        self._require(directory, "directory")
        path = self.normalize_path(directory.full_name)

        try:
            shutil.rmtree(path)
        except PermissionError as e:
            logging.error(f"LocalFileSystem - Access denied deleting directory {path}: {e}")
            return Outcome.UNAUTHORIZED
        except OSError as e:
            logging.error(f"LocalFileSystem - Error deleting directory {path}: {e}")
            return Outcome.FAILED

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

        if not os.path.isdir(directory):
            logging.error(f"LocalFileSystem - Target directory does not exist: {directory}")
            return Outcome.FAILED

        try:
            source_stream = source_file_system.open_read_stream(source_file)
        except OSError as e:
            logging.error(f"LocalFileSystem - Cannot open source file {source_file.full_name}: {e}")
            return Outcome.FAILED

        try:
            target_stream = open(target_path, 'wb')
        except PermissionError as e:
            source_stream.close()
            logging.error(f"LocalFileSystem - Access denied writing {target_path}: {e}")
            return Outcome.UNAUTHORIZED
        except OSError as e:
            source_stream.close()
            logging.error(f"LocalFileSystem - Cannot open target file {target_path}: {e}")
            return Outcome.FAILED

        try:
            state = self._copy_stream(source_stream, target_stream, source_file, token)
        except OSError as e:
            logging.error(
                f"LocalFileSystem - Error while copying file: {source_file.full_name} "
                f"to directory: {directory}: {e}"
            )
            return Outcome.FAILED

        if state is not CopyState.COMPLETED:
            return Outcome.CANCELLED

        if self.preserve_timestamps and source_file.last_write_time != MIN_TIMESTAMP:
            mtime = source_file.last_write_time.timestamp()
            try:
                os.utime(target_path, (mtime, mtime))
            except OSError as e:
                logging.warning(f"LocalFileSystem - Failed to preserve timestamp of {target_path}: {e}")

        return Outcome.OK

    def open_read_stream(self, file: FileInfo) -> BinaryIO:
        self._require(file, "file")
        return open(self.normalize_path(file.full_name), 'rb')
