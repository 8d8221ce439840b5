"""
Job definitions and backend selection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

from flagsync.core.copy_operation import DEFAULT_CHUNK_SIZE
from flagsync.core.filesystem.base import FileSystem
from flagsync.core.filesystem.ftp import DEFAULT_TIMEOUT, FtpFileSystem
from flagsync.core.filesystem.local import LocalFileSystem
from flagsync.core.models import JobMode
from flagsync.core.sync.comparer import CompareMethod, FileComparer
from flagsync.core.sync.engine import SyncOptions


class FileSystemType(Enum):
    """Kind of backend a job side lives on."""
    LOCAL = auto()
    FTP = auto()


@dataclass
class FileSystemSetting:
    """Backend of one side of a job."""
    type: FileSystemType = FileSystemType.LOCAL

    # FTP only
    server_address: str = ""
    username: str = "anonymous"
    password: str = ""
    timeout: float = DEFAULT_TIMEOUT
    passive: bool = True

    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass
class JobSetting:
    """A source/target pair and the rules used to synchronize it."""
    name: str
    source_path: str
    target_path: str
    mode: JobMode = JobMode.BACKUP
    source_file_system: FileSystemSetting = field(default_factory=FileSystemSetting)
    target_file_system: FileSystemSetting = field(default_factory=FileSystemSetting)
    compare_method: CompareMethod = CompareMethod.QUICK
    enabled: bool = True

    def to_sync_options(self, preview: bool = False) -> SyncOptions:
        return SyncOptions(
            mode=self.mode,
            preview=preview,
            comparer=FileComparer(self.compare_method),
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.mode.value}): {self.source_path} -> {self.target_path}"


def create_file_system(setting: FileSystemSetting) -> FileSystem:
    """Create the backend described by a setting. FTP connections open lazily."""
    if setting.type is FileSystemType.FTP:
        return FtpFileSystem.from_uri(
            setting.server_address,
            setting.username,
            setting.password,
            timeout=setting.timeout,
            passive=setting.passive,
            chunk_size=setting.chunk_size,
        )

    return LocalFileSystem(chunk_size=setting.chunk_size)
