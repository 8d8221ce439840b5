"""
Core data models for the synchronization engine.

This module defines the data structures shared by the file systems,
the copy operation and the sync engine:
- File and directory descriptors
- Operation outcomes and sync actions
- Copy progress and cancellation
- Sync events and results

Descriptors are immutable snapshots taken at resolve time. They are
backend-agnostic; backend specific subclasses only add the fields
meaningful to their backend.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Optional


# Timestamp given to descriptors of paths that do not exist
MIN_TIMESTAMP = datetime.min


def format_size(size: float) -> str:
    """Get a human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


# =============================================================================
# Enumerations
# =============================================================================

class Outcome(Enum):
    """Outcome of a try_* file system operation."""
    OK = auto()            # Operation completed
    FAILED = auto()        # Transient disk or network error
    UNAUTHORIZED = auto()  # Target or parent is locked / access denied
    CANCELLED = auto()     # Stopped on request during a transfer

    def __bool__(self) -> bool:
        return self is Outcome.OK


class SyncAction(Enum):
    """Kind of action recorded by the sync engine."""
    COPY = auto()
    CREATE_DIRECTORY = auto()
    DELETE_FILE = auto()
    DELETE_DIRECTORY = auto()
    SKIP = auto()
    ERROR = auto()


class JobMode(Enum):
    """Synchronization mode of a job."""
    BACKUP = "backup"            # Copy new and changed files, never delete
    MIRROR = "mirror"            # Backup and prune target-only entries
    SYNCHRONIZE = "synchronize"  # Backup in both directions

    @classmethod
    def from_string(cls, value: str) -> 'JobMode':
        """Create from a value or name, case-insensitive."""
        for mode in cls:
            if mode.value == value.lower() or mode.name == value.upper():
                return mode
        raise ValueError(f"Invalid job mode: {value}")

    @property
    def prunes_target(self) -> bool:
        return self is JobMode.MIRROR

    @property
    def is_two_way(self) -> bool:
        return self is JobMode.SYNCHRONIZE


# =============================================================================
# Descriptors
# =============================================================================

@dataclass(frozen=True)
class FileSystemInfo:
    """
    Identity of a file or directory.

    Two descriptors of the same kind are equal when their normalized
    full names are equal; all other fields are snapshot metadata.
    """
    full_name: str
    name: str = field(compare=False)
    parent_path: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class FileInfo(FileSystemInfo):
    """Descriptor of a file."""
    size: int = field(default=0, compare=False)
    last_write_time: datetime = field(default=MIN_TIMESTAMP, compare=False)

    @property
    def size_formatted(self) -> str:
        return format_size(self.size)


@dataclass(frozen=True)
class DirectoryInfo(FileSystemInfo):
    """Descriptor of a directory. Children are queried from the file system."""
    pass


@dataclass(frozen=True)
class VirtualFileInfo(FileInfo):
    """File descriptor of the in-memory file system."""
    is_locked: bool = field(default=False, compare=False)
    is_directory: bool = field(default=False, compare=False)


@dataclass(frozen=True)
class VirtualDirectoryInfo(DirectoryInfo):
    """Directory descriptor of the in-memory file system."""
    is_locked: bool = field(default=False, compare=False)
    is_directory: bool = field(default=True, compare=False)


@dataclass(frozen=True)
class FtpFileInfo(FileInfo):
    """File descriptor resolved from an FTP server."""
    file_system: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class FtpDirectoryInfo(DirectoryInfo):
    """Directory descriptor resolved from an FTP server."""
    file_system: Any = field(default=None, compare=False, repr=False)


# =============================================================================
# Copy Progress
# =============================================================================

class CancellationToken:
    """
    Cancellation flag shared between a running job and its copy operations.

    Checked at every chunk boundary of a stream copy.
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def reset(self) -> None:
        self._event.clear()


@dataclass
class CopyProgress:
    """Progress of a single file transfer, emitted after every chunk."""
    bytes_transferred: int
    total_bytes: int
    token: CancellationToken = field(repr=False)
    file_name: str = ""

    @property
    def percent(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return (self.bytes_transferred / self.total_bytes) * 100

    @property
    def cancel_requested(self) -> bool:
        return self.token.is_cancelled

    def cancel(self) -> None:
        """Request that the transfer stops after the current chunk."""
        self.token.cancel()


# =============================================================================
# Sync Events and Results
# =============================================================================

@dataclass(frozen=True)
class SyncEvent:
    """A single entry in the log of a sync run."""
    path: str
    action: SyncAction
    outcome: Outcome
    message: str = ""
    bytes_transferred: int = 0

    @property
    def is_error(self) -> bool:
        return self.action is SyncAction.ERROR

    def __str__(self) -> str:
        text = f"{self.action.name:<16} {self.outcome.name:<12} {self.path}"
        if self.message:
            text += f" ({self.message})"
        return text


@dataclass
class SyncResult:
    """Result of a synchronization run."""
    source_path: str = ""
    target_path: str = ""
    preview: bool = False
    files_copied: int = 0
    directories_created: int = 0
    files_deleted: int = 0
    directories_deleted: int = 0
    items_skipped: int = 0
    bytes_copied: int = 0
    cancelled: bool = False
    errors: list[SyncEvent] = field(default_factory=list)
    events: list[SyncEvent] = field(default_factory=list)
    duration: float = 0.0

    @property
    def action_count(self) -> int:
        """Number of copy, create and delete actions that took place."""
        return (self.files_copied + self.directories_created +
                self.files_deleted + self.directories_deleted)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def success(self) -> bool:
        return not self.has_errors and not self.cancelled

    @property
    def summary(self) -> str:
        return (f"Copied: {self.files_copied} ({format_size(self.bytes_copied)}), "
                f"Created: {self.directories_created}, "
                f"Deleted: {self.files_deleted + self.directories_deleted}, "
                f"Skipped: {self.items_skipped}, Errors: {len(self.errors)}")

    def record(self, event: SyncEvent) -> None:
        """Account for an event."""
        self.events.append(event)

        if event.is_error:
            self.errors.append(event)
            return

        if event.action is SyncAction.SKIP:
            self.items_skipped += 1
        elif event.outcome is Outcome.OK:
            if event.action is SyncAction.COPY:
                self.files_copied += 1
                self.bytes_copied += event.bytes_transferred
            elif event.action is SyncAction.CREATE_DIRECTORY:
                self.directories_created += 1
            elif event.action is SyncAction.DELETE_FILE:
                self.files_deleted += 1
            elif event.action is SyncAction.DELETE_DIRECTORY:
                self.directories_deleted += 1
