"""
Error types shared by the file systems, the sync engine and the job services.

Operation-level failures (authorization, transient I/O, cancellation) are
normally reported as an Outcome by the try_* operations; the exceptions
below are used where a failure has to unwind further than a single entry.
"""

from __future__ import annotations


class FlagSyncError(Exception):
    """Base class for all FlagSync errors."""
    pass


class PreconditionError(FlagSyncError, ValueError):
    """Raised for null or invalid arguments passed to a file system operation."""
    pass


class AuthorizationError(FlagSyncError):
    """Raised when a directory is locked or access to it is denied."""

    def __init__(self, path: str, message: str = "The directory is locked"):
        super().__init__(f"{message}: {path}")
        self.path = path


class TransientIOError(FlagSyncError, OSError):
    """A recoverable disk or network error during a single operation."""
    pass


class DirectoryNotFoundError(FlagSyncError):
    """Raised when a source directory does not exist (or vanished mid-run)."""

    def __init__(self, path: str):
        super().__init__(f"Directory not found: {path}")
        self.path = path


class OperationCancelledError(FlagSyncError):
    """Raised inside the sync engine when the current run has been cancelled."""
    pass


class CorruptSaveFileError(FlagSyncError):
    """Raised when a job settings file cannot be read or is invalid."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Corrupt job settings file {path}: {reason}")
        self.path = path
        self.reason = reason
