"""
Policies deciding whether a target file is outdated.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum, auto
from typing import Callable

from flagsync.core.models import MIN_TIMESTAMP, FileInfo


# Any callable (source, target) -> True when the target has to be updated
ComparePolicy = Callable[[FileInfo, FileInfo], bool]

# FAT file systems store modification times with a 2 second resolution
DEFAULT_TOLERANCE = timedelta(seconds=2)


class CompareMethod(Enum):
    """Method used to compare a source file with its target."""
    SIZE = auto()       # Size only
    TIMESTAMP = auto()  # Source modified after target
    QUICK = auto()      # Size + timestamp

    @classmethod
    def from_string(cls, value: str) -> 'CompareMethod':
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid compare method: {value}") from None


class FileComparer:
    """
    Compares source and target descriptors.

    Only metadata is used, no content is read.
    """

    def __init__(
        self,
        method: CompareMethod = CompareMethod.QUICK,
        tolerance: timedelta = DEFAULT_TOLERANCE
    ):
        self.method = method
        self.tolerance = tolerance

    def __call__(self, source: FileInfo, target: FileInfo) -> bool:
        return self.needs_update(source, target)

    def needs_update(self, source: FileInfo, target: FileInfo) -> bool:
        """Check if target differs from source in a way requiring a copy."""
        if self.method is CompareMethod.SIZE:
            return self._size_differs(source, target)

        if self.method is CompareMethod.TIMESTAMP:
            return self._source_is_newer(source, target)

        return self._size_differs(source, target) or self._source_is_newer(source, target)

    @staticmethod
    def _size_differs(source: FileInfo, target: FileInfo) -> bool:
        return source.size != target.size

    def _source_is_newer(self, source: FileInfo, target: FileInfo) -> bool:
        if source.last_write_time == MIN_TIMESTAMP:
            return False
        if target.last_write_time == MIN_TIMESTAMP:
            return True
        return source.last_write_time - target.last_write_time > self.tolerance
