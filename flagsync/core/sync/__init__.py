"""
Synchronization module.

Provides functionality for:
- Deciding whether a target file is outdated
- Replicating a source tree onto a target tree
- Preview, pause, resume and cancellation
"""

from flagsync.core.sync.comparer import (
    CompareMethod,
    ComparePolicy,
    FileComparer,
)
from flagsync.core.sync.engine import (
    SyncEngine,
    SyncOptions,
)

__all__ = [
    # Comparer
    'CompareMethod',
    'ComparePolicy',
    'FileComparer',
    # Engine
    'SyncEngine',
    'SyncOptions',
]
