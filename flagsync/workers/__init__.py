"""
Background workers for non-blocking operations.

Provides QThread-based workers for running synchronization jobs.
All workers use Qt signals for thread-safe communication
with the thread that started them.
"""

from flagsync.workers.base_worker import (
    BaseWorker,
    WorkerSignals,
    WorkerState,
    WorkerThread,
)
from flagsync.workers.sync_worker import (
    JobWorker,
)

__all__ = [
    # Base
    'BaseWorker',
    'WorkerSignals',
    'WorkerState',
    'WorkerThread',
    # Sync
    'JobWorker',
]
