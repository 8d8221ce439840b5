"""
Chunked stream copy with progress reporting and cooperative cancellation.
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import BinaryIO, Callable, Iterator, Optional

from flagsync.core.errors import PreconditionError
from flagsync.core.models import CancellationToken, CopyProgress


DEFAULT_CHUNK_SIZE = 8 * 1024


class CopyState(Enum):
    """State of a stream copy operation."""
    IDLE = auto()
    RUNNING = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    FAILED = auto()


class StreamCopyOperation:
    """
    Copies a readable stream into a writable stream chunk by chunk.

    After every chunk a CopyProgress is produced; setting its cancel flag
    (or cancelling the shared token) stops the copy after that chunk.
    I/O errors move the operation to FAILED and are re-raised, there
    are no internal retries.

    The streams are only closed if close_source / close_target is set,
    whatever the outcome.

    Usage:
        operation = StreamCopyOperation(src, dst, close_target=True)
        state = operation.execute(lambda progress: print(progress.percent))
    """

    def __init__(
        self,
        source: BinaryIO,
        target: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        total_bytes: Optional[int] = None,
        close_source: bool = False,
        close_target: bool = False,
        token: Optional[CancellationToken] = None,
        file_name: str = ""
    ):
        if source is None:
            raise PreconditionError("source stream is required")
        if target is None:
            raise PreconditionError("target stream is required")
        if chunk_size <= 0:
            raise PreconditionError(f"chunk_size must be positive, got {chunk_size}")

        self.source = source
        self.target = target
        self.chunk_size = chunk_size
        self.total_bytes = total_bytes if total_bytes is not None else -1
        self.close_source = close_source
        self.close_target = close_target
        self.token = token or CancellationToken()
        self.file_name = file_name

        self._state = CopyState.IDLE
        self._bytes_transferred = 0

    @property
    def state(self) -> CopyState:
        return self._state

    @property
    def bytes_transferred(self) -> int:
        return self._bytes_transferred

    def iter_progress(self) -> Iterator[CopyProgress]:
        """
        Run the copy, yielding progress after every chunk written.

        The generator finishes when the source is exhausted or when
        cancellation was requested after a chunk.
        """
        if self._state is not CopyState.IDLE:
            raise RuntimeError(f"Copy operation already ran ({self._state.name})")

        self._state = CopyState.RUNNING

        try:
            while True:
                if self.token.is_cancelled:
                    self._state = CopyState.CANCELLED
                    logging.info(
                        f"StreamCopyOperation - Cancelled after {self._bytes_transferred} bytes: {self.file_name}"
                    )
                    break

                chunk = self.source.read(self.chunk_size)
                if not chunk:
                    self._state = CopyState.COMPLETED
                    break

                self.target.write(chunk)
                self._bytes_transferred += len(chunk)

                yield CopyProgress(
                    bytes_transferred=self._bytes_transferred,
                    total_bytes=self.total_bytes,
                    token=self.token,
                    file_name=self.file_name,
                )

        except Exception:
            self._state = CopyState.FAILED
            raise

        finally:
            if self._state is CopyState.RUNNING:
                # Generator closed early by the consumer
                self._state = CopyState.CANCELLED
            self._close_streams()

    def execute(
        self,
        listener: Optional[Callable[[CopyProgress], None]] = None
    ) -> CopyState:
        """
        Run the copy to the end.

        Args:
            listener: Called with every progress update

        Returns:
            The final state (COMPLETED or CANCELLED)

        Raises:
            Exception: An I/O error or an error raised by the listener,
                after moving to FAILED and closing the flagged streams
        """
        progress_iter = self.iter_progress()
        try:
            for progress in progress_iter:
                if listener:
                    listener(progress)
        except Exception:
            # A failing listener fails the copy
            progress_iter.close()
            self._state = CopyState.FAILED
            raise

        return self._state

    def _close_streams(self) -> None:
        try:
            if self.close_target:
                self.target.close()
        finally:
            if self.close_source:
                self.source.close()
