"""
Directory synchronization engine.

Walks a source and a target tree, possibly on different file systems,
and replicates additions, updates and (in mirror mode) deletions:
- Depth-first, pre-order traversal
- Preview mode
- Progress and event reporting
- Pause, resume and cancellation
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from flagsync.core.errors import (
    AuthorizationError,
    DirectoryNotFoundError,
    OperationCancelledError,
    PreconditionError,
)
from flagsync.core.filesystem.base import FileSystem
from flagsync.core.models import (
    CancellationToken,
    CopyProgress,
    DirectoryInfo,
    FileInfo,
    JobMode,
    Outcome,
    SyncAction,
    SyncEvent,
    SyncResult,
)
from flagsync.core.sync.comparer import ComparePolicy, FileComparer


@dataclass
class SyncOptions:
    """Options for synchronization."""
    mode: JobMode = JobMode.BACKUP

    # Decide and report actions without changing anything
    preview: bool = False

    # Decides whether an existing target file is outdated
    comparer: ComparePolicy = field(default_factory=FileComparer)


class SyncEngine:
    """
    Synchronizes a source directory into a target directory.

    The engine is single-threaded: entries are processed in enumeration
    order and copies never overlap, so events are emitted in a stable order.
    A failure on one entry is recorded and its siblings are still processed;
    an authorization failure aborts the subtree of the affected directory;
    a cancelled copy stops the whole run.
    """

    def __init__(
        self,
        source_file_system: FileSystem,
        target_file_system: FileSystem,
        options: Optional[SyncOptions] = None,
        event_callback: Optional[Callable[[SyncEvent], None]] = None,
        progress_callback: Optional[Callable[[CopyProgress], None]] = None
    ):
        if source_file_system is None:
            raise PreconditionError("source_file_system is required")
        if target_file_system is None:
            raise PreconditionError("target_file_system is required")

        self.source_file_system = source_file_system
        self.target_file_system = target_file_system
        self.options = options or SyncOptions()
        self._event_callback = event_callback
        self._progress_callback = progress_callback

        self._token = CancellationToken()
        self._running = threading.Event()
        self._running.set()
        self._result = SyncResult()

    # --- Controls ---

    def stop(self) -> None:
        """Cancel the run, including a transfer in progress. A stopped engine stays stopped."""
        self._token.cancel()
        self._running.set()

    def pause(self) -> None:
        """Hold the run before the next entry."""
        self._running.clear()

    def resume(self) -> None:
        self._running.set()

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    # --- Run ---

    def run(self, source_path: str, target_path: str) -> SyncResult:
        """
        Synchronize source_path into target_path.

        Raises:
            DirectoryNotFoundError: If the source or target root does not exist

        Returns:
            SyncResult with the events and counters of this run
        """
        start_time = time.time()

        source_fs = self.source_file_system
        target_fs = self.target_file_system

        if not source_fs.directory_exists(source_path):
            logging.error(f"SyncEngine - Source directory not found: {source_path}")
            raise DirectoryNotFoundError(source_path)
        if not target_fs.directory_exists(target_path):
            logging.error(f"SyncEngine - Target directory not found: {target_path}")
            raise DirectoryNotFoundError(target_path)

        source_directory = source_fs.resolve_directory(source_path)
        target_directory = target_fs.resolve_directory(target_path)

        self._result = SyncResult(
            source_path=source_directory.full_name,
            target_path=target_directory.full_name,
            preview=self.options.preview,
        )

        mode = self.options.mode
        logging.info(
            f"SyncEngine - {mode.name} {source_directory.full_name} -> {target_directory.full_name}"
            f"{' (preview)' if self.options.preview else ''}"
        )

        # Copies run on the receiving side, which is the source in the second two-way pass
        listening = [source_fs] if source_fs is target_fs else [source_fs, target_fs]
        for file_system in listening:
            file_system.add_progress_listener(self._forward_progress)

        try:
            self._sync_subtree(
                source_fs, target_fs, source_directory, target_directory, mode.prunes_target
            )

            if mode.is_two_way:
                self._sync_subtree(
                    target_fs, source_fs, target_directory, source_directory, False
                )

        except OperationCancelledError:
            self._result.cancelled = True
            logging.info("SyncEngine - Synchronization cancelled")

        finally:
            for file_system in listening:
                file_system.remove_progress_listener(self._forward_progress)

        self._result.duration = time.time() - start_time
        logging.info(f"SyncEngine - Finished: {self._result.summary}")
        return self._result

    def _sync_subtree(
        self,
        source_fs: FileSystem,
        target_fs: FileSystem,
        source_directory: DirectoryInfo,
        target_directory: DirectoryInfo,
        prune: bool
    ) -> None:
        """Synchronize a directory, turning a branch failure into an error event."""
        try:
            self._sync_directory(source_fs, target_fs, source_directory, target_directory, prune)

        except AuthorizationError as e:
            self._emit(e.path, SyncAction.ERROR, Outcome.UNAUTHORIZED, str(e))

        except DirectoryNotFoundError as e:
            self._emit(e.path, SyncAction.ERROR, Outcome.FAILED, str(e))

        except OSError as e:
            self._emit(source_directory.full_name, SyncAction.ERROR, Outcome.FAILED, str(e))

    def _sync_directory(
        self,
        source_fs: FileSystem,
        target_fs: FileSystem,
        source_directory: DirectoryInfo,
        target_directory: DirectoryInfo,
        prune: bool
    ) -> None:
        self._checkpoint()

        if not source_fs.directory_exists(source_directory.full_name):
            raise DirectoryNotFoundError(source_directory.full_name)

        # Files
        for source_file in source_fs.list_files(source_directory):
            self._checkpoint()
            self._sync_file(source_fs, target_fs, source_file, target_directory)

        if prune:
            for target_file in target_fs.list_files(target_directory):
                self._checkpoint()
                source_file_path = source_fs.combine_path(source_directory.full_name, target_file.name)
                if not source_fs.file_exists(source_file_path):
                    self._delete_file(target_fs, target_file)

        # Directories, pre-order
        for source_subdirectory in source_fs.list_directories(source_directory):
            self._checkpoint()

            target_subdirectory = target_fs.resolve_directory(
                target_fs.combine_path(target_directory.full_name, source_subdirectory.name)
            )

            if not target_fs.directory_exists(target_subdirectory.full_name):
                created = self._create_directory(
                    target_fs, source_subdirectory, target_directory, target_subdirectory
                )
                if not created:
                    continue

            self._sync_subtree(source_fs, target_fs, source_subdirectory, target_subdirectory, prune)

        if prune:
            for target_subdirectory in target_fs.list_directories(target_directory):
                self._checkpoint()
                source_subdirectory_path = source_fs.combine_path(
                    source_directory.full_name, target_subdirectory.name
                )
                if not source_fs.directory_exists(source_subdirectory_path):
                    self._delete_directory(target_fs, target_subdirectory)

    # --- Entry actions ---

    def _sync_file(
        self,
        source_fs: FileSystem,
        target_fs: FileSystem,
        source_file: FileInfo,
        target_directory: DirectoryInfo
    ) -> None:
        target_path = target_fs.combine_path(target_directory.full_name, source_file.name)

        try:
            if target_fs.file_exists(target_path):
                target_file = target_fs.resolve_file(target_path)
                if not self.options.comparer(source_file, target_file):
                    self._emit(target_path, SyncAction.SKIP, Outcome.OK, "Unchanged")
                    return

            if self.options.preview:
                outcome = Outcome.OK
            else:
                outcome = target_fs.try_copy_file(
                    source_fs, source_file, target_directory, self._token
                )
        except OSError as e:
            self._emit(target_path, SyncAction.ERROR, Outcome.FAILED, f"Copy failed: {e}")
            return

        if outcome is Outcome.OK:
            self._emit(
                target_path, SyncAction.COPY, outcome, source_file.size_formatted,
                bytes_transferred=source_file.size
            )
        elif outcome is Outcome.CANCELLED:
            self._emit(target_path, SyncAction.COPY, outcome, "Cancelled")
            raise OperationCancelledError(target_path)
        elif outcome is Outcome.UNAUTHORIZED:
            raise AuthorizationError(target_path, "Copy rejected, the target directory is locked")
        else:
            self._emit(target_path, SyncAction.ERROR, outcome, f"Copy failed: {source_file.full_name}")

    def _delete_file(self, target_fs: FileSystem, target_file: FileInfo) -> None:
        outcome = Outcome.OK if self.options.preview else target_fs.try_delete_file(target_file)

        if outcome is Outcome.UNAUTHORIZED:
            raise AuthorizationError(target_file.full_name, "Delete rejected, the directory is locked")

        if outcome:
            self._emit(target_file.full_name, SyncAction.DELETE_FILE, outcome)
        else:
            self._emit(target_file.full_name, SyncAction.ERROR, outcome, "Delete failed")

    def _delete_directory(self, target_fs: FileSystem, target_directory: DirectoryInfo) -> None:
        outcome = Outcome.OK if self.options.preview else target_fs.try_delete_directory(target_directory)

        if outcome is Outcome.UNAUTHORIZED:
            raise AuthorizationError(target_directory.full_name, "Delete rejected, the directory is locked")

        if outcome:
            self._emit(target_directory.full_name, SyncAction.DELETE_DIRECTORY, outcome)
        else:
            self._emit(target_directory.full_name, SyncAction.ERROR, outcome, "Delete failed")

    def _create_directory(
        self,
        target_fs: FileSystem,
        source_directory: DirectoryInfo,
        target_parent: DirectoryInfo,
        target_directory: DirectoryInfo
    ) -> bool:
        if self.options.preview:
            outcome = Outcome.OK
        else:
            outcome = target_fs.try_create_directory(source_directory, target_parent)

        if outcome is Outcome.UNAUTHORIZED:
            raise AuthorizationError(target_directory.full_name, "Create rejected, the parent directory is locked")

        if outcome:
            self._emit(target_directory.full_name, SyncAction.CREATE_DIRECTORY, outcome)
            return True

        self._emit(target_directory.full_name, SyncAction.ERROR, outcome, "Create directory failed")
        return False

    # --- Plumbing ---

    def _checkpoint(self) -> None:
        """Wait while paused and stop if cancelled."""
        self._running.wait()
        if self._token.is_cancelled:
            raise OperationCancelledError("Synchronization cancelled")

    def _emit(
        self,
        path: str,
        action: SyncAction,
        outcome: Outcome,
        message: str = "",
        bytes_transferred: int = 0
    ) -> None:
        event = SyncEvent(
            path=path,
            action=action,
            outcome=outcome,
            message=message,
            bytes_transferred=bytes_transferred,
        )
        self._result.record(event)

        if event.is_error:
            logging.warning(f"SyncEngine - {event}")
        else:
            logging.debug(f"SyncEngine - {event}")

        if self._event_callback:
            self._event_callback(event)

    def _forward_progress(self, progress: CopyProgress) -> None:
        if self._progress_callback:
            self._progress_callback(progress)
