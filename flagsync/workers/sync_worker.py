"""
Worker running synchronization jobs.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QMutexLocker, pyqtSignal

from flagsync.core.errors import DirectoryNotFoundError
from flagsync.core.filesystem.base import FileSystem
from flagsync.core.jobs import FileSystemSetting, JobSetting, create_file_system
from flagsync.core.models import Outcome, SyncAction, SyncEvent, SyncResult
from flagsync.core.sync.engine import SyncEngine
from flagsync.workers.base_worker import BaseWorker, WorkerState


class JobWorker(BaseWorker):
    """
    Worker executing the enabled jobs one after another.

    Every job gets its own pair of file systems and its own engine;
    the file systems are closed when the job ends.
    """

    # Emitted before a job starts
    job_started = pyqtSignal(object)  # JobSetting

    # Emitted when a job ends, also when it was cancelled or failed to start
    job_finished = pyqtSignal(object, object)  # (JobSetting, SyncResult)

    # Emitted for every entry processed by the engine
    sync_event = pyqtSignal(object)  # SyncEvent

    # Emitted after every chunk of a file transfer
    copy_progress = pyqtSignal(object)  # CopyProgress

    def __init__(
        self,
        jobs: list[JobSetting],
        preview: bool = False,
        file_system_factory: Callable[[FileSystemSetting], FileSystem] = create_file_system,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.jobs = jobs
        self.preview = preview
        self._file_system_factory = file_system_factory
        self._engine: Optional[SyncEngine] = None

    def do_work(self) -> list[SyncResult]:
        """Run the enabled jobs."""
        jobs = [job for job in self.jobs if job.enabled]
        results = []

        for index, job in enumerate(jobs):
            self.wait_while_paused()
            if self.is_cancelled:
                break

            self.report_progress(index, len(jobs), job.name)
            self.report_status(f"Running job {index + 1}/{len(jobs)}: {job.name}")

            result = self._run_job(job)
            results.append(result)

            if result.cancelled:
                break

        self.report_progress(len(results), len(jobs), "Done")
        return results

    def _run_job(self, job: JobSetting) -> SyncResult:
        self.job_started.emit(job)
        logging.info(f"JobWorker - Starting job {job}")

        try:
            with self._file_system_factory(job.source_file_system) as source_fs, \
                    self._file_system_factory(job.target_file_system) as target_fs:
                engine = SyncEngine(
                    source_fs,
                    target_fs,
                    job.to_sync_options(self.preview),
                    event_callback=self.sync_event.emit,
                    progress_callback=self.copy_progress.emit,
                )

                with QMutexLocker(self._mutex):
                    self._engine = engine
                    if self._cancelled:
                        engine.stop()
                    elif self._paused:
                        engine.pause()

                try:
                    result = engine.run(job.source_path, job.target_path)
                finally:
                    with QMutexLocker(self._mutex):
                        self._engine = None

        except (DirectoryNotFoundError, OSError) as e:
            logging.error(f"JobWorker - Job {job.name} could not run: {e}")
            result = SyncResult(
                source_path=job.source_path,
                target_path=job.target_path,
                preview=self.preview,
            )
            path = e.path if isinstance(e, DirectoryNotFoundError) else job.source_path
            event = SyncEvent(path, SyncAction.ERROR, Outcome.FAILED, str(e))
            result.record(event)
            self.sync_event.emit(event)

        logging.info(f"JobWorker - Finished job {job.name}: {result.summary}")
        self.job_finished.emit(job, result)
        return result

    def cancel(self) -> None:
        """Cancel the jobs, including a transfer in progress."""
        super().cancel()
        with QMutexLocker(self._mutex):
            if self._engine:
                self._engine.stop()

    def pause(self) -> None:
        super().pause()
        with QMutexLocker(self._mutex):
            if self._engine and self._paused:
                self._engine.pause()

    def resume(self) -> None:
        super().resume()
        with QMutexLocker(self._mutex):
            if self._engine:
                self._engine.resume()

    @property
    def is_running(self) -> bool:
        return self.state in (WorkerState.RUNNING, WorkerState.PAUSED, WorkerState.CANCELLING)
