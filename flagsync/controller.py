"""
Job controller.

Owns the loaded jobs and the worker running them, and exposes the
commands of the application: load a job file, start, pause, resume
and stop a synchronization.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot

from flagsync.core.filesystem.base import FileSystem
from flagsync.core.jobs import FileSystemSetting, JobSetting, create_file_system
from flagsync.core.models import SyncEvent, SyncResult
from flagsync.services.settings import JobSettingsManager
from flagsync.workers.base_worker import WorkerThread
from flagsync.workers.sync_worker import JobWorker


class JobController(QObject):
    """
    Runs the jobs of a job file.

    Usage:
        controller = JobController()
        controller.load_job_settings("jobs.flagsync")
        controller.synchronization_finished.connect(on_finished)
        controller.start_synchronization(preview=True)
    """

    synchronization_started = pyqtSignal(bool)  # preview
    synchronization_finished = pyqtSignal(object)  # list[SyncResult]
    synchronization_failed = pyqtSignal(str, str)  # (error_type, message)

    def __init__(
        self,
        settings_manager: Optional[JobSettingsManager] = None,
        file_system_factory: Callable[[FileSystemSetting], FileSystem] = create_file_system,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.settings_manager = settings_manager or JobSettingsManager()
        self._file_system_factory = file_system_factory

        self.jobs: list[JobSetting] = []
        self.job_file: Optional[Path] = None
        self.last_results: list[SyncResult] = []

        self._worker: Optional[JobWorker] = None
        self._thread: Optional[WorkerThread] = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None

    @property
    def is_paused(self) -> bool:
        return self._worker is not None and self._worker.is_paused

    def load_job_settings(self, path: Union[str, Path]) -> list[JobSetting]:
        """
        Load the jobs of a job file.

        Raises:
            OSError: If the file cannot be read
            CorruptSaveFileError: If the file is not a valid job file
        """
        if self.is_running:
            raise RuntimeError("Cannot load jobs while a synchronization is running")

        self.jobs = self.settings_manager.load(path)
        self.job_file = Path(path)
        return self.jobs

    def save_job_settings(self, path: Optional[Union[str, Path]] = None) -> None:
        path = Path(path) if path else self.job_file
        if path is None:
            raise ValueError("No job file to save to")

        self.settings_manager.save(path, self.jobs)
        self.job_file = path

    # --- Commands ---

    def start_synchronization(self, preview: bool = False) -> JobWorker:
        """Start running the jobs on a worker thread."""
        if self.is_running:
            raise RuntimeError("A synchronization is already running")

        worker = self._create_worker(preview)
        worker.signals.finished.connect(self._on_finished)
        worker.signals.cancelled.connect(self._on_cancelled)
        worker.signals.error.connect(self._on_error)

        self._worker = worker
        self._thread = WorkerThread(worker)
        self._thread.start()

        self.synchronization_started.emit(preview)
        return worker

    def run_blocking(self, preview: bool = False) -> list[SyncResult]:
        """Run the jobs on the calling thread and return their results."""
        if self.is_running:
            raise RuntimeError("A synchronization is already running")

        worker = self._create_worker(preview)
        self._worker = worker
        self.synchronization_started.emit(preview)

        try:
            worker.run()
        finally:
            self._release_worker()

        self.last_results = worker.result or []
        if worker.error:
            self.synchronization_failed.emit(*worker.error)
        else:
            self.synchronization_finished.emit(self.last_results)
        return self.last_results

    def pause(self) -> None:
        if self._worker:
            logging.info("JobController - Pausing synchronization")
            self._worker.pause()

    def resume(self) -> None:
        if self._worker:
            logging.info("JobController - Resuming synchronization")
            self._worker.resume()

    def stop(self) -> None:
        if self._worker:
            logging.info("JobController - Stopping synchronization")
            self._worker.cancel()

    def wait(self, timeout_ms: int = -1) -> bool:
        """Block until the worker thread has ended."""
        if self._thread is None:
            return True
        if timeout_ms < 0:
            return self._thread.wait()
        return self._thread.wait(timeout_ms)

    # --- Worker ---

    def _create_worker(self, preview: bool) -> JobWorker:
        worker = JobWorker(self.jobs, preview, self._file_system_factory)
        worker.job_started.connect(self._on_job_started)
        worker.job_finished.connect(self._on_job_finished)
        worker.sync_event.connect(self._on_sync_event)
        return worker

    def _release_worker(self) -> None:
        if self._worker:
            logging.info(f"JobController - Synchronization ended after {self._worker.elapsed:.1f}s")
        if self._thread:
            self._thread.quit()
            self._thread.wait()
        self._worker = None
        self._thread = None

    @pyqtSlot(object)
    def _on_job_started(self, job: JobSetting) -> None:
        logging.info(f"Job started: {job}")

    @pyqtSlot(object, object)
    def _on_job_finished(self, job: JobSetting, result: SyncResult) -> None:
        if result.cancelled:
            logging.warning(f"Job cancelled: {job.name} - {result.summary}")
        elif result.has_errors:
            logging.warning(f"Job finished with errors: {job.name} - {result.summary}")
        else:
            logging.info(f"Job finished: {job.name} - {result.summary}")

    @pyqtSlot(object)
    def _on_sync_event(self, event: SyncEvent) -> None:
        if event.is_error:
            logging.error(str(event))
        else:
            logging.info(str(event))

    @pyqtSlot(object)
    def _on_finished(self, results: list[SyncResult]) -> None:
        self.last_results = results or []
        self._release_worker()
        self.synchronization_finished.emit(self.last_results)

    @pyqtSlot()
    def _on_cancelled(self) -> None:
        self.last_results = (self._worker.result if self._worker else None) or []
        self._release_worker()
        self.synchronization_finished.emit(self.last_results)

    @pyqtSlot(str, str)
    def _on_error(self, error_type: str, message: str) -> None:
        logging.error(f"JobController - Synchronization failed: {error_type}: {message}")
        self.last_results = []
        self._release_worker()
        self.synchronization_failed.emit(error_type, message)
