"""
Worker infrastructure for running synchronization jobs off the caller's thread.

A worker is a QObject moved into its own QThread. It talks to its owner
only through WorkerSignals, and its owner controls it through
cancel(), pause() and resume(), which may be called from any thread.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Optional

from PyQt6.QtCore import (
    QMutex,
    QMutexLocker,
    QObject,
    QThread,
    QWaitCondition,
    pyqtSignal,
    pyqtSlot,
)


class WorkerState(Enum):
    """Lifecycle of a worker."""
    PENDING = auto()
    RUNNING = auto()
    PAUSED = auto()
    CANCELLING = auto()
    CANCELLED = auto()
    COMPLETED = auto()
    FAILED = auto()


class WorkerSignals(QObject):
    """
    Signals of a worker.

    Kept on a separate QObject so they stay in the owner's thread while
    the worker itself is moved to the worker thread.
    """
    # (current, total, message)
    progress = pyqtSignal(int, int, str)
    status = pyqtSignal(str)

    started = pyqtSignal()
    finished = pyqtSignal(object)  # result of do_work
    error = pyqtSignal(str, str)   # (error_type, message)
    cancelled = pyqtSignal()

    state_changed = pyqtSignal(object)  # WorkerState


class WorkerMeta(type(QObject), type(ABC)):
    pass


class BaseWorker(QObject, ABC, metaclass=WorkerMeta):
    """
    Base class for workers.

    Subclasses implement do_work(). It should call wait_while_paused()
    between units of work and stop early once is_cancelled is set.
    Whatever do_work returns becomes the result, also for a cancelled run.

    Usage:
        worker = JobWorker(jobs)
        thread = WorkerThread(worker)
        worker.signals.finished.connect(on_finished)
        thread.start()
    """

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.signals = WorkerSignals()

        self._mutex = QMutex()
        self._resumed = QWaitCondition()
        self._state = WorkerState.PENDING
        self._cancelled = False
        self._paused = False

        self._result: Any = None
        self._error: Optional[tuple[str, str]] = None
        self._elapsed = 0.0

    # --- State ---

    @property
    def state(self) -> WorkerState:
        with QMutexLocker(self._mutex):
            return self._state

    def _set_state(self, state: WorkerState) -> None:
        with QMutexLocker(self._mutex):
            if self._state is state:
                return
            previous, self._state = self._state, state

        logging.debug(f"{type(self).__name__} - {previous.name} -> {state.name}")
        self.signals.state_changed.emit(state)

    @property
    def is_cancelled(self) -> bool:
        with QMutexLocker(self._mutex):
            return self._cancelled

    @property
    def is_paused(self) -> bool:
        with QMutexLocker(self._mutex):
            return self._paused

    @property
    def result(self) -> Any:
        """Return value of do_work, once the run has ended."""
        return self._result

    @property
    def error(self) -> Optional[tuple[str, str]]:
        """(error_type, message) of a failed run."""
        return self._error

    @property
    def elapsed(self) -> float:
        """Duration of the last run in seconds."""
        return self._elapsed

    # --- Control ---

    def cancel(self) -> None:
        """Request cancellation. Also releases a paused worker."""
        with QMutexLocker(self._mutex):
            self._cancelled = True
            self._paused = False
            active = self._state in (WorkerState.RUNNING, WorkerState.PAUSED)
            self._resumed.wakeAll()

        if active:
            self._set_state(WorkerState.CANCELLING)

    def pause(self) -> None:
        """Request a pause before the next unit of work."""
        with QMutexLocker(self._mutex):
            if self._cancelled:
                return
            self._paused = True
            active = self._state is WorkerState.RUNNING

        if active:
            self._set_state(WorkerState.PAUSED)

    def resume(self) -> None:
        with QMutexLocker(self._mutex):
            self._paused = False
            paused = self._state is WorkerState.PAUSED
            self._resumed.wakeAll()

        if paused:
            self._set_state(WorkerState.RUNNING)

    def wait_while_paused(self) -> None:
        """Block the worker thread until resumed or cancelled."""
        with QMutexLocker(self._mutex):
            while self._paused and not self._cancelled:
                self._resumed.wait(self._mutex)

    # --- Run ---

    @pyqtSlot()
    def run(self) -> None:
        """
        Execute do_work and publish its outcome.

        Exactly one of finished, cancelled or error is emitted.
        """
        name = type(self).__name__
        start_time = time.time()

        self._set_state(WorkerState.PAUSED if self.is_paused else WorkerState.RUNNING)
        self.signals.started.emit()

        try:
            self._result = self.do_work()

        except Exception as e:
            logging.exception(f"{name} - Failed: {e}")
            self._error = (type(e).__name__, str(e))
            self._set_state(WorkerState.FAILED)
            self.signals.error.emit(*self._error)

        else:
            if self.is_cancelled:
                self._set_state(WorkerState.CANCELLED)
                self.signals.cancelled.emit()
            else:
                self._set_state(WorkerState.COMPLETED)
                self.signals.finished.emit(self._result)

        finally:
            self._elapsed = time.time() - start_time

    @abstractmethod
    def do_work(self) -> Any:
        """Perform the work on the worker thread and return its result."""
        ...

    def report_progress(self, current: int, total: int, message: str = "") -> None:
        self.signals.progress.emit(current, total, message)

    def report_status(self, message: str) -> None:
        self.signals.status.emit(message)


class WorkerThread(QThread):
    """
    Thread hosting a single worker.

    The worker starts with the thread and the thread's event loop is
    quit once the worker has ended, however it ended.
    """

    def __init__(self, worker: BaseWorker, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.setObjectName(type(worker).__name__)

        self.worker = worker
        self.worker.moveToThread(self)

        self.started.connect(self.worker.run)
        for signal in (worker.signals.finished, worker.signals.error, worker.signals.cancelled):
            signal.connect(self.quit)

    def cancel(self) -> None:
        self.worker.cancel()

    @property
    def result(self) -> Any:
        return self.worker.result

    @property
    def error(self) -> Optional[tuple[str, str]]:
        return self.worker.error
