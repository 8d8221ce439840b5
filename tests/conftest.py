"""Shared fixtures."""

import io
import logging
from datetime import datetime

import pytest
from PyQt6.QtCore import QCoreApplication

from flagsync.core.filesystem.virtual import VirtualFileSystem


class RecordingStream(io.BytesIO):
    """BytesIO remembering what was written once it is closed."""

    def __init__(self, initial: bytes = b""):
        super().__init__(initial)
        self.written = b""
        self.close_count = 0

    def close(self):
        if not self.closed:
            self.written = self.getvalue()
        self.close_count += 1
        super().close()


@pytest.fixture(scope="session")
def qapp():
    """A Qt application object for the whole test session."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def fs():
    """Virtual file system with empty /src and /dst directories."""
    file_system = VirtualFileSystem()
    file_system.add_directory("/src")
    file_system.add_directory("/dst")
    return file_system


@pytest.fixture
def old_time():
    return datetime(2020, 1, 1, 12, 0, 0)


@pytest.fixture
def new_time():
    return datetime(2024, 6, 1, 8, 30, 0)


@pytest.fixture
def restore_logging():
    """Keep the root logger configuration of the test session."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
