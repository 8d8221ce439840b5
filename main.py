"""
Main entry point for FlagSync.

This module handles:
- Command line argument parsing
- Logging configuration
- Exception handling
- Loading the job file
- Running the jobs headless under a Qt event loop
"""

from __future__ import annotations

import argparse
import faulthandler
import logging
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, TextIO

from PyQt6.QtCore import QCoreApplication, QTimer

from flagsync.controller import JobController
from flagsync.core.errors import CorruptSaveFileError
from flagsync.core.models import SyncResult
from flagsync.services.settings import JOB_FILE_EXTENSION


# =============================================================================
# Constants
# =============================================================================

APP_NAME = "FlagSync"
APP_VERSION = "1.0.0"
APP_ORGANIZATION = "FlagSync"

# Exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class CommandLineArgs:
    """Parsed command line arguments."""
    job_file: Optional[str] = None
    preview: bool = False
    log_level: str = "INFO"
    log_file: Optional[Path] = None


# =============================================================================
# Logging Setup
# =============================================================================

CONSOLE_FORMAT = '%(asctime)s %(levelname)-8s %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class LogFormatter(logging.Formatter):
    """Formatter colouring records by level when writing to a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[2m',       # Dim
        logging.WARNING: '\033[33m',    # Yellow
        logging.ERROR: '\033[31m',      # Red
        logging.CRITICAL: '\033[1;31m', # Bold red
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = CONSOLE_FORMAT, stream: Optional[TextIO] = None):
        super().__init__(fmt=fmt, datefmt=DATE_FORMAT)
        self.use_colors = (
            stream is not None
            and stream.isatty()
            and 'NO_COLOR' not in os.environ
        )

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        if color:
            return f"{color}{formatted}{self.RESET}"
        return formatted


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the root logger for a run.

    Entries are printed to stdout as they are processed; the optional log
    file additionally records the thread each line was written from.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(LogFormatter(stream=sys.stdout))
    handlers.append(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(numeric_level)

    return root_logger


# =============================================================================
# Exception Handling
# =============================================================================

class ExceptionHandler:
    """
    sys.excepthook for the headless run.

    Logs exceptions escaping Qt slots and ends the event loop with
    EXIT_FAILURE instead of letting PyQt abort the process.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.count = 0

    def __call__(self, exc_type: type, exc_value: BaseException, exc_tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return

        self.count += 1
        self.logger.critical(
            f"Unhandled {exc_type.__name__}: {exc_value}",
            exc_info=(exc_type, exc_value, exc_tb)
        )

        app = QCoreApplication.instance()
        if app:
            app.exit(EXIT_FAILURE)



def report_corrupt_save_file(error: CorruptSaveFileError) -> None:
    """Print a prominent message for an unusable job file."""
    border = "=" * 72
    print(border, file=sys.stderr)
    print(" The job file is corrupt and cannot be loaded.", file=sys.stderr)
    print(f" File:   {error.path}", file=sys.stderr)
    print(f" Reason: {error.reason}", file=sys.stderr)
    print(border, file=sys.stderr)


# =============================================================================
# Command Line Parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Directory synchronization over local disks and FTP servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s jobs.flagsync                 Run the jobs of a job file
  %(prog)s --preview jobs.flagsync       Show what would be done
  %(prog)s --log-file sync.log jobs.flagsync
        """
    )

    parser.add_argument(
        'job_file',
        nargs='?',
        help=f'Job file ({JOB_FILE_EXTENSION}) to load and run'
    )

    parser.add_argument(
        '-p', '--preview',
        action='store_true',
        help='Report the actions without changing anything'
    )

    # Logging
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='INFO',
        help='Log level'
    )
    parser.add_argument(
        '--log-file',
        help='Also write the log to this file'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )

    return parser


def parse_arguments(args: Optional[List[str]] = None) -> CommandLineArgs:
    """
    Parse command line arguments.

    Args:
        args: Arguments to parse (defaults to sys.argv)

    Returns:
        Parsed arguments
    """
    parsed = build_parser().parse_args(args)

    result = CommandLineArgs()
    result.job_file = parsed.job_file
    result.preview = parsed.preview
    result.log_level = parsed.log_level
    result.log_file = Path(parsed.log_file) if parsed.log_file else None

    return result


# =============================================================================
# Signal Handlers
# =============================================================================

def setup_signal_handlers(controller: JobController) -> QTimer:
    """
    Stop the synchronization on SIGINT/SIGTERM.

    Returns the timer letting Python handle signals while Qt runs; it
    must be kept alive as long as the event loop runs.
    """
    def handler(signum, frame) -> None:
        logging.info(f"Received signal {signum}, stopping...")
        controller.stop()

    signal.signal(signal.SIGINT, handler)
    if sys.platform != 'win32':
        signal.signal(signal.SIGTERM, handler)

    timer = QTimer()
    timer.timeout.connect(lambda: None)
    timer.start(500)
    return timer


# =============================================================================
# Headless Run
# =============================================================================

def exit_code_for(results: list[SyncResult]) -> int:
    if any(not result.success for result in results):
        return EXIT_FAILURE
    return EXIT_OK


def run_headless(args: CommandLineArgs, logger: logging.Logger) -> int:
    """Load the job file and run its jobs under a Qt event loop."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    app.setOrganizationName(APP_ORGANIZATION)

    controller = JobController()

    try:
        jobs = controller.load_job_settings(args.job_file)
    except CorruptSaveFileError as e:
        logger.error(f"Corrupt job file: {e}")
        report_corrupt_save_file(e)
        return EXIT_FAILURE
    except OSError as e:
        logger.error(f"Cannot read job file {args.job_file}: {e}")
        return EXIT_FAILURE

    if not any(job.enabled for job in jobs):
        logger.warning(f"No enabled jobs in {args.job_file}")
        return EXIT_OK

    failed = []
    controller.synchronization_finished.connect(lambda results: app.exit(exit_code_for(results)))
    controller.synchronization_failed.connect(lambda error_type, message: failed.append(message))
    controller.synchronization_failed.connect(lambda error_type, message: app.exit(EXIT_FAILURE))

    previous_handlers = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    timer = setup_signal_handlers(controller)

    try:
        controller.start_synchronization(preview=args.preview)
        exit_code = app.exec()
    finally:
        timer.stop()
        controller.wait()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    if failed:
        logger.error(f"Synchronization failed: {failed[0]}")
        return EXIT_FAILURE

    return exit_code


# =============================================================================
# Main Function
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Application main entry point.

    Returns:
        Exit code (0 for success)
    """
    # Redirect stdout/stderr if None (common in frozen apps)
    if sys.stdout is None:
        sys.stdout = open(os.devnull, 'w')
    if sys.stderr is None:
        sys.stderr = open(os.devnull, 'w')

    args = parse_arguments(argv)

    if not args.job_file:
        build_parser().print_usage(sys.stderr)
        print(f"{APP_NAME}: a job file is required to run headless", file=sys.stderr)
        return EXIT_USAGE

    logger = setup_logging(args.log_level, args.log_file)
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")

    sys.excepthook = ExceptionHandler(logger)

    exit_code = run_headless(args, logger)

    logger.info(f"{APP_NAME} exiting with code {exit_code}")
    return exit_code


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == '__main__':
    # Enable faulthandler for debugging crashes
    faulthandler.enable()
    sys.exit(main())
