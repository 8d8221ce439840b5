"""
Job settings persistence.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Union

from flagsync.core.errors import CorruptSaveFileError
from flagsync.core.jobs import FileSystemSetting, FileSystemType, JobSetting
from flagsync.core.models import JobMode
from flagsync.core.sync.comparer import CompareMethod


# Extension of job files
JOB_FILE_EXTENSION = ".flagsync"

FILE_FORMAT_VERSION = 1


class JobSettingsManager:
    """
    Manager for loading/saving job files.

    A job file is a JSON document holding a list of jobs; enums are
    stored by name.
    """

    def load(self, path: Union[str, Path]) -> list[JobSetting]:
        """
        Load the jobs of a job file.

        Raises:
            OSError: If the file cannot be read
            CorruptSaveFileError: If the content is not a valid job file
        """
        path = Path(path)

        with open(path, 'rb') as f:
            raw = f.read()

        try:
            data = json.loads(raw.decode('utf-8'))
        except UnicodeDecodeError as e:
            logging.error(f"JobSettingsManager - Job file {path} is not UTF-8 text: {e}")
            raise CorruptSaveFileError(str(path), f"not UTF-8 text: {e}") from e
        except json.JSONDecodeError as e:
            logging.error(f"JobSettingsManager - Invalid JSON in {path}: {e}")
            raise CorruptSaveFileError(str(path), f"invalid JSON: {e}") from e

        try:
            jobs = self._from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logging.error(f"JobSettingsManager - Invalid job file {path}: {e}")
            raise CorruptSaveFileError(str(path), str(e)) from e

        logging.info(f"JobSettingsManager - Loaded {len(jobs)} job(s) from {path}")
        return jobs

    def save(self, path: Union[str, Path], jobs: list[JobSetting]) -> None:
        """Save jobs to a job file, creating missing parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self._to_dict(jobs)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

        logging.info(f"JobSettingsManager - Saved {len(jobs)} job(s) to {path}")

    def _to_dict(self, jobs: list[JobSetting]) -> dict:
        """Convert jobs to a dictionary for JSON serialization."""
        def convert(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.name
            elif isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert(item) for item in obj]
            else:
                return obj

        return {
            'version': FILE_FORMAT_VERSION,
            'jobs': [convert(asdict(job)) for job in jobs],
        }

    def _from_dict(self, data: dict) -> list[JobSetting]:
        """Convert a dictionary back to jobs."""
        def get_enum(enum_class: type, value: Any) -> Enum:
            if not isinstance(value, str):
                raise ValueError(f"{enum_class.__name__} must be a string, got {value!r}")
            try:
                return enum_class[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown {enum_class.__name__}: {value}") from None

        def get_bool(value: Any) -> bool:
            if not isinstance(value, bool):
                raise ValueError(f"expected true or false, got {value!r}")
            return value

        def get_file_system(fs_data: dict) -> FileSystemSetting:
            defaults = FileSystemSetting()
            return FileSystemSetting(
                type=get_enum(FileSystemType, fs_data.get('type', 'LOCAL')),
                server_address=fs_data.get('server_address', defaults.server_address),
                username=fs_data.get('username', defaults.username),
                password=fs_data.get('password', defaults.password),
                timeout=float(fs_data.get('timeout', defaults.timeout)),
                passive=get_bool(fs_data.get('passive', defaults.passive)),
                chunk_size=int(fs_data.get('chunk_size', defaults.chunk_size)),
            )

        if not isinstance(data, dict) or not isinstance(data.get('jobs'), list):
            raise ValueError("expected an object with a 'jobs' list")

        jobs = []
        for job_data in data['jobs']:
            if not isinstance(job_data, dict):
                raise ValueError(f"expected a job object, got {job_data!r}")

            jobs.append(JobSetting(
                name=str(job_data['name']),
                source_path=str(job_data['source_path']),
                target_path=str(job_data['target_path']),
                mode=get_enum(JobMode, job_data.get('mode', 'BACKUP')),
                source_file_system=get_file_system(job_data.get('source_file_system', {})),
                target_file_system=get_file_system(job_data.get('target_file_system', {})),
                compare_method=get_enum(CompareMethod, job_data.get('compare_method', 'QUICK')),
                enabled=get_bool(job_data.get('enabled', True)),
            ))

        return jobs
