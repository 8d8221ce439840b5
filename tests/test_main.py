"""Tests for the command line entry point."""

import sys

import pytest

import main
from flagsync.core.jobs import JobSetting
from flagsync.core.models import JobMode, SyncResult
from flagsync.services.settings import JobSettingsManager


@pytest.fixture
def isolated(qapp, restore_logging, monkeypatch):
    """Run main without leaking the exception hook into the session."""
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)


class TestParseArguments:
    """Tests for parse_arguments."""

    def test_defaults(self):
        args = main.parse_arguments(["jobs.flagsync"])

        assert args.job_file == "jobs.flagsync"
        assert not args.preview
        assert args.log_level == "INFO"
        assert args.log_file is None

    def test_options(self, tmp_path):
        log_file = tmp_path / "sync.log"

        args = main.parse_arguments(["-p", "--log-level", "DEBUG", "--log-file", str(log_file), "jobs.flagsync"])

        assert args.preview
        assert args.log_level == "DEBUG"
        assert args.log_file == log_file

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            main.parse_arguments(["--log-level", "LOUD", "jobs.flagsync"])


class TestExitCodes:
    """Tests for exit_code_for."""

    def test_success(self):
        assert main.exit_code_for([SyncResult(), SyncResult()]) == main.EXIT_OK

    def test_cancelled(self):
        assert main.exit_code_for([SyncResult(cancelled=True)]) == main.EXIT_FAILURE


class TestMain:
    """Tests for main."""

    def test_no_job_file_prints_usage(self, capsys):
        assert main.main([]) == main.EXIT_USAGE
        assert "usage:" in capsys.readouterr().err

    def test_missing_job_file(self, isolated, tmp_path):
        assert main.main([str(tmp_path / "missing.flagsync")]) == main.EXIT_FAILURE

    def test_corrupt_job_file(self, isolated, tmp_path, capsys):
        path = tmp_path / "jobs.flagsync"
        path.write_text("not json", encoding="utf-8")

        assert main.main([str(path)]) == main.EXIT_FAILURE
        assert "corrupt" in capsys.readouterr().err

    def test_binary_job_file(self, isolated, tmp_path, capsys):
        path = tmp_path / "jobs.flagsync"
        path.write_bytes(b"\xff\xfe\x00garbage\x80")

        assert main.main([str(path)]) == main.EXIT_FAILURE
        assert "corrupt" in capsys.readouterr().err

    def test_runs_jobs(self, isolated, tmp_path):
        (tmp_path / "src" / "sub").mkdir(parents=True)
        (tmp_path / "src" / "a.txt").write_bytes(b"abc")
        (tmp_path / "src" / "sub" / "b.txt").write_bytes(b"b")
        (tmp_path / "dst").mkdir()
        (tmp_path / "dst" / "old.txt").write_bytes(b"old")
        path = tmp_path / "jobs.flagsync"
        JobSettingsManager().save(path, [
            JobSetting("mirror", str(tmp_path / "src"), str(tmp_path / "dst"), mode=JobMode.MIRROR),
        ])

        assert main.main([str(path)]) == main.EXIT_OK
        assert (tmp_path / "dst" / "a.txt").read_bytes() == b"abc"
        assert (tmp_path / "dst" / "sub" / "b.txt").read_bytes() == b"b"
        assert not (tmp_path / "dst" / "old.txt").exists()

    def test_preview_changes_nothing(self, isolated, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "a.txt").write_bytes(b"abc")
        (tmp_path / "dst").mkdir()
        path = tmp_path / "jobs.flagsync"
        JobSettingsManager().save(path, [JobSetting("backup", str(tmp_path / "src"), str(tmp_path / "dst"))])

        assert main.main(["--preview", str(path)]) == main.EXIT_OK
        assert not (tmp_path / "dst" / "a.txt").exists()

    def test_missing_source_fails(self, isolated, tmp_path):
        (tmp_path / "dst").mkdir()
        path = tmp_path / "jobs.flagsync"
        JobSettingsManager().save(path, [JobSetting("backup", str(tmp_path / "missing"), str(tmp_path / "dst"))])

        assert main.main([str(path)]) == main.EXIT_FAILURE

    def test_no_enabled_jobs(self, isolated, tmp_path):
        path = tmp_path / "jobs.flagsync"
        JobSettingsManager().save(path, [JobSetting("off", "/a", "/b", enabled=False)])

        assert main.main([str(path)]) == main.EXIT_OK
