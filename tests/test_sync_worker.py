"""Tests for the job worker."""

import threading

import pytest

from flagsync.core.jobs import JobSetting
from flagsync.core.models import JobMode, Outcome, SyncAction
from flagsync.workers.base_worker import WorkerState
from flagsync.workers.sync_worker import JobWorker


@pytest.fixture
def make_worker(qapp, fs):
    def make(jobs, preview=False):
        return JobWorker(jobs, preview, file_system_factory=lambda setting: fs)
    return make


def collect(worker):
    """Record the signals of a worker."""
    seen = {"started": [], "finished": [], "events": [], "cancelled": 0, "error": []}
    worker.job_started.connect(lambda job: seen["started"].append(job.name))
    worker.job_finished.connect(lambda job, result: seen["finished"].append((job.name, result)))
    worker.sync_event.connect(seen["events"].append)
    worker.signals.error.connect(lambda kind, message: seen["error"].append(kind))

    def on_cancelled():
        seen["cancelled"] += 1

    worker.signals.cancelled.connect(on_cancelled)
    return seen


class TestJobWorker:
    """Tests for JobWorker."""

    def test_runs_enabled_jobs(self, make_worker, fs):
        fs.add_file("/src/a.txt", b"abc")
        fs.add_directory("/other")
        jobs = [
            JobSetting("first", "/src", "/dst"),
            JobSetting("skipped", "/src", "/other", enabled=False),
            JobSetting("second", "/src", "/other", mode=JobMode.MIRROR),
        ]
        worker = make_worker(jobs)
        seen = collect(worker)

        worker.run()

        assert worker.state is WorkerState.COMPLETED
        assert seen["started"] == ["first", "second"]
        assert [name for name, _ in seen["finished"]] == ["first", "second"]
        assert [result.files_copied for result in worker.result] == [1, 1]
        assert fs.file_exists("/dst/a.txt")
        assert fs.file_exists("/other/a.txt")

    def test_preview_changes_nothing(self, make_worker, fs):
        fs.add_file("/src/a.txt", b"abc")
        worker = make_worker([JobSetting("job", "/src", "/dst")], preview=True)

        worker.run()

        assert worker.result[0].preview
        assert worker.result[0].files_copied == 1
        assert not fs.file_exists("/dst/a.txt")

    def test_missing_source_does_not_stop_next_job(self, make_worker, fs):
        fs.add_file("/src/a.txt", b"abc")
        jobs = [
            JobSetting("broken", "/missing", "/dst"),
            JobSetting("working", "/src", "/dst"),
        ]
        worker = make_worker(jobs)
        seen = collect(worker)

        worker.run()

        broken, working = worker.result
        assert broken.has_errors
        assert broken.errors[0].path == "/missing"
        assert broken.errors[0].outcome is Outcome.FAILED
        assert working.success
        assert seen["events"][0].action is SyncAction.ERROR
        assert worker.state is WorkerState.COMPLETED

    def test_cancel_before_run(self, make_worker, fs):
        fs.add_file("/src/a.txt", b"abc")
        worker = make_worker([JobSetting("job", "/src", "/dst")])
        seen = collect(worker)

        worker.cancel()
        worker.run()

        assert seen["cancelled"] == 1
        assert seen["started"] == []
        assert worker.state is WorkerState.CANCELLED
        assert not fs.file_exists("/dst/a.txt")

    def test_cancel_during_job(self, make_worker, fs):
        for name in ("a", "b", "c"):
            fs.add_file(f"/src/{name}.txt", b"data")
        worker = make_worker([
            JobSetting("first", "/src", "/dst"),
            JobSetting("second", "/src", "/dst"),
        ])
        seen = collect(worker)
        worker.sync_event.connect(lambda event: worker.cancel())

        worker.run()

        assert seen["cancelled"] == 1
        assert seen["started"] == ["first"]
        assert len(worker.result) == 1
        assert worker.result[0].cancelled
        assert worker.result[0].files_copied == 1
        assert not fs.file_exists("/dst/c.txt")

    def test_factory_failure_fails_worker(self, qapp):
        def factory(setting):
            raise RuntimeError("no backend")

        worker = JobWorker([JobSetting("job", "/src", "/dst")], file_system_factory=factory)
        seen = collect(worker)

        worker.run()

        assert seen["error"] == ["RuntimeError"]
        assert worker.error == ("RuntimeError", "no backend")
        assert worker.state is WorkerState.FAILED

    def test_pause_and_resume_flags(self, make_worker):
        worker = make_worker([])

        worker.pause()
        assert worker.is_paused

        worker.resume()
        assert not worker.is_paused

    def test_cancel_clears_pause(self, make_worker):
        worker = make_worker([])

        worker.pause()
        worker.cancel()

        assert not worker.is_paused
        assert worker.is_cancelled

    def test_progress_reported_per_job(self, make_worker):
        worker = make_worker([JobSetting("a", "/src", "/dst"), JobSetting("b", "/src", "/dst")])
        progress = []
        worker.signals.progress.connect(lambda current, total, message: progress.append((current, total)))

        worker.run()

        assert progress == [(0, 2), (1, 2), (2, 2)]

    def test_pause_holds_jobs_until_resumed(self, make_worker, fs):
        fs.add_file("/src/a.txt", b"abc")
        worker = make_worker([JobSetting("job", "/src", "/dst")])
        resumed = threading.Event()

        def resume():
            resumed.set()
            worker.resume()

        worker.pause()
        resumer = threading.Timer(0.1, resume)
        resumer.start()
        worker.run()
        resumer.join()

        assert resumed.is_set()
        assert worker.state is WorkerState.COMPLETED
        assert worker.result[0].files_copied == 1

    def test_cancel_releases_paused_worker(self, make_worker, fs):
        fs.add_file("/src/a.txt", b"abc")
        worker = make_worker([JobSetting("job", "/src", "/dst")])

        worker.pause()
        canceller = threading.Timer(0.1, worker.cancel)
        canceller.start()
        worker.run()
        canceller.join()

        assert worker.state is WorkerState.CANCELLED
        assert worker.result == []
        assert not fs.file_exists("/dst/a.txt")
