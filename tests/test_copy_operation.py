"""Tests for the chunked stream copy."""

import io

import pytest

from flagsync.core.copy_operation import CopyState, StreamCopyOperation
from flagsync.core.errors import PreconditionError
from flagsync.core.models import CancellationToken

from conftest import RecordingStream


class FailingStream(io.BytesIO):
    """Readable stream failing after a number of reads."""

    def __init__(self, data: bytes, fail_after: int):
        super().__init__(data)
        self.reads = 0
        self.fail_after = fail_after

    def read(self, size=-1):
        if self.reads >= self.fail_after:
            raise OSError("Device not ready")
        self.reads += 1
        return super().read(size)


class BrokenCloseStream(io.BytesIO):
    """Writable stream whose first close fails, like an aborted upload."""

    def __init__(self):
        super().__init__()
        self.close_failed = False

    def close(self):
        if not self.close_failed:
            self.close_failed = True
            raise OSError("552 Transfer aborted")
        super().close()


class TestStreamCopyOperation:
    """Tests for StreamCopyOperation."""

    def test_copies_all_chunks(self):
        source = io.BytesIO(b"0123456789")
        target = io.BytesIO()
        operation = StreamCopyOperation(source, target, chunk_size=4, total_bytes=10)

        progress = []
        state = operation.execute(progress.append)

        assert state is CopyState.COMPLETED
        assert target.getvalue() == b"0123456789"
        assert [p.bytes_transferred for p in progress] == [4, 8, 10]
        assert progress[-1].percent == 100.0
        assert operation.bytes_transferred == 10

    def test_cancel_after_first_chunk(self):
        """Cancel flag set after the first of three chunks."""
        source = RecordingStream(b"a" * 12)
        target = RecordingStream()
        operation = StreamCopyOperation(
            source, target,
            chunk_size=4,
            total_bytes=12,
            close_source=True,
            close_target=True,
        )

        def cancel_on_first(progress):
            if progress.bytes_transferred == 4:
                progress.cancel()

        state = operation.execute(cancel_on_first)

        assert state is CopyState.CANCELLED
        assert target.closed
        assert source.closed
        assert len(target.written) == 4
        assert len(target.written) < 12

    def test_cancelled_token_stops_before_reading(self):
        token = CancellationToken()
        token.cancel()
        source = io.BytesIO(b"data")
        target = io.BytesIO()

        state = StreamCopyOperation(source, target, token=token).execute()

        assert state is CopyState.CANCELLED
        assert target.getvalue() == b""
        assert source.tell() == 0

    def test_reset_token_can_be_reused(self):
        token = CancellationToken()
        token.cancel()
        token.reset()

        state = StreamCopyOperation(io.BytesIO(b"data"), io.BytesIO(), token=token).execute()

        assert state is CopyState.COMPLETED
        assert not token.is_cancelled

    def test_streams_stay_open_by_default(self):
        source = io.BytesIO(b"data")
        target = io.BytesIO()

        StreamCopyOperation(source, target).execute()

        assert not source.closed
        assert not target.closed

    def test_read_error_fails_and_propagates(self):
        source = FailingStream(b"a" * 16, fail_after=1)
        target = RecordingStream()
        operation = StreamCopyOperation(source, target, chunk_size=4, close_target=True)

        with pytest.raises(OSError, match="Device not ready"):
            operation.execute()

        assert operation.state is CopyState.FAILED
        assert target.closed
        assert target.written == b"aaaa"

    def test_empty_source_completes(self):
        progress = []
        state = StreamCopyOperation(io.BytesIO(), io.BytesIO()).execute(progress.append)

        assert state is CopyState.COMPLETED
        assert progress == []

    def test_unknown_total_has_zero_percent(self):
        operation = StreamCopyOperation(io.BytesIO(b"abc"), io.BytesIO())
        progress = list(operation.iter_progress())

        assert progress[0].total_bytes == -1
        assert progress[0].percent == 0.0

    def test_abandoned_iteration_is_cancelled(self):
        target = RecordingStream()
        operation = StreamCopyOperation(
            io.BytesIO(b"a" * 8), target, chunk_size=2, close_target=True
        )

        iterator = operation.iter_progress()
        next(iterator)
        iterator.close()

        assert operation.state is CopyState.CANCELLED
        assert target.written == b"aa"

    def test_source_closed_when_target_close_fails(self):
        source = RecordingStream(b"data")
        target = BrokenCloseStream()
        operation = StreamCopyOperation(source, target, close_source=True, close_target=True)

        with pytest.raises(OSError, match="552"):
            operation.execute()

        assert source.closed
        assert operation.state is CopyState.FAILED

    def test_listener_error_fails_copy(self):
        target = RecordingStream()
        operation = StreamCopyOperation(
            io.BytesIO(b"a" * 8), target, chunk_size=2, close_target=True
        )

        def explode(progress):
            raise ValueError("listener broke")

        with pytest.raises(ValueError, match="listener broke"):
            operation.execute(explode)

        assert operation.state is CopyState.FAILED
        assert target.closed
        assert target.written == b"aa"

    def test_runs_only_once(self):
        operation = StreamCopyOperation(io.BytesIO(b"abc"), io.BytesIO())
        operation.execute()

        with pytest.raises(RuntimeError):
            operation.execute()

    def test_invalid_arguments(self):
        with pytest.raises(PreconditionError):
            StreamCopyOperation(None, io.BytesIO())
        with pytest.raises(PreconditionError):
            StreamCopyOperation(io.BytesIO(), None)
        with pytest.raises(PreconditionError):
            StreamCopyOperation(io.BytesIO(), io.BytesIO(), chunk_size=0)
