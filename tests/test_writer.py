"""
Tests for trace readers and writers.

These tests verify:
1. TraceWriter refuses to clobber existing files
2. RotatingTraceWriter names, offsets and rotates files
3. TraceReader treats a truncated tail as end of stream
"""

import logging
import time
from datetime import datetime

import pytest

from gss_trace.core.errors import InputUnavailable, OutputExists, TraceIOError
from gss_trace.formats.reader import TraceReader
from gss_trace.formats.writer import RotatingTraceWriter, TraceWriter, open_output

from conftest import make_record, timed_records, write_trace


class SecondsClock:
    """time.time() replacement."""

    def __init__(self, now: float = 1_300_000_000.25):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTraceWriter:
    """Single-file writer."""

    def test_write_and_read_back(self, tmp_path):
        path = tmp_path / 'out.gss'
        records = timed_records([10, 20, 30])
        with TraceWriter(path) as writer:
            for record in records:
                writer.write(record)

        assert writer.closed
        assert writer.records_written == 3
        assert list(TraceReader.read_path(path)) == records

    def test_refuses_existing_file(self, tmp_path):
        path = tmp_path / 'out.gss'
        path.write_bytes(b'old')
        with pytest.raises(OutputExists):
            TraceWriter(path)
        assert path.read_bytes() == b'old'

    def test_overwrite(self, tmp_path):
        path = tmp_path / 'out.gss'
        path.write_bytes(b'old')
        with TraceWriter(path, overwrite=True) as writer:
            writer.write(make_record())
        assert TraceReader.count(path) == 1

    def test_write_after_close(self, tmp_path):
        writer = TraceWriter(tmp_path / 'out.gss')
        writer.close()
        with pytest.raises(TraceIOError):
            writer.write(make_record())

    def test_open_output_text_mode(self, tmp_path):
        with open_output(tmp_path / 'out.csv', binary=False) as f:
            f.write('a,b\n')
        assert (tmp_path / 'out.csv').read_text(encoding='utf-8') == 'a,b\n'


class TestRotatingTraceWriter:
    """Recording writer."""

    def test_file_name(self, tmp_path):
        clock = SecondsClock()
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, clock=clock)
        stamp = datetime.fromtimestamp(clock.now).strftime('%Y.%m.%d-%H.%M.%S')

        assert writer.next_path() == tmp_path / f'lab_{stamp}.250.gss'

    def test_file_name_without_base(self, tmp_path):
        writer = RotatingTraceWriter(directory=tmp_path, clock=SecondsClock())
        assert not writer.next_path().name.startswith('_')
        assert writer.next_path().suffix == '.gss'

    def test_offsets_relative_to_recording_start(self, tmp_path):
        clock = SecondsClock()
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, clock=clock)
        writer.open()
        writer.start_recording()

        clock.now += 1.5
        stored = writer.write(make_record(offset=999))
        writer.close()

        assert stored.offset == 1500
        (record,) = TraceReader.read_path(writer.files[0])
        assert record.offset == 1500

    def test_start_recording_once(self, tmp_path):
        clock = SecondsClock()
        writer = RotatingTraceWriter(directory=tmp_path, clock=clock)
        writer.start_recording()
        first = writer.recording_start_ms
        clock.now += 10
        writer.start_recording()
        assert writer.recording_start_ms == first

    def test_rotate_starts_new_file(self, tmp_path):
        clock = SecondsClock()
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, clock=clock)
        writer.open()
        writer.write(make_record())

        clock.now += 60
        writer.rotate()
        clock.now += 0.25
        stored = writer.write(make_record())
        writer.close()

        assert len(writer.files) == 2
        assert all(TraceReader.count(p) == 1 for p in writer.files)
        assert stored.offset == 250

    def test_timer_rotation(self, tmp_path):
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, rotate_seconds=0.3)
        writer.open()
        writer.start_rotation()
        try:
            time.sleep(0.8)
        finally:
            writer.close()

        assert len(writer.files) >= 2

    def test_current_path_follows_rotation(self, tmp_path):
        clock = SecondsClock()
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, clock=clock)
        assert writer.current_path is None

        first = writer.open()
        assert writer.current_path == first
        clock.now += 60
        second = writer.rotate()
        assert writer.current_path == second

        writer.close()
        assert writer.current_path is None

    def test_close_during_rotation(self, tmp_path):
        """A rotation racing close() leaves no open handle or stray file."""
        clock = SecondsClock()
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, clock=clock)
        first = writer.open()
        writer.write(make_record())

        next_path = writer.next_path

        def close_first():
            clock.now += 60
            path = next_path()
            writer.close()
            return path

        writer.next_path = close_first

        assert writer.rotate() is None
        assert writer.current_path is None
        assert writer.files == [first]
        assert list(tmp_path.iterdir()) == [first]
        assert TraceReader.count(first) == 1

    def test_rotation_failure_keeps_current_file(self, tmp_path, caplog):
        clock = SecondsClock()
        writer = RotatingTraceWriter(base_name='lab', directory=tmp_path, clock=clock, rotate_seconds=3600)
        first = writer.open()
        writer._rotating = True

        # Same clock reading, so the next name collides with the open file
        with caplog.at_level(logging.ERROR):
            writer._on_timer()
        writer.close()

        assert writer.files == [first]
        assert f"continuing with {first}" in caplog.text

    def test_write_before_open(self, tmp_path):
        writer = RotatingTraceWriter(directory=tmp_path)
        with pytest.raises(TraceIOError):
            writer.write(make_record())


class TestTraceReader:
    """Reading trace files."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputUnavailable):
            TraceReader.open(tmp_path / 'missing.gss')

    def test_directory_is_not_a_trace(self, tmp_path):
        with pytest.raises(InputUnavailable):
            TraceReader.open(tmp_path)

    def test_truncated_tail_ends_stream(self, tmp_path, caplog):
        path = write_trace(tmp_path / 't.gss', timed_records([1, 2, 3]))
        path.write_bytes(path.read_bytes()[:-3])

        with caplog.at_level(logging.WARNING):
            records = list(TraceReader.read_path(path))

        assert len(records) == 2
        assert "after 2 records" in caplog.text

    def test_summary(self, tmp_path):
        records = timed_records([1000, 1200, 1900])
        records.append(make_record(timestamp=2000, offset=1000, physical_layer=3, data=None))
        path = write_trace(tmp_path / 't.gss', records)

        summary = TraceReader.summarize(path)

        assert summary.record_count == 4
        assert summary.span_ms == 1000
        assert summary.first_timestamp == 1000
        assert summary.last_timestamp == 2000
        assert summary.physical_layers == {1, 3}
        assert summary.payload_bytes == 6
        assert summary.to_dict()['physical_layers'] == [1, 3]

    def test_empty_trace(self, tmp_path):
        path = tmp_path / 'empty.gss'
        path.write_bytes(b'')
        assert TraceReader.open(path).is_empty
        assert TraceReader.summarize(path).span_ms == 0
