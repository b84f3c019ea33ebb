"""
Tests for merging trace files.

CRITICAL TESTS:
1. test_second_file_starts_where_first_ends - 5000 / 12345 example
2. test_merged_timeline_is_monotonic - across many files
3. test_missing_input_is_fatal - nothing is written
"""

import pytest

from gss_trace.core.errors import InputUnavailable, OutputExists
from gss_trace.formats.codec import SampleCodec
from gss_trace.formats.reader import TraceReader
from gss_trace.pipeline.merge import TimelineRebaser, TraceMerger

from conftest import make_record, timed_records, write_trace


class TestTimelineRebaser:
    """Timestamp rewriting."""

    def test_first_file_starts_at_zero(self):
        rebaser = TimelineRebaser()
        rebaser.begin_file()
        out = [rebaser.rebase(r) for r in timed_records([1000, 1500, 6000])]
        rebaser.end_file()

        assert [r.receiver_timestamp for r in out] == [0, 500, 5000]
        assert [r.offset for r in out] == [0, 500, 5000]
        assert rebaser.base_offset == 5000

    def test_empty_file_keeps_base(self):
        rebaser = TimelineRebaser(base_offset=700)
        rebaser.begin_file()
        rebaser.end_file()
        assert rebaser.base_offset == 700


class TestTraceMerger:
    """Whole-file merges."""

    def test_second_file_starts_where_first_ends(self, tmp_path):
        a = write_trace(tmp_path / 'a.gss', timed_records([1000, 3000, 6000]))
        b = write_trace(tmp_path / 'b.gss', timed_records([12345, 12400]))
        out = tmp_path / 'ab.gss'

        result = TraceMerger([a, b], out).run()
        merged = list(TraceReader.read_path(out))

        assert [r.receiver_timestamp for r in merged] == [0, 2000, 5000, 5000, 5055]
        assert result.records_written == 5
        assert result.final_timestamp == 5055

    def test_merged_timeline_is_monotonic(self, tmp_path):
        inputs = []
        for i, start in enumerate([9_000_000, 10, 5_000, 1_300_000_000_000]):
            stamps = [start + step * (i + 3) for step in range(20)]
            inputs.append(write_trace(tmp_path / f'{i}.gss', timed_records(stamps)))
        out = tmp_path / 'all.gss'

        TraceMerger(inputs, out).run()
        stamps = [r.receiver_timestamp for r in TraceReader.read_path(out)]

        assert len(stamps) == 80
        assert stamps == sorted(stamps)

    def test_records_are_otherwise_unchanged(self, tmp_path):
        original = make_record(timestamp=42, data=b'\x41\x19\x64\x0B\xB8\x00')
        a = write_trace(tmp_path / 'a.gss', [original])
        out = tmp_path / 'out.gss'

        TraceMerger([a], out).run()
        (merged,) = TraceReader.read_path(out)

        assert merged.sensed_data == original.sensed_data
        assert merged.device_id == original.device_id
        assert merged.rssi == original.rssi

    def test_truncated_file_contributes_what_it_has(self, tmp_path):
        a = write_trace(tmp_path / 'a.gss', timed_records([100, 200, 300]))
        data = a.read_bytes()
        a.write_bytes(data[:-5])
        b = write_trace(tmp_path / 'b.gss', timed_records([50, 60]))
        out = tmp_path / 'out.gss'

        TraceMerger([a, b], out).run()
        stamps = [r.receiver_timestamp for r in TraceReader.read_path(out)]

        assert stamps == [0, 100, 100, 110]

    def test_malformed_file_is_cut_short(self, tmp_path):
        a = tmp_path / 'a.gss'
        a.write_bytes(SampleCodec.encode(make_record(timestamp=5)) + b'\x00' * 8 + b'\x00\x00\x00\x02')
        b = write_trace(tmp_path / 'b.gss', timed_records([7, 9]))
        out = tmp_path / 'out.gss'

        result = TraceMerger([a, b], out).run()

        assert result.files_cut_short == [a]
        assert result.records_written == 3

    def test_missing_input_is_fatal(self, tmp_path):
        a = write_trace(tmp_path / 'a.gss', timed_records([1, 2]))
        out = tmp_path / 'out.gss'

        with pytest.raises(InputUnavailable):
            TraceMerger([a, tmp_path / 'missing.gss'], out).run()
        assert not out.exists()

    def test_refuses_to_overwrite(self, tmp_path):
        a = write_trace(tmp_path / 'a.gss', timed_records([1, 2]))
        out = tmp_path / 'out.gss'
        out.write_bytes(b'keep')

        with pytest.raises(OutputExists):
            TraceMerger([a], out).run()
        assert out.read_bytes() == b'keep'

        TraceMerger([a], out, overwrite=True).run()
        assert TraceReader.count(out) == 2

    def test_requires_inputs(self, tmp_path):
        with pytest.raises(ValueError):
            TraceMerger([], tmp_path / 'out.gss')
