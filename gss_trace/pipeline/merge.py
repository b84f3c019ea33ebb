"""
Merge several trace files into one continuous timeline.

Each file was recorded independently, so its absolute receiver timestamps
are unrelated to the others. Rebasing rewrites every record as

    ts' = ts - first_ts_of_file + base_offset

where base_offset is the last rewritten timestamp of the previous file
(0 for the first). The next file therefore starts exactly where the
previous one ended. The rewritten timestamp is also stored as the record
offset, so the merged file replays on the composite timeline.

Usage:
    merger = TraceMerger([Path('a.gss'), Path('b.gss')], Path('ab.gss'))
    result = merger.run()
    print(result.records_written)
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .bounded import BoundedPipeline, run_pipeline
from ..config.schema import PipelineConfig
from ..core.errors import MalformedLength, TraceIOError
from ..formats.reader import TraceReader, TraceFile
from ..formats.record import SampleRecord
from ..formats.writer import TraceWriter

logger = logging.getLogger(__name__)


class TimelineRebaser:
    """
    Rewrites receiver timestamps across a sequence of files.

    Example:
        rebaser = TimelineRebaser()
        for path in paths:
            rebaser.begin_file()
            for record in TraceReader.read_path(path):
                emit(rebaser.rebase(record))
            rebaser.end_file()
    """

    def __init__(self, base_offset: int = 0):
        self.base_offset = base_offset
        self.file_start: Optional[int] = None
        self.last_timestamp: Optional[int] = None

    def begin_file(self) -> None:
        self.file_start = None
        self.last_timestamp = None

    def rebase(self, record: SampleRecord) -> SampleRecord:
        if self.file_start is None:
            self.file_start = record.receiver_timestamp
        rewritten = record.receiver_timestamp - self.file_start + self.base_offset
        self.last_timestamp = rewritten
        return record.with_timing(receiver_timestamp=rewritten, offset=rewritten)

    def end_file(self) -> None:
        """Advance the base to the last emitted timestamp (unchanged for empty files)."""
        if self.last_timestamp is not None:
            self.base_offset = self.last_timestamp


@dataclass
class MergeResult:
    """Outcome of a merge."""
    output: Path
    inputs: List[Path] = field(default_factory=list)
    records_read: int = 0
    records_written: int = 0
    files_cut_short: List[Path] = field(default_factory=list)
    final_timestamp: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            'output': str(self.output),
            'inputs': [str(p) for p in self.inputs],
            'records_read': self.records_read,
            'records_written': self.records_written,
            'files_cut_short': [str(p) for p in self.files_cut_short],
            'final_timestamp': self.final_timestamp,
            'duration_seconds': round(self.duration_seconds, 3),
        }


class TraceMerger:
    """Combine trace files, in the given order, into a single output file."""

    def __init__(
        self,
        inputs: Sequence[Path],
        output: Path,
        overwrite: bool = False,
        config: Optional[PipelineConfig] = None,
    ):
        if not inputs:
            raise ValueError("At least one input file is required")
        self.inputs = [Path(p) for p in inputs]
        self.output = Path(output)
        self.overwrite = overwrite
        self.config = config or PipelineConfig()
        self.rebaser = TimelineRebaser()
        self._cut_short: List[Path] = []

    def _records(self, trace_files: List[TraceFile]) -> Iterator[SampleRecord]:
        for trace_file in trace_files:
            self.rebaser.begin_file()
            count = 0
            try:
                for record in TraceReader.read(trace_file):
                    count += 1
                    yield self.rebaser.rebase(record)
            except (MalformedLength, TraceIOError) as e:
                logger.error(f"Stopped reading {trace_file.path} after {count} records: {e.message}")
                self._cut_short.append(trace_file.path)
            self.rebaser.end_file()
            logger.info(f"Reached the end of \"{trace_file.path}\" ({count} records)")

    def run(self) -> MergeResult:
        """
        Perform the merge.

        Raises:
            InputUnavailable: An input file cannot be read
            OutputExists / OutputUnavailable: Output cannot be created
        """
        start = time.monotonic()
        trace_files = [
            TraceReader.open(path, read_buffer=self.config.read_buffer_bytes)
            for path in self.inputs
        ]
        logger.info(f"Combining {len(trace_files)} files into {self.output}")

        pipeline = BoundedPipeline(
            capacity=self.config.capacity,
            poll_timeout=self.config.poll_timeout_seconds,
        )
        with TraceWriter(self.output, overwrite=self.overwrite) as writer:
            counters = run_pipeline(
                self._records(trace_files),
                writer.write,
                on_finish=writer.flush,
                report_every=self.config.report_every,
                pipeline=pipeline,
            )
            written = writer.records_written

        result = MergeResult(
            output=self.output,
            inputs=list(self.inputs),
            records_read=counters.records_in,
            records_written=written,
            files_cut_short=list(self._cut_short),
            final_timestamp=self.rebaser.base_offset,
            duration_seconds=time.monotonic() - start,
        )
        logger.info(
            f"Finished merging {result.records_written:,} samples in "
            f"{result.duration_seconds * 1000:,.0f}ms"
        )
        return result
