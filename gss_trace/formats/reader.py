"""
TraceReader - High-level interface for reading trace files.

TraceReader handles:
- Input validation (existence, readability)
- Buffered streaming record iteration
- Treating a record cut off at end of file as end of stream

This is the primary interface for reading trace files. Trace files are
append-only and may be read while still being written, so a truncated
final record is expected and only logged.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Set

from .codec import SampleCodec
from .record import SampleRecord
from ..core.errors import InputUnavailable, TruncatedRecord

logger = logging.getLogger(__name__)

# Input buffer size for trace files
DEFAULT_READ_BUFFER = 1 << 20


@dataclass
class TraceFile:
    """
    Metadata about an opened trace file.

    Attributes:
        path: Path to the trace file
        size_bytes: File size when opened
        read_buffer: Buffer size used when streaming records
    """
    path: Path
    size_bytes: int
    read_buffer: int = DEFAULT_READ_BUFFER

    @property
    def is_empty(self) -> bool:
        return self.size_bytes == 0


@dataclass
class TraceSummary:
    """Aggregate facts about a trace file."""
    path: Path
    record_count: int = 0
    payload_bytes: int = 0
    first_offset: Optional[int] = None
    last_offset: Optional[int] = None
    first_timestamp: Optional[int] = None
    last_timestamp: Optional[int] = None
    physical_layers: Set[int] = field(default_factory=set)

    @property
    def span_ms(self) -> int:
        """Recorded span according to stored offsets."""
        if self.first_offset is None or self.last_offset is None:
            return 0
        return self.last_offset - self.first_offset

    def to_dict(self) -> dict:
        return {
            'path': str(self.path),
            'record_count': self.record_count,
            'payload_bytes': self.payload_bytes,
            'first_offset': self.first_offset,
            'last_offset': self.last_offset,
            'first_timestamp': self.first_timestamp,
            'last_timestamp': self.last_timestamp,
            'span_ms': self.span_ms,
            'physical_layers': sorted(self.physical_layers),
        }


class TraceReader:
    """
    High-level interface for reading trace files.

    Usage:
        # Option 1: Open and read separately
        trace_file = TraceReader.open(path)
        for record in TraceReader.read(trace_file):
            process(record)

        # Option 2: Convenience method
        for record in TraceReader.read_path(path):
            process(record)
    """

    @classmethod
    def open(cls, path: Path, read_buffer: int = DEFAULT_READ_BUFFER) -> TraceFile:
        """
        Validate a trace file for reading.

        Raises:
            InputUnavailable: If the file is missing, not a file or unreadable
        """
        path = Path(path)

        if not path.exists():
            raise InputUnavailable(f"Trace file not found: {path}")
        if not path.is_file():
            raise InputUnavailable(f"Not a regular file: {path}")
        if not os.access(path, os.R_OK):
            raise InputUnavailable(f"Cannot read trace file: {path}")

        return TraceFile(path=path, size_bytes=path.stat().st_size, read_buffer=read_buffer)

    @classmethod
    def read(cls, trace_file: TraceFile) -> Iterator[SampleRecord]:
        """
        Read all records from an opened file.

        A record cut off by end of file ends iteration with a warning.
        MalformedLength and TraceIOError propagate to the caller.

        Yields:
            SampleRecord objects in file order
        """
        try:
            f = open(trace_file.path, 'rb', buffering=trace_file.read_buffer)
        except OSError as e:
            raise InputUnavailable(f"Unable to open {trace_file.path}: {e}") from e

        count = 0
        with f:
            try:
                for record in SampleCodec.iter_records(f):
                    count += 1
                    yield record
            except TruncatedRecord as e:
                logger.warning(f"{trace_file.path.name}: {e.message} after {count} records")

        logger.debug(f"Read {count} records from {trace_file.path.name}")

    @classmethod
    def read_path(cls, path: Path) -> Iterator[SampleRecord]:
        """Convenience method: open and read in one call."""
        trace_file = cls.open(path)
        yield from cls.read(trace_file)

    @classmethod
    def count(cls, path: Path) -> int:
        """Count records in a trace file without loading all into memory."""
        return sum(1 for _ in cls.read_path(path))

    @classmethod
    def summarize(cls, path: Path) -> TraceSummary:
        """Single pass over a trace file collecting its summary."""
        summary = TraceSummary(path=Path(path))

        for record in cls.read_path(path):
            if summary.record_count == 0:
                summary.first_offset = record.offset
                summary.first_timestamp = record.receiver_timestamp
            summary.last_offset = record.offset
            summary.last_timestamp = record.receiver_timestamp
            summary.record_count += 1
            summary.payload_bytes += record.payload_length
            summary.physical_layers.add(record.physical_layer)

        return summary
