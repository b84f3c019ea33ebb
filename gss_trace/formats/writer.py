"""
Trace file writers.

TraceWriter writes one output file and refuses to clobber an existing one
unless asked to. RotatingTraceWriter is used while recording a live feed:
it names files after the time they were opened and can switch to a fresh
file periodically without losing or interleaving records.
"""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional

from .codec import SampleCodec
from .record import SampleRecord
from ..core.errors import OutputExists, OutputUnavailable, TraceIOError

logger = logging.getLogger(__name__)

# Output buffer size for trace files
DEFAULT_WRITE_BUFFER = 1 << 20

TRACE_EXTENSION = '.gss'

# Example: 2011.06.30-14.55.43.242
TIMESTAMP_FORMAT = '%Y.%m.%d-%H.%M.%S'


def open_output(path: Path, overwrite: bool = False, binary: bool = True,
                buffering: int = DEFAULT_WRITE_BUFFER):
    """
    Create an output file.

    Raises:
        OutputExists: File exists and overwrite is False
        OutputUnavailable: File cannot be created
    """
    path = Path(path)
    if path.exists():
        if not overwrite:
            raise OutputExists(f"Not overwriting existing file: {path}")
        logger.info(f"Overwriting existing file {path}")

    mode = 'w' if overwrite else 'x'
    try:
        if binary:
            return open(path, mode + 'b', buffering=buffering)
        return open(path, mode, buffering=buffering, encoding='utf-8', newline='')
    except FileExistsError as e:
        raise OutputExists(f"Not overwriting existing file: {path}") from e
    except OSError as e:
        raise OutputUnavailable(f"Unable to create {path}: {e}") from e


class TraceWriter:
    """
    Write records to a single trace file.

    Usage:
        with TraceWriter(path) as writer:
            for record in records:
                writer.write(record)
    """

    def __init__(self, path: Path, overwrite: bool = False,
                 buffering: int = DEFAULT_WRITE_BUFFER):
        self.path = Path(path)
        self._file: Optional[BinaryIO] = open_output(self.path, overwrite, buffering=buffering)
        self.records_written = 0
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._file is None

    def write(self, record: SampleRecord) -> None:
        if self._file is None:
            raise TraceIOError(f"Writer for {self.path} is closed")

        data = SampleCodec.encode(record)
        try:
            self._file.write(data)
        except OSError as e:
            raise TraceIOError(f"Unable to write to {self.path}: {e}") from e
        self.records_written += 1
        self.bytes_written += len(data)

    def flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def close(self) -> None:
        if self._file is None:
            return
        try:
            self._file.flush()
            self._file.close()
        except OSError as e:
            logger.warning(f"Unable to close {self.path}: {e}")
        self._file = None

    def __enter__(self) -> 'TraceWriter':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RotatingTraceWriter:
    """
    Recording writer with time-stamped file names and optional rotation.

    Each stored record gets offset = now - recording start. Rotation opens
    the next file before swapping it in, and the swap holds the same lock
    as write(), so a write never lands on a handle that is being closed.
    The recording start restarts with every new file.

    Example:
        writer = RotatingTraceWriter(base_name='lab', rotate_seconds=3600)
        writer.open()
        writer.start_rotation()
        writer.write(record)
        ...
        writer.close()
    """

    def __init__(
        self,
        base_name: Optional[str] = None,
        directory: Path = Path('.'),
        extension: str = TRACE_EXTENSION,
        rotate_seconds: float = 0,
        clock: Callable[[], float] = time.time,
        flush_each: bool = True,
    ):
        self.base_name = base_name
        self.directory = Path(directory)
        self.extension = extension
        self.rotate_seconds = rotate_seconds
        self.clock = clock
        self.flush_each = flush_each

        self._lock = threading.Lock()
        self._writer: Optional[TraceWriter] = None
        self._timer: Optional[threading.Timer] = None
        self._rotating = False
        self._closed = False

        self.recording_start_ms: Optional[int] = None
        self.files: List[Path] = []
        self.records_written = 0

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def next_path(self) -> Path:
        """File name for a file opened now."""
        now = self.clock()
        stamp = datetime.fromtimestamp(now).strftime(TIMESTAMP_FORMAT)
        stamp = f"{stamp}.{int(now * 1000) % 1000:03d}"
        name = f"{self.base_name}_{stamp}" if self.base_name else stamp
        return self.directory / f"{name}{self.extension}"

    @property
    def current_path(self) -> Optional[Path]:
        return self._writer.path if self._writer else None

    def open(self) -> Optional[Path]:
        """Open the first output file."""
        return self.rotate()

    def start_recording(self) -> None:
        """Fix the offset origin if it has not been set yet."""
        with self._lock:
            if self.recording_start_ms is None:
                self.recording_start_ms = self._now_ms()
                logger.info(f"Starting recording at {datetime.fromtimestamp(self.recording_start_ms / 1000)}")

    def rotate(self) -> Optional[Path]:
        """
        Switch to a new output file.

        Returns:
            The new path, or None if the writer was closed meanwhile

        Raises:
            OutputExists / OutputUnavailable: If the new file cannot be created
        """
        path = self.next_path()
        new_writer = TraceWriter(path)

        with self._lock:
            if self._closed:
                new_writer.close()
                path.unlink()
                logger.debug(f"Writer closed during rotation, discarded {path}")
                return None
            old_writer = self._writer
            self._writer = new_writer
            if old_writer is not None:
                self.recording_start_ms = self._now_ms()
                old_writer.close()

        self.files.append(path)
        logger.info(f"Recording to {path}")
        return path

    def write(self, record: SampleRecord) -> SampleRecord:
        """
        Store a record with its offset set relative to the recording start.

        Returns:
            The record as written
        """
        with self._lock:
            if self._writer is None:
                raise TraceIOError("Recording output is not open")
            now = self._now_ms()
            if self.recording_start_ms is None:
                self.recording_start_ms = now
            stored = record.with_timing(offset=now - self.recording_start_ms)
            self._writer.write(stored)
            if self.flush_each:
                self._writer.flush()
            self.records_written += 1
        return stored

    def start_rotation(self) -> None:
        """Begin periodic rotation if an interval is configured."""
        if self.rotate_seconds <= 0:
            return
        self._rotating = True
        self._schedule()

    def _schedule(self) -> None:
        self._timer = threading.Timer(self.rotate_seconds, self._on_timer)
        self._timer.daemon = True
        self._timer.name = 'trace-rotation'
        self._timer.start()

    def _on_timer(self) -> None:
        if not self._rotating:
            return
        try:
            self.rotate()
        except (OutputExists, OutputUnavailable) as e:
            logger.error(f"Rotation failed, continuing with {self.current_path}: {e.message}")
        if self._rotating:
            self._schedule()

    def close(self) -> None:
        """Stop rotation, then flush and close the current file."""
        self._rotating = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        with self._lock:
            self._closed = True
            if self._writer is not None:
                self._writer.close()
                self._writer = None
