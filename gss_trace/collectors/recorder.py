"""
Record a live feed into trace files.

    SampleConnection --sample_received--> [BoundedPipeline] --> RecordConsumer
                                                                   |
                                                          RotatingTraceWriter

The connection's receive thread is the producer. The pipeline has no
consumer timeout since a live feed can go quiet; connection_lost closes
the pipeline instead.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .connection import ConnectionListener, SampleConnection
from ..config.schema import GssConfig
from ..formats.record import PhysicalLayer, SampleRecord
from ..formats.writer import RotatingTraceWriter
from ..pipeline.bounded import BoundedPipeline, RecordConsumer

logger = logging.getLogger(__name__)


@dataclass
class RecordingResult:
    """Outcome of a recording."""
    files: List[Path] = field(default_factory=list)
    records_received: int = 0
    records_filtered: int = 0
    records_written: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            'files': [str(p) for p in self.files],
            'records_received': self.records_received,
            'records_filtered': self.records_filtered,
            'records_written': self.records_written,
            'duration_seconds': round(self.duration_seconds, 3),
        }


class TraceRecorder(ConnectionListener):
    """
    Store every sample received on a connection.

    physical_layer restricts recording to one sensing technology;
    PhysicalLayer.ALL (0) keeps everything.

    Example:
        writer = RotatingTraceWriter(base_name='lab', rotate_seconds=3600)
        recorder = TraceRecorder(TCPSampleConnection(host, port), writer)
        result = recorder.run()
    """

    def __init__(
        self,
        connection: SampleConnection,
        writer: RotatingTraceWriter,
        physical_layer: int = PhysicalLayer.ALL,
        config: Optional[GssConfig] = None,
    ):
        if not PhysicalLayer.is_valid(physical_layer):
            raise ValueError(f"Physical layer out of range: {physical_layer}")
        self.connection = connection
        self.writer = writer
        self.physical_layer = physical_layer
        self.config = config or GssConfig()

        self.pipeline = BoundedPipeline(capacity=self.config.pipeline.capacity, poll_timeout=None)
        self._consumer: Optional[RecordConsumer] = None

        self.records_received = 0
        self.records_filtered = 0

    def accepts(self, record: SampleRecord) -> bool:
        if self.physical_layer == PhysicalLayer.ALL:
            return True
        return record.physical_layer == self.physical_layer

    # ConnectionListener

    def connection_ready(self, connection: SampleConnection) -> None:
        self.writer.start_recording()

    def connection_lost(self, connection: SampleConnection) -> None:
        logger.info("Connection lost, finishing recording")
        self.pipeline.close()

    def sample_received(self, connection: SampleConnection, record: SampleRecord) -> None:
        self.records_received += 1
        if not self.accepts(record):
            self.records_filtered += 1
            return
        if not self.pipeline.put(record):
            logger.debug(f"Dropping {record!r}, recording is shutting down")

    # Lifecycle

    def start(self) -> None:
        """Open the output, start the writer thread and connect."""
        self.writer.open()
        self.writer.start_rotation()

        self._consumer = RecordConsumer(
            self.pipeline,
            self.writer.write,
            name='trace-writer',
            report_every=self.config.pipeline.report_every,
        )
        self._consumer.start()

        self.connection.add_listener(self)
        self.connection.connect()

    def stop(self) -> None:
        """End the recording; records already queued are still written."""
        self.connection.close()
        self.pipeline.close()

    def wait(self) -> None:
        """Block until the writer thread has drained the pipeline."""
        if self._consumer is None:
            return
        self._consumer.join()
        if self._consumer.error is not None:
            raise self._consumer.error

    def run(self) -> RecordingResult:
        """
        Record until the connection is lost or the user interrupts.

        Raises:
            OutputExists / OutputUnavailable: The first file cannot be created
            ConnectionLost: The connection could not be established
        """
        start = time.monotonic()
        try:
            self.start()
            self.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted, closing recording")
            self.stop()
            self.wait()
        finally:
            self.pipeline.close()
            if self._consumer is not None:
                self._consumer.join()
            self.connection.close()
            self.writer.close()

        logger.info(f"Recorded {self.writer.records_written} records to {len(self.writer.files)} file(s)")
        return RecordingResult(
            files=list(self.writer.files),
            records_received=self.records_received,
            records_filtered=self.records_filtered,
            records_written=self.writer.records_written,
            duration_seconds=time.monotonic() - start,
        )
