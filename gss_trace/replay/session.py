"""
Replay one trace file to a connection.

    TraceReader --> RecordProducer --> [BoundedPipeline] --> RecordConsumer
                                                               |  wait until ready
                                                               |  PacingEngine.pace()
                                                               v
                                                        SampleConnection.send()

The replay ends when the trace is exhausted or the connection can no
longer accept records. The trace file and the connection are released in
both cases.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .pacing import PacingEngine, PacingStats
from ..collectors.connection import SampleConnection
from ..config.schema import GssConfig
from ..core.errors import ConnectionLost
from ..formats.reader import TraceReader
from ..formats.record import SampleRecord
from ..pipeline.bounded import BoundedPipeline, run_pipeline

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Outcome of a replay."""
    trace: Path
    records_read: int = 0
    records_sent: int = 0
    connection_lost: bool = False
    duration_seconds: float = 0.0
    pacing: PacingStats = field(default_factory=PacingStats)

    @property
    def completed(self) -> bool:
        return not self.connection_lost and self.records_sent == self.records_read

    def to_dict(self) -> dict:
        return {
            'trace': str(self.trace),
            'records_read': self.records_read,
            'records_sent': self.records_sent,
            'connection_lost': self.connection_lost,
            'duration_seconds': round(self.duration_seconds, 3),
            'pacing': self.pacing.to_dict(),
        }


class ReplaySession:
    """
    Paced replay of a trace file.

    Example:
        connection = TCPSampleConnection('localhost', 7007)
        engine = PacingEngine(speed=4.0)
        result = ReplaySession(Path('lab.gss'), connection, engine).run()
    """

    def __init__(
        self,
        trace_path: Path,
        connection: SampleConnection,
        engine: Optional[PacingEngine] = None,
        config: Optional[GssConfig] = None,
    ):
        self.trace_path = Path(trace_path)
        self.connection = connection
        self.config = config or GssConfig()
        if engine is None:
            replay = self.config.replay
            engine = PacingEngine(
                speed=replay.speed,
                drift_tolerance_ms=replay.drift_tolerance_ms,
                update_timestamps=replay.update_timestamps,
            )
        self.engine = engine
        self.records_sent = 0

    def _wait_ready(self, pipeline: BoundedPipeline) -> bool:
        poll = self.config.replay.ready_poll_seconds
        while not self.connection.is_ready:
            if self.connection.is_closed or pipeline.stopped:
                return False
            self.connection.wait_ready(poll)
        return True

    def _send(self, pipeline: BoundedPipeline, record: SampleRecord) -> None:
        if not self._wait_ready(pipeline):
            if pipeline.stopped:
                return
            raise ConnectionLost("Connection closed before the replay finished")

        if not self.engine.started:
            self.engine.start()
            logger.info(f"Starting replay of {self.trace_path.name} at {self.engine.speed}x")

        paced = self.engine.pace(record)
        if paced is None:
            return
        self.connection.send(paced)
        self.records_sent += 1

    def run(self) -> ReplayResult:
        """
        Replay the whole trace.

        Raises:
            InputUnavailable: The trace cannot be read
            ConnectionLost: The connection could not be established
        """
        start = time.monotonic()
        pipeline_config = self.config.pipeline
        trace_file = TraceReader.open(self.trace_path, read_buffer=pipeline_config.read_buffer_bytes)

        pipeline = BoundedPipeline(
            capacity=pipeline_config.capacity,
            poll_timeout=pipeline_config.poll_timeout_seconds,
        )
        self.engine.interrupt_on(pipeline.stop_event)
        result = ReplayResult(trace=self.trace_path, pacing=self.engine.stats)

        if not self.connection.is_ready:
            try:
                self.connection.connect()
            except ConnectionLost:
                self.connection.close()
                raise

        records = TraceReader.read(trace_file)
        try:
            run_pipeline(
                records,
                lambda record: self._send(pipeline, record),
                report_every=pipeline_config.report_every,
                pipeline=pipeline,
            )
        except ConnectionLost as e:
            logger.warning(f"Connection lost after {self.records_sent} records: {e.message}")
            result.connection_lost = True
        finally:
            records.close()
            self.connection.close()

        result.records_read = pipeline.counters.records_in
        result.records_sent = self.records_sent
        result.duration_seconds = time.monotonic() - start
        logger.info(f"Sent {self.records_sent} of {result.records_read} records")
        return result
