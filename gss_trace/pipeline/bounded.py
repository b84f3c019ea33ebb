"""
Bounded producer/consumer pipeline for sample records.

One producer thread and one consumer thread share a fixed-capacity queue:

    source --> RecordProducer --> [BoundedPipeline] --> RecordConsumer --> sink

Backpressure: put() blocks while the queue is full, so a slow consumer
throttles the producer and no record is ever dropped.

End of stream: the producer enqueues an explicit sentinel when its source
is exhausted. The consumer also gives up after poll_timeout seconds without
a record; this bounds shutdown latency if a producer stalls. Giving up stops
the pipeline, so a producer that later resumes is released instead of
blocking on a queue nobody drains. Set poll_timeout=None for live feeds that
may legitimately go quiet.

Cancellation: stop() is observed by both roles at their next blocking call,
which wakes at least every POLL_SLICE seconds.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from ..formats.record import SampleRecord

logger = logging.getLogger(__name__)


DEFAULT_CAPACITY = 1024

# Consumer end-of-stream timeout in seconds
DEFAULT_POLL_TIMEOUT = 3.0

# Granularity at which blocked calls re-check for stop()
POLL_SLICE = 0.1

# Log throughput every this many records (DEBUG level)
DEFAULT_REPORT_EVERY = 1 << 20


class _EndOfStream:
    def __repr__(self) -> str:
        return 'END_OF_STREAM'


END_OF_STREAM = _EndOfStream()


@dataclass
class PipelineCounters:
    """
    Throughput counters owned by one pipeline.

    records_in/bytes_in are only written by the producer role and
    records_out/bytes_out only by the consumer role.
    """
    records_in: int = 0
    records_out: int = 0
    bytes_in: int = 0
    bytes_out: int = 0
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(end - self.started_at, 0.0)

    def rate(self) -> float:
        """Records delivered per second."""
        elapsed = self.elapsed
        if elapsed <= 0:
            return 0.0
        return self.records_out / elapsed

    def to_dict(self) -> dict:
        return {
            'records_in': self.records_in,
            'records_out': self.records_out,
            'bytes_in': self.bytes_in,
            'bytes_out': self.bytes_out,
            'elapsed_seconds': round(self.elapsed, 3),
            'records_per_second': round(self.rate(), 1),
        }


class BoundedPipeline:
    """
    Fixed-capacity FIFO between exactly one producer and one consumer.

    Example:
        pipeline = BoundedPipeline(capacity=1024)
        # producer thread
        pipeline.put(record)
        pipeline.close()
        # consumer thread
        for record in pipeline:
            handle(record)
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        poll_timeout: Optional[float] = DEFAULT_POLL_TIMEOUT,
        counters: Optional[PipelineCounters] = None,
    ):
        if capacity <= 0:
            raise ValueError(f"Pipeline capacity must be positive: {capacity}")
        self.capacity = capacity
        self.poll_timeout = poll_timeout
        self.counters = counters or PipelineCounters()

        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._stop = threading.Event()
        self._closed = False
        self._timed_out = False

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def timed_out(self) -> bool:
        """True if the consumer gave up waiting before end of stream."""
        return self._timed_out

    @property
    def stop_event(self) -> threading.Event:
        """Set once stop() is called. Lets long waits outside the queue observe it."""
        return self._stop

    def stop(self) -> None:
        """Ask both roles to exit at their next blocking call."""
        self._stop.set()

    def qsize(self) -> int:
        return self._queue.qsize()

    def _put(self, item) -> bool:
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=POLL_SLICE)
                return True
            except queue.Full:
                continue
        return False

    def put(self, record: SampleRecord) -> bool:
        """
        Enqueue a record, blocking while the queue is full.

        Returns:
            False if the pipeline was closed or stopped before the record
            was accepted
        """
        if self._closed:
            return False
        if not self._put(record):
            return False
        self.counters.records_in += 1
        self.counters.bytes_in += record.body_length
        return True

    def close(self) -> None:
        """Signal end of stream to the consumer."""
        if self._closed:
            return
        self._closed = True
        self._put(END_OF_STREAM)

    def get(self) -> Optional[SampleRecord]:
        """
        Dequeue the next record.

        Returns:
            The next record, or None on end of stream, stop(), or when
            poll_timeout elapses with nothing delivered. A timeout also
            stops the pipeline.
        """
        deadline = None
        if self.poll_timeout is not None:
            deadline = time.monotonic() + self.poll_timeout

        while not self._stop.is_set():
            wait = POLL_SLICE
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.info(
                        f"No record within {self.poll_timeout:.1f}s, treating as end of stream"
                    )
                    self._timed_out = True
                    self.stop()
                    return None
                wait = min(wait, remaining)
            try:
                item = self._queue.get(timeout=wait)
            except queue.Empty:
                continue
            if item is END_OF_STREAM:
                return None
            self.counters.records_out += 1
            self.counters.bytes_out += item.body_length
            return item
        return None

    def __iter__(self):
        while True:
            record = self.get()
            if record is None:
                return
            yield record


class PipelineRole(threading.Thread):
    """
    Base for the two pipeline threads.

    Subclasses implement work(). Any exception is captured in self.error and
    handed to on_error().
    """

    def __init__(self, pipeline: BoundedPipeline, name: str):
        super().__init__(name=name, daemon=True)
        self.pipeline = pipeline
        self.error: Optional[BaseException] = None

    def work(self) -> None:
        raise NotImplementedError

    def on_error(self, error: Exception) -> None:
        """Default: stop the pipeline so the other role exits too."""
        self.pipeline.stop()

    def finish(self) -> None:
        """Always called after work(), even on failure."""

    def run(self) -> None:
        try:
            self.work()
        except Exception as e:
            self.error = e
            logger.error(f"{self.name} failed: {e}")
            self.on_error(e)
        finally:
            self.finish()


class RecordProducer(PipelineRole):
    """Push every record of an iterable into the pipeline, then close it."""

    def __init__(
        self,
        pipeline: BoundedPipeline,
        source: Iterable[SampleRecord],
        name: str = 'record-producer',
        report_every: int = DEFAULT_REPORT_EVERY,
    ):
        super().__init__(pipeline, name)
        self.source = source
        self.report_every = report_every

    def work(self) -> None:
        counters = self.pipeline.counters
        for record in self.source:
            if not self.pipeline.put(record):
                logger.info(f"{self.name} stopped after {counters.records_in} records")
                return
            if self.report_every and counters.records_in % self.report_every == 0:
                logger.debug(f"Read {counters.records_in:,} records ({counters.bytes_in:,} bytes)")
        logger.info(f"Completed reading all {counters.records_in} records")

    def on_error(self, error: Exception) -> None:
        # Records already queued are still delivered; close() follows in finish()
        pass

    def finish(self) -> None:
        self.pipeline.close()


class RecordConsumer(PipelineRole):
    """
    Pull records until end of stream and hand each to sink.

    on_finish runs before the thread exits, so buffered output is flushed
    even when the pipeline was stopped or the sink failed.
    """

    def __init__(
        self,
        pipeline: BoundedPipeline,
        sink: Callable[[SampleRecord], None],
        on_finish: Optional[Callable[[], None]] = None,
        name: str = 'record-consumer',
        report_every: int = DEFAULT_REPORT_EVERY,
    ):
        super().__init__(pipeline, name)
        self.sink = sink
        self.on_finish = on_finish
        self.report_every = report_every
        self.delivered = 0

    def work(self) -> None:
        last_time = time.monotonic()
        last_count = 0
        for record in self.pipeline:
            self.sink(record)
            self.delivered += 1
            if self.report_every and self.delivered % self.report_every == 0:
                now = time.monotonic()
                rate = (self.delivered - last_count) / max(now - last_time, 1e-9)
                last_time, last_count = now, self.delivered
                logger.debug(f"Processed {self.delivered:,} records. ({rate:,.1f} R/s)")
        logger.info(f"Processed {self.delivered} records")

    def finish(self) -> None:
        if self.on_finish is not None:
            try:
                self.on_finish()
            except Exception as e:
                if self.error is None:
                    self.error = e
                logger.error(f"{self.name} failed to finish: {e}")
        self.pipeline.counters.finished_at = time.monotonic()


def run_pipeline(
    source: Iterable[SampleRecord],
    sink: Callable[[SampleRecord], None],
    on_finish: Optional[Callable[[], None]] = None,
    capacity: int = DEFAULT_CAPACITY,
    poll_timeout: Optional[float] = DEFAULT_POLL_TIMEOUT,
    report_every: int = DEFAULT_REPORT_EVERY,
    pipeline: Optional[BoundedPipeline] = None,
) -> PipelineCounters:
    """
    Move every record from source to sink through a bounded pipeline.

    Runs one producer and one consumer thread and waits for both.

    Returns:
        The pipeline's counters

    Raises:
        The first error captured by the producer or the consumer
    """
    if pipeline is None:
        pipeline = BoundedPipeline(capacity=capacity, poll_timeout=poll_timeout)

    producer = RecordProducer(pipeline, source, report_every=report_every)
    consumer = RecordConsumer(pipeline, sink, on_finish=on_finish, report_every=report_every)

    producer.start()
    consumer.start()
    try:
        producer.join()
        consumer.join()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping pipeline")
        pipeline.stop()
        producer.join()
        consumer.join()
        raise

    for role in (producer, consumer):
        if role.error is not None:
            raise role.error

    if pipeline.timed_out:
        counters = pipeline.counters
        logger.warning(
            f"Source stalled for more than {pipeline.poll_timeout:.1f}s; "
            f"delivered {counters.records_out} of {counters.records_in} records read"
        )

    return pipeline.counters
