"""
Tests for the bounded pipeline.

CRITICAL TESTS:
1. test_backpressure_loses_nothing - fast producer, slow consumer
2. test_fifo_order - records arrive in enqueue order
3. test_stop_wakes_blocked_roles - cancellation at the next blocking call
"""

import threading
import time

import pytest

from gss_trace.pipeline.bounded import (
    BoundedPipeline,
    PipelineCounters,
    RecordConsumer,
    RecordProducer,
    run_pipeline,
)

from conftest import make_record


def records(n):
    return [make_record(timestamp=i, offset=i, device=i + 1) for i in range(n)]


class TestBoundedPipeline:
    """Queue semantics."""

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            BoundedPipeline(capacity=0)

    def test_close_ends_stream_without_timeout(self):
        pipeline = BoundedPipeline(capacity=4, poll_timeout=None)
        pipeline.put(make_record())
        pipeline.close()

        assert pipeline.get() is not None
        assert pipeline.get() is None

    def test_put_after_close_is_refused(self):
        pipeline = BoundedPipeline(capacity=4)
        pipeline.close()
        assert pipeline.put(make_record()) is False
        assert pipeline.counters.records_in == 0

    def test_poll_timeout_ends_stream(self):
        pipeline = BoundedPipeline(capacity=4, poll_timeout=0.2)
        start = time.monotonic()
        assert pipeline.get() is None
        assert time.monotonic() - start >= 0.2
        assert pipeline.timed_out
        assert pipeline.stopped
        assert pipeline.put(make_record()) is False

    def test_full_queue_blocks_producer(self):
        pipeline = BoundedPipeline(capacity=2, poll_timeout=1.0)
        pipeline.put(make_record())
        pipeline.put(make_record())

        accepted = threading.Event()

        def produce():
            pipeline.put(make_record())
            accepted.set()

        thread = threading.Thread(target=produce)
        thread.start()
        assert not accepted.wait(0.3)

        pipeline.get()
        assert accepted.wait(1.0)
        thread.join()

    def test_stop_wakes_blocked_roles(self):
        pipeline = BoundedPipeline(capacity=1, poll_timeout=None)
        pipeline.put(make_record())
        results = {}

        def produce():
            results['put'] = pipeline.put(make_record())

        thread = threading.Thread(target=produce)
        thread.start()
        time.sleep(0.2)
        pipeline.stop()
        thread.join(timeout=1.0)

        assert not thread.is_alive()
        assert results['put'] is False
        assert pipeline.get() is None

    def test_counters_track_bytes(self):
        pipeline = BoundedPipeline(capacity=4)
        record = make_record(data=b'\x01\x02\x03')
        pipeline.put(record)
        pipeline.get()

        assert pipeline.counters.records_in == 1
        assert pipeline.counters.records_out == 1
        assert pipeline.counters.bytes_in == 48
        assert pipeline.counters.bytes_out == 48


class TestRunPipeline:
    """Producer and consumer threads together."""

    def test_fifo_order(self):
        source = records(500)
        received = []
        run_pipeline(source, received.append, capacity=8)
        assert received == source

    def test_backpressure_loses_nothing(self):
        source = records(200)
        received = []

        def slow_sink(record):
            if len(received) % 50 == 0:
                time.sleep(0.01)
            received.append(record)

        counters = run_pipeline(source, slow_sink, capacity=4)

        assert counters.records_in == counters.records_out == 200
        assert len(received) == 200

    def test_on_finish_runs(self):
        finished = []
        run_pipeline(records(3), lambda r: None, on_finish=lambda: finished.append(True))
        assert finished == [True]

    def test_sink_error_propagates_and_flushes(self):
        finished = []

        def failing_sink(record):
            raise RuntimeError("sink broke")

        with pytest.raises(RuntimeError, match="sink broke"):
            run_pipeline(records(100), failing_sink, on_finish=lambda: finished.append(True), capacity=2)
        assert finished == [True]

    def test_source_error_delivers_queued_records(self):
        """Records read before a source failure still reach the sink."""
        def source():
            yield from records(5)
            raise RuntimeError("source broke")

        received = []
        with pytest.raises(RuntimeError, match="source broke"):
            run_pipeline(source(), received.append, capacity=16)
        assert len(received) == 5

    def test_stalled_source_does_not_hang(self):
        """A source that resumes after the consumer gave up is released."""
        def stalled():
            time.sleep(0.5)
            yield from records(10)

        pipeline = BoundedPipeline(capacity=2, poll_timeout=0.2)
        done = []
        thread = threading.Thread(
            target=lambda: done.append(run_pipeline(stalled(), lambda r: None, pipeline=pipeline))
        )
        thread.start()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert pipeline.timed_out
        assert done[0].records_out == 0
        assert done[0].records_in == 0

    def test_explicit_counters(self):
        counters = PipelineCounters()
        pipeline = BoundedPipeline(capacity=4, counters=counters)
        result = run_pipeline(records(10), lambda r: None, pipeline=pipeline)

        assert result is counters
        assert counters.finished_at is not None
        assert counters.to_dict()['records_out'] == 10

    def test_roles_are_threads(self):
        pipeline = BoundedPipeline(capacity=4)
        delivered = []
        producer = RecordProducer(pipeline, records(3))
        consumer = RecordConsumer(pipeline, delivered.append)
        producer.start()
        consumer.start()
        producer.join()
        consumer.join()

        assert consumer.delivered == 3
        assert producer.error is None
        assert pipeline.closed
