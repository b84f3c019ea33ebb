"""Pytest fixtures shared by the gss-trace tests."""

from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from gss_trace.formats.codec import SampleCodec
from gss_trace.formats.record import SampleRecord, PhysicalLayer, make_id


def make_record(
    timestamp: int = 1_300_000_000_000,
    offset: int = 0,
    physical_layer: int = PhysicalLayer.PIPSQUEAK,
    device: int = 0x000102,
    receiver: int = 0x0A0B0C,
    rssi: float = -67.5,
    data: Optional[bytes] = b'\x04\x80',
) -> SampleRecord:
    """Build a record; rssi defaults to a value exact in single precision."""
    return SampleRecord(
        physical_layer=physical_layer,
        device_id=make_id(device),
        receiver_id=make_id(receiver),
        receiver_timestamp=timestamp,
        rssi=rssi,
        sensed_data=data,
        offset=offset,
    )


def write_trace(path: Path, records: Iterable[SampleRecord]) -> Path:
    """Write records to path in file framing."""
    with open(path, 'wb') as f:
        for record in records:
            f.write(SampleCodec.encode(record))
    return path


def timed_records(timestamps: List[int], start_offset: int = 0) -> List[SampleRecord]:
    """Records whose offsets follow their timestamps, starting at start_offset."""
    first = timestamps[0] if timestamps else 0
    return [
        make_record(timestamp=ts, offset=start_offset + ts - first, device=i + 1)
        for i, ts in enumerate(timestamps)
    ]


@pytest.fixture
def record() -> SampleRecord:
    return make_record()


@pytest.fixture
def sample_trace(tmp_path) -> Path:
    """A trace of 50 pipsqueak records, 20 ms apart."""
    records = timed_records([1_300_000_000_000 + i * 20 for i in range(50)])
    return write_trace(tmp_path / 'sample.gss', records)


class FakeClock:
    """Millisecond clock that only moves when slept on."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds * 1000.0

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
