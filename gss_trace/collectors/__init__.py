"""Connections to the aggregation service and live recording."""

from .connection import (
    ConnectionListener,
    SampleConnection,
    LoopbackConnection,
    TCPSampleConnection,
)
from .recorder import TraceRecorder, RecordingResult

__all__ = [
    'ConnectionListener',
    'SampleConnection',
    'LoopbackConnection',
    'TCPSampleConnection',
    'TraceRecorder',
    'RecordingResult',
]
