"""Trace record model, codecs, readers and writers."""

from .record import SampleRecord, PhysicalLayer, DEVICE_ID_SIZE, MIN_BODY_LENGTH, make_id
from .codec import SampleCodec
from .payload import DecodedPayload, decode_payload, to_hex
from .reader import TraceReader, TraceFile, TraceSummary
from .writer import TraceWriter, RotatingTraceWriter, TRACE_EXTENSION

__all__ = [
    'SampleRecord',
    'PhysicalLayer',
    'DEVICE_ID_SIZE',
    'MIN_BODY_LENGTH',
    'make_id',
    'SampleCodec',
    'DecodedPayload',
    'decode_payload',
    'to_hex',
    'TraceReader',
    'TraceFile',
    'TraceSummary',
    'TraceWriter',
    'RotatingTraceWriter',
    'TRACE_EXTENSION',
]
