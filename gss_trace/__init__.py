"""
gss-trace - Capture, merge, replay and export sensor sample traces.

This package provides:
- formats: Sample record model, binary codec, trace readers and writers
- pipeline: Bounded producer/consumer pipeline, merging, CSV conversion
- replay: Wall-clock pacing and replay sessions
- collectors: Connection boundary and live recording
- render: CSV projections of records
- config: YAML configuration with environment variable support
- cli: Command-line interface
"""

__version__ = "1.0.0"

from .core import TraceError
from .formats import (
    SampleRecord,
    PhysicalLayer,
    SampleCodec,
    DecodedPayload,
    decode_payload,
    TraceReader,
    TraceWriter,
    RotatingTraceWriter,
)
from .pipeline import BoundedPipeline, run_pipeline, TraceMerger, CsvExporter
from .replay import PacingEngine, ReplaySession
from .collectors import SampleConnection, LoopbackConnection, TCPSampleConnection, TraceRecorder
from .config import GssConfig, load_config

__all__ = [
    # Version
    '__version__',
    # Errors
    'TraceError',
    # Formats
    'SampleRecord',
    'PhysicalLayer',
    'SampleCodec',
    'DecodedPayload',
    'decode_payload',
    'TraceReader',
    'TraceWriter',
    'RotatingTraceWriter',
    # Pipelines
    'BoundedPipeline',
    'run_pipeline',
    'TraceMerger',
    'CsvExporter',
    # Replay
    'PacingEngine',
    'ReplaySession',
    # Collectors
    'SampleConnection',
    'LoopbackConnection',
    'TCPSampleConnection',
    'TraceRecorder',
    # Config
    'GssConfig',
    'load_config',
]
