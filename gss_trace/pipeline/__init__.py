"""Producer/consumer pipelines that move records between sources and sinks."""

from .bounded import (
    BoundedPipeline,
    PipelineCounters,
    RecordProducer,
    RecordConsumer,
    run_pipeline,
    END_OF_STREAM,
    DEFAULT_CAPACITY,
    DEFAULT_POLL_TIMEOUT,
)
from .merge import TimelineRebaser, TraceMerger, MergeResult
from .convert import CsvExporter, ConversionResult

__all__ = [
    'BoundedPipeline',
    'PipelineCounters',
    'RecordProducer',
    'RecordConsumer',
    'run_pipeline',
    'END_OF_STREAM',
    'DEFAULT_CAPACITY',
    'DEFAULT_POLL_TIMEOUT',
    'TimelineRebaser',
    'TraceMerger',
    'MergeResult',
    'CsvExporter',
    'ConversionResult',
]
