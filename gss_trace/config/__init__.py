"""Configuration management for gss-trace."""

from .schema import (
    GssConfig,
    PipelineConfig,
    ReplayConfig,
    RecordingConfig,
    LoggingConfig,
    load_config,
    generate_default_config,
)

__all__ = [
    'GssConfig',
    'PipelineConfig',
    'ReplayConfig',
    'RecordingConfig',
    'LoggingConfig',
    'load_config',
    'generate_default_config',
]
