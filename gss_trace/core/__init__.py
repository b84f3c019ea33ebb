"""Core error taxonomy for gss-trace."""

from .errors import (
    ErrorCode,
    ERROR_METADATA,
    TraceError,
    TruncatedRecord,
    MalformedLength,
    TraceIOError,
    FieldDecodeError,
    InputUnavailable,
    OutputExists,
    OutputUnavailable,
    ConfigError,
    ConnectionLost,
)

__all__ = [
    'ErrorCode',
    'ERROR_METADATA',
    'TraceError',
    'TruncatedRecord',
    'MalformedLength',
    'TraceIOError',
    'FieldDecodeError',
    'InputUnavailable',
    'OutputExists',
    'OutputUnavailable',
    'ConfigError',
    'ConnectionLost',
]
