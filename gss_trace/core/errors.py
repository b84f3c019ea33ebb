"""
Error codes and exceptions for gss-trace.

Structured error codes for machine-parseable diagnostics.

Format: E{category}{number}
- E1xxx: Data errors (codec, payload)
- E2xxx: Tool errors (input/output files)
- E3xxx: Configuration errors
- E4xxx: Connection errors
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Structured error codes."""

    # E1xxx: Data errors
    E1001_TRUNCATED_RECORD = "E1001"
    E1002_MALFORMED_LENGTH = "E1002"
    E1003_READ_FAILED = "E1003"
    E1004_FIELD_DECODE_FAILED = "E1004"

    # E2xxx: Tool errors
    E2001_INPUT_UNAVAILABLE = "E2001"
    E2002_OUTPUT_EXISTS = "E2002"
    E2003_OUTPUT_UNAVAILABLE = "E2003"

    # E3xxx: Configuration errors
    E3001_INVALID_CONFIG = "E3001"

    # E4xxx: Connection errors
    E4001_CONNECTION_LOST = "E4001"


ERROR_METADATA = {
    ErrorCode.E1001_TRUNCATED_RECORD: {
        'severity': 'warning',
        'message': 'Stream ended inside a record',
        'recoverable': True,
    },
    ErrorCode.E1002_MALFORMED_LENGTH: {
        'severity': 'error',
        'message': 'Declared record length is below the minimum record size',
        'recoverable': False,
    },
    ErrorCode.E1003_READ_FAILED: {
        'severity': 'error',
        'message': 'Underlying stream read or write failed',
        'recoverable': False,
    },
    ErrorCode.E1004_FIELD_DECODE_FAILED: {
        'severity': 'warning',
        'message': 'Payload field could not be decoded',
        'recoverable': True,
    },
    ErrorCode.E2001_INPUT_UNAVAILABLE: {
        'severity': 'error',
        'message': 'Input file cannot be read',
        'recoverable': False,
    },
    ErrorCode.E2002_OUTPUT_EXISTS: {
        'severity': 'error',
        'message': 'Output file already exists',
        'recoverable': False,
    },
    ErrorCode.E2003_OUTPUT_UNAVAILABLE: {
        'severity': 'error',
        'message': 'Output file cannot be created',
        'recoverable': False,
    },
    ErrorCode.E3001_INVALID_CONFIG: {
        'severity': 'error',
        'message': 'Invalid configuration',
        'recoverable': False,
    },
    ErrorCode.E4001_CONNECTION_LOST: {
        'severity': 'error',
        'message': 'Connection can no longer accept records',
        'recoverable': False,
    },
}


class TraceError(Exception):
    """
    Base exception carrying a structured error code.

    Example:
        raise MalformedLength(context={'length': 12, 'minimum': 45})
    """

    code = ErrorCode.E3001_INVALID_CONFIG

    def __init__(self, detail: Optional[str] = None, context: Optional[dict] = None):
        self.detail = detail
        self.context = context
        super().__init__(self.message)

    @property
    def severity(self) -> str:
        return ERROR_METADATA.get(self.code, {}).get('severity', 'error')

    @property
    def message(self) -> str:
        base_msg = self.detail or ERROR_METADATA.get(self.code, {}).get('message', 'Unknown error')
        if self.context:
            return f"{base_msg}: {self.context}"
        return base_msg

    @property
    def recoverable(self) -> bool:
        return ERROR_METADATA.get(self.code, {}).get('recoverable', False)

    def to_dict(self) -> dict:
        return {
            'code': self.code.value,
            'severity': self.severity,
            'message': self.message,
            'recoverable': self.recoverable,
            'context': self.context,
        }


class TruncatedRecord(TraceError):
    """Stream ended before a declared record was complete."""
    code = ErrorCode.E1001_TRUNCATED_RECORD


class MalformedLength(TraceError):
    """Declared record length cannot hold the fixed record fields."""
    code = ErrorCode.E1002_MALFORMED_LENGTH


class TraceIOError(TraceError):
    """Underlying read or write failure."""
    code = ErrorCode.E1003_READ_FAILED


class FieldDecodeError(TraceError):
    """One payload field failed to decode."""
    code = ErrorCode.E1004_FIELD_DECODE_FAILED


class InputUnavailable(TraceError):
    code = ErrorCode.E2001_INPUT_UNAVAILABLE


class OutputExists(TraceError):
    code = ErrorCode.E2002_OUTPUT_EXISTS


class OutputUnavailable(TraceError):
    code = ErrorCode.E2003_OUTPUT_UNAVAILABLE


class ConfigError(TraceError):
    code = ErrorCode.E3001_INVALID_CONFIG


class ConnectionLost(TraceError):
    code = ErrorCode.E4001_CONNECTION_LOST
