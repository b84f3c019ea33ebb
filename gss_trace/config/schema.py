"""
Configuration schema for gss-trace.

Supports:
- YAML file loading
- Environment variable substitution (${VAR_NAME})
- Validation with error messages

Example config (gss.yml):
    version: 1

    pipeline:
      capacity: 1024
      poll_timeout_seconds: 3.0

    replay:
      speed: 2.0
      update_timestamps: true

    recording:
      base_name: ${GSS_RECORDING_NAME}
      rotate_seconds: 3600

    logging:
      level: DEBUG
"""

import os
import re
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Any

import yaml


LOG_LEVEL_ENV = 'GSS_LOG_LEVEL'

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _substitute_env_vars(value: Any) -> Any:
    """
    Substitute ${VAR_NAME} with environment variable values.

    Example:
        ${GSS_RECORDING_NAME} → os.environ.get('GSS_RECORDING_NAME')
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}]+)\}'

        def replace(match):
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                return match.group(0)  # Keep original if not found
            return env_value

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]

    return value


@dataclass
class PipelineConfig:
    """Bounded pipeline settings."""
    capacity: int = 1024
    # Consumer end-of-stream timeout. Bounds shutdown latency when a
    # producer stalls; must exceed normal file and network stalls.
    poll_timeout_seconds: float = 3.0
    read_buffer_bytes: int = 1 << 20
    report_every: int = 1 << 20


@dataclass
class ReplayConfig:
    """Replay pacing settings."""
    speed: float = 1.0
    drift_tolerance_ms: int = 10
    update_timestamps: bool = False
    ready_poll_seconds: float = 0.1


@dataclass
class RecordingConfig:
    """Live recording settings."""
    base_name: Optional[str] = None
    directory: str = '.'
    physical_layer: int = 0
    rotate_seconds: int = 0
    extension: str = '.gss'


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = 'INFO'


@dataclass
class GssConfig:
    """Root configuration."""

    version: int = 1
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    replay: ReplayConfig = field(default_factory=ReplayConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path) -> 'GssConfig':
        """Load from YAML file with env var substitution."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        data = _substitute_env_vars(data)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'GssConfig':
        """
        Create from dictionary.

        $GSS_LOG_LEVEL supplies the log level when logging.level is not set.
        """
        logging_data = dict(data.get('logging') or {})
        env_level = os.environ.get(LOG_LEVEL_ENV)
        if env_level and 'level' not in logging_data:
            logging_data['level'] = env_level.strip().upper()

        return cls(
            version=data.get('version', 1),
            pipeline=PipelineConfig(**(data.get('pipeline') or {})),
            replay=ReplayConfig(**(data.get('replay') or {})),
            recording=RecordingConfig(**(data.get('recording') or {})),
            logging=LoggingConfig(**logging_data),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate config. Returns list of errors (empty if valid)."""
        errors = []

        if self.pipeline.capacity <= 0:
            errors.append(f"Invalid pipeline capacity: {self.pipeline.capacity}")

        if self.pipeline.poll_timeout_seconds <= 0:
            errors.append(f"Invalid poll_timeout_seconds: {self.pipeline.poll_timeout_seconds}")

        if self.pipeline.read_buffer_bytes <= 0:
            errors.append(f"Invalid read_buffer_bytes: {self.pipeline.read_buffer_bytes}")

        if self.replay.speed <= 0:
            errors.append(f"Invalid playback speed: {self.replay.speed}")

        if self.replay.drift_tolerance_ms < 0:
            errors.append(f"Invalid drift_tolerance_ms: {self.replay.drift_tolerance_ms}")

        if not 0 <= self.recording.physical_layer <= 255:
            errors.append(f"Invalid physical layer: {self.recording.physical_layer}")

        if self.recording.rotate_seconds < 0:
            errors.append(f"Invalid rotate_seconds: {self.recording.rotate_seconds}")

        if self.logging.level.upper() not in LOG_LEVELS:
            errors.append(f"Invalid log level: {self.logging.level}")

        return errors


def load_config(path: Optional[Path] = None) -> GssConfig:
    """Load config from file or return defaults."""
    if path and Path(path).exists():
        return GssConfig.load(path)

    search_paths = [
        Path('./gss.yml'),
        Path('./gss.yaml'),
        Path.home() / '.gss' / 'config.yml',
    ]

    for p in search_paths:
        if p.exists():
            return GssConfig.load(p)

    return GssConfig.from_dict({})


def generate_default_config() -> str:
    """Generate default config as YAML."""
    return """# gss-trace configuration
version: 1

pipeline:
  capacity: 1024
  poll_timeout_seconds: 3.0
  read_buffer_bytes: 1048576
  report_every: 1048576

replay:
  speed: 1.0
  drift_tolerance_ms: 10
  update_timestamps: false

recording:
  # base_name: ${GSS_RECORDING_NAME}
  base_name: null
  directory: .
  physical_layer: 0
  rotate_seconds: 0
  extension: .gss

logging:
  level: INFO
"""
