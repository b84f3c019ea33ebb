"""Paced replay of trace files."""

from .pacing import PacingEngine, PacingStats, DEFAULT_DRIFT_TOLERANCE_MS, wall_clock_ms
from .session import ReplaySession, ReplayResult

__all__ = [
    'PacingEngine',
    'PacingStats',
    'DEFAULT_DRIFT_TOLERANCE_MS',
    'wall_clock_ms',
    'ReplaySession',
    'ReplayResult',
]
