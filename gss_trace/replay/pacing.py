"""
Wall-clock pacing for trace replay.

Each stored record carries an offset in milliseconds from the start of its
recording. Replay sends record N no earlier than

    replay_start + offset / speed

where replay_start is the wall-clock time of the first opportunity to send.
Records within drift_tolerance_ms of their due time go out immediately.
Late records are never dropped; the engine does not try to catch up.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..core.errors import ConfigError
from ..formats.record import SampleRecord

logger = logging.getLogger(__name__)


DEFAULT_DRIFT_TOLERANCE_MS = 10


def wall_clock_ms() -> float:
    """Milliseconds since the epoch."""
    return time.time() * 1000.0


@dataclass
class PacingStats:
    """What the engine did while pacing."""
    paced: int = 0
    delayed: int = 0
    late: int = 0
    slept_ms: float = 0.0
    max_lag_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            'paced': self.paced,
            'delayed': self.delayed,
            'late': self.late,
            'slept_ms': round(self.slept_ms, 1),
            'max_lag_ms': round(self.max_lag_ms, 1),
        }


class PacingEngine:
    """
    Decide when each record of a replay may be sent.

    clock returns wall-clock milliseconds and sleep takes seconds; both are
    injectable so pacing can be driven by a fake clock.

    Example:
        engine = PacingEngine(speed=2.0, update_timestamps=True)
        engine.start()
        for record in records:
            connection.send(engine.pace(record))
    """

    def __init__(
        self,
        speed: float = 1.0,
        drift_tolerance_ms: float = DEFAULT_DRIFT_TOLERANCE_MS,
        update_timestamps: bool = False,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if speed <= 0:
            raise ConfigError(f"Playback speed must be positive: {speed}")
        if drift_tolerance_ms < 0:
            raise ConfigError(f"Drift tolerance must not be negative: {drift_tolerance_ms}")

        self.speed = float(speed)
        self.drift_tolerance_ms = drift_tolerance_ms
        self.update_timestamps = update_timestamps
        self._clock = clock or wall_clock_ms
        self._interrupt = threading.Event()
        self._sleep = sleep or self._interruptible_sleep

        self.replay_start: Optional[float] = None
        self.stats = PacingStats()

    @property
    def started(self) -> bool:
        return self.replay_start is not None

    @property
    def interrupted(self) -> bool:
        return self._interrupt.is_set()

    def interrupt_on(self, event: threading.Event) -> None:
        """Cut pacing sleeps short once event is set."""
        self._interrupt = event

    def cancel(self) -> None:
        self._interrupt.set()

    def _interruptible_sleep(self, seconds: float) -> None:
        self._interrupt.wait(seconds)

    def start(self, now: Optional[float] = None) -> float:
        """Fix replay_start. Later calls keep the first value."""
        if self.replay_start is None:
            self.replay_start = self._clock() if now is None else now
            logger.debug(f"Replay started at {self.replay_start:.0f} ms (speed {self.speed}x)")
        return self.replay_start

    def simulated_elapsed(self, now: Optional[float] = None) -> float:
        """Recording time covered so far, in milliseconds."""
        if now is None:
            now = self._clock()
        return (now - self.start(now)) * self.speed

    def delay_for(self, offset: int, now: Optional[float] = None) -> float:
        """
        Milliseconds to wait before sending a record stored at offset.

        Returns 0 when the record is due, within tolerance, or late.
        """
        simulated = self.simulated_elapsed(now)
        if simulated + self.drift_tolerance_ms < offset:
            return (offset - simulated) / self.speed
        return 0.0

    def pace(self, record: SampleRecord) -> Optional[SampleRecord]:
        """
        Wait until record is due and return the record to send.

        In timestamp-update mode the returned record carries the current
        wall-clock time as its receiver timestamp.

        Returns:
            None if the engine was interrupted while waiting
        """
        now = self._clock()
        delay = self.delay_for(record.offset, now)

        if delay > 0:
            self.stats.delayed += 1
            self.stats.slept_ms += delay
            self._sleep(delay / 1000.0)
            if self.interrupted:
                return None
        else:
            lag = self.simulated_elapsed(now) - record.offset
            if lag > self.drift_tolerance_ms:
                self.stats.late += 1
                self.stats.max_lag_ms = max(self.stats.max_lag_ms, lag)

        if self.update_timestamps:
            record = record.with_timing(receiver_timestamp=int(self._clock()))

        self.stats.paced += 1
        return record
