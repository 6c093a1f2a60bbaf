# player/estimator.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from core.models import PlaybackEstimate

logger = logging.getLogger(__name__)

# Drift correction tuning. Some players (NetEase Cloud Music for one) keep
# reporting the previous track's position for a moment after a track change.
RETRY_DELAY_MS = 500
RETRY_MAX_ATTEMPTS = 7
END_GUARD_MS = 500

DEFAULT_REFRESH_INTERVAL_MS = 60
MIN_REFRESH_INTERVAL_MS = 20
MAX_REFRESH_INTERVAL_MS = 500


def clamp_interval(ms: int) -> int:
    return max(MIN_REFRESH_INTERVAL_MS, min(MAX_REFRESH_INTERVAL_MS, int(ms)))


@dataclass
class DriftState:
    """Bookkeeping of one bounded retry loop."""
    attempt: int
    last_value: Optional[int]
    length_ms: int


class PositionEstimator(QObject):
    """
    Locally ticking playback position, corrected by reads from a position source.

    The source must provide request_position(cb) and call cb(position_ms) once,
    with None when the read failed. At most one read is in flight at a time.
    """
    ticked = Signal(int)            # estimated position, ms
    corrected = Signal(int)         # accepted position after a drift correction

    def __init__(
        self,
        source=None,
        refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        retry_delay_ms: int = RETRY_DELAY_MS,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        end_guard_ms: int = END_GUARD_MS,
        parent=None,
    ):
        super().__init__(parent)
        self.source = source
        self.clock = clock
        self.retry_delay_ms = retry_delay_ms
        self.max_attempts = max_attempts
        self.end_guard_ms = end_guard_ms

        self._estimate: Optional[PlaybackEstimate] = None
        self._last_read: Optional[int] = None

        # generation counter; a reply carrying an older value is ignored
        self._generation = 0
        self._in_flight = False
        self._drift: Optional[DriftState] = None

        self._retry_timer = QTimer(self)
        self._retry_timer.setSingleShot(True)
        self._retry_timer.timeout.connect(self._drift_read)

        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(clamp_interval(refresh_interval_ms))
        self._tick_timer.timeout.connect(self._on_tick)

    # ----------------------------
    # Estimate
    # ----------------------------

    @property
    def estimate(self) -> Optional[PlaybackEstimate]:
        return self._estimate

    def resync(self, raw_position_ms: int) -> PlaybackEstimate:
        self._estimate = PlaybackEstimate(position_ms=int(raw_position_ms), captured_at=self.clock())
        return self._estimate

    def estimate_now(self) -> int:
        if self._estimate is None:
            return 0
        elapsed_ms = (self.clock() - self._estimate.captured_at) * 1000.0
        return max(0, int(round(self._estimate.position_ms + elapsed_ms)))

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def correcting(self) -> bool:
        return self._drift is not None

    # ----------------------------
    # Source reads
    # ----------------------------

    def _request(self, on_value: Callable[[Optional[int]], None]) -> None:
        if self.source is None:
            on_value(None)
            return

        generation = self._generation
        self._in_flight = True

        def reply(value: Optional[int]) -> None:
            if generation != self._generation:
                return
            self._in_flight = False
            on_value(value)

        try:
            self.source.request_position(reply)
        except Exception as e:
            logger.debug("Position read failed: %s", e)
            reply(None)

    def request_resync(self) -> bool:
        """Single authoritative read. Dropped while another read is in flight."""
        if self._in_flight or self._drift is not None:
            return False
        self._request(self._on_plain_value)
        return True

    def _on_plain_value(self, value: Optional[int]) -> None:
        if value is None:
            return
        self._last_read = value
        self.resync(value)

    # ----------------------------
    # Drift correction
    # ----------------------------

    def correct_drift(self, length_ms: int) -> bool:
        """
        Resync after a track change, retrying while the reading looks stale:
        unchanged from the last read, unknown track length, or too close to the
        end. Gives up after max_attempts and keeps the best reading.
        Returns False when a correction is already running.
        """
        if self._drift is not None:
            return False

        if self._in_flight:
            # a plain tick read is superseded by the correction
            self._generation += 1
            self._in_flight = False

        self._drift = DriftState(attempt=0, last_value=self._last_read, length_ms=int(length_ms or 0))
        self._drift_read()
        return True

    def _drift_read(self) -> None:
        if self._drift is None:
            return
        self._drift.attempt += 1
        self._request(self._on_drift_value)

    def _looks_stale(self, state: DriftState, value: int) -> bool:
        if value == state.last_value:
            return True
        if state.length_ms <= 0:
            return True
        return state.length_ms - value < self.end_guard_ms

    def _on_drift_value(self, value: Optional[int]) -> None:
        state = self._drift
        if state is None:
            return

        if value is None:
            # position unknown: keep the current estimate
            self._drift = None
            return

        if self._looks_stale(state, value) and state.attempt < self.max_attempts:
            state.last_value = value
            self._retry_timer.start(self.retry_delay_ms)
            return

        logger.debug("Drift correction accepted %d ms after %d attempt(s)", value, state.attempt)
        self._drift = None
        self._last_read = value
        self.resync(value)
        self.corrected.emit(value)

    # ----------------------------
    # Tick
    # ----------------------------

    @property
    def ticking(self) -> bool:
        return self._tick_timer.isActive()

    @property
    def refresh_interval_ms(self) -> int:
        return self._tick_timer.interval()

    def start_ticking(self) -> None:
        if not self._tick_timer.isActive():
            self._tick_timer.start()

    def stop_ticking(self) -> None:
        self._tick_timer.stop()

    def set_refresh_interval(self, ms: int) -> None:
        was_active = self._tick_timer.isActive()
        self._tick_timer.stop()
        self._tick_timer.setInterval(clamp_interval(ms))
        if was_active:
            self._tick_timer.start()

    def _on_tick(self) -> None:
        self.request_resync()
        self.ticked.emit(self.estimate_now())

    # ----------------------------
    # Teardown
    # ----------------------------

    def cancel(self) -> None:
        """Stop the tick and any pending correction; late replies are ignored."""
        self._tick_timer.stop()
        self._retry_timer.stop()
        self._drift = None
        self._generation += 1
        self._in_flight = False

    def dispose(self) -> None:
        self.cancel()
        self.source = None
        self.deleteLater()
