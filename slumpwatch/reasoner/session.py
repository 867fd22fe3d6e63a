from __future__ import annotations

import logging
from typing import Callable, Optional

from slumpwatch.analytics.tracker import AnalyticsTracker
from slumpwatch.common.app_state import AppState
from slumpwatch.common.schemas import PostureReading
from slumpwatch.common.utils import clamp01, now_s
from slumpwatch.config import ANALYTICS_SAVE_SECONDS
from slumpwatch.warning.ramp import WarningController

log = logging.getLogger(__name__)


class PostureMonitor:
    """Consumer side of one detector: readings in, warning intensity and analytics out.

    Lives on the consumer ("main") thread; detectors deliver readings through
    their dispatcher so no method here is called concurrently.
    """

    def __init__(
        self,
        tracker: AnalyticsTracker,
        warnings: WarningController,
        intensity: float = 1.0,
        warning_onset_delay: float = 0.0,
        clock: Callable[[], float] = now_s,
    ):
        self.tracker = tracker
        self.warnings = warnings
        self.intensity = float(intensity)
        self.warning_onset_delay = float(warning_onset_delay)
        self._clock = clock
        self.last_reading = PostureReading.good()
        self.is_away = False
        self._bad_since: Optional[float] = None
        self._since_save = 0.0

    @property
    def is_slouching(self) -> bool:
        return self.last_reading.is_bad_posture

    def handle_reading(self, reading: PostureReading) -> None:
        was_bad = self.last_reading.is_bad_posture
        self.last_reading = reading
        if reading.is_bad_posture and not was_bad:
            self._bad_since = reading.timestamp
            self.tracker.record_slouch_event()
            log.debug("Slouch started at %.3f severity=%.2f", reading.timestamp, reading.severity)
        elif not reading.is_bad_posture:
            self._bad_since = None

    def set_away(self, away: bool) -> None:
        if away != self.is_away:
            log.info("User %s", "away" if away else "present")
        self.is_away = away

    @property
    def posture_warning_intensity(self) -> float:
        if self._bad_since is None or self.is_away:
            return 0.0
        if self._clock() - self._bad_since < self.warning_onset_delay:
            return 0.0
        return clamp01(self.last_reading.severity * self.intensity)

    def tick_warning(self) -> bool:
        return self.warnings.update(self.posture_warning_intensity, self.is_away)

    def tick_analytics(self, interval: float, app_state: AppState) -> None:
        if not app_state.is_monitoring or self.is_away:
            return
        self.tracker.track_time(interval, self.is_slouching)
        self._since_save += interval
        if self._since_save >= ANALYTICS_SAVE_SECONDS:
            self._since_save = 0.0
            self.tracker.save_history_if_needed()

    def reset(self) -> None:
        """Forget posture state, e.g. after switching tracking source."""
        self.last_reading = PostureReading.good(self._clock())
        self._bad_since = None
        self.is_away = False
