from __future__ import annotations

from typing import Callable, Optional

from slumpwatch.config import AWAY_FRAME_THRESHOLD


class AwayDetector:
    """Counts consecutive frames without a face/body and flags the user as away.

    on_change is a level signal, repeated on every qualifying frame.
    on_edge fires only when the away state actually flips.
    """

    def __init__(self, threshold: int = AWAY_FRAME_THRESHOLD, enabled: bool = False):
        self.threshold = int(threshold)
        self.enabled = enabled
        self.misses = 0
        self.on_change: Optional[Callable[[bool], None]] = None
        self.on_edge: Optional[Callable[[bool], None]] = None
        self._last_edge = False

    @property
    def is_away(self) -> bool:
        return self.enabled and self.misses >= self.threshold

    def record_detection(self) -> None:
        self.misses = 0
        if not self.enabled:
            return
        if self.on_change is not None:
            self.on_change(False)
        self._emit_edge(False)

    def record_miss(self) -> None:
        # Counter stays frozen while the feature is off
        if not self.enabled:
            return
        self.misses += 1
        if self.misses >= self.threshold:
            if self.on_change is not None:
                self.on_change(True)
            self._emit_edge(True)

    def _emit_edge(self, away: bool) -> None:
        if away == self._last_edge:
            return
        self._last_edge = away
        if self.on_edge is not None:
            self.on_edge(away)
