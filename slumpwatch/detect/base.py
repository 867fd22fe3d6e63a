from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

from slumpwatch.common.schemas import (
    CalibrationProfile,
    CalibrationSample,
    PostureReading,
    TrackingSource,
)

StartCompletion = Callable[[bool, Optional[str]], None]

AUTHORIZED = "authorized"
NOT_DETERMINED = "not_determined"
DENIED = "denied"
RESTRICTED = "restricted"


@runtime_checkable
class PostureDetector(Protocol):
    """Operations every tracking source implements.

    Callbacks are plain attributes set by the consumer; they are delivered through
    the detector's dispatcher, never from inside the capture callback directly.
    """

    tracking_source: TrackingSource
    on_posture_reading: Optional[Callable[[PostureReading], None]]
    on_calibration_update: Optional[Callable[[CalibrationSample], None]]
    on_connection_state_change: Optional[Callable[[bool], None]]
    on_away_state_change: Optional[Callable[[bool], None]]

    @property
    def is_available(self) -> bool: ...

    @property
    def is_active(self) -> bool: ...

    @property
    def is_connected(self) -> bool: ...

    @property
    def unavailable_reason(self) -> Optional[str]: ...

    def start(self, completion: StartCompletion) -> None: ...

    def stop(self) -> None: ...

    def get_current_calibration_sample(self) -> CalibrationSample: ...

    def create_calibration_profile(
        self, samples: Sequence[CalibrationSample]
    ) -> Optional[CalibrationProfile]: ...

    def begin_monitoring(self, profile: CalibrationProfile, intensity: float, dead_zone: float) -> None: ...

    def update_parameters(self, intensity: float, dead_zone: float) -> None: ...


class StartGate:
    """Generation counter that invalidates in-flight async starts.

    begin() captures a token for a start; stop() bumps the generation so any
    completion carrying an older token is reported stale.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self.stale_starts = 0

    def begin(self) -> int:
        with self._lock:
            return self._generation

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1

    def is_current(self, token: int) -> bool:
        with self._lock:
            if token == self._generation:
                return True
            self.stale_starts += 1
            return False


def reasons_for(status: str, subject: str) -> Optional[str]:
    """Human-readable failure reason for an authorization status, None if usable."""
    table = {
        DENIED: f"{subject} access denied. Grant access in your system privacy settings.",
        RESTRICTED: f"{subject} access is restricted on this device.",
    }
    if status in (AUTHORIZED, NOT_DETERMINED):
        return None
    return table.get(status, f"Unknown {subject.lower()} authorization status")

