from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, Sequence

from slumpwatch.calibration.engine import motion_profile_from_samples
from slumpwatch.common.schemas import (
    CalibrationProfile,
    CalibrationSample,
    MotionCalibrationSample,
    MotionProfile,
    PostureReading,
    TrackingSource,
)
from slumpwatch.common.utils import Dispatcher, call_now, now_s
from slumpwatch.detect.base import AUTHORIZED, NOT_DETERMINED, StartCompletion, StartGate, reasons_for
from slumpwatch.reasoner.evaluator import MotionPostureEvaluator

log = logging.getLogger(__name__)


class MotionRuntime(Protocol):
    """Hardware seam for head-orientation sources (e.g. headphones with motion sensors)."""

    def is_device_available(self) -> bool: ...

    def authorization_status(self) -> str: ...

    def make_session(
        self, on_motion: Callable[[float, float, float], None], on_connection: Callable[[bool], None]
    ) -> Any: ...

    def start_updates(self, session: Any, completion: Callable[[bool], None]) -> None: ...

    def stop_updates(self, session: Any) -> None: ...


class MotionPostureDetector:
    """Orientation tracking source. Connected only while the device reports wear."""

    tracking_source = TrackingSource.MOTION

    def __init__(self, runtime: MotionRuntime, dispatch: Dispatcher = call_now, clock: Callable[[], float] = now_s):
        self.runtime = runtime
        self._dispatch = dispatch
        self._clock = clock
        self._gate = StartGate()
        self._session: Any = None
        self._active = False
        self._connected = False
        self._monitoring = False

        self.intensity = 1.0
        self.dead_zone = 0.03
        self._evaluator: Optional[MotionPostureEvaluator] = None
        self.current = MotionCalibrationSample(pitch=0.0, roll=0.0, yaw=0.0)

        self.on_posture_reading: Optional[Callable[[PostureReading], None]] = None
        self.on_calibration_update: Optional[Callable[[CalibrationSample], None]] = None
        self.on_connection_state_change: Optional[Callable[[bool], None]] = None
        # Orientation sources have no away signal; removal is reported as disconnection
        self.on_away_state_change: Optional[Callable[[bool], None]] = None

    @property
    def is_available(self) -> bool:
        return self.runtime.is_device_available()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def unavailable_reason(self) -> Optional[str]:
        if not self.runtime.is_device_available():
            return "No compatible motion source found."
        return reasons_for(self.runtime.authorization_status(), "Motion")

    @property
    def stale_starts(self) -> int:
        return self._gate.stale_starts

    def start(self, completion: StartCompletion) -> None:
        if self._session is not None:
            self.stop()
        if not self.runtime.is_device_available():
            completion(False, "No compatible motion source found.")
            return
        status = self.runtime.authorization_status()
        if status not in (AUTHORIZED, NOT_DETERMINED):
            completion(False, reasons_for(status, "Motion"))
            return

        token = self._gate.begin()
        session = self.runtime.make_session(self.motion_update, self.connection_update)
        self._session = session

        def _on_started(ok: bool) -> None:
            self._dispatch(lambda: self._finish_start(token, session, ok, completion))

        self.runtime.start_updates(session, _on_started)

    def _finish_start(self, token: int, session: Any, ok: bool, completion: StartCompletion) -> None:
        if not self._gate.is_current(token):
            log.info("Discarding stale motion start (stale=%d)", self._gate.stale_starts)
            self.runtime.stop_updates(session)
            return
        if not ok:
            self._session = None
            completion(False, "Failed to start motion updates")
            return
        self._active = True
        completion(True, None)

    def stop(self) -> None:
        log.info("Stopping motion updates")
        self._gate.invalidate()
        session, self._session = self._session, None
        if session is not None:
            self.runtime.stop_updates(session)
        self._active = False
        self._monitoring = False
        self._set_connected(False)

    def get_current_calibration_sample(self) -> CalibrationSample:
        return self.current

    def create_calibration_profile(self, samples: Sequence[CalibrationSample]) -> Optional[CalibrationProfile]:
        return motion_profile_from_samples(samples)

    def begin_monitoring(self, profile: CalibrationProfile, intensity: float, dead_zone: float) -> None:
        if not isinstance(profile, MotionProfile):
            log.error("Invalid calibration data type for motion: %s", type(profile).__name__)
            return
        self.intensity = float(intensity)
        self.dead_zone = float(dead_zone)
        self._evaluator = MotionPostureEvaluator(profile, self.dead_zone)
        self._monitoring = True
        log.info("Started motion monitoring with intensity=%.2f, deadZone=%.2f", intensity, dead_zone)

    def update_parameters(self, intensity: float, dead_zone: float) -> None:
        self.intensity = float(intensity)
        self.dead_zone = float(dead_zone)
        if self._evaluator is not None:
            self._evaluator.dead_zone = self.dead_zone

    # --- updates (runtime thread) -----------------------------------------

    def connection_update(self, connected: bool) -> None:
        self._set_connected(connected)

    def motion_update(self, pitch: float, roll: float, yaw: float, ts: Optional[float] = None) -> None:
        now = self._clock() if ts is None else ts
        if not self._connected:
            self._set_connected(True)
        sample = MotionCalibrationSample(pitch=pitch, roll=roll, yaw=yaw)
        self.current = sample
        if self.on_calibration_update is not None:
            cb = self.on_calibration_update
            self._dispatch(lambda: cb(sample))

        if self._monitoring and self._evaluator is not None:
            reading = self._evaluator.evaluate(pitch, roll, yaw, now)
            if self.on_posture_reading is not None:
                cb_reading = self.on_posture_reading
                self._dispatch(lambda: cb_reading(reading))

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        log.info("Motion source %s", "connected" if connected else "disconnected")
        if self.on_connection_state_change is not None:
            cb = self.on_connection_state_change
            self._dispatch(lambda: cb(connected))
