from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence

from slumpwatch.calibration.engine import camera_profile_from_samples
from slumpwatch.common.schemas import (
    CalibrationProfile,
    CalibrationSample,
    CameraCalibrationSample,
    CameraProfile,
    FaceObservation,
    PostureReading,
    TrackingSource,
)
from slumpwatch.common.utils import Dispatcher, call_now, now_s
from slumpwatch.config import DEFAULT_FRAME_INTERVAL, SLOUCHING_FRAME_INTERVAL
from slumpwatch.detect.base import (
    AUTHORIZED,
    NOT_DETERMINED,
    StartCompletion,
    StartGate,
    reasons_for,
)
from slumpwatch.reasoner.away import AwayDetector
from slumpwatch.reasoner.evaluator import CameraPostureEvaluator

log = logging.getLogger(__name__)


class CameraRuntime(Protocol):
    """Hardware seam for the camera detector."""

    def authorization_status(self) -> str: ...

    def request_access(self, completion: Callable[[bool], None]) -> None: ...

    def list_cameras(self) -> List[str]: ...

    def make_session(self, camera_id: Optional[str], sink: Callable[[Optional[FaceObservation]], None]) -> Any: ...

    def start_running(self, session: Any, completion: Callable[[bool], None]) -> None: ...

    def stop_running(self, session: Any) -> None: ...


class CameraPostureDetector:
    """Camera tracking source: face height and width per frame."""

    tracking_source = TrackingSource.CAMERA

    def __init__(
        self,
        runtime: Optional[CameraRuntime] = None,
        dispatch: Dispatcher = call_now,
        clock: Callable[[], float] = now_s,
    ):
        if runtime is None:
            from slumpwatch.ingest.source import OpenCVCameraRuntime

            runtime = OpenCVCameraRuntime()
        self.runtime = runtime
        self._dispatch = dispatch
        self._clock = clock
        self._gate = StartGate()
        self._session: Any = None
        self._active = False
        self._monitoring = False

        self.selected_camera_id: Optional[str] = None
        self.base_frame_interval = DEFAULT_FRAME_INTERVAL
        self._last_frame_time = float("-inf")

        self.intensity = 1.0
        self.dead_zone = 0.03
        self._evaluator: Optional[CameraPostureEvaluator] = None

        self.current_nose_y = 0.5
        self.current_face_width = 0.0

        self.away = AwayDetector()
        self.away.on_change = self._emit_away
        self.away.on_edge = self._emit_away_edge

        self.on_posture_reading: Optional[Callable[[PostureReading], None]] = None
        self.on_calibration_update: Optional[Callable[[CalibrationSample], None]] = None
        self.on_connection_state_change: Optional[Callable[[bool], None]] = None
        self.on_away_state_change: Optional[Callable[[bool], None]] = None
        # Fires only when the away state flips, unlike the per-frame on_away_state_change
        self.on_away_edge: Optional[Callable[[bool], None]] = None

    # --- status -----------------------------------------------------------

    @property
    def is_available(self) -> bool:
        return self.runtime.authorization_status() in (AUTHORIZED, NOT_DETERMINED)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_connected(self) -> bool:
        # A camera has no separate connection state; it is present whenever active
        return True

    @property
    def unavailable_reason(self) -> Optional[str]:
        reason = reasons_for(self.runtime.authorization_status(), "Camera")
        if reason is None and not self.runtime.list_cameras():
            return "No camera found."
        return reason

    @property
    def stale_starts(self) -> int:
        return self._gate.stale_starts

    @property
    def blur_when_away(self) -> bool:
        return self.away.enabled

    @blur_when_away.setter
    def blur_when_away(self, enabled: bool) -> None:
        self.away.enabled = enabled

    @property
    def frame_interval(self) -> float:
        """Throttle interval; shorter while slouching so recovery is noticed sooner."""
        if self._evaluator is not None and self._evaluator.is_currently_slouching:
            return SLOUCHING_FRAME_INTERVAL
        return self.base_frame_interval

    # --- lifecycle --------------------------------------------------------

    def start(self, completion: StartCompletion) -> None:
        if self._session is not None:
            # a second start replaces the running session
            self.stop()
        token = self._gate.begin()
        status = self.runtime.authorization_status()
        if status == AUTHORIZED:
            self._start_session(token, completion)
        elif status == NOT_DETERMINED:
            def _on_access(granted: bool) -> None:
                if granted:
                    self._dispatch(lambda: self._start_session(token, completion))
                else:
                    self._dispatch(lambda: completion(False, "Camera access denied"))

            self.runtime.request_access(_on_access)
        else:
            completion(False, reasons_for(status, "Camera"))

    def _start_session(self, token: int, completion: StartCompletion) -> None:
        if not self._gate.is_current(token):
            log.info("Dropping camera start cancelled while awaiting access (stale=%d)", self._gate.stale_starts)
            return
        session = self.runtime.make_session(self.selected_camera_id, self.capture_output)
        if session is None:
            completion(False, "No camera found.")
            return
        self._session = session
        self.selected_camera_id = session.camera_id

        def _on_started(ok: bool) -> None:
            self._dispatch(lambda: self._finish_start(token, session, ok, completion))

        self.runtime.start_running(session, _on_started)

    def _finish_start(self, token: int, session: Any, ok: bool, completion: StartCompletion) -> None:
        if not self._gate.is_current(token):
            log.info("Discarding stale camera start (stale=%d)", self._gate.stale_starts)
            self.runtime.stop_running(session)
            return
        if not ok:
            self._session = None
            completion(False, "Failed to start camera capture")
            return
        self._active = True
        log.info("Camera session started: %s", session.camera_id)
        completion(True, None)

    def stop(self) -> None:
        log.info("Stopping camera capture")
        self._gate.invalidate()
        session, self._session = self._session, None
        if session is not None:
            self.runtime.stop_running(session)
        self._active = False
        self._monitoring = False

    def switch_camera(self, camera_id: str, completion: Optional[StartCompletion] = None) -> None:
        was_running = self._session is not None
        if was_running:
            self.stop()
        self.selected_camera_id = camera_id
        log.info("Switched to camera: %s", camera_id)
        if was_running:
            self.start(completion or (lambda ok, err: None))

    # --- calibration ------------------------------------------------------

    def get_current_calibration_sample(self) -> CalibrationSample:
        width = self.current_face_width if self.current_face_width > 0 else None
        return CameraCalibrationSample(nose_y=self.current_nose_y, face_width=width)

    def create_calibration_profile(self, samples: Sequence[CalibrationSample]) -> Optional[CalibrationProfile]:
        return camera_profile_from_samples(samples, self.selected_camera_id)

    # --- monitoring -------------------------------------------------------

    def begin_monitoring(self, profile: CalibrationProfile, intensity: float, dead_zone: float) -> None:
        if not isinstance(profile, CameraProfile):
            log.error("Invalid calibration data type for camera: %s", type(profile).__name__)
            return
        self.intensity = float(intensity)
        self.dead_zone = float(dead_zone)
        self._evaluator = CameraPostureEvaluator(profile, self.dead_zone)
        self._monitoring = True
        log.info("Started monitoring with intensity=%.2f, deadZone=%.2f", intensity, dead_zone)

    def update_parameters(self, intensity: float, dead_zone: float) -> None:
        self.intensity = float(intensity)
        self.dead_zone = float(dead_zone)
        if self._evaluator is not None:
            self._evaluator.dead_zone = self.dead_zone

    # --- frame processing (capture thread) --------------------------------

    def capture_output(self, observation: Optional[FaceObservation], ts: Optional[float] = None) -> None:
        """Entry point for every captured frame; drops frames inside the throttle interval."""
        now = self._clock() if ts is None else ts
        if now - self._last_frame_time < self.frame_interval:
            return
        self._last_frame_time = now

        if observation is None:
            self.away.record_miss()
        else:
            self._handle_detection(observation, now)

    def _handle_detection(self, observation: FaceObservation, now: float) -> None:
        self.current_nose_y = observation.nose_y
        if observation.face_width is not None:
            self.current_face_width = observation.face_width

        sample = CameraCalibrationSample(nose_y=observation.nose_y, face_width=observation.face_width)
        if self.on_calibration_update is not None:
            cb = self.on_calibration_update
            self._dispatch(lambda: cb(sample))

        self.away.record_detection()

        if self._monitoring and self._evaluator is not None:
            reading = self._evaluator.evaluate(observation.nose_y, observation.face_width or 0.0, now)
            if self.on_posture_reading is not None:
                cb_reading = self.on_posture_reading
                self._dispatch(lambda: cb_reading(reading))

    def _emit_away(self, away: bool) -> None:
        if self.on_away_state_change is not None:
            cb = self.on_away_state_change
            self._dispatch(lambda: cb(away))

    def _emit_away_edge(self, away: bool) -> None:
        if self.on_away_edge is not None:
            cb = self.on_away_edge
            self._dispatch(lambda: cb(away))
