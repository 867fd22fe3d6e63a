from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

import numpy as np

from slumpwatch.common.schemas import CameraProfile, MotionProfile, PostureReading
from slumpwatch.common.utils import clamp01
from slumpwatch.config import (
    HYSTERESIS_EXIT_RATIO,
    MIN_SEVERITY_SPAN,
    MOTION_BASE_THRESHOLD,
    MOTION_LEAN_MIN_SEVERITY,
    MOTION_POSTURE_RANGE,
    MOTION_ROLL_THRESHOLD,
    SMOOTHING_WINDOW,
)


@dataclass
class EvaluatorState:
    history: Deque[float] = field(default_factory=lambda: deque(maxlen=SMOOTHING_WINDOW))
    is_currently_slouching: bool = False

    def smooth(self, raw: float) -> float:
        self.history.append(raw)
        return float(np.mean(self.history))

    def reset(self) -> None:
        self.history.clear()
        self.is_currently_slouching = False


def _active_threshold(dead_zone_threshold: float, latched: bool) -> float:
    # Lower exit threshold keeps the latch from flickering at the boundary
    return dead_zone_threshold * HYSTERESIS_EXIT_RATIO if latched else dead_zone_threshold


def _vertical_severity(slouch_amount: float, dead_zone_threshold: float, posture_range: float) -> float:
    past_dead_zone = slouch_amount - dead_zone_threshold
    remaining = max(MIN_SEVERITY_SPAN, posture_range - dead_zone_threshold)
    return clamp01(past_dead_zone / remaining)


class CameraPostureEvaluator:
    """Smoothing + hysteresis + forward-head rule engine over nose height.

    One instance per monitoring run; evaluate() must be called from a single thread.
    """

    def __init__(self, profile: CameraProfile, dead_zone: float):
        self.profile = profile
        self.dead_zone = float(dead_zone)
        self.state = EvaluatorState()

    @property
    def is_currently_slouching(self) -> bool:
        return self.state.is_currently_slouching

    def reset(self) -> None:
        self.state.reset()

    def _forward_head_severity(self, face_width: float) -> Optional[float]:
        """Severity of the head moving toward the screen, None when not triggered."""
        neutral = self.profile.neutral_face_width
        if neutral <= 0 or face_width <= 0:
            return None
        threshold = 1.0 + max(CameraProfile.FORWARD_HEAD_BASE_THRESHOLD, self.dead_zone)
        ratio = face_width / neutral
        if ratio <= threshold:
            return None
        return clamp01((ratio - threshold) / CameraProfile.FORWARD_HEAD_SEVERITY_RANGE)

    def evaluate(self, nose_y: float, face_width: float, timestamp: float) -> PostureReading:
        st = self.state
        smoothed_y = st.smooth(nose_y)

        slouch_amount = self.profile.bad_y - smoothed_y
        dead_zone_threshold = self.dead_zone * self.profile.posture_range
        is_bad = slouch_amount > _active_threshold(dead_zone_threshold, st.is_currently_slouching)

        forward_severity = 0.0
        fwd = self._forward_head_severity(face_width)
        if fwd is not None:
            is_bad = True
            forward_severity = fwd

        severity = 0.0
        if is_bad:
            vertical = _vertical_severity(slouch_amount, dead_zone_threshold, self.profile.posture_range)
            severity = max(vertical, forward_severity)
            if forward_severity > 0 and severity < CameraProfile.FORWARD_HEAD_MIN_SEVERITY:
                severity = CameraProfile.FORWARD_HEAD_MIN_SEVERITY

        if is_bad:
            st.is_currently_slouching = True
        elif severity == 0:
            st.is_currently_slouching = False

        return PostureReading(timestamp=timestamp, is_bad_posture=is_bad, severity=severity)


class MotionPostureEvaluator:
    """Same contract as the camera evaluator, driven by head pitch and roll.

    Forward tilt lowers pitch below the calibrated neutral. Sideways lean past the
    roll threshold forces bad posture like forward-head does on the camera path.
    Yaw is ignored.
    """

    def __init__(self, profile: MotionProfile, dead_zone: float):
        self.profile = profile
        self.dead_zone = float(dead_zone)
        self.state = EvaluatorState()

    @property
    def is_currently_slouching(self) -> bool:
        return self.state.is_currently_slouching

    def reset(self) -> None:
        self.state.reset()

    def evaluate(self, pitch: float, roll: float, yaw: float, timestamp: float) -> PostureReading:
        st = self.state
        smoothed_pitch = st.smooth(pitch)

        slouch_amount = self.profile.pitch - smoothed_pitch
        scaled_dead_zone = self.dead_zone * MOTION_POSTURE_RANGE
        dead_zone_threshold = MOTION_BASE_THRESHOLD + scaled_dead_zone
        is_bad = slouch_amount > _active_threshold(dead_zone_threshold, st.is_currently_slouching)

        lean_severity = 0.0
        roll_threshold = MOTION_ROLL_THRESHOLD + scaled_dead_zone
        roll_excess = abs(roll - self.profile.roll) - roll_threshold
        if roll_excess > 0:
            is_bad = True
            lean_severity = clamp01(roll_excess / MOTION_POSTURE_RANGE)

        severity = 0.0
        if is_bad:
            vertical = _vertical_severity(slouch_amount, dead_zone_threshold, MOTION_POSTURE_RANGE)
            severity = max(vertical, lean_severity)
            if roll_excess > 0 and severity < MOTION_LEAN_MIN_SEVERITY:
                severity = MOTION_LEAN_MIN_SEVERITY

        if is_bad:
            st.is_currently_slouching = True
        elif severity == 0:
            st.is_currently_slouching = False

        return PostureReading(timestamp=timestamp, is_bad_posture=is_bad, severity=severity)
