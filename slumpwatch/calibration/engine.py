from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import numpy as np

from slumpwatch.common.schemas import (
    CalibrationSample,
    CameraCalibrationSample,
    CameraProfile,
    MotionCalibrationSample,
    MotionProfile,
)
from slumpwatch.config import CAMERA_MIN_CALIBRATION_SAMPLES, MOTION_MIN_CALIBRATION_SAMPLES

log = logging.getLogger(__name__)


def camera_profile_from_samples(
    samples: Iterable[CalibrationSample], source_id: Optional[str]
) -> Optional[CameraProfile]:
    """Reduce captured camera samples to a nose-height band.

    Non-camera samples are ignored. Returns None below the minimum sample count
    so the caller stays in calibration.
    """
    camera: List[CameraCalibrationSample] = [
        s for s in samples if isinstance(s, CameraCalibrationSample)
    ]
    if len(camera) < CAMERA_MIN_CALIBRATION_SAMPLES:
        return None

    ys = np.array([s.nose_y for s in camera], dtype=np.float64)
    widths = [s.face_width for s in camera if s.face_width is not None]
    good_y = float(ys.max())
    bad_y = float(ys.min())
    profile = CameraProfile(
        good_y=good_y,
        bad_y=bad_y,
        neutral_y=float(ys.mean()),
        posture_range=abs(good_y - bad_y),
        neutral_face_width=max(widths) if widths else 0.0,
        source_id=source_id or "",
    )
    log.info(
        "Created camera calibration: goodY=%.3f badY=%.3f range=%.3f neutralWidth=%.3f",
        profile.good_y,
        profile.bad_y,
        profile.posture_range,
        profile.neutral_face_width,
    )
    return profile


def motion_profile_from_samples(samples: Iterable[CalibrationSample]) -> Optional[MotionProfile]:
    """Average motion samples into a neutral orientation. A single sample suffices."""
    motion: List[MotionCalibrationSample] = [
        s for s in samples if isinstance(s, MotionCalibrationSample)
    ]
    if len(motion) < MOTION_MIN_CALIBRATION_SAMPLES:
        return None

    angles = np.array([[s.pitch, s.roll, s.yaw] for s in motion], dtype=np.float64)
    pitch, roll, yaw = (float(v) for v in angles.mean(axis=0))
    log.info("Created motion calibration: pitch=%.3f roll=%.3f yaw=%.3f", pitch, roll, yaw)
    return MotionProfile(pitch=pitch, roll=roll, yaw=yaw)
