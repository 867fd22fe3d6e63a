"""
Configuration for SlumpWatch.

Thresholds are module constants. Runtime settings come from the environment
(optionally a .env file) and may be overridden by CLI flags.
"""
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from slumpwatch.common.schemas import DetectionMode, TrackingSource, WarningMode

# Calibration
CAMERA_MIN_CALIBRATION_SAMPLES = 4
MOTION_MIN_CALIBRATION_SAMPLES = 1

# Evaluation
SMOOTHING_WINDOW = 5
HYSTERESIS_EXIT_RATIO = 0.7        # exit threshold as a fraction of the enter threshold
MIN_SEVERITY_SPAN = 0.01           # floor for the severity denominator
SLOUCHING_FRAME_INTERVAL = 0.1     # seconds, while latched as slouching
DEFAULT_FRAME_INTERVAL = 0.25      # seconds
MIN_FACE_CONFIDENCE = 0.5

# Motion evaluation (radians)
MOTION_POSTURE_RANGE = 0.35        # ~20 degrees of forward tilt maps to full severity
MOTION_BASE_THRESHOLD = 0.08       # ~4.6 degrees always tolerated
MOTION_ROLL_THRESHOLD = 0.26       # ~15 degrees of sideways lean
MOTION_LEAN_MIN_SEVERITY = 0.5

# Away detection
AWAY_FRAME_THRESHOLD = 15

# Warning ramps
WARNING_RISE_STEP = 0.05
WARNING_FALL_STEP = 0.5
BLUR_MAX_RADIUS = 64
BLUR_RISE_STEP = 1
BLUR_FALL_STEP = 3
WARNING_TICK_HZ = 60.0

# Analytics
ANALYTICS_TICK_SECONDS = 1.0
ANALYTICS_SAVE_SECONDS = 30.0
DEFAULT_LEDGER_PATH = os.path.join(os.path.expanduser("~"), ".slumpwatch", "analytics.json")


def _env_or(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


class MonitorSettings(BaseModel):
    """User-tunable monitoring settings."""

    source: TrackingSource = TrackingSource.CAMERA
    camera_id: Optional[str] = None
    motion_feed: Optional[str] = None
    intensity: float = Field(default=1.0, ge=0.0, le=1.0)
    dead_zone: float = Field(default=0.03, ge=0.0, le=1.0)
    warning_onset_delay: float = Field(default=0.0, ge=0.0)
    warning_mode: WarningMode = WarningMode.GLOW
    detection_mode: DetectionMode = DetectionMode.RESPONSIVE
    blur_when_away: bool = False
    ledger_path: str = DEFAULT_LEDGER_PATH
    profile_path: Optional[str] = None
    log_level: str = "INFO"


def load_settings(dotenv_path: Optional[str] = None) -> MonitorSettings:
    """Build settings from the environment, loading a .env file first if present."""
    load_dotenv(dotenv_path=dotenv_path or os.getenv("SLUMPWATCH_DOTENV", ".env"), override=False)
    return MonitorSettings(
        source=_env_or("SLUMPWATCH_SOURCE", "camera"),
        camera_id=os.getenv("SLUMPWATCH_CAMERA_ID") or None,
        motion_feed=os.getenv("SLUMPWATCH_MOTION_FEED") or None,
        intensity=float(_env_or("SLUMPWATCH_INTENSITY", "1.0")),
        dead_zone=float(_env_or("SLUMPWATCH_DEAD_ZONE", "0.03")),
        warning_onset_delay=float(_env_or("SLUMPWATCH_WARNING_ONSET_DELAY", "0")),
        warning_mode=_env_or("SLUMPWATCH_WARNING_MODE", "glow"),
        detection_mode=_env_or("SLUMPWATCH_DETECTION_MODE", "responsive"),
        blur_when_away=_env_or("SLUMPWATCH_BLUR_WHEN_AWAY", "false").lower() == "true",
        ledger_path=_env_or("SLUMPWATCH_LEDGER", DEFAULT_LEDGER_PATH),
        profile_path=os.getenv("SLUMPWATCH_PROFILE") or None,
        log_level=_env_or("LOG_LEVEL", "INFO"),
    )
