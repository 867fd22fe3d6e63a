from __future__ import annotations

from datetime import datetime, tzinfo
from enum import Enum
from typing import Annotated, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CameraCalibrationSample(BaseModel):
    """Face position captured by the camera detector.

    - nose_y: normalized vertical position, higher = more upright.
    - face_width: normalized face box width, None when only a body landmark was seen.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["camera"] = "camera"
    nose_y: float = Field(ge=0.0, le=1.0)
    face_width: Optional[float] = Field(default=None, ge=0.0)


class MotionCalibrationSample(BaseModel):
    """Head orientation captured by the motion detector (Euler angles in radians)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["motion"] = "motion"
    pitch: float
    roll: float
    yaw: float


CalibrationSample = Annotated[
    Union[CameraCalibrationSample, MotionCalibrationSample],
    Field(discriminator="kind"),
]


class CameraProfile(BaseModel):
    """Calibrated nose-height band for one camera."""

    model_config = ConfigDict(frozen=True)

    # Minimum relative growth of the face width before forward-head posture is flagged
    FORWARD_HEAD_BASE_THRESHOLD: ClassVar[float] = 0.05
    # Width excess over which forward-head severity scales from 0 to 1
    FORWARD_HEAD_SEVERITY_RANGE: ClassVar[float] = 0.15
    FORWARD_HEAD_MIN_SEVERITY: ClassVar[float] = 0.5

    kind: Literal["camera"] = "camera"
    good_y: float
    bad_y: float
    neutral_y: float
    posture_range: float = Field(ge=0.0)
    neutral_face_width: float = Field(default=0.0, ge=0.0)
    source_id: str

    @property
    def is_valid(self) -> bool:
        return self.posture_range > 0.01 and self.source_id != ""


class MotionProfile(BaseModel):
    """Averaged neutral head orientation."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["motion"] = "motion"
    pitch: float
    roll: float
    yaw: float

    @property
    def is_valid(self) -> bool:
        return True


CalibrationProfile = Annotated[
    Union[CameraProfile, MotionProfile],
    Field(discriminator="kind"),
]


class PostureReading(BaseModel):
    """One evaluated frame. severity is 0.0 (good) to 1.0 (very bad)."""

    model_config = ConfigDict(frozen=True)

    timestamp: float
    is_bad_posture: bool
    severity: float = Field(ge=0.0, le=1.0)

    @classmethod
    def good(cls, timestamp: float = 0.0) -> "PostureReading":
        return cls(timestamp=timestamp, is_bad_posture=False, severity=0.0)


class DailyStats(BaseModel):
    """Usage accumulated for one calendar day.

    slouch_seconds may transiently exceed total_seconds; only posture_score clamps.
    """

    model_config = ConfigDict(populate_by_name=True)

    day_key: str = Field(exclude=True, pattern=r"^\d{4}-\d{2}-\d{2}$")
    total_seconds: float = Field(default=0.0, alias="totalSeconds")
    slouch_seconds: float = Field(default=0.0, alias="slouchSeconds")
    slouch_count: int = Field(default=0, alias="slouchCount")

    @staticmethod
    def key_for(moment: datetime, tz: Optional[tzinfo] = None) -> str:
        """Calendar day of `moment` in `tz` (local zone when None) as YYYY-MM-DD."""
        return moment.astimezone(tz).strftime("%Y-%m-%d")

    @property
    def posture_score(self) -> float:
        if self.total_seconds <= 0:
            return 0.0
        ratio = 1.0 - self.slouch_seconds / self.total_seconds
        return max(0.0, min(1.0, ratio)) * 100.0


class TrackingSource(str, Enum):
    CAMERA = "camera"
    MOTION = "motion"

    @property
    def display_name(self) -> str:
        return {"camera": "Camera", "motion": "Motion sensor"}[self.value]

    @property
    def requirement_description(self) -> str:
        if self is TrackingSource.CAMERA:
            return "Requires camera access"
        return "Requires a head-tracking motion feed"


class DetectionMode(str, Enum):
    RESPONSIVE = "responsive"
    BALANCED = "balanced"
    PERFORMANCE = "performance"

    @property
    def frame_rate(self) -> float:
        return {"responsive": 10.0, "balanced": 4.0, "performance": 2.0}[self.value]

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.frame_rate


class WarningMode(str, Enum):
    BLUR = "blur"
    GLOW = "glow"
    BORDER = "border"
    SOLID = "solid"
    NONE = "none"

    @property
    def uses_warning_overlay(self) -> bool:
        return self in (WarningMode.GLOW, WarningMode.BORDER, WarningMode.SOLID)


class FaceObservation(BaseModel):
    """Raw per-frame output of the face sensor in normalized frame coordinates."""

    model_config = ConfigDict(frozen=True)

    nose_y: float = Field(ge=0.0, le=1.0, description="higher = more upright")
    face_width: Optional[float] = Field(default=None, ge=0.0)
