from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional


class PauseReason(str, Enum):
    NO_PROFILE = "no_profile"
    ON_THE_GO = "on_the_go"
    CAMERA_DISCONNECTED = "camera_disconnected"
    SCREEN_LOCKED = "screen_locked"
    MOTION_SOURCE_REMOVED = "motion_source_removed"


@dataclass(frozen=True)
class AppState:
    """Application mode as seen by the core. Owned by the surrounding app."""

    kind: Literal["disabled", "calibrating", "monitoring", "paused"]
    reason: Optional[PauseReason] = None

    @classmethod
    def paused(cls, reason: PauseReason) -> "AppState":
        return cls("paused", reason)

    @property
    def is_active(self) -> bool:
        return self.kind in ("monitoring", "calibrating")

    @property
    def is_monitoring(self) -> bool:
        return self.kind == "monitoring"


DISABLED = AppState("disabled")
CALIBRATING = AppState("calibrating")
MONITORING = AppState("monitoring")
