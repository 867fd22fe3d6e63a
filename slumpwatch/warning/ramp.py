from __future__ import annotations

import logging
import math
from typing import Optional, Protocol

from slumpwatch.common.schemas import WarningMode
from slumpwatch.common.utils import clamp01
from slumpwatch.config import (
    BLUR_FALL_STEP,
    BLUR_MAX_RADIUS,
    BLUR_RISE_STEP,
    WARNING_FALL_STEP,
    WARNING_RISE_STEP,
)

log = logging.getLogger(__name__)


class WarningRamp:
    """Animated warning intensity: slow rise, fast fall, never overshoots the target."""

    def __init__(self, rise_step: float = WARNING_RISE_STEP, fall_step: float = WARNING_FALL_STEP):
        self.rise_step = rise_step
        self.fall_step = fall_step
        self.current = 0.0
        self.target = 0.0

    def set_target(self, target: float) -> None:
        self.target = clamp01(target)

    def update(self) -> bool:
        """Advance one tick. Returns True when current changed."""
        if self.current < self.target:
            nxt = min(self.current + self.rise_step, self.target)
        elif self.current > self.target:
            nxt = max(self.current - self.fall_step, self.target)
        else:
            return False
        # Accumulated step error must not leave current a hair short of target
        if math.isclose(nxt, self.target, abs_tol=1e-9):
            nxt = self.target
        self.current = nxt
        return True

    def reset(self) -> None:
        self.current = 0.0
        self.target = 0.0


class BlurRamp:
    """Integer blur radius in [0, BLUR_MAX_RADIUS]; rises by 1, falls by 3 per tick."""

    def __init__(self) -> None:
        self.current = 0
        self.target = 0

    def set_intensity(self, intensity: float) -> None:
        self.target = int(clamp01(intensity) * BLUR_MAX_RADIUS)

    def update(self) -> bool:
        if self.current < self.target:
            self.current = min(self.current + BLUR_RISE_STEP, self.target)
        elif self.current > self.target:
            self.current = max(self.current - BLUR_FALL_STEP, self.target)
        else:
            return False
        return True

    @property
    def effect_alpha(self) -> float:
        """Opacity for a visual-effect fallback when radius blur is not available."""
        return min(1.0, math.sqrt(self.current / BLUR_MAX_RADIUS) * 1.2)

    def reset(self) -> None:
        self.current = 0
        self.target = 0


class BlurBackend(Protocol):
    def apply_blur(self, radius: int, alpha: float) -> None: ...


class OverlayBackend(Protocol):
    def apply_overlay(self, mode: WarningMode, intensity: float) -> None: ...


class NullBlurBackend:
    """Used when the platform offers no blur capability."""

    def apply_blur(self, radius: int, alpha: float) -> None:
        return None


class NullOverlayBackend:
    def apply_overlay(self, mode: WarningMode, intensity: float) -> None:
        return None


class WarningController:
    """Routes posture and privacy intensities to the blur and overlay ramps by mode."""

    def __init__(
        self,
        mode: WarningMode = WarningMode.GLOW,
        blur_backend: Optional[BlurBackend] = None,
        overlay_backend: Optional[OverlayBackend] = None,
    ):
        self.mode = mode
        self.overlay = WarningRamp()
        self.blur = BlurRamp()
        self.blur_backend: BlurBackend = blur_backend or NullBlurBackend()
        self.overlay_backend: OverlayBackend = overlay_backend or NullOverlayBackend()

    def update(self, posture_intensity: float, is_away: bool) -> bool:
        """One tick. Returns False when nothing needed to change."""
        privacy = 1.0 if is_away else 0.0
        if self.mode is WarningMode.BLUR:
            self.blur.set_intensity(max(privacy, posture_intensity))
            self.overlay.set_target(0.0)
        elif self.mode is WarningMode.NONE:
            self.blur.set_intensity(privacy)
            self.overlay.set_target(0.0)
        else:
            self.blur.set_intensity(privacy)
            self.overlay.set_target(posture_intensity)

        if self.blur.current == self.blur.target and self.overlay.current == self.overlay.target:
            return False

        if self.overlay.update():
            self.overlay_backend.apply_overlay(self.mode, self.overlay.current)
        if self.blur.update():
            self.blur_backend.apply_blur(self.blur.current, self.blur.effect_alpha)
        return True

    def switch_mode(self, mode: WarningMode) -> None:
        log.info("Switching warning mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self.overlay.reset()
        self.blur.reset()
        self.blur_backend.apply_blur(0, 0.0)
        self.overlay_backend.apply_overlay(mode, 0.0)
