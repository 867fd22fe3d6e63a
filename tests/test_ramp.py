from __future__ import annotations

import pytest

from slumpwatch.common.schemas import WarningMode
from slumpwatch.warning.ramp import BlurRamp, WarningController, WarningRamp


class Recorder:
    def __init__(self):
        self.overlay = []
        self.blur = []

    def apply_overlay(self, mode, intensity):
        self.overlay.append((mode, intensity))

    def apply_blur(self, radius, alpha):
        self.blur.append(radius)


def test_warning_ramp_rises_slowly_to_exact_target():
    ramp = WarningRamp()
    ramp.set_target(1.0)
    ramp.update()
    assert ramp.current == pytest.approx(0.05)
    for _ in range(19):
        ramp.update()
    assert ramp.current == 1.0
    assert ramp.update() is False


def test_warning_ramp_falls_fast_without_overshoot():
    ramp = WarningRamp()
    ramp.current = 0.8
    ramp.set_target(0.0)
    ramp.update()
    assert ramp.current == pytest.approx(0.3)
    ramp.update()
    assert ramp.current == 0.0


def test_warning_ramp_small_gap():
    ramp = WarningRamp()
    ramp.set_target(0.03)
    ramp.update()
    assert ramp.current == 0.03


def test_warning_ramp_clamps_target():
    ramp = WarningRamp()
    ramp.set_target(3.0)
    assert ramp.target == 1.0


def test_blur_ramp_steps():
    ramp = BlurRamp()
    ramp.set_intensity(1.0)
    assert ramp.target == 64
    ramp.update()
    assert ramp.current == 1
    ramp.current = 10
    ramp.set_intensity(0.0)
    ramp.update()
    assert ramp.current == 7
    assert 0.0 < ramp.effect_alpha <= 1.0


def test_blur_effect_alpha_saturates():
    ramp = BlurRamp()
    ramp.current = 64
    assert ramp.effect_alpha == 1.0


def test_overlay_mode_routes_posture_to_overlay():
    rec = Recorder()
    ctl = WarningController(WarningMode.GLOW, blur_backend=rec, overlay_backend=rec)
    assert ctl.update(1.0, is_away=False)
    assert ctl.overlay.current == pytest.approx(0.05)
    assert ctl.blur.target == 0
    assert rec.overlay == [(WarningMode.GLOW, pytest.approx(0.05))]
    assert rec.blur == []


def test_overlay_mode_blurs_when_away():
    ctl = WarningController(WarningMode.BORDER)
    ctl.update(0.0, is_away=True)
    assert ctl.blur.target == 64
    assert ctl.overlay.target == 0.0


def test_blur_mode_takes_strongest_signal():
    ctl = WarningController(WarningMode.BLUR)
    ctl.update(0.5, is_away=False)
    assert ctl.blur.target == 32
    assert ctl.overlay.target == 0.0
    ctl.update(0.5, is_away=True)
    assert ctl.blur.target == 64


def test_none_mode_ignores_posture():
    ctl = WarningController(WarningMode.NONE)
    assert ctl.update(1.0, is_away=False) is False
    assert ctl.overlay.current == 0.0


def test_switch_mode_resets_ramps():
    rec = Recorder()
    ctl = WarningController(WarningMode.BLUR, blur_backend=rec, overlay_backend=rec)
    for _ in range(5):
        ctl.update(1.0, is_away=False)
    ctl.switch_mode(WarningMode.SOLID)
    assert ctl.blur.current == 0
    assert ctl.overlay.current == 0.0
    assert rec.blur[-1] == 0
    assert rec.overlay[-1] == (WarningMode.SOLID, 0.0)
