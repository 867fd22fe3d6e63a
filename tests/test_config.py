from __future__ import annotations

from slumpwatch.common.schemas import DetectionMode, TrackingSource, WarningMode
from slumpwatch.config import load_settings


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SLUMPWATCH_SOURCE", "motion")
    monkeypatch.setenv("SLUMPWATCH_MOTION_FEED", "-")
    monkeypatch.setenv("SLUMPWATCH_DEAD_ZONE", "0.1")
    monkeypatch.setenv("SLUMPWATCH_WARNING_MODE", "blur")
    monkeypatch.setenv("SLUMPWATCH_BLUR_WHEN_AWAY", "True")
    settings = load_settings(str(tmp_path / "missing.env"))
    assert settings.source is TrackingSource.MOTION
    assert settings.motion_feed == "-"
    assert settings.dead_zone == 0.1
    assert settings.warning_mode is WarningMode.BLUR
    assert settings.blur_when_away


def test_dotenv_file_fills_defaults(monkeypatch, tmp_path):
    # register the variable so teardown removes what the .env file sets
    monkeypatch.setenv("SLUMPWATCH_DETECTION_MODE", "balanced")
    monkeypatch.delenv("SLUMPWATCH_DETECTION_MODE")
    env = tmp_path / ".env"
    env.write_text("SLUMPWATCH_DETECTION_MODE=performance\n")
    settings = load_settings(str(env))
    assert settings.detection_mode is DetectionMode.PERFORMANCE
