from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from slumpwatch.analytics.tracker import AnalyticsTracker
from slumpwatch.common.app_state import CALIBRATING, MONITORING, AppState, PauseReason
from slumpwatch.common.schemas import (
    CalibrationProfile,
    CalibrationSample,
    DetectionMode,
    TrackingSource,
    WarningMode,
)
from slumpwatch.common.utils import MainQueue, format_reading_json, now_s
from slumpwatch.config import (
    ANALYTICS_TICK_SECONDS,
    CAMERA_MIN_CALIBRATION_SAMPLES,
    WARNING_TICK_HZ,
    MonitorSettings,
    load_settings,
)
from slumpwatch.detect.base import PostureDetector
from slumpwatch.detect.camera import CameraPostureDetector
from slumpwatch.reasoner.session import PostureMonitor
from slumpwatch.warning.ramp import WarningController

log = logging.getLogger("slumpwatch")

_PROFILE_ADAPTER = TypeAdapter(CalibrationProfile)

CAMERA_POSITIONS = [
    "Sit up straight and look at the top of your screen",
    "Look at the bottom of your screen",
    "Look at the left edge of your screen",
    "Look at the right edge of your screen",
]
MOTION_POSITIONS = ["Sit up straight and look at the center of your screen"]


def parse_args(settings: MonitorSettings) -> argparse.Namespace:
    p = argparse.ArgumentParser("SlumpWatch - posture monitor")
    p.add_argument("--source", choices=[s.value for s in TrackingSource], default=settings.source.value)
    p.add_argument("--camera-id", type=str, default=settings.camera_id)
    p.add_argument("--list-cameras", action="store_true")
    p.add_argument("--motion-feed", type=str, default=settings.motion_feed,
                   help="JSON-lines orientation feed, '-' for stdin")
    p.add_argument("--intensity", type=float, default=settings.intensity)
    p.add_argument("--dead-zone", type=float, default=settings.dead_zone)
    p.add_argument("--onset-delay", type=float, default=settings.warning_onset_delay)
    p.add_argument("--warning-mode", choices=[m.value for m in WarningMode], default=settings.warning_mode.value)
    p.add_argument("--detection-mode", choices=[m.value for m in DetectionMode],
                   default=settings.detection_mode.value)
    p.add_argument("--blur-when-away", action="store_true", default=settings.blur_when_away)
    p.add_argument("--ledger", type=str, default=settings.ledger_path)
    p.add_argument("--profile", type=str, default=settings.profile_path,
                   help="Load the calibration profile from this file, or save it here after calibrating")
    p.add_argument("--recalibrate", action="store_true")
    p.add_argument("--auto-calibrate", type=float, default=0.0,
                   help="Seconds to hold each calibration position instead of waiting for Enter")
    p.add_argument("--start-timeout", type=float, default=10.0)
    p.add_argument("--log-level", type=str, default=settings.log_level)
    return p.parse_args()


class LogOverlayBackend:
    """Reports overlay intensity changes on the log instead of drawing them."""

    def apply_overlay(self, mode: WarningMode, intensity: float) -> None:
        log.debug("overlay %s %.2f", mode.value, intensity)


class LogBlurBackend:
    def apply_blur(self, radius: int, alpha: float) -> None:
        log.debug("blur radius=%d alpha=%.2f", radius, alpha)


def build_detector(args: argparse.Namespace, queue: MainQueue) -> PostureDetector:
    source = TrackingSource(args.source)
    if source is TrackingSource.MOTION:
        if not args.motion_feed:
            raise SystemExit("--motion-feed is required for the motion source")
        from slumpwatch.detect.motion import MotionPostureDetector
        from slumpwatch.ingest.motion_feed import JsonLinesMotionRuntime

        return MotionPostureDetector(JsonLinesMotionRuntime(args.motion_feed), dispatch=queue.post)

    from slumpwatch.ingest.source import OpenCVCameraRuntime

    detector = CameraPostureDetector(OpenCVCameraRuntime(), dispatch=queue.post)
    detector.selected_camera_id = args.camera_id
    detector.base_frame_interval = DetectionMode(args.detection_mode).frame_interval
    detector.blur_when_away = args.blur_when_away
    return detector


def start_detector(detector: PostureDetector, queue: MainQueue, timeout: float) -> Tuple[bool, Optional[str]]:
    """Start and pump the main queue until the completion arrives."""
    result: List[Tuple[bool, Optional[str]]] = []
    detector.start(lambda ok, err: result.append((ok, err)))
    deadline = time.monotonic() + timeout
    while not result:
        if time.monotonic() > deadline:
            detector.stop()
            return False, "Timed out starting %s" % detector.tracking_source.display_name
        queue.drain()
        time.sleep(0.02)
    return result[0]


def load_profile(path: Optional[str]) -> Optional[CalibrationProfile]:
    if not path or not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return _PROFILE_ADAPTER.validate_json(f.read())
    except (OSError, ValidationError) as e:
        log.warning("Ignoring calibration profile %s: %s", path, e)
        return None


def save_profile(path: str, profile: CalibrationProfile) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, "wb") as f:
        f.write(_PROFILE_ADAPTER.dump_json(profile, indent=2))
    log.info("Saved calibration profile to %s", path)


def calibrate(detector: PostureDetector, queue: MainQueue, hold_s: float) -> Optional[CalibrationProfile]:
    """Walk the user through each position and build a profile from one sample per position."""
    if detector.tracking_source is TrackingSource.CAMERA:
        positions = CAMERA_POSITIONS
    else:
        positions = MOTION_POSITIONS
    samples: List[CalibrationSample] = []
    for step, prompt in enumerate(positions, 1):
        if hold_s > 0:
            print(f"[{step}/{len(positions)}] {prompt} ...", file=sys.stderr, flush=True)
            end = time.monotonic() + hold_s
            while time.monotonic() < end:
                queue.drain()
                time.sleep(0.05)
        else:
            input(f"[{step}/{len(positions)}] {prompt}, then press Enter ")
            queue.drain()
        samples.append(detector.get_current_calibration_sample())
    profile = detector.create_calibration_profile(samples)
    if profile is None:
        log.error("Calibration needs at least %d samples", CAMERA_MIN_CALIBRATION_SAMPLES)
    elif not profile.is_valid:
        log.error("Calibration range too small; move further between positions and retry")
        return None
    return profile


def main():
    settings = load_settings()
    args = parse_args(settings)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_cameras:
        from slumpwatch.ingest.source import OpenCVCameraRuntime

        for cam in OpenCVCameraRuntime().list_cameras():
            print(cam)
        return

    queue = MainQueue()
    detector: Optional[PostureDetector] = None
    tracker: Optional[AnalyticsTracker] = None
    app_state: AppState = CALIBRATING

    try:
        detector = build_detector(args, queue)
        if not detector.is_available:
            print(detector.unavailable_reason or "Tracking source unavailable", file=sys.stderr)
            sys.exit(2)

        tracker = AnalyticsTracker(args.ledger)
        warnings = WarningController(
            mode=WarningMode(args.warning_mode),
            blur_backend=LogBlurBackend(),
            overlay_backend=LogOverlayBackend(),
        )
        monitor = PostureMonitor(
            tracker,
            warnings,
            intensity=args.intensity,
            warning_onset_delay=args.onset_delay,
        )

        ok, err = start_detector(detector, queue, args.start_timeout)
        if not ok:
            print(f"Could not start {detector.tracking_source.display_name}: {err}", file=sys.stderr)
            sys.exit(1)

        profile = None if args.recalibrate else load_profile(args.profile)
        if profile is None:
            profile = calibrate(detector, queue, args.auto_calibrate)
            if profile is None:
                sys.exit(1)
            if args.profile:
                save_profile(args.profile, profile)

        def on_reading(reading):
            print(format_reading_json(reading), flush=True)
            monitor.handle_reading(reading)

        def on_connection(connected: bool):
            nonlocal app_state
            if connected:
                app_state = MONITORING
            elif detector.tracking_source is TrackingSource.MOTION:
                app_state = AppState.paused(PauseReason.MOTION_SOURCE_REMOVED)
            else:
                app_state = AppState.paused(PauseReason.CAMERA_DISCONNECTED)
            log.info("App state: %s", app_state.kind)

        detector.on_posture_reading = on_reading
        if isinstance(detector, CameraPostureDetector):
            detector.on_away_edge = monitor.set_away
        else:
            detector.on_away_state_change = monitor.set_away
        detector.on_connection_state_change = on_connection

        detector.begin_monitoring(profile, args.intensity, args.dead_zone)
        app_state = MONITORING

        warn_period = 1.0 / WARNING_TICK_HZ
        next_warn = next_analytics = now_s()
        while True:
            queue.drain()
            now = now_s()
            if now >= next_warn:
                monitor.tick_warning()
                next_warn = now + warn_period
            if now >= next_analytics:
                monitor.tick_analytics(ANALYTICS_TICK_SECONDS, app_state)
                next_analytics = now + ANALYTICS_TICK_SECONDS
            time.sleep(min(warn_period, max(0.0, min(next_warn, next_analytics) - now_s())))

    except KeyboardInterrupt:
        pass
    except Exception as e:
        log.exception("Monitoring stopped")
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if detector is not None:
            detector.stop()
        if tracker is not None:
            stats = tracker.today_stats
            tracker.close()
            log.info(
                "Today: %.0fs monitored, %.0fs slouching, %d slouches, score %.0f",
                stats.total_seconds,
                stats.slouch_seconds,
                stats.slouch_count,
                stats.posture_score,
            )


if __name__ == "__main__":
    main()
