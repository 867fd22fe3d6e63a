from __future__ import annotations

import pytest

from slumpwatch.common.schemas import FaceObservation, MotionProfile
from slumpwatch.config import SLOUCHING_FRAME_INTERVAL
from slumpwatch.detect.base import DENIED, NOT_DETERMINED, PostureDetector
from slumpwatch.detect.camera import CameraPostureDetector
from slumpwatch.detect.motion import MotionPostureDetector

from fakes import DeferredAccessRuntime, FakeCameraRuntime, FakeMotionRuntime


def _results():
    out = []
    return out, lambda ok, err: out.append((ok, err))


def test_detectors_satisfy_protocol():
    assert isinstance(CameraPostureDetector(FakeCameraRuntime()), PostureDetector)
    assert isinstance(MotionPostureDetector(FakeMotionRuntime()), PostureDetector)


def test_camera_start_success(dispatch):
    runtime = FakeCameraRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    results, done = _results()
    det.start(done)
    runtime.completions[0](True)
    assert results == []
    dispatch.run_all()
    assert results == [(True, None)]
    assert det.is_active
    assert det.selected_camera_id == "0"


def test_stop_before_start_completes_discards_session(dispatch):
    runtime = FakeCameraRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    results, done = _results()
    det.start(done)
    det.stop()
    runtime.completions[0](True)
    dispatch.run_all()

    assert not det.is_active
    assert results == []
    assert det.stale_starts == 1
    assert len(runtime.stopped) >= 1


def test_restart_ignores_older_completion(dispatch):
    runtime = FakeCameraRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    first, done_first = _results()
    second, done_second = _results()
    det.start(done_first)
    det.stop()
    det.start(done_second)
    runtime.completions[1](True)
    runtime.completions[0](True)
    dispatch.run_all()
    assert second == [(True, None)]
    assert first == []
    assert det.is_active


def test_camera_start_failure(dispatch):
    runtime = FakeCameraRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    results, done = _results()
    det.start(done)
    runtime.completions[0](False)
    dispatch.run_all()
    assert results == [(False, "Failed to start camera capture")]
    assert not det.is_active


def test_camera_denied():
    det = CameraPostureDetector(FakeCameraRuntime(status=DENIED))
    results, done = _results()
    det.start(done)
    assert results[0][0] is False
    assert "denied" in results[0][1]
    assert not det.is_available
    assert det.unavailable_reason is not None


def test_camera_access_request_refused():
    det = CameraPostureDetector(FakeCameraRuntime(status=NOT_DETERMINED, grant=False))
    results, done = _results()
    det.start(done)
    assert results == [(False, "Camera access denied")]


def test_camera_without_devices():
    det = CameraPostureDetector(FakeCameraRuntime(cameras=()))
    results, done = _results()
    det.start(done)
    assert results == [(False, "No camera found.")]
    assert det.unavailable_reason == "No camera found."


def test_calibration_sample_defaults():
    det = CameraPostureDetector(FakeCameraRuntime())
    sample = det.get_current_calibration_sample()
    assert sample.nose_y == 0.5
    assert sample.face_width is None


def test_capture_updates_calibration_sample():
    det = CameraPostureDetector(FakeCameraRuntime())
    updates = []
    det.on_calibration_update = updates.append
    det.capture_output(FaceObservation(nose_y=0.7, face_width=0.2), ts=1.0)
    assert det.get_current_calibration_sample().face_width == 0.2
    assert updates[0].nose_y == 0.7


def test_begin_monitoring_rejects_motion_profile():
    det = CameraPostureDetector(FakeCameraRuntime())
    readings = []
    det.on_posture_reading = readings.append
    det.begin_monitoring(MotionProfile(pitch=0, roll=0, yaw=0), 1.0, 0.1)
    det.capture_output(FaceObservation(nose_y=0.1), ts=1.0)
    assert readings == []


def test_frames_are_throttled(camera_profile):
    det = CameraPostureDetector(FakeCameraRuntime())
    det.base_frame_interval = 0.25
    readings = []
    det.on_posture_reading = readings.append
    det.begin_monitoring(camera_profile, 1.0, 0.1)
    det.capture_output(FaceObservation(nose_y=0.7), ts=1.0)
    det.capture_output(FaceObservation(nose_y=0.7), ts=1.1)
    det.capture_output(FaceObservation(nose_y=0.7), ts=1.3)
    assert [r.timestamp for r in readings] == [1.0, 1.3]


def test_slouching_shortens_frame_interval(camera_profile):
    det = CameraPostureDetector(FakeCameraRuntime())
    det.base_frame_interval = 0.5
    det.begin_monitoring(camera_profile, 1.0, 0.1)
    det.capture_output(FaceObservation(nose_y=0.1), ts=1.0)
    assert det.frame_interval == SLOUCHING_FRAME_INTERVAL


def test_away_reported_only_when_enabled():
    det = CameraPostureDetector(FakeCameraRuntime())
    events = []
    det.on_away_state_change = events.append
    for i in range(20):
        det.capture_output(None, ts=float(i))
    assert events == []

    det.blur_when_away = True
    for i in range(20, 35):
        det.capture_output(None, ts=float(i))
    assert events == [True]
    det.capture_output(FaceObservation(nose_y=0.7), ts=40.0)
    assert events == [True, False]


def test_motion_unavailable_device():
    det = MotionPostureDetector(FakeMotionRuntime(available=False))
    results, done = _results()
    det.start(done)
    assert results == [(False, "No compatible motion source found.")]


def test_motion_start_and_connection_events(dispatch):
    runtime = FakeMotionRuntime()
    det = MotionPostureDetector(runtime, dispatch=dispatch)
    connections = []
    det.on_connection_state_change = connections.append
    results, done = _results()
    det.start(done)
    runtime.completions[0](True)
    dispatch.run_all()
    assert results == [(True, None)]
    assert not det.is_connected

    runtime.sessions[0].on_motion(0.1, 0.0, 0.0)
    runtime.sessions[0].on_motion(0.1, 0.0, 0.0)
    dispatch.run_all()
    assert det.is_connected
    assert connections == [True]
    assert det.get_current_calibration_sample().pitch == pytest.approx(0.1)

    runtime.sessions[0].on_connection(False)
    dispatch.run_all()
    assert connections == [True, False]


def test_motion_stale_start(dispatch):
    runtime = FakeMotionRuntime()
    det = MotionPostureDetector(runtime, dispatch=dispatch)
    results, done = _results()
    det.start(done)
    det.stop()
    runtime.completions[0](True)
    dispatch.run_all()
    assert results == []
    assert not det.is_active
    assert det.stale_starts == 1
    assert runtime.stopped == 2


def test_motion_monitoring_emits_readings():
    det = MotionPostureDetector(FakeMotionRuntime())
    readings = []
    det.on_posture_reading = readings.append
    det.begin_monitoring(MotionProfile(pitch=0.0, roll=0.0, yaw=0.0), 1.0, 0.0)
    det.motion_update(-0.5, 0.0, 0.0, ts=2.0)
    assert readings[0].is_bad_posture
    assert readings[0].timestamp == 2.0


def test_switch_camera_restarts_running_session(dispatch):
    runtime = FakeCameraRuntime(cameras=("0", "1"))
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    det.start(lambda ok, err: None)
    runtime.completions[0](True)
    dispatch.run_all()

    results, done = _results()
    det.switch_camera("1", done)
    runtime.completions[1](True)
    dispatch.run_all()
    assert det.selected_camera_id == "1"
    assert results == [(True, None)]
    assert len(runtime.stopped) == 1


def test_update_parameters_reaches_evaluator(camera_profile):
    det = CameraPostureDetector(FakeCameraRuntime())
    readings = []
    det.on_posture_reading = readings.append
    det.begin_monitoring(camera_profile, 1.0, 0.0)
    det.update_parameters(0.5, 0.9)
    det.capture_output(FaceObservation(nose_y=0.4), ts=1.0)
    assert det.intensity == 0.5
    assert not readings[0].is_bad_posture


def test_stop_while_awaiting_access_cancels_start(dispatch):
    runtime = DeferredAccessRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    results, done = _results()
    det.start(done)
    det.stop()
    runtime.access_callbacks[0](True)
    dispatch.run_all()
    for completion in runtime.completions:
        completion(True)
    dispatch.run_all()

    assert not det.is_active
    assert runtime.completions == []
    assert results == []
    assert det.stale_starts == 1


def test_access_granted_then_started(dispatch):
    runtime = DeferredAccessRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    results, done = _results()
    det.start(done)
    runtime.access_callbacks[0](True)
    dispatch.run_all()
    runtime.completions[0](True)
    dispatch.run_all()
    assert results == [(True, None)]
    assert det.is_active


def test_second_start_stops_running_session(dispatch):
    runtime = FakeCameraRuntime()
    det = CameraPostureDetector(runtime, dispatch=dispatch)
    det.start(lambda ok, err: None)
    runtime.completions[0](True)
    dispatch.run_all()
    first_session = det._session

    results, done = _results()
    det.start(done)
    runtime.completions[1](True)
    dispatch.run_all()
    assert runtime.stopped == [first_session]
    assert results == [(True, None)]
    assert det.is_active


def test_away_edge_fires_once_per_transition():
    det = CameraPostureDetector(FakeCameraRuntime())
    det.blur_when_away = True
    levels, edges = [], []
    det.on_away_state_change = levels.append
    det.on_away_edge = edges.append
    for i in range(20):
        det.capture_output(None, ts=float(i))
    det.capture_output(FaceObservation(nose_y=0.7), ts=30.0)
    det.capture_output(FaceObservation(nose_y=0.7), ts=31.0)
    assert edges == [True, False]
    assert levels == [True] * 6 + [False, False]
