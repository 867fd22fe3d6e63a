from __future__ import annotations

from types import SimpleNamespace

from slumpwatch.detect.base import AUTHORIZED


class FakeCameraRuntime:
    """Holds start completions until the test fires them."""

    def __init__(self, status=AUTHORIZED, cameras=("0",), grant=True):
        self.status = status
        self.cameras = list(cameras)
        self.grant = grant
        self.completions = []
        self.stopped = []

    def authorization_status(self):
        return self.status

    def request_access(self, completion):
        completion(self.grant)

    def list_cameras(self):
        return self.cameras

    def make_session(self, camera_id, sink):
        if not self.cameras:
            return None
        return SimpleNamespace(camera_id=camera_id or self.cameras[0], sink=sink)

    def start_running(self, session, completion):
        self.completions.append(completion)

    def stop_running(self, session):
        self.stopped.append(session)


class FakeMotionRuntime:
    def __init__(self, available=True, status=AUTHORIZED):
        self.available = available
        self.status = status
        self.sessions = []
        self.completions = []
        self.stopped = 0

    def is_device_available(self):
        return self.available

    def authorization_status(self):
        return self.status

    def make_session(self, on_motion, on_connection):
        session = SimpleNamespace(on_motion=on_motion, on_connection=on_connection)
        self.sessions.append(session)
        return session

    def start_updates(self, session, completion):
        self.completions.append(completion)

    def stop_updates(self, session):
        self.stopped += 1


class DeferredAccessRuntime(FakeCameraRuntime):
    """Holds the access-request answer until the test releases it."""

    def __init__(self, **kwargs):
        kwargs.setdefault("status", "not_determined")
        super().__init__(**kwargs)
        self.access_callbacks = []

    def request_access(self, completion):
        self.access_callbacks.append(completion)
