from __future__ import annotations

import logging
import platform
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import cv2

from slumpwatch.common.schemas import FaceObservation
from slumpwatch.detect.base import AUTHORIZED

log = logging.getLogger(__name__)

FrameSink = Callable[[Optional[FaceObservation]], None]


def get_platform_backends() -> List[int]:
    s = platform.system()
    if s == "Windows":
        return [cv2.CAP_DSHOW, cv2.CAP_MSMF, cv2.CAP_ANY]
    if s == "Linux":
        return [cv2.CAP_V4L2, cv2.CAP_ANY]
    if s == "Darwin":
        return [cv2.CAP_AVFOUNDATION, cv2.CAP_ANY]
    return [cv2.CAP_ANY]


def open_capture(index: int, width: int, height: int) -> Optional[cv2.VideoCapture]:
    for backend in get_platform_backends():
        cap = cv2.VideoCapture(index, backend)
        if cap.isOpened():
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            return cap
        cap.release()
    return None


@dataclass
class CameraSession:
    camera_id: str
    sink: FrameSink
    cap: Optional[cv2.VideoCapture] = None
    stopped: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None


class OpenCVCameraRuntime:
    """Webcam access for CameraPostureDetector.

    Camera ids are OpenCV device indices as strings. Frames are captured at low
    resolution on a worker thread and reduced to FaceObservation by the locator.
    """

    def __init__(self, width: int = 352, height: int = 288, max_index: int = 6, locator_factory=None):
        self.width = int(width)
        self.height = int(height)
        self.max_index = int(max_index)
        self._locator_factory = locator_factory

    def authorization_status(self) -> str:
        # OpenCV exposes no permission model; opening the device is the check
        return AUTHORIZED

    def request_access(self, completion: Callable[[bool], None]) -> None:
        completion(True)

    def list_cameras(self) -> List[str]:
        found: List[str] = []
        for i in range(self.max_index):
            cap = open_capture(i, self.width, self.height)
            if cap is not None:
                found.append(str(i))
                cap.release()
        return found

    def make_session(self, camera_id: Optional[str], sink: FrameSink) -> Optional[CameraSession]:
        if camera_id is None:
            cameras = self.list_cameras()
            if not cameras:
                log.error("No camera found")
                return None
            camera_id = cameras[0]
        return CameraSession(camera_id=camera_id, sink=sink)

    def start_running(self, session: CameraSession, completion: Callable[[bool], None]) -> None:
        def _open_and_run() -> None:
            cap = open_capture(int(session.camera_id), self.width, self.height)
            if cap is None:
                log.error("Failed to open camera %s", session.camera_id)
                completion(False)
                return
            session.cap = cap
            completion(True)
            self._capture_loop(session)

        session.thread = threading.Thread(target=_open_and_run, name=f"camera-{session.camera_id}", daemon=True)
        session.thread.start()

    def _capture_loop(self, session: CameraSession) -> None:
        if self._locator_factory is not None:
            locator = self._locator_factory()
        else:
            from slumpwatch.pose.face_locator import FaceLocator

            locator = FaceLocator()
        try:
            while not session.stopped.is_set() and session.cap is not None:
                ok, frame = session.cap.read()
                if not ok:
                    log.warning("Camera %s returned no frame", session.camera_id)
                    break
                session.sink(locator.infer(frame))
        finally:
            locator.close()
            self._release(session)

    def stop_running(self, session: CameraSession) -> None:
        session.stopped.set()
        if session.thread is None or session.thread is threading.current_thread():
            return
        if session.thread.is_alive():
            session.thread.join(timeout=1.0)
        self._release(session)

    @staticmethod
    def _release(session: CameraSession) -> None:
        cap, session.cap = session.cap, None
        if cap is not None:
            cap.release()
