from __future__ import annotations

from typing import Callable, List

import pytest

from slumpwatch.common.schemas import CameraProfile


class ManualClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class RecordingDispatch:
    """Queues callbacks so tests decide when the 'main thread' runs them."""

    def __init__(self) -> None:
        self.pending: List[Callable[[], None]] = []

    def __call__(self, fn: Callable[[], None]) -> None:
        self.pending.append(fn)

    def run_all(self) -> int:
        ran = 0
        while self.pending:
            self.pending.pop(0)()
            ran += 1
        return ran


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def dispatch() -> RecordingDispatch:
    return RecordingDispatch()


@pytest.fixture
def camera_profile() -> CameraProfile:
    return CameraProfile(
        good_y=0.8,
        bad_y=0.5,
        neutral_y=0.65,
        posture_range=0.3,
        neutral_face_width=0.2,
        source_id="0",
    )
