from __future__ import annotations

import json
import queue
import time
from typing import Callable

from .schemas import PostureReading

Dispatcher = Callable[[Callable[[], None]], None]


def now_s() -> float:
    """Wall-clock seconds for reading timestamps."""
    return time.time()


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def clamp01(v: float) -> float:
    return clamp(v, 0.0, 1.0)


def call_now(fn: Callable[[], None]) -> None:
    """Dispatcher that runs callbacks inline on the producing thread."""
    fn()


class MainQueue:
    """Hands callbacks from capture threads to the consumer loop.

    post() is safe from any thread; drain() must run on the consumer thread.
    """

    def __init__(self) -> None:
        self._q: "queue.Queue[Callable[[], None]]" = queue.Queue()

    def post(self, fn: Callable[[], None]) -> None:
        self._q.put(fn)

    def drain(self, max_items: int = 256) -> int:
        ran = 0
        while ran < max_items:
            try:
                fn = self._q.get_nowait()
            except queue.Empty:
                break
            fn()
            ran += 1
        return ran


def format_reading_json(reading: PostureReading) -> str:
    """Compact one-line JSON suitable for stdout."""
    data = reading.model_dump()
    data = {k: round(v, 3) if isinstance(v, float) else v for k, v in data.items()}
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
