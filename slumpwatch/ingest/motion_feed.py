from __future__ import annotations

import json
import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Tuple, Union

from slumpwatch.detect.base import AUTHORIZED

log = logging.getLogger(__name__)

MotionEvent = Union[Tuple[str, float, float, float], Tuple[str, bool]]


def iter_feed(lines: Iterable[str]) -> Iterator[Tuple[Optional[float], MotionEvent]]:
    """Parse a JSON-lines orientation feed.

    Each line is either {"pitch":..,"roll":..,"yaw":..} or {"connected": bool},
    with an optional "t" offset in seconds used for pacing. Blank and malformed
    lines are skipped.
    """
    for lineno, raw in enumerate(lines, 1):
        raw = raw.strip()
        if not raw:
            continue
        try:
            rec = json.loads(raw)
            t = float(rec["t"]) if "t" in rec else None
            if "connected" in rec:
                yield t, ("connected", bool(rec["connected"]))
            else:
                yield t, ("motion", float(rec["pitch"]), float(rec["roll"]), float(rec["yaw"]))
        except (ValueError, KeyError, TypeError) as e:
            log.warning("Skipping malformed motion line %d: %s", lineno, e)


@dataclass
class MotionSession:
    on_motion: Callable[[float, float, float], None]
    on_connection: Callable[[bool], None]
    stopped: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None


class JsonLinesMotionRuntime:
    """Replays head orientation from a JSON-lines file (or stdin for "-")."""

    def __init__(self, path: str, realtime: bool = True):
        self.path = path
        self.realtime = realtime

    def is_device_available(self) -> bool:
        if self.path == "-":
            return True
        try:
            with open(self.path, "r", encoding="utf-8"):
                return True
        except OSError:
            return False

    def authorization_status(self) -> str:
        return AUTHORIZED

    def make_session(
        self, on_motion: Callable[[float, float, float], None], on_connection: Callable[[bool], None]
    ) -> MotionSession:
        return MotionSession(on_motion=on_motion, on_connection=on_connection)

    def start_updates(self, session: MotionSession, completion: Callable[[bool], None]) -> None:
        def _run() -> None:
            try:
                stream = sys.stdin if self.path == "-" else open(self.path, "r", encoding="utf-8")
            except OSError as e:
                log.error("Cannot open motion feed %s: %s", self.path, e)
                completion(False)
                return
            completion(True)
            try:
                self._replay(session, stream)
            finally:
                if stream is not sys.stdin:
                    stream.close()

        session.thread = threading.Thread(target=_run, name="motion-feed", daemon=True)
        session.thread.start()

    def _replay(self, session: MotionSession, stream: Iterable[str]) -> None:
        started = time.monotonic()
        for t, event in iter_feed(stream):
            if session.stopped.is_set():
                break
            if self.realtime and t is not None:
                delay = t - (time.monotonic() - started)
                if delay > 0 and session.stopped.wait(delay):
                    break
            if event[0] == "connected":
                session.on_connection(bool(event[1]))
            else:
                _, pitch, roll, yaw = event
                session.on_motion(pitch, roll, yaw)

    def stop_updates(self, session: MotionSession) -> None:
        session.stopped.set()
        if session.thread is not None and session.thread is not threading.current_thread():
            session.thread.join(timeout=1.0)
