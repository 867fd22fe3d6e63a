from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, tzinfo
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from slumpwatch.common.schemas import DailyStats

log = logging.getLogger(__name__)


def load_ledger(path: str) -> Dict[str, DailyStats]:
    """Read the day -> stats document. Missing or unreadable files yield an empty ledger."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        log.warning("Could not read analytics ledger %s: %s", path, e)
        return {}
    if not isinstance(raw, dict):
        log.warning("Ignoring analytics ledger %s: not an object", path)
        return {}

    history: Dict[str, DailyStats] = {}
    for key, record in raw.items():
        try:
            history[key] = DailyStats.model_validate({**record, "day_key": key})
        except (ValidationError, TypeError) as e:
            log.warning("Skipping invalid ledger entry %s: %s", key, e)
    return history


def write_ledger(path: str, history: Dict[str, DailyStats]) -> None:
    """Read-modify-write the whole document, replacing it atomically."""
    merged = {k: v.model_dump(by_alias=True) for k, v in load_ledger(path).items()}
    merged.update({k: v.model_dump(by_alias=True) for k, v in history.items()})

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".analytics-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(merged, f, indent=2, sort_keys=True)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class AnalyticsTracker:
    """Accumulates monitored and slouching time into calendar-day buckets.

    All mutating calls must come from one thread. Saves run on a private
    single-worker executor so they never overlap and never block the caller;
    flush() is the only way to observe a write as complete.
    """

    def __init__(
        self,
        path: str,
        tz: Optional[tzinfo] = None,
        now: Callable[[], datetime] = datetime.now,
        executor: Optional[Executor] = None,
    ):
        self.path = path
        self.tz = tz
        self._now = now
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="analytics-io")
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self._dirty = False
        self.failed_writes = 0

        self._history = load_ledger(path)
        key = self._current_key()
        self._today = self._history.get(key) or DailyStats(day_key=key)
        self._history[key] = self._today

    def _current_key(self) -> str:
        return DailyStats.key_for(self._now(), self.tz)

    def _mark_dirty(self) -> None:
        with self._lock:
            self._dirty = True

    @property
    def today_stats(self) -> DailyStats:
        return self._today.model_copy()

    @property
    def history(self) -> Dict[str, DailyStats]:
        return {k: v.model_copy() for k, v in self._history.items()}

    def _roll_over_if_needed(self) -> None:
        key = self._current_key()
        if key == self._today.day_key:
            return
        log.info("Day rollover %s -> %s", self._today.day_key, key)
        # Previous day is already in history; persist it before accumulating the new one
        self._mark_dirty()
        self.save_history_if_needed()
        self._today = self._history.get(key) or DailyStats(day_key=key)
        self._history[key] = self._today

    def track_time(self, interval: float, is_slouching: bool) -> None:
        self._roll_over_if_needed()
        self._today.total_seconds += interval
        if is_slouching:
            self._today.slouch_seconds += interval
        self._mark_dirty()

    def record_slouch_event(self) -> None:
        self._roll_over_if_needed()
        self._today.slouch_count += 1
        self._mark_dirty()

    def save_history_if_needed(self) -> Optional[Future]:
        with self._lock:
            if not self._dirty:
                return None
            self._dirty = False
        snapshot = self.history
        fut = self._executor.submit(self._write, snapshot)
        self._pending = [f for f in self._pending if not f.done()] + [fut]
        return fut

    def _write(self, snapshot: Dict[str, DailyStats]) -> None:
        try:
            write_ledger(self.path, snapshot)
        except OSError as e:
            log.error("Failed to save analytics to %s: %s", self.path, e)
            self.failed_writes += 1
            # Retry with then-current state on the next save
            self._mark_dirty()

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted save has finished."""
        pending, self._pending = self._pending, []
        for fut in pending:
            fut.result(timeout=timeout)

    def close(self) -> None:
        self.save_history_if_needed()
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
