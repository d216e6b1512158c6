# wpt_dash/store/history.py
"""
In-memory run history for the dashboard charts.

Entries are kept sorted by timestamp, ascending, with at most one entry per
timestamp. The store only grows: the poller appends the newest run and
backfill inserts older runs behind it. Reads go through snapshot() so the
web server never sees a half-updated list.
"""
import bisect
import json
import os
import threading
from typing import Callable, Iterable, List, Literal, Optional, Sequence, Tuple

from pydantic import ValidationError

from wpt_dash.errors import SchemaError
from wpt_dash.schemas.run import RunDescriptor, RunResult

SeriesKind = Literal["pass", "fail"]


class HistoryStore:

    def __init__(self, entries: Iterable[RunResult] = ()):
        self._lock = threading.Lock()
        self._entries: List[RunResult] = []
        self._timestamps: List[int] = []
        self._version = 0
        for e in entries:
            self.insert(e)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def version(self) -> int:
        """Bumped on every change; lets readers detect updates cheaply."""
        with self._lock:
            return self._version

    def snapshot(self) -> Tuple[RunResult, ...]:
        with self._lock:
            return tuple(self._entries)

    def latest(self) -> Optional[RunResult]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def contains(self, timestamp: int) -> bool:
        with self._lock:
            return self._index_of(timestamp) is not None

    def series(self, kind: SeriesKind) -> List[Tuple[int, int]]:
        """(timestamp, count) rows summed over all folders, oldest first."""
        if kind == "pass":
            return [(e.timestamp, e.passing_sum()) for e in self.snapshot()]
        if kind == "fail":
            return [(e.timestamp, e.failing_sum()) for e in self.snapshot()]
        raise ValueError(f"unknown series kind: {kind!r}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_latest(self, entry: RunResult) -> bool:
        """
        Append the most recent run unless its timestamp matches the current
        last entry. Polling an unchanged latest run is therefore a no-op.
        """
        with self._lock:
            if self._entries and self._timestamps[-1] == entry.timestamp:
                return False
            if self._entries and entry.timestamp < self._timestamps[-1]:
                return self._insert_sorted(entry)
            self._entries.append(entry)
            self._timestamps.append(entry.timestamp)
            self._version += 1
            return True

    def insert(self, entry: RunResult) -> bool:
        """Sorted insert; an already-stored timestamp is a no-op."""
        with self._lock:
            return self._insert_sorted(entry)

    def backfill(self, runs_newest_first: Sequence[RunDescriptor],
                 fetch_result: Callable[[RunDescriptor], RunResult],
                 on_insert: Optional[Callable[[RunResult], None]] = None,
                 should_stop: Optional[Callable[[], bool]] = None) -> int:
        """
        Populate history with runs older than the newest stored entry.

        Runs are walked oldest to newest. Each one older than the boundary
        (the newest timestamp held when the call starts) and not yet stored
        is fetched and inserted ahead of the newest entry, then on_insert is
        called so a view can redraw while older data keeps arriving.
        Returns the number of entries inserted. A fetch failure propagates;
        entries inserted before it stay.
        """
        latest = self.latest()
        boundary = latest.timestamp if latest is not None else None

        inserted = 0
        for run in reversed(list(runs_newest_first)):
            if should_stop is not None and should_stop():
                break
            ts = run.timestamp
            if boundary is not None and ts >= boundary:
                continue
            if self.contains(ts):
                continue
            entry = fetch_result(run)
            if self.insert(entry):
                inserted += 1
                if on_insert is not None:
                    on_insert(entry)
        return inserted

    def _index_of(self, timestamp: int) -> Optional[int]:
        i = bisect.bisect_left(self._timestamps, timestamp)
        if i < len(self._timestamps) and self._timestamps[i] == timestamp:
            return i
        return None

    def _insert_sorted(self, entry: RunResult) -> bool:
        # caller holds the lock
        if self._index_of(entry.timestamp) is not None:
            return False
        i = bisect.bisect_left(self._timestamps, entry.timestamp)
        self._entries.insert(i, entry)
        self._timestamps.insert(i, entry.timestamp)
        self._version += 1
        return True

    # ------------------------------------------------------------------
    # Persistence (optional, one JSON record per line)
    # ------------------------------------------------------------------

    def save_jsonl(self, path: str) -> None:
        d = os.path.dirname(path)
        if d:
            os.makedirs(d, exist_ok=True)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            for e in self.snapshot():
                f.write(json.dumps(e.model_dump(mode="json"), ensure_ascii=False) + "\n")
        os.replace(tmp, path)

    @classmethod
    def load_jsonl(cls, path: str) -> "HistoryStore":
        """Rebuild a store from save_jsonl output. A missing file gives an empty store."""
        store = cls()
        if not os.path.isfile(path):
            return store
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    store.insert(RunResult.model_validate_json(line))
                except ValidationError as e:
                    raise SchemaError(f"{path}:{lineno}: bad history record") from e
        return store
