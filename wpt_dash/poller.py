# wpt_dash/poller.py
"""
Background poller that keeps the HistoryStore current.

The first successful tick records the latest run and then backfills up to
`history_count` older runs. Every later tick only checks the latest run.
Ticks run on a daemon thread, one at a time: the next wait only starts once
the current tick has finished, so a slow tick delays the schedule instead
of overlapping with the next one.
"""
import threading
import traceback
from datetime import datetime
from typing import List, Optional

from wpt_dash.errors import WptError
from wpt_dash.pipeline.aggregate import build_run_result, fetch_latest_run, fetch_recent_runs
from wpt_dash.schemas.run import RunDescriptor, RunResult
from wpt_dash.store.history import HistoryStore
from wpt_dash.tools.fetch import WptClient
from wpt_dash.tools.logger import PollLogger, make_poll_logger

DEFAULT_UPDATE_PERIOD_HOURS = 1.0
DEFAULT_HISTORY_COUNT = 100


class PollCancelled(Exception):
    """Raised when stop() is requested in the middle of a tick."""
    pass


class Poller:

    STATE_INITIAL = "initial"
    STATE_STEADY = "steady"

    def __init__(self, client: WptClient, store: HistoryStore, folders: List[str],
                 update_period_hours: float = DEFAULT_UPDATE_PERIOD_HOURS,
                 history_count: int = DEFAULT_HISTORY_COUNT,
                 max_workers: int = 1,
                 history_path: Optional[str] = None,
                 log: Optional[PollLogger] = None):
        self.client = client
        self.store = store
        self.folders = list(folders)
        self.update_period_sec = float(update_period_hours) * 3600.0
        self.history_count = int(history_count)
        self.max_workers = int(max_workers)
        self.history_path = history_path
        self.log = log or make_poll_logger()

        self.state = self.STATE_INITIAL
        self.last_updated: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.ticks = 0
        self.failures = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, cfg: dict, store: HistoryStore, log: Optional[PollLogger] = None) -> "Poller":
        poll = cfg.get("poll", {}) or {}
        return cls(
            client=WptClient.from_config(cfg),
            store=store,
            folders=cfg.get("folders") or [],
            update_period_hours=float(poll.get("update_period_hours", DEFAULT_UPDATE_PERIOD_HOURS)),
            history_count=int(poll.get("history_count", DEFAULT_HISTORY_COUNT)),
            max_workers=int(poll.get("max_workers", 1)),
            history_path=(cfg.get("store", {}) or {}).get("history_path"),
            log=log,
        )

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Run one poll step to completion. Returns True on success.

        Failures are logged and kept in last_error; the state is left
        unchanged so an initial tick that failed retries its backfill next
        time.
        """
        self.ticks += 1
        try:
            self._poll()
        except PollCancelled:
            self.log.log("Poll cancelled")
            return False
        except WptError as e:
            self.failures += 1
            self.last_error = f"{type(e).__name__}: {e}"
            self.log.error(f"Poll failed ({self.state}): {self.last_error}")
            return False
        except Exception as e:
            self.failures += 1
            self.last_error = f"{type(e).__name__}: {e}"
            self.log.error(f"Poll crashed ({self.state}): {self.last_error}\n{traceback.format_exc()}")
            return False

        self.last_updated = datetime.now()
        self.last_error = None
        return True

    def _poll(self):
        latest = fetch_latest_run(self.client)
        if self.store.contains(latest.timestamp):
            self.log.debug(f"Latest run {latest.id} already recorded")
        else:
            self.log.log(f"New run {latest.id} ended {latest.time_end}")
            entry = self._build(latest)
            if self.store.record_latest(entry):
                self._changed()

        if self.state != self.STATE_INITIAL:
            return

        self._check_stop()
        runs = fetch_recent_runs(self.client, self.history_count)
        self.log.log(f"Backfilling history from {len(runs)} recent runs")
        n = self.store.backfill(
            runs,
            self._build,
            on_insert=self._on_backfill_insert,
            should_stop=self._stop_event.is_set,
        )
        self._check_stop()
        self.state = self.STATE_STEADY
        self.log.log(f"Backfill done: {n} runs added, {len(self.store)} in history")

    def _build(self, run: RunDescriptor) -> RunResult:
        return build_run_result(self.client, run, self.folders, max_workers=self.max_workers)

    def _on_backfill_insert(self, entry: RunResult):
        self.log.debug(f"Backfilled run {entry.run_id} ({entry.timestamp})")
        self._changed()

    def _changed(self):
        if self.history_path:
            self.store.save_jsonl(self.history_path)

    def _check_stop(self):
        if self._stop_event.is_set():
            raise PollCancelled()

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    def start(self):
        """Launch the tick loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            if self._stop_event.is_set():
                raise RuntimeError("poller is still stopping; wait for the running tick to finish")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="wpt-dash-poller", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Cancel the schedule. An in-flight request finishes first."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            # still inside a request: keep the handle so start() will not run a second loop
            if not self._thread.is_alive():
                self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        self.log.log(
            f"Poller started: {len(self.folders)} folders, every {self.update_period_sec / 3600:g}h, "
            f"backfill {self.history_count}"
        )
        while not self._stop_event.is_set():
            self.tick()
            if self._stop_event.wait(self.update_period_sec):
                break
        self.log.log("Poller stopped")

    def status(self) -> dict:
        return {
            "state": self.state,
            "running": self.running,
            "last_updated": self.last_updated.isoformat(timespec="seconds") if self.last_updated else None,
            "last_error": self.last_error,
            "ticks": self.ticks,
            "failures": self.failures,
            "history_len": len(self.store),
        }
