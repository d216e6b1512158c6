"""Fake wpt.fyi API and payload builders shared by the tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from urllib.parse import urlencode

import yaml

BASE_URL = "https://wpt.test/api/"


def iso(ms: int) -> str:
    """Epoch millis -> ISO8601 UTC string as wpt.fyi formats time_end."""
    dt = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def search_payload(*counts: tuple[int, int]) -> dict:
    """Build a /search body with one test per (passes, total) pair."""
    return {
        "results": [
            {"test": f"/t/{i}.html", "legacy_status": [{"passes": p, "total": t}]}
            for i, (p, t) in enumerate(counts)
        ]
    }


def write_config(path, **sections) -> str:
    """Write a config.yaml pointing at the fake API; keyword args replace sections."""
    cfg = {
        "api": {"base_url": BASE_URL, "timeout_sec": 5},
        "poll": {"update_period_hours": 1, "history_count": 10, "max_workers": 1},
        "folders": ["x", "y"],
    }
    cfg.update(sections)
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return str(path)


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, text: str | None = None, url: str = ""):
        self.status_code = status_code
        self.url = url
        if text is None:
            text = json.dumps(body)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        return json.loads(self.text)


class FakeWpt:
    """
    In-memory stand-in for the two endpoints the dashboard uses.

    runs: newest first, [{"id": ..., "time_end": ...}]
    search: {(run_id, folder): payload}
    failures: {path: exception or FakeResponse}, checked before routing
    """

    def __init__(self):
        self.runs: list[dict] = []
        self.search: dict = {}
        self.failures: dict = {}
        self.calls: list[tuple[str, dict]] = []

    def add_run(self, run_id, ms: int, folders: dict[str, tuple[int, int]] | None = None):
        self.runs.append({"id": run_id, "time_end": iso(ms), "_ms": ms})
        self.runs.sort(key=lambda r: r["_ms"], reverse=True)
        for folder, pair in (folders or {}).items():
            self.search[(str(run_id), folder)] = search_payload(pair)

    def count(self, path: str) -> int:
        return sum(1 for p, _ in self.calls if p == path)

    def get(self, url, params=None, timeout=None):
        params = dict(params or {})
        path = url.split("/api/", 1)[1]
        self.calls.append((path, params))
        full = url + ("?" + urlencode(params) if params else "")

        failure = self.failures.get(path)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, FakeResponse):
            failure.url = full
            return failure

        if path == "runs":
            n = int(params.get("max-count", 1))
            body = [{"id": r["id"], "time_end": r["time_end"]} for r in self.runs[:n]]
            return FakeResponse(body=body, url=full)
        if path == "search":
            key = (str(params.get("run_ids")), params.get("q"))
            return FakeResponse(body=self.search.get(key, {"results": []}), url=full)
        return FakeResponse(status_code=404, text="not found", url=full)
