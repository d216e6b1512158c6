# wpt_dash/web/server.py
"""
FastAPI web server for the WPT dashboard.

Serves the dashboard page, JSON views of the history store for the charts,
and an SSE feed that tells open pages to refresh whenever the poller adds
runs (backfill shows up incrementally this way).

Run with: python -m wpt_dash.web.server
"""
import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal, Optional

from dateutil import tz
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from wpt_dash.pipeline.classify import classify, thresholds_from_config
from wpt_dash.poller import Poller
from wpt_dash.schemas.run import millis_to_datetime
from wpt_dash.store.history import HistoryStore
from wpt_dash.tools.logger import make_poll_logger

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

WEB_DIR = Path(__file__).parent
TEMPLATES_DIR = WEB_DIR / "templates"
STATIC_DIR = WEB_DIR / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def build_summary(cfg: dict, store: HistoryStore, poller: Optional[Poller] = None) -> dict:
    """Latest run, per-folder counts with their health class, poller status."""
    good, okay = thresholds_from_config(cfg)
    zone_name = (cfg.get("web", {}) or {}).get("timezone")
    zone = tz.gettz(zone_name) if zone_name else tz.tzlocal()

    latest = store.latest()
    run = None
    folders = []
    if latest is not None:
        run = {
            "run_id": latest.run_id,
            "timestamp": latest.timestamp,
            "time": millis_to_datetime(latest.timestamp, zone).strftime("%Y-%m-%d %H:%M:%S %Z"),
        }
        for folder in cfg.get("folders") or []:
            count = latest.folder_results.get(folder)
            if count is None:
                continue
            folders.append({
                "folder": folder,
                "passing": count.passing,
                "total": count.total,
                "health": classify(count, good, okay),
            })

    return {
        "run": run,
        "folders": folders,
        "history_len": len(store),
        "version": store.version,
        "poller": poller.status() if poller is not None else None,
    }


def chart_rows(store: HistoryStore, kind: str) -> list:
    """Two-column table (header row first) in the shape the chart library takes."""
    label = "passing" if kind == "pass" else "failing"
    return [["timestamp", label]] + [[ts, n] for ts, n in store.series(kind)]


async def history_events(store: HistoryStore, poller: Optional[Poller] = None,
                         interval_sec: float = 1.0, heartbeat_every: int = 15,
                         max_events: Optional[int] = None):
    """
    SSE generator: one `history` event per store version change, and per
    finished poll (success or failure) when a poller is given, so the page
    can refresh its last-updated time and error line.

    The first event goes out immediately so a fresh page syncs up. A comment
    line is sent every `heartbeat_every` idle polls to keep proxies from
    dropping the connection.
    """
    last_key = None
    sent = 0
    idle = 0
    while True:
        version = store.version
        key = (version, poller.last_updated, poller.failures) if poller is not None else (version,)
        if key != last_key:
            last_key = key
            idle = 0
            payload = {"version": version, "history_len": len(store)}
            if poller is not None:
                status = poller.status()
                payload["last_updated"] = status["last_updated"]
                payload["last_error"] = status["last_error"]
            data = json.dumps(payload)
            yield f"event: history\ndata: {data}\n\n"
            sent += 1
            if max_events is not None and sent >= max_events:
                break
        else:
            idle += 1
            if idle >= heartbeat_every:
                idle = 0
                yield ": heartbeat\n\n"
        await asyncio.sleep(interval_sec)


def create_app(cfg: dict, store: Optional[HistoryStore] = None,
               poller: Optional[Poller] = None, start_poller: bool = True) -> FastAPI:
    store = store if store is not None else HistoryStore()
    if poller is None:
        log = make_poll_logger(logfile=(cfg.get("logging", {}) or {}).get("logfile"))
        poller = Poller.from_config(cfg, store, log=log)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_poller:
            poller.start()
        try:
            yield
        finally:
            if start_poller:
                poller.stop(timeout=5)

    app = FastAPI(title="WPT Dashboard", lifespan=lifespan)
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    app.state.cfg = cfg
    app.state.store = store
    app.state.poller = poller

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        """Dashboard page: latest results plus pass/fail history charts."""
        summary = build_summary(cfg, store, poller)
        return templates.TemplateResponse(request, "dashboard.html", {
            "summary": summary,
        })

    @app.get("/api/summary")
    async def api_summary():
        return build_summary(cfg, store, poller)

    @app.get("/api/history")
    async def api_history(kind: Literal["pass", "fail"] = "pass"):
        return JSONResponse(chart_rows(store, kind))

    @app.get("/events")
    async def events():
        """SSE stream: history version changes."""
        return StreamingResponse(
            history_events(store, poller),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(cfg: Optional[dict] = None, host: Optional[str] = None, port: Optional[int] = None):
    import uvicorn
    from wpt_dash.main import load_config, open_store

    cfg = cfg or load_config()
    web = cfg.get("web", {}) or {}
    host = host or web.get("host", "0.0.0.0")
    port = int(port or web.get("port", 8000))

    app = create_app(cfg, store=open_store(cfg))
    print(f"Starting WPT dashboard at http://localhost:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
