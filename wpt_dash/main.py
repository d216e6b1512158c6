# wpt_dash/main.py
import os
import copy
import sys
import argparse

import yaml
from dotenv import load_dotenv
from tqdm import tqdm

from wpt_dash.errors import ConfigError, WptError
from wpt_dash.pipeline.aggregate import build_run_result, fetch_latest_run, fetch_recent_runs
from wpt_dash.pipeline.classify import classify, thresholds_from_config
from wpt_dash.schemas.run import millis_to_datetime
from wpt_dash.store.history import HistoryStore
from wpt_dash.tools.fetch import FETCH_STATS, WptClient
from wpt_dash.tools.logger import make_poll_logger


# ----------------------------
# Configuration
# ----------------------------

# Folders owned by input-dev@, from the OWNERS files under
# third_party/blink/web_tests/external/wpt in chromium src/.
DEFAULT_FOLDERS = [
    "dom/events/scrolling",
    "html/interaction/focus",
    "html/user-activation",
    "infrastructure/testdriver/actions",
    "input-events",
    "keyboard-map",
    "pointerevents",
    "pointerlock",
    "scroll-to-text-fragment",
    "touch-events",
    "uievents",
    "visual-viewport",
]

DEFAULT_CONFIG = {
    "api": {
        "base_url": "https://staging.wpt.fyi/api/",
        "timeout_sec": 30,
        "product": "chrome",
        "label": "master",
    },
    "poll": {
        "update_period_hours": 1,
        "history_count": 100,
        "max_workers": 1,
    },
    "thresholds": {
        "good": 0.9999,
        "okay": 0.75,
    },
    "folders": DEFAULT_FOLDERS,
    "store": {
        "history_path": None,
    },
    "logging": {
        "logfile": None,
    },
    "web": {
        "host": "0.0.0.0",
        "port": 8000,
        "timezone": None,
    },
}

# (env var, section, key, converter)
ENV_OVERRIDES = [
    ("WPTDASH_API_BASE_URL", "api", "base_url", str),
    ("WPTDASH_API_TIMEOUT_SEC", "api", "timeout_sec", float),
    ("WPTDASH_UPDATE_PERIOD_HOURS", "poll", "update_period_hours", float),
    ("WPTDASH_HISTORY_COUNT", "poll", "history_count", int),
    ("WPTDASH_MAX_WORKERS", "poll", "max_workers", int),
    ("WPTDASH_HISTORY_PATH", "store", "history_path", str),
    ("WPTDASH_LOGFILE", "logging", "logfile", str),
    ("WPTDASH_HOST", "web", "host", str),
    ("WPTDASH_PORT", "web", "port", int),
]


def _merge(base: dict, override: dict) -> dict:
    for k, v in override.items():
        if isinstance(base.get(k), dict) and v is None:
            # an empty section (`poll:`) keeps the defaults
            continue
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(path: str = "config.yaml") -> dict:
    """
    Load configuration from config.yaml and apply environment variable overrides.
    Configuration hierarchy (highest to lowest precedence):
    1. Environment variables (WPTDASH_*)
    2. .env file
    3. config.yaml
    4. built-in defaults
    """
    # Load .env file if it exists (does not override existing env vars)
    load_dotenv(override=False)

    if not os.path.isfile(path):
        raise ConfigError(f"config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    cfg = _merge(copy.deepcopy(DEFAULT_CONFIG), loaded)

    for section, default in DEFAULT_CONFIG.items():
        if isinstance(default, dict) and not isinstance(cfg.get(section), dict):
            raise ConfigError(f"{path}: section '{section}' must be a mapping")

    for env, section, key, conv in ENV_OVERRIDES:
        raw = os.getenv(env)
        if raw is None or raw == "":
            continue
        try:
            cfg[section][key] = conv(raw)
        except ValueError as e:
            raise ConfigError(f"{env}={raw!r}: {e}") from e

    folders = cfg.get("folders")
    if not isinstance(folders, list) or not all(isinstance(f, str) for f in folders):
        raise ConfigError(f"{path}: folders must be a list of strings")

    try:
        if float(cfg["poll"]["update_period_hours"]) <= 0:
            raise ConfigError("poll.update_period_hours must be greater than 0")
        if int(cfg["poll"]["history_count"]) < 1:
            raise ConfigError("poll.history_count must be at least 1")
        if int(cfg["poll"]["max_workers"]) < 1:
            raise ConfigError("poll.max_workers must be at least 1")
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{path}: invalid poll setting: {e}") from e

    return cfg


def open_store(cfg: dict) -> HistoryStore:
    path = (cfg.get("store", {}) or {}).get("history_path")
    if path:
        return HistoryStore.load_jsonl(path)
    return HistoryStore()


# ----------------------------
# Commands
# ----------------------------

def cmd_once(cfg: dict, history: int) -> int:
    log = make_poll_logger(logfile=cfg["logging"].get("logfile"))
    client = WptClient.from_config(cfg)
    store = open_store(cfg)
    folders = cfg["folders"]
    workers = int(cfg["poll"].get("max_workers", 1))

    def build(run):
        return build_run_result(client, run, folders, max_workers=workers)

    latest = fetch_latest_run(client)
    if not store.contains(latest.timestamp):
        store.record_latest(build(latest))
    log.log(f"Latest run {latest.id} ended {latest.time_end}")

    if history > 0:
        runs = fetch_recent_runs(client, history)
        with tqdm(total=max(len(runs) - 1, 0), desc="Backfill", unit="run") as bar:
            n = store.backfill(runs, build, on_insert=lambda e: bar.update(1))
        log.log(f"Backfilled {n} runs, {len(store)} in history")

    history_path = cfg["store"].get("history_path")
    if history_path:
        store.save_jsonl(history_path)

    good, okay = thresholds_from_config(cfg)
    entry = store.latest()
    print()
    print(f"Run {entry.run_id} @ {millis_to_datetime(entry.timestamp).strftime('%Y-%m-%d %H:%M:%S %Z')}")
    width = max((len(f) for f in folders), default=0)
    for folder in folders:
        count = entry.folder_results.get(folder)
        if count is None:
            continue
        print(f"  {folder:<{width}}  {count.passing:>6}/{count.total:<6}  {classify(count, good, okay)}")
    print()
    print(f"Fetch stats: {FETCH_STATS}")
    return 0


def cmd_serve(cfg: dict, host: str | None, port: int | None) -> int:
    from wpt_dash.web.server import main as serve_main
    serve_main(cfg, host=host, port=port)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="WPT results dashboard for a fixed set of test folders.")
    parser.add_argument("--config", type=str, default="config.yaml", help="Path to config.yaml.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the web dashboard with the background poller.")
    p_serve.add_argument("--host", type=str, default=None)
    p_serve.add_argument("--port", type=int, default=None)

    p_once = sub.add_parser("once", help="Poll once and print the latest per-folder results.")
    p_once.add_argument("--history", type=int, default=0, help="Also backfill this many recent runs.")

    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
        if args.command == "serve":
            return cmd_serve(cfg, args.host, args.port)
        return cmd_once(cfg, args.history)
    except WptError as e:
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
