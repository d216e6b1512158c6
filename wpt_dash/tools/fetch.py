# wpt_dash/tools/fetch.py
import threading

import requests
from requests.adapters import HTTPAdapter

from wpt_dash.errors import NetworkError, ParseError

DEFAULT_BASE_URL = "https://staging.wpt.fyi/api/"
DEFAULT_TIMEOUT_SEC = 30

# ---------------------------------------------------------------------------
# Module-level session with connection pooling
# ---------------------------------------------------------------------------
_SESSION = requests.Session()
_SESSION.headers["User-Agent"] = "wpt-dash/0.1 (+https://wpt.fyi)"
_SESSION.headers["Accept"] = "application/json"
_SESSION.mount("https://", HTTPAdapter(pool_connections=4, pool_maxsize=8))
_SESSION.mount("http://", HTTPAdapter(pool_connections=2, pool_maxsize=4))

# ---------------------------------------------------------------------------
# Thread-safe fetch stats
# ---------------------------------------------------------------------------
_STATS_LOCK = threading.Lock()

FETCH_STATS = {
    "net_ok": 0,
    "net_fail": 0,
    "parse_fail": 0,
}

def _inc_stat(key: str):
    with _STATS_LOCK:
        FETCH_STATS[key] += 1


def reset_stats():
    with _STATS_LOCK:
        for k in FETCH_STATS:
            FETCH_STATS[k] = 0

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fetch_json(query: str, params: dict | None = None,
               base_url: str | None = None, timeout_sec: float | None = None):
    """
    GET base_url + query and return the decoded JSON body.

    Raises NetworkError on connection errors, timeouts and non-2xx statuses,
    ParseError when the body is not JSON. No retries; the caller decides.
    Thread-safe: the pooled session can be shared across worker threads.
    """
    url = (base_url or DEFAULT_BASE_URL) + query
    timeout = float(timeout_sec if timeout_sec is not None else DEFAULT_TIMEOUT_SEC)

    try:
        r = _SESSION.get(url, params=params, timeout=timeout)
    except requests.exceptions.Timeout as e:
        _inc_stat("net_fail")
        raise NetworkError(f"timeout after {timeout:g}s", url=url) from e
    except requests.exceptions.RequestException as e:
        _inc_stat("net_fail")
        raise NetworkError(f"fetch_error: {type(e).__name__}", url=url) from e

    status = r.status_code
    if not 200 <= status < 300:
        _inc_stat("net_fail")
        raise NetworkError(f"HTTP {status}", url=r.url or url, status=status)

    try:
        data = r.json()
    except ValueError as e:
        _inc_stat("parse_fail")
        raise ParseError(f"non-JSON body ({len(r.content or b'')} bytes)", url=r.url or url) from e

    _inc_stat("net_ok")
    return data


class WptClient:
    """
    Bound API settings for one dashboard instance.

    Keeps base_url/timeout/product/label together so aggregation code
    only passes the client around.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout_sec: float = DEFAULT_TIMEOUT_SEC,
                 product: str = "chrome", label: str = "master"):
        if not base_url.endswith("/"):
            base_url += "/"
        self.base_url = base_url
        self.timeout_sec = timeout_sec
        self.product = product
        self.label = label

    @classmethod
    def from_config(cls, cfg: dict) -> "WptClient":
        api = cfg.get("api", {}) or {}
        return cls(
            base_url=api.get("base_url", DEFAULT_BASE_URL),
            timeout_sec=float(api.get("timeout_sec", DEFAULT_TIMEOUT_SEC)),
            product=api.get("product", "chrome"),
            label=api.get("label", "master"),
        )

    def get(self, query: str, params: dict | None = None):
        return fetch_json(query, params=params, base_url=self.base_url, timeout_sec=self.timeout_sec)
