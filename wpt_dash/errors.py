# wpt_dash/errors.py
"""
Error kinds raised while talking to the wpt.fyi API or loading config.

Everything derives from WptError so the poller can catch one type per tick.
"""


class WptError(Exception):
    """Base class for dashboard errors."""
    pass


class NetworkError(WptError):
    """Transport failure, timeout or non-2xx HTTP status."""

    def __init__(self, message: str, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ParseError(WptError):
    """Response body was not valid JSON."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class SchemaError(WptError):
    """JSON was valid but did not have the expected shape."""
    pass


class ConfigError(WptError):
    """config.yaml missing or malformed."""
    pass
