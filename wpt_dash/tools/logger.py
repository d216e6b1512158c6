# wpt_dash/tools/logger.py
import os
from datetime import datetime
from typing import Optional

LEVELS = {"DEBUG": 0, "INFO": 1, "WARNING": 2, "ERROR": 3}


def should_log(level: str) -> bool:
    """Check if we should log at the given level based on WPTDASH_LOG_LEVEL env var."""
    current_level = os.environ.get("WPTDASH_LOG_LEVEL", "INFO").upper()
    return LEVELS.get(level, 1) >= LEVELS.get(current_level, 1)


class PollLogger:
    """
    Simple poll logger:
    - prints to stdout
    - optionally appends to a logfile (e.g., logs/poll.log)
    """

    def __init__(self, logfile_path: Optional[str] = None):
        self.logfile_path = logfile_path

        if self.logfile_path:
            logdir = os.path.dirname(self.logfile_path)
            if logdir:
                os.makedirs(logdir, exist_ok=True)
            # Touch early so it exists even if we crash later
            with open(self.logfile_path, "a", encoding="utf-8") as f:
                f.write("")

    def log(self, msg: str, level: str = "INFO") -> None:
        if not should_log(level):
            return
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        prefix = "" if level == "INFO" else f"{level}: "
        line = f"[{ts}] {prefix}{msg}"
        print(line, flush=True)
        if self.logfile_path:
            with open(self.logfile_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def debug(self, msg: str) -> None:
        self.log(msg, level="DEBUG")

    def warning(self, msg: str) -> None:
        self.log(msg, level="WARNING")

    def error(self, msg: str) -> None:
        self.log(msg, level="ERROR")


def make_poll_logger(logfile: str | None = None) -> PollLogger:
    return PollLogger(logfile_path=logfile)
