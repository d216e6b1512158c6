# wpt_dash/pipeline/classify.py
from typing import Literal

from wpt_dash.schemas.run import FolderCount

Health = Literal["good", "okay", "bad"]

GOOD_THRESHOLD = 0.9999
OKAY_THRESHOLD = 0.75


def classify(count: FolderCount, good: float = GOOD_THRESHOLD, okay: float = OKAY_THRESHOLD) -> Health:
    """Bucket a folder by pass ratio. Both comparisons are strict."""
    ratio = count.ratio
    if ratio > good:
        return "good"
    if ratio > okay:
        return "okay"
    return "bad"


def thresholds_from_config(cfg: dict) -> tuple[float, float]:
    t = cfg.get("thresholds", {}) or {}
    return float(t.get("good", GOOD_THRESHOLD)), float(t.get("okay", OKAY_THRESHOLD))
