"""Health buckets for a folder's pass ratio."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from wpt_dash.pipeline.classify import classify, thresholds_from_config
from wpt_dash.schemas.run import FolderCount


@pytest.mark.parametrize("passing,total,expected", [
    (5, 5, "good"),
    (0, 0, "good"),
    (9999, 10000, "okay"),
    (4, 5, "okay"),
    (3, 4, "bad"),
    (0, 10, "bad"),
])
def test_classify_default_thresholds(passing, total, expected):
    assert classify(FolderCount(passing=passing, total=total)) == expected


def test_custom_thresholds():
    count = FolderCount(passing=99, total=100)
    assert classify(count) == "okay"
    assert classify(count, good=0.98) == "good"
    assert classify(FolderCount(passing=1, total=2), okay=0.4) == "okay"


def test_thresholds_from_config_defaults():
    assert thresholds_from_config({}) == (0.9999, 0.75)
    assert thresholds_from_config({"thresholds": {"good": 0.99}}) == (0.99, 0.75)


def test_folder_count_rejects_passing_above_total():
    with pytest.raises(ValidationError):
        FolderCount(passing=6, total=5)
    with pytest.raises(ValidationError):
        FolderCount(passing=-1, total=5)
