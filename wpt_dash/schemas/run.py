# wpt_dash/schemas/run.py
from datetime import datetime, timedelta
from typing import Dict, List, Union

from dateutil import parser as date_parser, tz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RunId = Union[int, str]

_EPOCH = datetime(1970, 1, 1, tzinfo=tz.UTC)


def iso_to_millis(value: str) -> int:
    """ISO8601 string -> epoch millis. Naive timestamps are taken as UTC."""
    dt = date_parser.isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz.UTC)
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def millis_to_datetime(ms: int, zone=None) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=zone or tz.tzlocal())


class FolderCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    passing: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _passing_within_total(self):
        if self.passing > self.total:
            raise ValueError(f"passing ({self.passing}) exceeds total ({self.total})")
        return self

    @property
    def failing(self) -> int:
        return self.total - self.passing

    @property
    def ratio(self) -> float:
        # an empty folder counts as fully passing
        if self.total == 0:
            return 1.0
        return self.passing / self.total


class RunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int
    run_id: RunId
    folder_results: Dict[str, FolderCount] = Field(default_factory=dict)

    def passing_sum(self) -> int:
        return sum(c.passing for c in self.folder_results.values())

    def failing_sum(self) -> int:
        return sum(c.failing for c in self.folder_results.values())


# ---------------------------------------------------------------------------
# Wire shapes returned by the wpt.fyi API
# ---------------------------------------------------------------------------

class RunDescriptor(BaseModel):
    """One element of GET /runs."""
    id: RunId
    time_end: str

    @field_validator("time_end")
    @classmethod
    def _parseable(cls, v: str) -> str:
        iso_to_millis(v)
        return v

    @property
    def timestamp(self) -> int:
        return iso_to_millis(self.time_end)


class LegacyStatus(BaseModel):
    passes: int = Field(ge=0)
    total: int = Field(ge=0)


class SearchEntry(BaseModel):
    test: str = ""
    legacy_status: List[LegacyStatus] = Field(min_length=1)


class SearchResponse(BaseModel):
    results: List[SearchEntry]
