"""Shared fixtures: the fake wpt.fyi API is patched into the module session."""

from __future__ import annotations

import os

import pytest

from tests.helpers import BASE_URL, FakeWpt
from wpt_dash.tools import fetch


@pytest.fixture
def fake_wpt(monkeypatch):
    api = FakeWpt()
    monkeypatch.setattr(fetch._SESSION, "get", api.get)
    fetch.reset_stats()
    return api


@pytest.fixture
def client():
    return fetch.WptClient(base_url=BASE_URL, timeout_sec=5)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer WPTDASH_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("WPTDASH_"):
            monkeypatch.delenv(name, raising=False)
