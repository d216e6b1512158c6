"""CLI entry point."""

from __future__ import annotations

from tests.helpers import FakeResponse, write_config
from wpt_dash.main import main
from wpt_dash.store.history import HistoryStore


def test_once_prints_folder_summary(fake_wpt, tmp_path, capsys):
    fake_wpt.add_run("A", 1000, {"x": (5, 5), "y": (3, 4)})
    path = write_config(tmp_path / "config.yaml")

    assert main(["--config", path, "once"]) == 0

    out = capsys.readouterr().out
    assert "Run A" in out
    lines = [l.split() for l in out.splitlines() if l.startswith("  ")]
    assert ["x", "5/5", "good"] in lines
    assert ["y", "3/4", "bad"] in lines


def test_once_with_history_saves_store(fake_wpt, tmp_path):
    for i in range(1, 4):
        fake_wpt.add_run(i, i * 1000, {"x": (i, 3), "y": (0, 0)})
    history = tmp_path / "history.jsonl"
    path = write_config(tmp_path / "config.yaml", store={"history_path": str(history)})

    assert main(["--config", path, "once", "--history", "5"]) == 0

    store = HistoryStore.load_jsonl(str(history))
    assert [e.run_id for e in store.snapshot()] == [1, 2, 3]


def test_once_reports_api_failure(fake_wpt, tmp_path, capsys):
    fake_wpt.failures["runs"] = FakeResponse(status_code=500, text="boom")
    path = write_config(tmp_path / "config.yaml")

    assert main(["--config", path, "once"]) == 1
    assert "NetworkError" in capsys.readouterr().err


def test_missing_config_exits_nonzero(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "nope.yaml"), "once"]) == 1
    assert "ConfigError" in capsys.readouterr().err


def test_once_with_empty_config_sections(fake_wpt, tmp_path, capsys):
    fake_wpt.add_run("A", 1000, {"x": (2, 2)})
    path = tmp_path / "config.yaml"
    path.write_text(
        "api:\n  base_url: https://wpt.test/api/\nfolders: [x]\npoll:\nlogging:\nstore:\n",
        encoding="utf-8",
    )

    assert main(["--config", str(path), "once"]) == 0
    lines = [l.split() for l in capsys.readouterr().out.splitlines() if l.startswith("  ")]
    assert ["x", "2/2", "good"] in lines
