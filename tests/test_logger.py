"""PollLogger output and level gating."""

from __future__ import annotations

from wpt_dash.tools.logger import make_poll_logger, should_log


def test_log_writes_stdout_and_logfile(tmp_path, capsys):
    logfile = tmp_path / "logs" / "poll.log"
    log = make_poll_logger(logfile=str(logfile))
    log.log("hello")
    log.error("broken")

    out = capsys.readouterr().out
    assert "hello" in out
    assert "ERROR: broken" in out
    lines = logfile.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("] hello")


def test_level_gating(monkeypatch, capsys):
    monkeypatch.setenv("WPTDASH_LOG_LEVEL", "WARNING")
    assert not should_log("INFO")
    assert should_log("ERROR")
    log = make_poll_logger()
    log.log("quiet")
    log.debug("quieter")
    log.warning("loud")
    out = capsys.readouterr().out
    assert "quiet" not in out
    assert "WARNING: loud" in out
