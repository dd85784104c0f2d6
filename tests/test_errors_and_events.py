from __future__ import annotations

import json
import logging

from prepxl.core.error_reporter import ErrorReporter, ErrorReporterConfig
from prepxl.core.errors import AllSessionsClearFailed, Severity
from prepxl.core.events import EventLogger, redact
from prepxl.core.logger import get_logger, setup_logging
from prepxl.core.trace import current_trace_id, login_trace, resolve_trace_id


def test_unknown_exception_normalized_and_redacted(tmp_path):
    p = tmp_path / "errors.jsonl"
    r = ErrorReporter(path=str(p))
    try:
        raise RuntimeError("boom")
    except Exception as e:  # noqa: BLE001
        je = r.report_exception(e, trace_id="t1", subsystem="auth.conflict", context={"secret": "SESSION-SECRET", "x": 1})
        assert je.code == "unknown_error"
        assert je.user_message
    obj = json.loads(p.read_text(encoding="utf-8").splitlines()[-1])
    assert obj["trace_id"] == "t1"
    assert obj["subsystem"] == "auth.conflict"
    assert "SESSION-SECRET" not in json.dumps(obj)
    assert "***REDACTED***" in json.dumps(obj)
    assert "internal_context" not in obj


def test_taxonomy_error_passthrough_with_traceback(tmp_path):
    r = ErrorReporter(path=str(tmp_path / "errors.jsonl"), cfg=ErrorReporterConfig(include_tracebacks=True))
    try:
        raise AllSessionsClearFailed(status=500)
    except AllSessionsClearFailed as e:
        out = r.report_exception(e, trace_id="t2", subsystem="auth.conflict")
        assert out is e
    entry = r.by_trace_id("t2")[0]
    assert entry["error_code"] == "all_sessions_clear_failed"
    assert entry["severity"] == Severity.ERROR.value
    assert entry["recoverable"] is False
    assert "traceback" in entry["internal_context"]


def test_error_to_dict_redacts_context():
    d = AllSessionsClearFailed(token="abc", status=500).to_dict()
    assert d["context"]["token"] == "***REDACTED***"
    assert d["context"]["status"] == 500


def test_event_logger_redacts_nested_secrets(tmp_path):
    ev = EventLogger(str(tmp_path / "events.jsonl"))
    ev.log("t1", "session.state", {"from": "IDLE", "to": "ATTEMPTING", "session": {"secret": "s3cr3t", "id": "s1"}})
    ev.log("t1", "session.logout", {"password": "hunter2"})
    tail = ev.tail(5)
    assert [e["event"] for e in tail] == ["session.state", "session.logout"]
    raw = json.dumps(tail)
    assert "s3cr3t" not in raw and "hunter2" not in raw
    assert tail[0]["details"]["session"]["id"] == "s1"


def test_redact_is_case_insensitive():
    assert redact({"Authorization": "Bearer x", "items": [{"API_KEY": "k"}]}) == {
        "Authorization": "***REDACTED***",
        "items": [{"API_KEY": "***REDACTED***"}],
    }


def test_login_trace_scopes_ids():
    assert current_trace_id() is None
    with login_trace("abc") as tid:
        assert tid == "abc"
        assert current_trace_id() == "abc"
        assert resolve_trace_id() == "abc"
        with login_trace() as inner:
            assert inner == "abc"
    assert current_trace_id() is None
    assert resolve_trace_id("given") == "given"
    assert len(resolve_trace_id()) == 32


def test_setup_logging_writes_rotating_file_with_trace(tmp_path):
    logger = setup_logging(str(tmp_path / "logs"), level="debug", console=False)
    try:
        assert logger.level == logging.DEBUG
        with login_trace("cycle-1"):
            get_logger("auth.test").info("conflict detected")
        get_logger("auth.test").info("outside")
        for h in logger.handlers:
            h.flush()
        lines = (tmp_path / "logs" / "prepxl.log").read_text(encoding="utf-8").splitlines()
        assert "prepxl.auth.test" in lines[0]
        assert "trace=cycle-1" in lines[0] and "conflict detected" in lines[0]
        assert "trace=-" in lines[1]
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
