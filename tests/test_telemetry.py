import logging

import pytest

from examgen.telemetry import emit_orchestration_event, log_event, preview, traced_duration


def test_preview_truncates_long_text() -> None:
    assert preview(None) == ""
    assert preview("short") == "short"
    assert preview("x" * 200, limit=10) == "x" * 10 + "..."


def test_log_event_emits_structured_payload(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("examgen.test")
    with caplog.at_level(logging.INFO, logger="examgen.test"):
        log_event(logger, "chunk.split", req_id="abc", duration_ms=1.23456, details={"chunks": 2})

    event = caplog.records[-1].msg
    assert event == {
        "step": "chunk.split",
        "module": "examgen.test",
        "req_id": "abc",
        "duration_ms": 1.235,
        "details": {"chunks": 2},
    }


def test_traced_duration_logs_errors_and_reraises(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("examgen.test")
    with caplog.at_level(logging.INFO, logger="examgen.test"):
        with pytest.raises(RuntimeError):
            with traced_duration("exam.create", logger=logger, extension=".txt"):
                raise RuntimeError("boom")

    steps = [record.msg["step"] for record in caplog.records if isinstance(record.msg, dict)]
    assert steps == ["exam.create.start", "exam.create.error", "exam.create.complete"]


def test_orchestration_event_is_audited(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    audit = logging.getLogger("examgen.generation.audit")
    monkeypatch.setattr(audit, "propagate", False)
    audit.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.INFO):
            emit_orchestration_event(
                total_chunks=3, succeeded=2, failed_chunks=[1], sections=2, duration_ms=5.0
            )
    finally:
        audit.removeHandler(caplog.handler)

    audit_events = [record.msg for record in caplog.records if record.name == audit.name]
    assert audit_events == [
        {"event": "exam.generated", "total_chunks": 3, "failed_chunks": [1], "sections": 2}
    ]
