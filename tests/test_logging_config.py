import json
import logging
from pathlib import Path

from examgen.logging_config import MinimalJSONFormatter, build_logging_config


def _record(msg, **kwargs) -> logging.LogRecord:
    return logging.LogRecord(
        name="examgen.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=kwargs.pop("args", ()),
        exc_info=None,
    )


def test_formatter_merges_structured_events() -> None:
    line = MinimalJSONFormatter().format(_record({"step": "chunk.split", "details": {"chunks": 2}}))
    payload = json.loads(line)

    assert payload["level"] == "INFO"
    assert payload["logger"] == "examgen.test"
    assert payload["step"] == "chunk.split"
    assert payload["details"] == {"chunks": 2}
    assert payload["ts"].endswith("Z")


def test_formatter_keeps_plain_messages_and_unicode() -> None:
    line = MinimalJSONFormatter().format(_record("כותרת %s", args=("מבחן",)))

    assert json.loads(line)["message"] == "כותרת מבחן"
    assert "מבחן" in line


def test_audit_logger_writes_to_file_when_log_dir_set(tmp_path: Path) -> None:
    config = build_logging_config("INFO", str(tmp_path / "logs"))

    audit = config["loggers"]["examgen.generation.audit"]
    assert audit["handlers"] == ["generation_audit"]
    assert audit["propagate"] is False
    assert config["handlers"]["generation_audit"]["filename"].endswith("generation_audit.log")
    assert (tmp_path / "logs").is_dir()


def test_audit_logger_defaults_to_stream() -> None:
    config = build_logging_config("WARNING")

    assert config["root"]["level"] == "WARNING"
    assert config["loggers"]["examgen.generation.audit"]["handlers"] == ["default"]
