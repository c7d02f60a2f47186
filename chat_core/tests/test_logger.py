import json
import logging
import sys

from chat_core.infrastructure.logging.logger import JsonFormatter, get_logger, setup_logger


def _record(msg, extra=None, exc_info=None):
    record = logging.LogRecord("chat_core.engine", logging.INFO, __file__, 1, msg, None, exc_info)
    if extra is not None:
        record.extra = extra
    return record


def test_formatter_merges_structured_fields():
    line = JsonFormatter().format(_record("Sending prompt", {"trace_id": "tr-1", "generation": 2}))
    payload = json.loads(line)
    assert payload["msg"] == "Sending prompt"
    assert payload["level"] == "INFO"
    assert payload["trace_id"] == "tr-1"
    assert payload["generation"] == 2
    assert payload["ts"].endswith("Z")


def test_formatter_redacts_long_messages():
    payload = json.loads(JsonFormatter(redact=True).format(_record("x" * 100)))
    assert payload["msg"] == "x" * 64


def test_formatter_includes_traceback():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        line = JsonFormatter().format(_record("failed", exc_info=sys.exc_info()))
    assert "RuntimeError: boom" in json.loads(line)["exc"]


def test_setup_logger_attaches_one_handler_per_file(tmp_path):
    root = setup_logger(log_dir=tmp_path)
    before = len(root.handlers)
    assert setup_logger(log_dir=tmp_path) is root
    assert len(root.handlers) == before
    try:
        get_logger("storage").info("saved", extra={"extra": {"conversation_id": "c1"}})
        lines = (tmp_path / "chat.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        payload = json.loads(lines[0])
        assert payload["name"] == "chat_core.storage"
        assert payload["conversation_id"] == "c1"
    finally:
        for handler in list(root.handlers):
            if getattr(handler, "baseFilename", "").startswith(str(tmp_path.resolve())):
                root.removeHandler(handler)
                handler.close()
