"""Tests for JSON logging and progress reporting."""

import json
import logging
import sys
from unittest.mock import Mock

from metricpurge.logging import JsonFormatter, disable_logging, log_with_context, setup_logging
from metricpurge.progress import LogProgress


def make_record(msg="hello", **extra):
    record = logging.LogRecord("metricpurge", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_emits_one_object():
    line = JsonFormatter().format(make_record(extra_fields={"path": "a.b", "rollup": 60}))

    log_obj = json.loads(line)
    assert log_obj["level"] == "INFO"
    assert log_obj["message"] == "hello"
    assert log_obj["logger"] == "metricpurge"
    assert log_obj["extra_fields"] == {"path": "a.b", "rollup": 60}


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("metricpurge", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

    log_obj = json.loads(JsonFormatter().format(record))
    assert log_obj["error_type"] == "RuntimeError"
    assert "boom" in log_obj["error"]


def test_log_with_context_passes_extra_fields():
    logger = Mock()

    log_with_context(logger, "warning", "careful", {"path": "a"})
    log_with_context(logger, "info", "plain")

    logger.warning.assert_called_once_with("careful", extra={"extra_fields": {"path": "a"}})
    logger.info.assert_called_once_with("plain", extra={"extra_fields": {}})


def test_setup_logging_writes_json_to_file(tmp_path):
    log_file = tmp_path / "run.log"
    logger = setup_logging("metricpurge", "DEBUG", str(log_file))

    log_with_context(logger, "debug", "Removing metrics", {"path": "a.b"})
    for handler in logger.handlers:
        handler.flush()

    log_obj = json.loads(log_file.read_text().strip())
    assert log_obj["message"] == "Removing metrics"
    assert log_obj["extra_fields"] == {"path": "a.b"}


def test_setup_logging_does_not_duplicate_handlers():
    setup_logging("metricpurge")
    logger = setup_logging("metricpurge")

    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO


def test_disable_logging_silences_logger(capsys):
    logger = setup_logging("metricpurge")
    disable_logging("metricpurge")

    logger.error("should not appear")

    assert capsys.readouterr().out == ""


def test_progress_logs_start_and_completion():
    logger = Mock()
    progress = LogProgress(logger, interval=3600)

    progress.start("Removing metrics", 4)
    for _ in range(4):
        progress.tick()
    progress.done()

    messages = [call.args[0] for call in logger.info.call_args_list]
    assert messages == ["Removing metrics:", "Removing metrics completed"]
    final = logger.info.call_args_list[-1].kwargs["extra"]["extra_fields"]
    assert final["done"] == 4
    assert final["total"] == 4
    assert final["percent"] == 100.0


def test_progress_updates_are_rate_limited():
    logger = Mock()
    progress = LogProgress(logger, interval=0)

    progress.start("Checking metrics", 2)
    progress.tick()
    progress.tick()

    updates = [c for c in logger.info.call_args_list if c.args[0] == "Progress update"]
    assert len(updates) == 2
    assert updates[0].kwargs["extra"]["extra_fields"]["done"] == 1


def test_progress_with_no_work_reports_complete():
    logger = Mock()
    progress = LogProgress(logger)

    progress.start("Paths", 0)
    progress.done()

    final = logger.info.call_args_list[-1].kwargs["extra"]["extra_fields"]
    assert final["percent"] == 100.0
    assert "eta_seconds" not in final
