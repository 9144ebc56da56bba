"""Tests for logging helpers."""

import logging
from pathlib import Path

from taskfork.utils.log import StructuredFormatter, TaskforkLogger, session_log_path
from taskfork.utils.path_utils import safe_path_component, sanitize_project_path


def test_structured_formatter_appends_extras():
    formatter = StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s")
    record = logging.LogRecord("taskfork", logging.INFO, __file__, 1, "forked", None, None)
    record.task_id = "T2"

    line = formatter.format(record)

    assert line.endswith('forked | {"task_id": "T2"}')
    assert "[INFO]" in line
    assert line[:24].endswith("Z")


def test_file_handler_writes_debug_records(tmp_path):
    logger = TaskforkLogger(name="taskfork.test", log_dir=tmp_path)

    logger.debug("[fork] hello", extra={"fork_index": 3})
    for handler in logger.logger.handlers:
        handler.flush()

    [log_file] = list(tmp_path.glob("taskfork_*.log"))
    assert logger.file_handler_path == log_file
    assert '[fork] hello | {"fork_index": 3}' in log_file.read_text(encoding="utf-8")


def test_session_log_path_is_per_project(tmp_path):
    path = session_log_path(tmp_path / "my project", "T1")

    assert path.parent.name == sanitize_project_path(tmp_path / "my project")
    assert path.name.endswith("-T1.log")
    assert Path.home() / ".taskfork" / "logs" in path.parents


def test_safe_path_component():
    assert safe_path_component("a b:c") == "a-b-c"
    assert safe_path_component("::") == ""


def test_enable_session_file_logging_attaches_handler(tmp_path, monkeypatch):
    from taskfork.utils import log as log_module

    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(log_module, "_logger", None)

    log_file = log_module.enable_session_file_logging(tmp_path / "project", "T7")

    assert log_file.parent.exists()
    assert log_module.get_logger().file_handler_path == log_file
    assert tmp_path in log_file.parents

    fresh = log_module.init_logger()
    assert log_module.get_logger() is fresh

    for handler in list(fresh.logger.handlers):
        if isinstance(handler, logging.FileHandler):
            fresh.logger.removeHandler(handler)
            handler.close()
