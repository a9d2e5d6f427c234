"""
Brief: Tests for chaosdns.config.logging_config.init_logging and formatter.

Inputs:
  - None

Outputs:
  - None
"""

import logging
from pathlib import Path

import pytest

from chaosdns.config.logging_config import BracketLevelFormatter, init_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_init_logging_adds_stderr_handler():
    """
    Brief: init_logging configures root logger with stderr handler by default.

    Inputs:
      - cfg: minimal dict with level

    Outputs:
      - None: Asserts StreamHandler present and level applied
    """
    init_logging({"level": "warn"})
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)


def test_debug_flag_forces_debug_level():
    init_logging({"level": "error"}, debug=True)
    assert logging.getLogger().level == logging.DEBUG


def test_init_logging_file_handler_writes(tmp_path):
    """
    Brief: init_logging creates file handler and writes formatted entries.

    Inputs:
      - cfg: file path and level

    Outputs:
      - None: Asserts file created and contains message
    """
    log_path = tmp_path / "logs" / "chaosdns.log"
    init_logging({"level": "info", "stderr": False, "file": str(log_path)})
    logging.getLogger("test").info("file message")
    for h in logging.getLogger().handlers:
        h.flush()
    content = Path(log_path).read_text()
    assert "file message" in content
    assert "[info]" in content


def test_bracket_formatter_tags_and_utc():
    fmt = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(message)s")
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)
    record.created = 0.0
    assert fmt.format(record) == "1970-01-01T00:00:00Z [warn] careful"

    record = logging.LogRecord("x", 5, __file__, 1, "odd", None, None)
    assert "[lvl5]" in fmt.format(record)
