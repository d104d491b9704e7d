"""Tests for logging configuration."""
import logging
from pathlib import Path

import pytest

from wordcycle.config import settings
from wordcycle.logging_config import get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Restore the root logger handlers after each test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


def test_console_only_without_log_dir(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that no log file is created when LOG_DIR is not set."""
    monkeypatch.setattr(settings.logging, "dir", None)
    assert setup_logging() is None

    root_logger = logging.getLogger()
    assert len(root_logger.handlers) == 1
    assert root_logger.level == logging.DEBUG


def test_file_handler_with_log_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test that a rotating log file is written under LOG_DIR."""
    monkeypatch.setattr(settings.logging, "dir", str(tmp_path / "logs"))
    log_file = setup_logging("Starting wordcycle", level="INFO")

    assert log_file == tmp_path / "logs" / "wordcycle.log"
    get_logger("wordcycle.test").info("hello from test")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello from test" in log_file.read_text(encoding="utf-8")
    assert "Starting wordcycle" in log_file.read_text(encoding="utf-8")


def test_third_party_loggers_quieted(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that noisy libraries log warnings only."""
    monkeypatch.setattr(settings.logging, "dir", None)
    setup_logging()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
