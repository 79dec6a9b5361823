"""
Tests for logging setup — level resolution and handlers.
"""

import logging
from pathlib import Path

import pytest

from src.core.observability.logging_config import resolve_level, setup_from_env, setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_flags(self, monkeypatch):
        monkeypatch.setenv("FNR_LOG_LEVEL", "INFO")
        assert resolve_level(debug=True, verbose=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"

    def test_env_then_default(self, monkeypatch):
        monkeypatch.setenv("FNR_LOG_LEVEL", "ERROR")
        assert resolve_level() == "ERROR"
        monkeypatch.delenv("FNR_LOG_LEVEL")
        assert resolve_level() == "WARNING"


class TestSetupLogging:
    def test_console_level(self, restore_root):
        setup_logging("INFO")
        assert restore_root.level == logging.INFO
        assert len(restore_root.handlers) == 1

    def test_unknown_level_is_warning(self, restore_root):
        setup_logging("CHATTY")
        assert restore_root.level == logging.WARNING

    def test_quiets_http_client(self, restore_root):
        setup_logging("INFO")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_from_env(self, restore_root, tmp_path: Path, monkeypatch):
        log_file = tmp_path / "fnr.log"
        monkeypatch.setenv("FNR_LOG_FILE", str(log_file))
        monkeypatch.setenv("FNR_LOG_FILE_LEVEL", "DEBUG")
        setup_from_env("WARNING")
        assert restore_root.level == logging.DEBUG
        logging.getLogger("src.test").debug("to the file only")
        for handler in restore_root.handlers:
            handler.flush()
        assert "to the file only" in log_file.read_text()
