"""
Tests for logging setup — level precedence, handlers, file output.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from provisioning.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    ENV_LOG_LEVEL,
    resolve_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger(monkeypatch):
    for name in (ENV_LOG_LEVEL, ENV_LOG_FILE, ENV_LOG_FILE_LEVEL):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_flag_wins(self, monkeypatch):
        monkeypatch.setenv(ENV_LOG_LEVEL, "ERROR")
        assert resolve_level("debug") == "DEBUG"

    def test_env(self, monkeypatch):
        monkeypatch.setenv(ENV_LOG_LEVEL, "info")
        assert resolve_level(None) == "INFO"

    def test_default(self):
        assert resolve_level(None) == "WARNING"


class TestSetupLogging:
    def test_console_level(self):
        setup_logging(level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_unknown_level_falls_back_to_warning(self):
        setup_logging(level="LOUD")
        assert logging.getLogger().level == logging.WARNING

    def test_noisy_loggers_quieted(self):
        setup_logging(level="INFO")
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_file_handler(self, tmp_path: Path, monkeypatch):
        log_file = tmp_path / "provision.log"
        monkeypatch.setenv(ENV_LOG_FILE, str(log_file))
        monkeypatch.setenv(ENV_LOG_FILE_LEVEL, "DEBUG")
        setup_logging(level="WARNING")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        logging.getLogger("provisioning.test").debug("written to file only")
        for handler in root.handlers:
            handler.flush()
        assert "written to file only" in log_file.read_text()
