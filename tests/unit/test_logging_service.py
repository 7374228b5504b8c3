"""Tests for logging configuration."""

import io
import logging

import pytest

from snt_billing.services.logging import get_log_level, setup_server_logging


class TestServerLogging:
    """Test server logging configuration."""

    def setup_method(self):
        """Save original handlers before each test."""
        self.root_logger = logging.getLogger()
        self.original_handlers = self.root_logger.handlers.copy()
        self.original_level = self.root_logger.level

    def teardown_method(self):
        """Restore original handlers after each test."""
        for handler in self.root_logger.handlers[:]:
            handler.close()
            self.root_logger.removeHandler(handler)
        for handler in self.original_handlers:
            self.root_logger.addHandler(handler)
        self.root_logger.setLevel(self.original_level)

    def test_creates_log_directory(self, tmp_path) -> None:
        log_file = tmp_path / "logs" / "server.log"

        setup_server_logging(str(log_file))

        assert log_file.parent.exists()
        assert len(self.root_logger.handlers) == 2

    def test_without_file_handler(self) -> None:
        setup_server_logging(None)
        assert len(self.root_logger.handlers) == 1

    def test_console_stream_can_be_redirected(self) -> None:
        stream = io.StringIO()
        setup_server_logging(None, level="INFO", stream=stream)

        logging.getLogger("snt_billing.cli").info("Rolled back import batch 3")

        assert "snt_billing.cli - INFO - Rolled back import batch 3" in stream.getvalue()

    def test_explicit_level_wins(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        setup_server_logging(str(tmp_path / "server.log"), level="warning")
        assert self.root_logger.level == logging.WARNING

    def test_messages_reach_file(self, tmp_path) -> None:
        log_file = tmp_path / "server.log"
        setup_server_logging(str(log_file), level="INFO")

        logging.getLogger("snt_billing.test").info("Imported batch 7")
        for handler in self.root_logger.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "snt_billing.test - INFO - Imported batch 7" in content


@pytest.mark.parametrize(
    "name, expected",
    [("debug", logging.DEBUG), ("ERROR", logging.ERROR), ("bogus", logging.INFO)],
)
def test_get_log_level(name, expected):
    assert get_log_level(name) == expected


def test_get_log_level_from_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    assert get_log_level() == logging.WARNING
