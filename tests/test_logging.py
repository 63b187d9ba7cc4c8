"""Tests for logging infrastructure."""
import logging
import tempfile
from pathlib import Path

import pytest

from poolrota.utils.logging_setup import (
    TRACE,
    get_logger,
    log_function_call,
    log_invariant,
    setup_logging,
)
from poolrota.utils.structured_logging import bind_context, clear_context, get_structured_logger



class TestLoggingSetup:
    """Tests for logging configuration."""

    def test_setup_logging_creates_logger(self):
        """Test that setup_logging returns a logger."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = Path(tmpdir) / "test.log"
            logger = setup_logging(level="DEBUG", log_file=str(log_file))

            assert logger.name == "poolrota"
            assert len(logger.handlers) == 2  # Console + file
            for h in logger.handlers:
                h.close()

    def test_setup_logging_creates_log_file(self, tmp_path):
        """Test that log file is created."""
        log_file = tmp_path / "logs" / "test.log"
        logger = setup_logging(level="DEBUG", log_file=str(log_file))
        logger.info("Test message")
        assert log_file.exists()

    def test_setup_logging_no_file(self):
        """Test logging without file output."""
        logger = setup_logging(level="INFO", log_file=None)
        assert len(logger.handlers) == 1  # Console only

    def test_trace_level(self):
        assert TRACE == 5
        assert logging.getLevelName(TRACE) == "TRACE"

    def test_get_logger(self):
        assert get_logger("poolrota.engine").name == "poolrota.engine"


class TestLogHelpers:

    def test_decorator_passes_through(self, caplog):
        @log_function_call
        def add(a, b):
            return a + b

        with caplog.at_level(TRACE):
            assert add(1, 2) == 3
        assert "-> add" in caplog.text

    def test_decorator_logs_exceptions(self, caplog):
        @log_function_call
        def fail():
            raise ValueError("test error")

        with pytest.raises(ValueError):
            fail()
        assert "raised: ValueError" in caplog.text

    def test_broken_invariant_warns(self, caplog):
        logger = get_logger("poolrota.test")
        with caplog.at_level(logging.DEBUG, logger="poolrota.test"):
            log_invariant(logger, "one_seat_per_guard", True)
            log_invariant(logger, "one_seat_per_guard", False, "g-01 twice")
        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.DEBUG, logging.WARNING]
        assert "[BROKEN] one_seat_per_guard: g-01 twice" in caplog.text


class TestStructuredLogging:

    def test_events_reach_stdlib(self, caplog):
        log = get_structured_logger("poolrota.store")
        with caplog.at_level(logging.INFO, logger="poolrota.store"):
            bind_context(key="ROTATION#2025-07-01")
            try:
                log.info("state_written", rev=3)
            finally:
                clear_context()
        assert "state_written" in caplog.text
        assert "ROTATION#2025-07-01" in caplog.text
