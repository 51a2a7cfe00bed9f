"""Tests for the logging facade and the error hierarchy."""

import logging

import pytest

from racecov.monitoring import AgentLogger, LogLevel
from racecov.utils import AnalysisError, ProgramModelError


class TestAgentLogger:

    def test_level_filtering(self, caplog):
        logger = AgentLogger(LogLevel.INFO, name="racecov.test.levels")
        with caplog.at_level(logging.DEBUG, logger="racecov.test.levels"):
            logger.log("kept", level="INFO")
            logger.log("dropped", level="DEBUG")
            logger.log_error("failed")
        assert [r.getMessage() for r in caplog.records] == ["kept", "failed"]
        assert caplog.records[1].levelno == logging.ERROR

    def test_off_silences_errors(self, caplog):
        logger = AgentLogger(LogLevel.OFF, name="racecov.test.off")
        with caplog.at_level(logging.DEBUG, logger="racecov.test.off"):
            logger.log_error("failed")
        assert caplog.records == []


class TestAnalysisError:

    def test_error_is_logged(self, caplog):
        logger = AgentLogger(LogLevel.ERROR, name="racecov.test.errors")
        with caplog.at_level(logging.DEBUG, logger="racecov.test.errors"):
            with pytest.raises(ProgramModelError) as info:
                raise ProgramModelError("bad node", logger)
        assert info.value.message == "bad node"
        assert [r.getMessage() for r in caplog.records] == ["bad node"]

    def test_without_logger(self):
        error = AnalysisError("plain")
        assert str(error) == "plain"


if __name__ == "__main__":
    pytest.main([__file__])
