"""Logging facade used by the analysis components.

Components receive an optional ``logger`` and report through
``logger.log(message, level=LogLevel.X)``. The facade forwards to the
standard :mod:`logging` module so host applications keep control of handlers.
"""

import logging
from enum import IntEnum
from typing import Optional


class LogLevel(IntEnum):
    OFF = -1
    ERROR = 0
    INFO = 1
    DEBUG = 2


_PY_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


class AgentLogger:
    """Level-filtered logger shared by the engine, trackers and CLI."""

    def __init__(self, level: LogLevel = LogLevel.INFO, name: str = "racecov",
                 log_file: Optional[str] = None):
        self.level = level
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        if log_file:
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
            self.logger.addHandler(handler)

    def log(self, message, level=LogLevel.INFO):
        if isinstance(level, str):
            level = LogLevel.__members__.get(level.upper(), LogLevel.INFO)
        if self.level == LogLevel.OFF or level > self.level:
            return
        self.logger.log(_PY_LEVELS.get(level, logging.INFO), message)

    def log_error(self, message):
        self.log(message, level=LogLevel.ERROR)
