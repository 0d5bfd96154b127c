# hsm_designer_project/utils/logging_setup.py
"""
Logging configuration for the host application.

The package itself only creates per-module loggers and never installs a
handler; the application embedding the designer core calls
setup_global_logging() once at startup to route those records to a stream.
"""

import logging
import sys
from enum import Enum
from typing import Optional, TextIO

PACKAGE_LOGGER_NAME = "hsm_designer_project"


class LogLevel(Enum):
    """Log level enumeration with the short tag shown in each line"""
    DEBUG = (logging.DEBUG, "DBG")
    INFO = (logging.INFO, "INF")
    WARNING = (logging.WARNING, "WRN")
    ERROR = (logging.ERROR, "ERR")
    CRITICAL = (logging.CRITICAL, "CRT")

    def __init__(self, level: int, tag: str):
        self.level = level
        self.tag = tag

    @classmethod
    def from_level(cls, levelno: int) -> "LogLevel":
        return next((lvl for lvl in cls if lvl.level == levelno), cls.INFO)


class PlainFormatter(logging.Formatter):
    """Single-line formatter: time, level tag, short logger name, message."""

    def __init__(self, show_logger_name: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.show_logger_name = show_logger_name

    def format(self, record) -> str:
        tag = LogLevel.from_level(record.levelno).tag
        timestamp = self.formatTime(record, self.datefmt)
        message = record.getMessage()
        if self.show_logger_name:
            short_name = record.name.rsplit(".", 1)[-1]
            line = f"{timestamp} [{tag}] {short_name}: {message}"
        else:
            line = f"{timestamp} [{tag}] {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


_installed_handler: Optional[logging.Handler] = None


def setup_global_logging(level: int = logging.INFO, stream: Optional[TextIO] = None) -> logging.Handler:
    """
    Attaches one formatted stream handler to the package logger. Calling it
    again replaces the previous handler instead of stacking a second one.
    """
    global _installed_handler
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    if _installed_handler is not None:
        package_logger.removeHandler(_installed_handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(PlainFormatter())
    handler.setLevel(level)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    _installed_handler = handler

    package_logger.info(f"Logging initialized at level {logging.getLevelName(level)}.")
    return handler
