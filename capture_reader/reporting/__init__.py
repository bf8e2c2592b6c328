"""Reporting of completed readings."""

from .reporter import (
    DEFAULT_ENDPOINT,
    HttpReadingReporter,
    LoggingReadingReporter,
    ReadingReporter,
    reading_payload,
)

__all__ = [
    "DEFAULT_ENDPOINT",
    "HttpReadingReporter",
    "LoggingReadingReporter",
    "ReadingReporter",
    "reading_payload",
]
