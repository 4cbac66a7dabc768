"""Structured logging for dispatched reports."""

from .logger import LogEntry, LogLevel, StructuredLogger, setup_logging

__all__ = [
    "LogEntry",
    "LogLevel",
    "StructuredLogger",
    "setup_logging",
]
