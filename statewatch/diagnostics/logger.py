"""Default sink for dispatched reports.

Emitted reports are kept in a bounded in-memory list, so tests and the
viewer can read back what was dispatched, and forwarded to the standard
``logging`` tree.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class LogEntry:
    """One emitted message."""

    timestamp: str
    level: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StructuredLogger:
    """Sink with ``info``/``warning``/``error`` that remembers what it emitted.

    Usage:
        sink = StructuredLogger(source="worker-1")
        diagnostics = Diagnostics(sink=sink)
        ...
        errors = sink.get_entries("error")
    """

    def __init__(
        self,
        source: Optional[str] = None,
        max_entries: Optional[int] = 1000,
        logger_name: str = "statewatch",
    ):
        """Initialize sink.

        Args:
            source: Label added to every entry's context
            max_entries: Entries kept in memory; oldest dropped first (None for unbounded)
            logger_name: Standard logger entries are forwarded to
        """
        self.source = source
        self.max_entries = max_entries
        self._entries: List[LogEntry] = []
        self._python_logger = logging.getLogger(logger_name)

    def _log(self, level: LogLevel, message: str, **kwargs) -> LogEntry:
        context = {"source": self.source} if self.source else {}
        context.update(kwargs)

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            level=level.value,
            message=message,
            context=context,
        )
        self._entries.append(entry)
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]

        log_func = getattr(self._python_logger, level.value)
        log_func(f"{message} | {context}" if context else message)
        return entry

    def debug(self, message: str, **kwargs) -> LogEntry:
        return self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> LogEntry:
        return self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> LogEntry:
        return self._log(LogLevel.WARNING, message, **kwargs)

    warn = warning

    def error(self, message: str, **kwargs) -> LogEntry:
        return self._log(LogLevel.ERROR, message, **kwargs)

    def get_entries(self, level: Optional[str] = None) -> List[LogEntry]:
        """Stored entries, oldest first, optionally of one level."""
        if level is None:
            return self._entries.copy()
        return [e for e in self._entries if e.level == level]

    def clear(self) -> None:
        self._entries.clear()


def setup_logging(level: str = "INFO", debug_server: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        debug_server: Keep uvicorn access logging at full verbosity
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if debug_server else logging.WARNING)

    # asyncio reports slow callbacks at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
