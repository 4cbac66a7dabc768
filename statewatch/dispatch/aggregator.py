"""Time-windowed deduplication of outgoing reports.

Identical formatted reports arriving inside one window are folded into a
single emission annotated with the occurrence count:
- First occurrence: entry created, flush scheduled after ``window`` seconds
- Repeats: counter incremented, no new timer
- Flush: emit once, delete the entry so the next occurrence starts fresh

Distinct reports are independent and come out in flush order, which is not
necessarily call order.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .channel import ReportChannel

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 0.1
RULE_WIDTH = 93
RULE = "-" * RULE_WIDTH


class DispatchLevel(str, Enum):
    """Dispatch levels."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def parse(cls, level: Any) -> "DispatchLevel":
        if isinstance(level, cls):
            return level
        text = str(level or "info").lower()
        if text == "warning":
            return cls.WARN
        try:
            return cls(text)
        except ValueError:
            return cls.INFO


def header_tag(level: DispatchLevel) -> str:
    if level is DispatchLevel.ERROR:
        return f"\n{RULE}\n [FATAL INSPECTION]:\n{RULE}"
    return f"\n{RULE}\n [INSPECTION]:"


@dataclass
class DispatchEntry:
    """An open aggregation window for one formatted report."""

    message: str
    level: DispatchLevel
    tag: str
    count: int = 1
    handle: Optional[asyncio.TimerHandle] = None
    loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def formatted(self) -> str:
        return f"{self.tag} {self.message}"

    def render(self) -> str:
        if self.count > 1:
            return f"{self.tag} (x{self.count} Events)\n{self.message}\n{RULE}"
        return f"{self.formatted}\n{RULE}"


class DispatchAggregator:
    """Deduplicating, batching dispatcher.

    Usage:
        aggregator = DispatchAggregator(sink=StructuredLogger(), channel=channel)
        for _ in range(5):
            aggregator.dispatch("cache miss storm", "warn")
        # ~100 ms later a single "(x5 Events)" report is emitted

    Must be used from the event loop thread. Without a running loop,
    dispatch emits immediately.
    """

    def __init__(
        self,
        window: float = DEFAULT_WINDOW,
        sink: Any = None,
        channel: Optional[ReportChannel] = None,
    ):
        """Initialize aggregator.

        Args:
            window: Seconds identical reports are folded together
            sink: Object with ``info(msg)`` and ``error(msg)`` (a logger)
            channel: Channel emitted reports are published on
        """
        self.window = window
        self.sink = sink if sink is not None else logging.getLogger("statewatch.dispatch")
        self.channel = channel
        self._pending: Dict[str, DispatchEntry] = {}

    def dispatch(self, message: str, level: Any = DispatchLevel.INFO) -> None:
        """Queue ``message`` for emission at ``level`` ("info", "warn", "error")."""
        level = DispatchLevel.parse(level)
        entry = DispatchEntry(message=str(message), level=level, tag=header_tag(level))
        key = entry.formatted

        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        self.flush_stale()

        existing = self._pending.get(key)
        if existing is not None:
            if existing.loop is not None and existing.loop is loop:
                existing.count += 1
                return
            # Window opened on a loop that is gone; its timer will never fire
            self._flush(key)

        self._pending[key] = entry
        if loop is None:
            self._flush(key)
            return
        entry.loop = loop
        entry.handle = loop.call_later(self.window, self._flush, key)

    def _flush(self, key: str) -> None:
        entry = self._pending.pop(key, None)
        if entry is None:
            return
        if entry.handle is not None:
            entry.handle.cancel()
        self._emit(entry)

    def _emit(self, entry: DispatchEntry) -> None:
        output = entry.render()
        try:
            if entry.level is DispatchLevel.ERROR:
                self.sink.error(output)
            else:
                self.sink.info(output)
        except Exception as e:
            logger.warning(f"Dispatch sink failed: {e}")

        if self.channel is not None:
            self.channel.publish(
                output,
                None,
                {"level": entry.level.value, "count": entry.count, "message": entry.message},
            )

    def flush_all(self) -> int:
        """Emit every open entry now. Returns how many were emitted."""
        keys = list(self._pending)
        for key in keys:
            self._flush(key)
        return len(keys)

    def flush_stale(self) -> int:
        """Emit entries whose loop has closed. Returns how many were emitted."""
        stale = [k for k, e in self._pending.items() if e.loop is None or e.loop.is_closed()]
        for key in stale:
            self._flush(key)
        return len(stale)

    def pending(self) -> List[DispatchEntry]:
        return list(self._pending.values())

    def close(self) -> None:
        """Flush what is pending and cancel timers."""
        self.flush_all()
