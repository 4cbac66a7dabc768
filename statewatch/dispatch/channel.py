"""Publish/subscribe channel for reports, with a transform pipeline.

Transforms run in registration order before delivery. A transform that
raises or returns something other than a string is skipped. Subscribers may
be plain callables or coroutine functions; coroutine subscribers are
scheduled on the running loop.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Any, Dict[str, Any]], Any]
Transform = Callable[[str], str]

DEFAULT_RECENT_LIMIT = 200


@dataclass
class PublishedReport:
    """A report as delivered to subscribers."""

    report: str
    opts: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> Dict[str, Any]:
        return {"report": self.report, "opts": self.opts, "timestamp": self.timestamp}


class Subscription:
    """Handle returned by subscribe; call it (or unsubscribe()) to detach."""

    def __init__(self, channel: "ReportChannel", callback: Subscriber):
        self._channel = channel
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._channel._remove(self)

    def __call__(self) -> None:
        self.unsubscribe()


class ReportChannel:
    """Fan-out of published reports to subscribers."""

    def __init__(self, recent_limit: int = DEFAULT_RECENT_LIMIT):
        self._subscriptions: List[Subscription] = []
        self._transforms: List[Transform] = []
        self._recent: Deque[PublishedReport] = deque(maxlen=recent_limit)
        self._pending_tasks: set = set()

    def subscribe(self, callback: Subscriber) -> Subscription:
        """Deliver every future report to ``callback(report, target, opts)``."""
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def register_transform(self, transform: Transform) -> None:
        """Add a middleware step applied to every report before delivery."""
        if not callable(transform):
            raise TypeError("transform must be callable")
        self._transforms.append(transform)

    def apply_transforms(self, report: str) -> str:
        for transform in self._transforms:
            try:
                result = transform(report)
            except Exception as e:
                logger.debug(f"Report transform {transform!r} failed: {e}")
                continue
            if isinstance(result, str):
                report = result
        return report

    def publish(
        self,
        report: str,
        target: Any = None,
        opts: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Transform and deliver a report.

        Returns:
            The report text after transforms
        """
        opts = dict(opts or {})
        report = self.apply_transforms(report)
        self._recent.append(PublishedReport(report=report, opts=opts))

        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                result = subscription.callback(report, target, opts)
            except Exception as e:
                logger.warning(f"Report subscriber {subscription.callback!r} failed: {e}")
                continue
            if asyncio.iscoroutine(result):
                self._schedule(result)
        return report

    def _schedule(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("Dropped async subscriber call: no running event loop")
            return

        task = loop.create_task(coro)
        self._pending_tasks.add(task)

        def _task_done_callback(t: asyncio.Task) -> None:
            self._pending_tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc:
                logger.warning(f"Async report subscriber failed: {exc}")

        task.add_done_callback(_task_done_callback)

    def recent(self, limit: Optional[int] = None) -> List[PublishedReport]:
        """Most recently published reports, oldest first."""
        items = list(self._recent)
        return items if limit is None else items[-limit:]

    def clear(self) -> None:
        """Detach all subscribers and transforms and forget recent reports."""
        for subscription in list(self._subscriptions):
            subscription.active = False
        self._subscriptions.clear()
        self._transforms.clear()
        self._recent.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
