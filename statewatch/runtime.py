"""Diagnostics: the owner of every registry the toolkit uses.

A Diagnostics instance holds the snapshot store, the dispatch aggregator,
the report channel, the breadcrumb trail, the unhandled-failure registry,
the return history and a global-state namespace, and hands itself to every wrapper it
creates. All methods must be called from the event loop thread; nothing
here is guarded by locks.

Usage:
    diagnostics = Diagnostics(DiagnosticsConfig(dispatch_window=0.05))
    snap_id = diagnostics.snapshot(state)
    ...
    for entry in diagnostics.diff_snapshots(snap_id, state):
        print(entry)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .capture.differ import DiffEntry
from .capture.graph import DescriptorRegistry, capture
from .capture.store import HistoryEntry, Snapshot, SnapshotStore
from .config import DiagnosticsConfig
from .diagnostics.logger import StructuredLogger
from .dispatch.aggregator import DispatchAggregator, DispatchLevel
from .dispatch.breadcrumbs import BreadcrumbTrail
from .dispatch.channel import ReportChannel, Subscription
from .dispatch.report import build_report, report_to_json
from .outcome.examiner import TargetExaminer
from .outcome.guard import Guard
from .outcome.informer import Informer
from .outcome.observe import ReturnHistory, execution_timer, observe_return
from .outcome.retry import catch_or_retry
from .outcome.throttle import Throttle
from .outcome.wait import WaitHandle, must_return, poll_until, succeed_until, wait_until
from .utils.errors import MissingSnapshot

logger = logging.getLogger(__name__)


@dataclass
class ExamineContext:
    """Helpers returned alongside an inspection report."""

    diagnostics: "Diagnostics"
    report: str
    target: Any
    opts: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Optional[str]:
        return report_to_json(self.report)

    def snapshot(self) -> int:
        """Snapshot the examined target, tagged with the examine note."""
        return self.diagnostics.snapshot(self.target, {"note": self.opts.get("note")})

    def retry(self, fn: Callable[[], Any]) -> Optional[Informer]:
        """Run ``fn`` in an Informer sharing the examine logger."""
        if not callable(fn):
            return None
        return self.diagnostics.informer(fn, ctx={"logger": self.opts.get("logger")})


class Diagnostics:
    """Process-scoped diagnostics engine."""

    def __init__(
        self,
        config: Optional[DiagnosticsConfig] = None,
        sink: Any = None,
    ):
        """Initialize engine.

        Args:
            config: Tunables; defaults to ``DiagnosticsConfig()``
            sink: Receiver of dispatched reports (``info``/``error``);
                defaults to a StructuredLogger
        """
        self.config = config or DiagnosticsConfig()
        self.descriptors = DescriptorRegistry()
        self.store = SnapshotStore(
            max_depth=self.config.max_depth,
            history_limit=self.config.history_limit,
            descriptors=self.descriptors,
        )
        self.channel = ReportChannel()
        self.sink = sink if sink is not None else StructuredLogger(logger_name="statewatch.dispatch")
        self.aggregator = DispatchAggregator(
            window=self.config.dispatch_window,
            sink=self.sink,
            channel=self.channel,
        )
        self.breadcrumbs = BreadcrumbTrail(self.config.breadcrumb_limit)
        self.returns = ReturnHistory()
        self.unhandled: List[Informer] = []
        self.global_state: Dict[str, Any] = {}
        self.closed = False

    # Capture and snapshots

    def capture(self, value: Any, max_depth: Optional[int] = None) -> Any:
        return capture(value, max_depth or self.config.max_depth, self.descriptors)

    def snapshot(self, target: Any, meta: Any = None) -> int:
        return self.store.snapshot(target, meta)

    def get_snapshot(self, snapshot_id: int) -> Snapshot:
        return self.store.get(snapshot_id)

    def diff_snapshots(self, snapshot_id: int, live: Any) -> List[DiffEntry]:
        """Differences from snapshot ``snapshot_id`` to ``live``.

        Raises:
            MissingSnapshot: no such snapshot
            CaptureFailure: ``live`` could not be captured
        """
        return self.store.diff_snapshots(snapshot_id, live)

    def snapshot_history(self, target: Any, note: Any = None) -> int:
        return self.store.snapshot_history(target, note)

    def history(self, target: Any) -> List[HistoryEntry]:
        return self.store.history(target)

    def diff_history(self, target: Any, index: int) -> Optional[List[DiffEntry]]:
        return self.store.diff_history(target, index)

    def snapshot_global(self, note: str) -> int:
        """Snapshot the global-state namespace."""
        return self.store.snapshot(self.global_state, {"note": note})

    # Dispatch and reports

    def dispatch(self, message: str, level: Any = DispatchLevel.INFO) -> None:
        """Dispatch through the aggregator; error reports carry the breadcrumbs."""
        level = DispatchLevel.parse(level)
        message = str(message)
        if level is DispatchLevel.ERROR and len(self.breadcrumbs):
            message = self.breadcrumbs.annotate(message)
        self.aggregator.dispatch(message, level)

    def breadcrumb(self, name: str) -> None:
        self.breadcrumbs.record(name)

    def flush(self) -> int:
        return self.aggregator.flush_all()

    def subscribe(self, callback: Callable[[str, Any, Dict[str, Any]], Any]) -> Subscription:
        return self.channel.subscribe(callback)

    def publish(self, report: str, target: Any = None, opts: Optional[Dict[str, Any]] = None) -> str:
        return self.channel.publish(report, target, opts)

    def register_transform(self, transform: Callable[[str], str]) -> None:
        self.channel.register_transform(transform)

    def register_descriptor(
        self,
        match: Any,
        describe: Optional[Callable[[Any], Tuple[str, str]]] = None,
    ) -> None:
        self.descriptors.register(match, describe)

    def examine(
        self,
        target: Any,
        unexpected: Any = None,
        source: Optional[str] = None,
        against: Optional[int] = None,
        note: Optional[str] = None,
        logger: Any = None,
    ) -> Tuple[str, ExamineContext]:
        """Build, transform and publish an inspection report for ``target``.

        Args:
            target: Object being examined
            unexpected: What went wrong
            source: Label of the reporting site
            against: Snapshot id to diff ``target`` against
            note: Note used by ``ExamineContext.snapshot``
            logger: Logger handed to ``ExamineContext.retry`` informers

        Returns:
            (report text after transforms, ExamineContext)
        """
        diff_entries = None
        if against is not None:
            try:
                diff_entries = self.store.diff_snapshots(against, target)
            except MissingSnapshot as e:
                unexpected = unexpected if unexpected is not None else str(e)

        report = build_report(target, unexpected, source=source, diff_entries=diff_entries)
        opts = {"source": source, "note": note, "logger": logger}
        report = self.channel.publish(
            report, target, {"source": source, "note": note, "kind": "examine"}
        )
        return report, ExamineContext(self, report, target, opts)

    def examine_with_logger(
        self,
        log: Any,
        target: Any,
        unexpected: Any = None,
        **kwargs,
    ) -> Tuple[str, ExamineContext]:
        """examine, then hand the report to ``log.info``."""
        report, ctx = self.examine(target, unexpected, logger=log, **kwargs)
        info = getattr(log, "info", None)
        if info is not None:
            try:
                info(report)
            except Exception as e:
                logger.debug(f"examine logger failed: {e}")
        return report, ctx

    # Outcome wrappers

    def informer(
        self,
        fn: Callable[[], Any],
        ctx: Optional[dict] = None,
        budget: Optional[float] = None,
    ) -> Informer:
        self.breadcrumb(getattr(fn, "__name__", "informer"))
        return Informer(fn, ctx, budget, diagnostics=self)

    def guard(self, fn: Callable[[], Any], ctx: Optional[dict] = None) -> Guard:
        self.breadcrumb(getattr(fn, "__name__", "guard"))
        return Guard(fn, ctx, diagnostics=self)

    def wait_until(self, condition: Callable[[], Any], timeout: Optional[float] = None) -> WaitHandle:
        return wait_until(condition, timeout, diagnostics=self)

    def poll_until(
        self,
        fn: Callable[[], Any],
        condition: Callable[[], Any],
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
    ):
        return poll_until(fn, condition, timeout, interval, diagnostics=self)

    def must_return(self, fn: Callable[..., Any], timeout: Optional[float] = None):
        return must_return(fn, timeout, diagnostics=self)

    async def catch_or_retry(
        self,
        fn: Callable[[], Any],
        retry_limit: Optional[int] = None,
        backoff: Optional[float] = None,
        **kwargs,
    ) -> Any:
        self.breadcrumb(getattr(fn, "__name__", "retry"))
        return await catch_or_retry(fn, retry_limit, backoff, diagnostics=self, **kwargs)

    def succeed_until(self, condition: Callable[[], Any], fn: Callable[[], Any], interval: float = 0.1):
        return succeed_until(condition, fn, interval, diagnostics=self)

    def throttle(self, fn: Callable[..., Any], limit_per_second: int) -> Throttle:
        return Throttle(fn, limit_per_second, diagnostics=self)

    # Per-target and per-call observers

    def examiner(self, target: Any, max_retries: int = 3) -> TargetExaminer:
        return TargetExaminer(target, max_retries, diagnostics=self)

    def observe_return(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        return observe_return(fn, diagnostics=self)

    def return_history(self, fn: Callable[..., Any]) -> List[Any]:
        """Last return values recorded for an observed function, oldest first."""
        return self.returns.get(fn)

    def execution_timer(self, fn: Callable[..., Any], name: Optional[str] = None) -> Callable[..., Any]:
        return execution_timer(fn, name, diagnostics=self)

    # Lifecycle

    def close(self) -> None:
        """Flush pending reports, stop grace timers and detach subscribers."""
        if self.closed:
            return
        self.closed = True
        self.aggregator.close()
        for informer in self.unhandled:
            informer.cancel_grace()
        self.channel.clear()

    async def __aenter__(self) -> "Diagnostics":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def status(self) -> Dict[str, Any]:
        return {
            "snapshots": len(self.store),
            "pending_dispatches": len(self.aggregator.pending()),
            "unhandled": len(self.unhandled),
            "subscribers": self.channel.subscriber_count,
            "breadcrumbs": self.breadcrumbs.names(),
            "closed": self.closed,
        }


_default: Optional[Diagnostics] = None


def get_diagnostics() -> Diagnostics:
    """Return the process default instance, creating it from the environment."""
    global _default
    if _default is None:
        _default = Diagnostics(DiagnosticsConfig.from_env())
    return _default


def reset_diagnostics(config: Optional[DiagnosticsConfig] = None) -> Diagnostics:
    """Close the default instance and replace it with a fresh one."""
    global _default
    if _default is not None:
        _default.close()
    _default = Diagnostics(config or DiagnosticsConfig.from_env())
    return _default
