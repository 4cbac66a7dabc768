"""Per-target examiner: run work against one object and report its failures.

Usage:
    ex = diagnostics.examiner(inventory)
    ex.try_(lambda inv: inv["slots"].append(item)).catch(
        lambda err, inv: log.warning(f"slot append failed: {err}")
    )
    if ex.is_defined("owner"):
        ...
    await ex.retry(save_inventory, limit=5)
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from ..capture.paths import find_value
from .base import call_handler, call_work, callable_name, resolve_diagnostics

if TYPE_CHECKING:
    from ..runtime import Diagnostics

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_STEP = 0.1
FAILURE_NOTE = "state at failure"


class TargetExaminer:
    """Stateful wrapper around one target.

    ``try_`` and ``catch`` chain: a failed ``try_`` leaves ``last_error`` set
    until a ``catch`` handles it. Each failure snapshots the target; the ids
    are kept in ``failure_snapshots``.
    """

    def __init__(
        self,
        target: Any,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_step: float = DEFAULT_RETRY_STEP,
        diagnostics: Optional["Diagnostics"] = None,
    ):
        """Initialize examiner.

        Args:
            target: Object every function is called with
            max_retries: Default attempt limit for ``retry``
            retry_step: Wait before attempt n+1 is ``retry_step * n`` seconds
            diagnostics: Owning Diagnostics (default instance if omitted)
        """
        self.target = target
        self.max_retries = max_retries
        self.retry_step = retry_step
        self.diagnostics = resolve_diagnostics(diagnostics)
        self.last_error: Optional[Exception] = None
        self.attempts = 0
        self.failure_snapshots: List[int] = []

    def try_(self, fn: Callable[[Any], Any]) -> "TargetExaminer":
        """Call ``fn(target)``; on failure dispatch an error and snapshot the target."""
        try:
            fn(self.target)
        except Exception as e:
            self.last_error = e
            self.diagnostics.dispatch(f"Try failed: {e}", "error")
            self.failure_snapshots.append(
                self.diagnostics.snapshot(self.target, {"note": FAILURE_NOTE})
            )
        return self

    def catch(self, fn: Callable[[Exception, Any], Any]) -> "TargetExaminer":
        """Handle the pending failure with ``fn(error, target)`` and clear it."""
        if self.last_error is not None:
            error, self.last_error = self.last_error, None
            call_handler(fn, error, self.target)
        return self

    async def retry(self, fn: Callable[[Any], Any], limit: Optional[int] = None) -> "TargetExaminer":
        """Call ``fn(target)`` until it succeeds or ``limit`` attempts fail.

        Plain and async callables are accepted. The wait between attempts
        grows linearly. Exhaustion dispatches one error and leaves
        ``last_error`` set for ``catch``.
        """
        limit = self.max_retries if limit is None else limit
        self.attempts = 0
        while self.attempts < limit:
            self.attempts += 1
            try:
                await call_work(fn, self.target)
            except Exception as e:
                self.last_error = e
                logger.debug(f"Attempt {self.attempts}/{limit} of {callable_name(fn)} failed: {e}")
                if self.attempts < limit:
                    await asyncio.sleep(self.retry_step * self.attempts)
                continue
            self.last_error = None
            return self

        self.diagnostics.dispatch(f"Retry limit reached for {callable_name(fn)}", "error")
        return self

    def is_defined(self, key: Any) -> bool:
        """True when ``key`` holds a non-None value; otherwise dispatch an error."""
        if isinstance(self.target, Mapping):
            value = self.target.get(key)
        else:
            value = getattr(self.target, str(key), None)
        if value is None:
            self.diagnostics.dispatch(f"Property {key} is undefined on target", "error")
            return False
        return True

    def find(self, value: Any) -> List[str]:
        """Dot paths (from ``root``) of every occurrence of ``value`` in the target."""
        return find_value(self.target, value)

    def __repr__(self) -> str:
        status = "failed" if self.last_error is not None else "ok"
        return f"<TargetExaminer {type(self.target).__name__} {status}>"
