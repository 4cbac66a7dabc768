"""Per-second call limiter that reports and snapshots blocked calls."""

import functools
import time
import traceback
from typing import TYPE_CHECKING, Any, Callable, Optional

from .base import callable_name, resolve_diagnostics

if TYPE_CHECKING:
    from ..runtime import Diagnostics


class Throttle:
    """Callable wrapper allowing at most ``limit_per_second`` calls per second.

    Blocked calls return None, dispatch a warning and snapshot the calling
    stack.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        limit_per_second: int,
        diagnostics: Optional["Diagnostics"] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit_per_second < 0:
            raise ValueError("limit_per_second must not be negative")
        self.fn = fn
        self.limit = limit_per_second
        self.diagnostics = resolve_diagnostics(diagnostics)
        self.clock = clock
        self.count = 0
        self.blocked = 0
        self.window_start = clock()
        functools.update_wrapper(self, fn)

    def __call__(self, *args, **kwargs) -> Any:
        now = self.clock()
        if now - self.window_start >= 1.0:
            self.count = 0
            self.window_start = now

        if self.count >= self.limit:
            self.blocked += 1
            self.diagnostics.dispatch(f"Throttle exceeded for {callable_name(self.fn)}", "warn")
            self.diagnostics.snapshot(
                traceback.format_stack()[:-1], {"note": "throttle block"}
            )
            return None

        self.count += 1
        return self.fn(*args, **kwargs)


def throttle(
    fn: Callable[..., Any],
    limit_per_second: int,
    diagnostics: Optional["Diagnostics"] = None,
) -> Throttle:
    return Throttle(fn, limit_per_second, diagnostics)
