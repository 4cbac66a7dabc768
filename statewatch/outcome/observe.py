"""Call observers: bounded return history and execution timing.

Both wrappers keep the wrapped function's signature, and both accept plain
and async functions. A call that raises records nothing and propagates.
"""

import functools
import inspect
import time
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional

from .base import callable_name, resolve_diagnostics

if TYPE_CHECKING:
    from ..runtime import Diagnostics

RETURN_HISTORY_LIMIT = 20


def _unwrap(fn: Callable[..., Any]) -> Callable[..., Any]:
    return getattr(fn, "__observed__", fn)


class ReturnHistory:
    """Most recent return values per observed function, oldest first."""

    def __init__(self, limit: int = RETURN_HISTORY_LIMIT):
        self.limit = limit
        self._returns: Dict[Callable[..., Any], Deque[Any]] = {}

    def track(self, fn: Callable[..., Any]) -> Deque[Any]:
        fn = _unwrap(fn)
        if fn not in self._returns:
            self._returns[fn] = deque(maxlen=self.limit)
        return self._returns[fn]

    def get(self, fn: Callable[..., Any]) -> List[Any]:
        """Recorded returns of ``fn`` (the original or its observer)."""
        return list(self._returns.get(_unwrap(fn), ()))

    def clear(self) -> None:
        self._returns.clear()

    def __len__(self) -> int:
        return len(self._returns)


def observe_return(
    fn: Callable[..., Any],
    diagnostics: Optional["Diagnostics"] = None,
) -> Callable[..., Any]:
    """Wrap ``fn`` so each return value is kept in the return history.

    Usage:
        roll = diagnostics.observe_return(roll_dice)
        roll(); roll()
        diagnostics.return_history(roll_dice)  # last 20 results
    """
    returns = resolve_diagnostics(diagnostics).returns.track(fn)

    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args, **kwargs):
            result = await fn(*args, **kwargs)
            returns.append(result)
            return result

        async_wrapper.__observed__ = fn
        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        result = fn(*args, **kwargs)
        returns.append(result)
        return result

    wrapper.__observed__ = fn
    return wrapper


def execution_timer(
    fn: Callable[..., Any],
    name: Optional[str] = None,
    diagnostics: Optional["Diagnostics"] = None,
) -> Callable[..., Any]:
    """Wrap ``fn`` so each completed call dispatches "<name> took N.NNms" at info."""
    owner = resolve_diagnostics(diagnostics)
    label = name or callable_name(fn)

    def report(start: float) -> None:
        owner.dispatch(f"{label} took {(time.perf_counter() - start) * 1000:.2f}ms", "info")

    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            result = await fn(*args, **kwargs)
            report(start)
            return result

        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = fn(*args, **kwargs)
        report(start)
        return result

    return wrapper
