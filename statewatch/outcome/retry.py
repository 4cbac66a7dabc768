"""Bounded retry with backoff, snapshotting state on every failure.

Backoff parameters:
- Initial interval: ``backoff`` seconds
- Multiplier: 1.0 (constant wait between attempts)
- Max interval: 60 seconds

Pass ``multiplier=2.0`` for exponential backoff.
"""

import asyncio
import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple, Type, TypeVar

from ..utils.errors import RetryExhausted
from .base import call_work, callable_name, resolve_diagnostics

if TYPE_CHECKING:
    from ..runtime import Diagnostics

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_LIMIT = 3
DEFAULT_BACKOFF = 1.0
DEFAULT_MULTIPLIER = 1.0
DEFAULT_MAX_INTERVAL = 60.0


async def catch_or_retry(
    func: Callable[[], T],
    retry_limit: Optional[int] = None,
    backoff: Optional[float] = None,
    *,
    fallback: Optional[Callable[[BaseException], Any]] = None,
    multiplier: float = DEFAULT_MULTIPLIER,
    max_interval: float = DEFAULT_MAX_INTERVAL,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
    raise_on_exhaust: bool = False,
    diagnostics: Optional["Diagnostics"] = None,
) -> Optional[T]:
    """Execute a function, retrying on failure.

    Every failed attempt snapshots the diagnostics' global state. When the
    attempts run out, one fatal report naming the last snapshot id is
    dispatched.

    Args:
        func: Plain or async function to execute (no arguments)
        retry_limit: Maximum number of attempts
        backoff: Initial wait between attempts
        fallback: Called with the last error once attempts are exhausted;
            its return value becomes the result
        multiplier: Backoff multiplier (1.0 keeps the wait constant)
        max_interval: Maximum wait between attempts
        retryable_exceptions: Tuple of exception types to retry on
        on_retry: Optional callback(exception, attempt, next_interval)
        raise_on_exhaust: Raise RetryExhausted instead of returning None
            when there is no fallback
        diagnostics: Owning Diagnostics (default instance if omitted)

    Returns:
        Result of the function, the fallback's result, or None

    Raises:
        RetryExhausted: all attempts failed and ``raise_on_exhaust`` is set
    """
    diagnostics = resolve_diagnostics(diagnostics)
    if retry_limit is None:
        retry_limit = diagnostics.config.retry_limit
    if backoff is None:
        backoff = diagnostics.config.retry_backoff
    retry_limit = max(1, int(retry_limit))

    attempt = 0
    interval = backoff
    last_exception: Optional[Exception] = None
    snapshot_id: Optional[int] = None

    while attempt < retry_limit:
        attempt += 1
        try:
            return await call_work(func)
        except retryable_exceptions as e:
            last_exception = e
            snapshot_id = diagnostics.snapshot_global("retry failure")

            if attempt >= retry_limit:
                break

            wait_time = min(interval, max_interval)
            if on_retry:
                on_retry(e, attempt, wait_time)
            else:
                logger.debug(
                    f"Attempt {attempt} failed: {e}. Retrying in {wait_time:.1f}s"
                )

            await asyncio.sleep(wait_time)
            interval = min(interval * multiplier, max_interval)

    diagnostics.dispatch(
        f"Fatal: Operation failed after {retry_limit} retries. Snapshot: {snapshot_id}",
        "error",
    )

    if fallback is not None:
        try:
            return await call_work(fallback, last_exception)
        except Exception as e:
            logger.warning(f"Fallback {callable_name(fallback)} failed: {e}")
            return None

    if raise_on_exhaust:
        raise RetryExhausted(
            f"{callable_name(func)} failed after {retry_limit} attempts",
            attempts=attempt,
            snapshot_id=snapshot_id,
            last_error=last_exception,
        ) from last_exception
    return None


def with_retry(
    retry_limit: int = DEFAULT_RETRY_LIMIT,
    backoff: float = DEFAULT_BACKOFF,
    multiplier: float = DEFAULT_MULTIPLIER,
    max_interval: float = DEFAULT_MAX_INTERVAL,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    diagnostics: Optional["Diagnostics"] = None,
):
    """Decorator form of catch_or_retry.

    The decorated function becomes async and raises RetryExhausted when
    every attempt failed.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await catch_or_retry(
                lambda: func(*args, **kwargs),
                retry_limit=retry_limit,
                backoff=backoff,
                multiplier=multiplier,
                max_interval=max_interval,
                retryable_exceptions=retryable_exceptions,
                raise_on_exhaust=True,
                diagnostics=diagnostics,
            )

        return wrapper

    return decorator
