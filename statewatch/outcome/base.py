"""Shared machinery for fire-and-run outcome wrappers."""

import asyncio
import inspect
import logging
import time
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from ..runtime import Diagnostics

logger = logging.getLogger(__name__)


class OutcomeState(str, Enum):
    """Lifecycle of a wrapped unit of work.

    Lifecycle: pending → ran (exactly once)
    """

    PENDING = "pending"
    RAN = "ran"


def resolve_diagnostics(diagnostics: Optional["Diagnostics"]) -> "Diagnostics":
    if diagnostics is not None:
        return diagnostics
    from ..runtime import get_diagnostics

    return get_diagnostics()


def callable_name(fn: Any) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)


async def call_work(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Call a plain or async callable and return its result."""
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def call_handler(fn: Callable[..., Any], *args) -> None:
    """Run an attached handler; its failures are logged, never raised."""
    try:
        result = fn(*args)
    except Exception as e:
        logger.warning(f"Handler {callable_name(fn)} failed: {e}")
        return
    if inspect.isawaitable(result):
        try:
            task = asyncio.ensure_future(result)
        except RuntimeError:
            logger.debug(f"Handler {callable_name(fn)} returned an awaitable outside a loop")
            return
        task.add_done_callback(_log_handler_task)


def _log_handler_task(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.warning(f"Async handler failed: {exc}")


class AsyncOutcome:
    """A unit of work scheduled on the running loop as soon as it is created.

    Subclasses react to completion in ``_on_complete``. Instances are
    awaitable: ``await outcome`` returns the result, or None on failure, and
    never raises the work's error.
    """

    def __init__(
        self,
        fn: Callable[[], Any],
        ctx: Optional[dict] = None,
        diagnostics: Optional["Diagnostics"] = None,
    ):
        if not callable(fn):
            raise TypeError("fn must be callable")
        if ctx is not None and not isinstance(ctx, Mapping):
            raise TypeError(f"ctx must be a mapping, got {type(ctx).__name__}")
        self.fn = fn
        self.ctx = ctx or {}
        self.diagnostics = resolve_diagnostics(diagnostics)
        self.state = OutcomeState.PENDING
        self.last_error: Optional[BaseException] = None
        self.elapsed: Optional[float] = None
        self._result: Any = None

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"statewatch:{callable_name(fn)}")

    async def _run(self) -> None:
        start = time.monotonic()
        try:
            self._result = await call_work(self.fn)
        except Exception as e:
            self.last_error = e
        except asyncio.CancelledError as e:
            self.last_error = e
        finally:
            self.elapsed = time.monotonic() - start
            self.state = OutcomeState.RAN
        self._on_complete()

    def _on_complete(self) -> None:
        raise NotImplementedError

    @property
    def ran(self) -> bool:
        return self.state is OutcomeState.RAN

    @property
    def failed(self) -> bool:
        return self.ran and self.last_error is not None

    @property
    def succeeded(self) -> bool:
        return self.ran and self.last_error is None

    @property
    def task(self) -> asyncio.Task:
        return self._task

    async def wait(self) -> Any:
        """Wait for completion; return the result (None on failure)."""
        if not self._task.done():
            await asyncio.wait({self._task})
        return self._result if self.last_error is None else None

    def __await__(self):
        return self.wait().__await__()

    def __repr__(self) -> str:
        status = "failed" if self.failed else self.state.value
        return f"<{type(self).__name__} {callable_name(self.fn)} {status}>"
