"""Waiting, polling and deadline controllers.

- wait_until: yield to the loop until a condition holds or time runs out
- poll_until: call a function on an interval until a condition holds
- must_return: give a call a deadline, abandon it when missed
- succeed_until: keep calling a function while a condition holds

Timeouts snapshot the diagnostics' global state (or the call arguments for
must_return) and are reported through dispatch.
"""

import asyncio
import functools
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from ..utils.errors import WaitTimeout
from .base import call_handler, call_work, callable_name, resolve_diagnostics

if TYPE_CHECKING:
    from ..runtime import Diagnostics

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "Timeout"


def _check(condition: Callable[[], Any]) -> Any:
    try:
        return condition()
    except Exception as e:
        logger.debug(f"Condition {callable_name(condition)} raised: {e}")
        return None


class WaitHandle:
    """Result of wait_until.

    ``then(fn)`` receives the condition's truthy value, ``catch(fn)``
    receives "Timeout". Handlers attached after the wait resolved run
    immediately. ``await handle`` returns the truthy value or None.
    """

    def __init__(
        self,
        condition: Callable[[], Any],
        timeout: float,
        diagnostics: "Diagnostics",
    ):
        self.condition = condition
        self.timeout = timeout
        self.diagnostics = diagnostics
        self.resolved = False
        self.timed_out = False
        self.result: Any = None
        self.error: Optional[WaitTimeout] = None
        self._then: List[Callable[[Any], Any]] = []
        self._catch: List[Callable[[str], Any]] = []

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="statewatch:wait_until")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while loop.time() < deadline:
            value = _check(self.condition)
            if value:
                self._settle(value)
                return
            await asyncio.sleep(0)

        snapshot_id = self.diagnostics.snapshot_global("wait_until timeout")
        self.error = WaitTimeout(TIMEOUT_REASON, self.timeout, snapshot_id)
        self.diagnostics.dispatch(
            f"wait_until timed out after {self.timeout}s "
            f"({callable_name(self.condition)}). Snapshot: {snapshot_id}",
            "warn",
        )
        self._settle(None, timed_out=True)

    def _settle(self, value: Any, timed_out: bool = False) -> None:
        self.resolved = True
        self.timed_out = timed_out
        self.result = value
        then, self._then = self._then, []
        catch, self._catch = self._catch, []
        if timed_out:
            for fn in catch:
                call_handler(fn, TIMEOUT_REASON)
        else:
            for fn in then:
                call_handler(fn, value)

    def then(self, fn: Callable[[Any], Any]) -> "WaitHandle":
        if self.resolved:
            if not self.timed_out:
                call_handler(fn, self.result)
        else:
            self._then.append(fn)
        return self

    def catch(self, fn: Callable[[str], Any]) -> "WaitHandle":
        if self.resolved:
            if self.timed_out:
                call_handler(fn, TIMEOUT_REASON)
        else:
            self._catch.append(fn)
        return self

    @property
    def task(self) -> asyncio.Task:
        return self._task

    async def wait(self) -> Any:
        if not self._task.done():
            await asyncio.wait({self._task})
        return self.result

    def __await__(self):
        return self.wait().__await__()


def wait_until(
    condition: Callable[[], Any],
    timeout: Optional[float] = None,
    diagnostics: Optional["Diagnostics"] = None,
) -> WaitHandle:
    """Wait, yielding at scheduler granularity, until ``condition()`` is truthy."""
    diagnostics = resolve_diagnostics(diagnostics)
    if timeout is None:
        timeout = diagnostics.config.wait_timeout
    return WaitHandle(condition, timeout, diagnostics)


def poll_until(
    fn: Callable[[], Any],
    condition: Callable[[], Any],
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    diagnostics: Optional["Diagnostics"] = None,
) -> "asyncio.Task[bool]":
    """Call ``fn`` every ``interval`` seconds until ``condition()`` holds.

    Returns:
        Task resolving to True when the condition was met, False on timeout
    """
    diagnostics = resolve_diagnostics(diagnostics)
    if timeout is None:
        timeout = diagnostics.config.poll_timeout
    if interval is None:
        interval = diagnostics.config.poll_interval

    async def _poll() -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while loop.time() < deadline:
            try:
                await call_work(fn)
            except Exception as e:
                logger.debug(f"poll_until call {callable_name(fn)} failed: {e}")
            if _check(condition):
                return True
            await asyncio.sleep(interval)

        snapshot_id = diagnostics.snapshot_global("poll_until timeout")
        diagnostics.dispatch(
            f"poll_until timed out after {timeout}s ({callable_name(fn)}). "
            f"Snapshot: {snapshot_id}",
            "error",
        )
        return False

    return asyncio.get_running_loop().create_task(_poll(), name="statewatch:poll_until")


def must_return(
    fn: Callable[..., Any],
    timeout: Optional[float] = None,
    diagnostics: Optional["Diagnostics"] = None,
) -> Callable[..., Any]:
    """Wrap ``fn`` so each call is abandoned after ``timeout`` seconds.

    The wrapper is async. Coroutine functions run as tasks; plain functions
    run in the loop's default executor. On timeout an error is dispatched,
    the arguments are snapshotted, the work is cancelled and None is
    returned. Cancellation is best effort: executor work keeps running
    detached. Errors raised by ``fn`` in time propagate to the caller.
    """
    diagnostics = resolve_diagnostics(diagnostics)
    if timeout is None:
        timeout = diagnostics.config.must_return_timeout
    is_async = inspect.iscoroutinefunction(fn)

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        loop = asyncio.get_running_loop()
        if is_async:
            work = loop.create_task(fn(*args, **kwargs))
        else:
            work = loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

        done, _ = await asyncio.wait({work}, timeout=timeout)
        if not done:
            diagnostics.dispatch(
                f"Function timeout: {callable_name(fn)} did not return within {timeout}s",
                "error",
            )
            diagnostics.snapshot(
                {"args": list(args), "kwargs": kwargs}, {"note": "timeout args"}
            )
            work.cancel()
            return None
        return work.result()

    return wrapper


def succeed_until(
    condition: Callable[[], Any],
    fn: Callable[[], Any],
    interval: float = 0.1,
    diagnostics: Optional["Diagnostics"] = None,
) -> "asyncio.Task[bool]":
    """Call ``fn`` while ``condition()`` holds; stop at the first failure.

    Returns:
        Task resolving to True if the condition ended the loop, False if
        ``fn`` failed
    """
    diagnostics = resolve_diagnostics(diagnostics)

    async def _run() -> bool:
        while _check(condition):
            try:
                await call_work(fn)
            except Exception as e:
                snapshot_id = diagnostics.snapshot_global("condition failed")
                diagnostics.dispatch(
                    f"succeed_until failed: {e}. Snapshot: {snapshot_id}", "error"
                )
                return False
            await asyncio.sleep(interval)
        return True

    return asyncio.get_running_loop().create_task(_run(), name="statewatch:succeed_until")
