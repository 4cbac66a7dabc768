"""Guard: run work now, report failures automatically, allow a fallback value.

Unlike Informer, a failing Guard always publishes an inspection report, so
the failure is visible even if nobody attaches a catcher.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from .base import AsyncOutcome, call_handler, callable_name

if TYPE_CHECKING:
    from ..runtime import Diagnostics

logger = logging.getLogger(__name__)

_UNSET = object()


class Guard(AsyncOutcome):
    """Fire-and-run wrapper with catch/default/finally chaining.

    Usage:
        g = diagnostics.guard(fetch_settings).default({}).catch(log_error)
        settings = await g    # fetch_settings() result, or {} if it raised

    Each attachment takes effect at most once. Attachments made before the
    work finishes are applied when it does.
    """

    def __init__(
        self,
        fn: Callable[[], Any],
        ctx: Optional[dict] = None,
        diagnostics: Optional["Diagnostics"] = None,
    ):
        self.caught = False
        self.defaulted = False
        self.finalized = False
        self.report: Optional[str] = None
        self._catcher: Optional[Callable[[BaseException], Any]] = None
        self._finalizer: Optional[Callable[[], Any]] = None
        self._default: Any = _UNSET
        super().__init__(fn, ctx, diagnostics)

    @property
    def result(self) -> Any:
        """Return value of the work, or the default if it failed and one was set."""
        return self._result

    async def wait(self) -> Any:
        await super().wait()
        return self._result

    def _on_complete(self) -> None:
        if self.last_error is not None:
            self._result = None
            try:
                self.report, _ = self.diagnostics.examine(
                    self.ctx.get("target"),
                    self.last_error,
                    source=self.ctx.get("source", "Guard failure"),
                )
            except Exception as e:
                logger.warning(f"Guard report for {callable_name(self.fn)} failed: {e}")

            if self._default is not _UNSET:
                self._apply_default(self._default)
            if self._catcher is not None:
                self._fire_catch(self._catcher)

        if self._finalizer is not None:
            self._fire_finally(self._finalizer)
        self._catcher = self._finalizer = None
        self._default = _UNSET

    def _apply_default(self, value: Any) -> None:
        if not self.defaulted:
            self.defaulted = True
            self._result = value

    def _fire_catch(self, fn: Callable[[BaseException], Any]) -> None:
        if not self.caught:
            self.caught = True
            call_handler(fn, self.last_error)

    def _fire_finally(self, fn: Callable[[], Any]) -> None:
        if not self.finalized:
            self.finalized = True
            call_handler(fn)

    def catch(self, fn: Callable[[BaseException], Any]) -> "Guard":
        """Run ``fn(error)`` once if the work failed."""
        if not callable(fn):
            return self
        if self.ran:
            if self.last_error is not None:
                self._fire_catch(fn)
        elif self._catcher is None:
            self._catcher = fn
        return self

    def default(self, value: Any) -> "Guard":
        """Use ``value`` as the result once if the work failed."""
        if self.ran:
            if self.last_error is not None:
                self._apply_default(value)
        elif self._default is _UNSET:
            self._default = value
        return self

    def finally_(self, fn: Callable[[], Any]) -> "Guard":
        """Run ``fn()`` exactly once after the work, whatever its outcome."""
        if not callable(fn):
            return self
        if self.ran:
            self._fire_finally(fn)
        elif self._finalizer is None:
            self._finalizer = fn
        return self
