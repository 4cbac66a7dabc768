"""Informer: run work now, insist that its failure is observed.

If the work fails and neither ``catch`` nor ``finally_`` is attached within
the grace period, a "The error catcher wasn't used." warning is reported.

Usage:
    inf = diagnostics.informer(load_profile, ctx={"logger": log})
    inf.catch(lambda err: log.warning(f"profile load failed: {err}"))
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from ..dispatch.report import MISSING_CATCHER
from ..utils.errors import UnobservedAsyncFailure
from .base import AsyncOutcome, call_handler, callable_name

if TYPE_CHECKING:
    from ..runtime import Diagnostics

logger = logging.getLogger(__name__)


class Informer(AsyncOutcome):
    """Fire-and-run wrapper that reports unobserved failures.

    ``catch`` and ``finally_`` handlers attached before completion are
    deferred until the work has finished; attached afterwards, they run
    immediately. A ``catch`` handler only runs when the work failed.
    """

    def __init__(
        self,
        fn: Callable[[], Any],
        ctx: Optional[dict] = None,
        budget: Optional[float] = None,
        diagnostics: Optional["Diagnostics"] = None,
    ):
        """Schedule ``fn`` on the running loop.

        Args:
            fn: Plain or async callable taking no arguments
            ctx: Context; ``ctx["logger"]`` also receives the missing-catcher warning
            budget: Seconds the work may take before a budget warning
            diagnostics: Owning Diagnostics (default instance if omitted)
        """
        self.budget = budget
        self.caught = False
        self.finalized = False
        self.unobserved: Optional[UnobservedAsyncFailure] = None
        self._catchers: List[Callable[[BaseException], Any]] = []
        self._finalizers: List[Callable[[], Any]] = []
        self._grace_handle = None
        super().__init__(fn, ctx, diagnostics)

    @property
    def result(self) -> Any:
        return self._result

    def _on_complete(self) -> None:
        if self.budget is not None and self.elapsed is not None and self.elapsed > self.budget:
            self.diagnostics.dispatch(
                f"Performance budget exceeded: {self.elapsed * 1000:.2f}ms > "
                f"{self.budget * 1000:.2f}ms ({callable_name(self.fn)})",
                "warn",
            )

        if self.last_error is not None:
            self.diagnostics.unhandled.append(self)
            self._grace_handle = self._task.get_loop().call_later(
                self.diagnostics.config.grace_period, self._check_observed
            )

        catchers, self._catchers = self._catchers, []
        finalizers, self._finalizers = self._finalizers, []
        if self.last_error is not None:
            for fn in catchers:
                call_handler(fn, self.last_error)
        for fn in finalizers:
            call_handler(fn)

    def _check_observed(self) -> None:
        self._grace_handle = None
        if self.caught or self.finalized:
            return

        self.unobserved = UnobservedAsyncFailure(MISSING_CATCHER, self.last_error)
        ctx_logger = self.ctx.get("logger")
        warn = getattr(ctx_logger, "warning", None) or getattr(ctx_logger, "warn", None)
        if warn is not None:
            try:
                warn(MISSING_CATCHER)
            except Exception as e:
                logger.debug(f"Context logger failed: {e}")

        self.diagnostics.dispatch(
            f"{MISSING_CATCHER} {callable_name(self.fn)} failed with {self.last_error!r}",
            "warn",
        )

    def catch(self, fn: Callable[[BaseException], Any]) -> "Informer":
        """Observe the failure; ``fn(error)`` runs once the work has failed."""
        if not callable(fn):
            return self
        self.caught = True
        if self.ran:
            if self.last_error is not None:
                call_handler(fn, self.last_error)
        else:
            self._catchers.append(fn)
        return self

    def finally_(self, fn: Callable[[], Any]) -> "Informer":
        """Run ``fn()`` after the work, whatever its outcome."""
        if not callable(fn):
            return self
        self.finalized = True
        if self.ran:
            call_handler(fn)
        else:
            self._finalizers.append(fn)
        return self

    def retry(self) -> "Informer":
        """Run the same work again in a brand-new Informer."""
        return Informer(self.fn, self.ctx, self.budget, self.diagnostics)

    def cancel_grace(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None
