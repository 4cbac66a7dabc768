"""Tests for Informer and Guard."""

import asyncio

import pytest

from statewatch.dispatch.report import MISSING_CATCHER
from statewatch.outcome import Guard, Informer, OutcomeState
from statewatch.utils.errors import UnobservedAsyncFailure


def boom():
    raise ValueError("boom")


class RecordingLogger:
    def __init__(self):
        self.warnings = []

    def warn(self, message):
        self.warnings.append(message)


class TestInformer:
    """Tests for Informer."""

    def test_success(self, diagnostics):
        """A successful informer records its result and state."""

        async def scenario():
            inf = diagnostics.informer(lambda: 42)
            assert inf.state is OutcomeState.PENDING
            assert await inf == 42
            return inf

        inf = asyncio.run(scenario())
        assert inf.succeeded
        assert inf.result == 42
        assert inf.last_error is None
        assert diagnostics.unhandled == []

    def test_async_work(self, diagnostics):
        """Coroutine functions are awaited."""

        async def fetch():
            await asyncio.sleep(0)
            return "data"

        async def scenario():
            return await diagnostics.informer(fetch)

        assert asyncio.run(scenario()) == "data"

    def test_unobserved_failure_warns_once(self, diagnostics, sink_messages):
        """A failure without catch/finally is reported after the grace period."""
        log = RecordingLogger()

        async def scenario():
            inf = diagnostics.informer(boom, ctx={"logger": log})
            assert await inf is None
            await asyncio.sleep(0.1)
            return inf

        inf = asyncio.run(scenario())
        assert inf.failed
        assert isinstance(inf.last_error, ValueError)
        assert isinstance(inf.unobserved, UnobservedAsyncFailure)
        assert log.warnings == [MISSING_CATCHER]
        warnings = [m for m in sink_messages() if MISSING_CATCHER in m]
        assert len(warnings) == 1
        assert inf in diagnostics.unhandled

    def test_catch_before_grace_suppresses_warning(self, diagnostics, sink_messages):
        """Attaching catch in time observes the failure."""
        caught = []

        async def scenario():
            inf = diagnostics.informer(boom)
            inf.catch(caught.append)
            await inf
            await asyncio.sleep(0.1)
            return inf

        inf = asyncio.run(scenario())
        assert inf.caught
        assert inf.unobserved is None
        assert [str(e) for e in caught] == ["boom"]
        assert not any(MISSING_CATCHER in m for m in sink_messages())

    def test_catch_after_completion_runs_immediately(self, diagnostics):
        """A catcher attached after the failure runs at once."""
        caught = []

        async def scenario():
            inf = diagnostics.informer(boom)
            await inf
            inf.catch(caught.append)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert len(caught) == 1

    def test_catch_not_called_on_success(self, diagnostics):
        """Catchers only run for failures."""
        caught = []

        async def scenario():
            inf = diagnostics.informer(lambda: 1).catch(caught.append)
            await inf

        asyncio.run(scenario())
        assert caught == []

    def test_finally_runs_and_observes(self, diagnostics, sink_messages):
        """finally_ runs regardless of outcome and counts as observation."""
        calls = []

        async def scenario():
            ok = diagnostics.informer(lambda: 1).finally_(lambda: calls.append("ok"))
            bad = diagnostics.informer(boom).finally_(lambda: calls.append("bad"))
            await ok
            await bad
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert sorted(calls) == ["bad", "ok"]
        assert not any(MISSING_CATCHER in m for m in sink_messages())

    def test_failing_handler_is_contained(self, diagnostics):
        """Handler errors are logged, never raised."""

        def bad_handler(error):
            raise RuntimeError("handler broke")

        async def scenario():
            inf = diagnostics.informer(boom).catch(bad_handler)
            await inf

        asyncio.run(scenario())

    def test_retry_creates_new_informer(self, diagnostics):
        """retry runs the same work again."""
        calls = []

        def work():
            calls.append(1)
            return len(calls)

        async def scenario():
            first = diagnostics.informer(work)
            await first
            second = first.retry()
            assert second is not first
            return await second

        assert asyncio.run(scenario()) == 2

    def test_budget_exceeded(self, diagnostics, sink_messages):
        """Exceeding the time budget dispatches a warning."""

        async def slow():
            await asyncio.sleep(0.03)

        async def scenario():
            await diagnostics.informer(slow, budget=0.001)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert any("Performance budget exceeded" in m for m in sink_messages())

    def test_requires_callable(self, diagnostics):
        """Non-callables are rejected."""

        async def scenario():
            Informer(5, diagnostics=diagnostics)

        with pytest.raises(TypeError):
            asyncio.run(scenario())

    def test_ctx_must_be_mapping(self, diagnostics):
        """An opaque context object is rejected before any work is scheduled."""

        class Context:
            logger = None

        async def scenario():
            with pytest.raises(TypeError, match="ctx must be a mapping"):
                diagnostics.informer(lambda: None, ctx=Context())
            with pytest.raises(TypeError, match="ctx must be a mapping"):
                diagnostics.guard(lambda: None, ctx=Context())
            return len(asyncio.all_tasks())

        assert asyncio.run(scenario()) == 1


class TestGuard:
    """Tests for Guard."""

    def test_default_applies_on_failure(self, diagnostics):
        """default(v) becomes the result when the work raised."""

        async def scenario():
            return await diagnostics.guard(boom).default({"fallback": True})

        assert asyncio.run(scenario()) == {"fallback": True}

    def test_default_ignored_on_success(self, diagnostics):
        """default(v) is ignored when the work succeeded."""

        async def scenario():
            return await diagnostics.guard(lambda: "real").default("fallback")

        assert asyncio.run(scenario()) == "real"

    def test_default_after_completion(self, diagnostics):
        """A default attached after the failure applies at once, only once."""

        async def scenario():
            g = diagnostics.guard(boom)
            await g
            g.default(1)
            g.default(2)
            return g

        g = asyncio.run(scenario())
        assert g.result == 1
        assert g.defaulted

    def test_catch_once(self, diagnostics):
        """catch fires once and only for failures."""
        caught = []

        async def scenario():
            g = diagnostics.guard(boom).catch(caught.append)
            await g
            g.catch(caught.append)
            ok = diagnostics.guard(lambda: 1).catch(caught.append)
            await ok

        asyncio.run(scenario())
        assert len(caught) == 1

    def test_finally_once(self, diagnostics):
        """finally_ fires exactly once whatever the outcome."""
        calls = []

        async def scenario():
            g = diagnostics.guard(boom).finally_(lambda: calls.append(1))
            await g
            g.finally_(lambda: calls.append(2))

        asyncio.run(scenario())
        assert calls == [1]

    def test_failure_publishes_report(self, diagnostics):
        """A failing guard publishes an inspection report automatically."""
        reports = []
        diagnostics.subscribe(lambda report, target, opts: reports.append(report))

        async def scenario():
            g = diagnostics.guard(boom, ctx={"target": {"speed": 1}})
            await g
            return g

        g = asyncio.run(scenario())
        assert len(reports) == 1
        assert "[Source]: Guard failure" in reports[0]
        assert "ValueError" in g.report or "boom" in g.report
        assert "- speed: int" in g.report

    def test_is_guard(self, diagnostics):
        """diagnostics.guard builds a Guard."""

        async def scenario():
            g = diagnostics.guard(lambda: None)
            await g
            return g

        assert isinstance(asyncio.run(scenario()), Guard)
