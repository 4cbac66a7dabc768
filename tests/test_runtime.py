"""Tests for the Diagnostics engine and inspection reports."""

import asyncio
import json

from statewatch import Diagnostics, DiagnosticsConfig, get_diagnostics, reset_diagnostics
from statewatch.capture import DiffEntry
from statewatch.dispatch.aggregator import RULE
from statewatch.dispatch.report import MISSING_CATCHER, banner, build_report, report_to_json


class Widget:
    def __init__(self, title):
        self.title = title


class TestBuildReport:
    """Tests for report formatting."""

    def test_sections(self):
        """A report names source, target, unexpected value and fields."""
        report = build_report({"speed": 1, "name": "x"}, KeyError("speed"), source="loader")
        lines = report.splitlines()
        assert lines[0] == RULE
        assert lines[1].strip() == "INSPECTION REPORT"
        assert "[Source]: loader" in lines
        assert "[Target]: dict" in lines
        assert "[Unexpected]: 'speed'" in lines
        assert "[Deep Inspect]:" in lines
        assert "    - speed: int" in lines
        assert "    - name: str" in lines
        assert lines[-1] == RULE
        assert any(line.startswith("[TracePath]:") for line in lines)

    def test_defaults(self):
        """Unknown source and primitive targets are handled."""
        report = build_report(5)
        assert "[Source]: <unknown>" in report
        assert "[Target]: int" in report
        assert "[Deep Inspect]" not in report
        assert "[Unexpected]" not in report

    def test_diff_section(self):
        """Differences are listed; an empty list says so."""
        report = build_report({}, diff_entries=[DiffEntry("a", "1", "2")])
        assert "[Diff]:\n    a: 1 -> 2" in report
        assert "[Diff]: No differences detected" in build_report({}, diff_entries=[])

    def test_missing_catcher_notice(self):
        """The unobserved-failure notice is optional."""
        assert MISSING_CATCHER in build_report({}, show_missing_catcher=True)
        assert MISSING_CATCHER not in build_report({})

    def test_banner_centered(self):
        """Titles are centered between rules."""
        lines = banner("AB", width=10).splitlines()
        assert lines[1] == "    AB"

    def test_report_to_json(self):
        """Reports wrap into a JSON document."""
        assert json.loads(report_to_json("text")) == {"report": "text"}


class TestExamine:
    """Tests for Diagnostics.examine."""

    def test_publishes_transformed_report(self, diagnostics):
        """examine runs transforms and publishes to subscribers."""
        received = []
        diagnostics.subscribe(lambda report, target, opts: received.append((report, target, opts)))
        diagnostics.register_transform(lambda r: r + "\n[Tag]: reviewed")
        state = {"hp": 3}

        report, ctx = diagnostics.examine(state, "negative hp", source="combat")

        assert report.endswith("[Tag]: reviewed")
        assert received[0][0] == report
        assert received[0][1] is state
        assert received[0][2]["source"] == "combat"
        assert json.loads(ctx.to_json())["report"] == report

    def test_context_snapshot(self, diagnostics):
        """The context snapshots the examined target with its note."""
        state = {"hp": 3}
        _, ctx = diagnostics.examine(state, note="before heal")
        snap_id = ctx.snapshot()
        assert diagnostics.get_snapshot(snap_id).meta == {"note": "before heal"}
        assert diagnostics.get_snapshot(snap_id).captured == {"hp": 3}

    def test_against_snapshot(self, diagnostics):
        """Examining against a snapshot includes the diff."""
        state = {"hp": 3}
        snap_id = diagnostics.snapshot(state)
        state["hp"] = 1
        report, _ = diagnostics.examine(state, against=snap_id)
        assert "hp: 3 -> 1" in report

    def test_against_missing_snapshot(self, diagnostics):
        """A missing snapshot is reported instead of raised."""
        report, _ = diagnostics.examine({}, against=42)
        assert "[Unexpected]: missing snapshot: 42" in report

    def test_context_retry(self, diagnostics):
        """retry runs a function in a fresh informer."""

        async def scenario():
            _, ctx = diagnostics.examine({})
            assert ctx.retry("not callable") is None
            return await ctx.retry(lambda: "again")

        assert asyncio.run(scenario()) == "again"

    def test_examine_with_logger(self, diagnostics):
        """The report is handed to the logger's info."""
        lines = []

        class Log:
            def info(self, message):
                lines.append(message)

        report, _ = diagnostics.examine_with_logger(Log(), {"a": 1}, "odd")
        assert lines == [report]


class TestDiagnostics:
    """Tests for the engine's own behavior."""

    def test_snapshot_round_trip(self, diagnostics):
        """Snapshots diff against live state through the engine."""
        state = {"b": {"c": 2}}
        snap_id = diagnostics.snapshot(state)
        state["b"]["c"] = 3
        entries = diagnostics.diff_snapshots(snap_id, state)
        assert [str(e) for e in entries] == ["b.c: 2 -> 3"]

    def test_history_through_engine(self, diagnostics):
        """History is recorded and diffed per target."""
        state = {"v": 1}
        diagnostics.snapshot_history(state, note="first")
        state["v"] = 2
        assert diagnostics.diff_history(state, 1) == [DiffEntry("v", "1", "2")]
        assert diagnostics.history(state)[0].note == "first"

    def test_error_dispatch_carries_breadcrumbs(self, diagnostics, sink_messages):
        """Error dispatches append the breadcrumb trail."""
        diagnostics.breadcrumb("load")
        diagnostics.breadcrumb("save")
        diagnostics.dispatch("disk full", "error")
        diagnostics.dispatch("just info", "info")
        errors = sink_messages("error")
        assert len(errors) == 1
        assert "disk full | Breadcrumbs: load -> save" in errors[0]
        assert "Breadcrumbs" not in sink_messages("info")[0]

    def test_global_state_snapshot(self, diagnostics):
        """snapshot_global captures the global namespace."""
        diagnostics.global_state["mode"] = "boss"
        snap_id = diagnostics.snapshot_global("manual")
        snapshot = diagnostics.get_snapshot(snap_id)
        assert snapshot.captured == {"mode": "boss"}
        assert snapshot.meta == {"note": "manual"}

    def test_register_descriptor(self, diagnostics):
        """Registered descriptors apply to engine captures."""
        diagnostics.register_descriptor(Widget, lambda w: ("Widget", w.title))
        captured = diagnostics.capture({"w": Widget("Save")})
        assert captured["w"] == {"is_external_ref": True, "kind": "Widget", "name": "Save"}

    def test_publish(self, diagnostics):
        """publish goes through the channel."""
        received = []
        diagnostics.subscribe(lambda r, t, o: received.append(r))
        diagnostics.publish("manual report")
        assert received == ["manual report"]

    def test_close_flushes_and_detaches(self, fast_config):
        """close emits pending dispatches and detaches subscribers."""
        d = Diagnostics(fast_config)

        async def scenario():
            d.subscribe(lambda r, t, o: None)
            d.dispatch("pending")
            d.close()

        asyncio.run(scenario())
        assert d.closed
        assert d.channel.subscriber_count == 0
        assert len(d.sink.get_entries()) == 1

    def test_async_context_manager(self, fast_config):
        """async with closes the engine."""

        async def scenario():
            async with Diagnostics(fast_config) as d:
                d.dispatch("x")
            return d

        assert asyncio.run(scenario()).closed

    def test_status(self, diagnostics):
        """status summarizes the registries."""
        diagnostics.snapshot({})
        status = diagnostics.status()
        assert status["snapshots"] == 1
        assert status["unhandled"] == 0


class TestDefaultInstance:
    """Tests for the process default instance."""

    def test_reset_replaces_default(self):
        """reset_diagnostics closes the old default and installs a new one."""
        old = get_diagnostics()
        new = reset_diagnostics(DiagnosticsConfig(max_depth=3))
        assert old.closed
        assert get_diagnostics() is new
        assert new.config.max_depth == 3
        reset_diagnostics()
