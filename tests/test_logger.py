"""Tests for the dispatch sink and logging setup."""

import logging

from statewatch.diagnostics.logger import StructuredLogger, setup_logging


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_entries_by_level(self):
        """Entries are kept oldest first and filter by level."""
        sink = StructuredLogger()
        sink.info("loaded")
        sink.warn("slow")
        sink.error("failed")
        assert [e.message for e in sink.get_entries()] == ["loaded", "slow", "failed"]
        assert [e.message for e in sink.get_entries("warning")] == ["slow"]
        assert sink.get_entries("debug") == []

    def test_source_and_context(self):
        """The source label and keyword context land in the entry."""
        sink = StructuredLogger(source="worker-1")
        entry = sink.info("Snapshot stored", snapshot_id=4)
        assert entry.context == {"source": "worker-1", "snapshot_id": 4}
        data = entry.to_dict()
        assert data["level"] == "info"
        assert data["timestamp"].endswith("Z")

    def test_max_entries_drops_oldest(self):
        """Only the newest max_entries are kept."""
        sink = StructuredLogger(max_entries=2)
        for n in range(4):
            sink.info(f"m{n}")
        assert [e.message for e in sink.get_entries()] == ["m2", "m3"]

    def test_forwards_to_logging(self, caplog):
        """Entries reach the standard logger they are bound to."""
        sink = StructuredLogger(logger_name="statewatch.test_sink")
        with caplog.at_level(logging.INFO, logger="statewatch.test_sink"):
            sink.error("disk full", path="/tmp")
        assert caplog.records[0].levelno == logging.ERROR
        assert caplog.records[0].getMessage() == "disk full | {'path': '/tmp'}"

    def test_clear(self):
        """clear empties the entry list."""
        sink = StructuredLogger()
        sink.info("x")
        sink.clear()
        assert sink.get_entries() == []


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_quiets_access_log(self):
        """uvicorn access logging is raised to WARNING unless debugging."""
        setup_logging("INFO")
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
        setup_logging("DEBUG", debug_server=True)
        assert logging.getLogger("uvicorn.access").level == logging.DEBUG
        assert logging.getLogger("asyncio").level == logging.WARNING
