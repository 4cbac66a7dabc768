"""Tests for the report viewer API."""

import pytest
from fastapi.testclient import TestClient

from statewatch.runtime import Diagnostics, reset_diagnostics
from statewatch.web.server import app, bind


@pytest.fixture
def engine(fast_config):
    d = reset_diagnostics(fast_config)
    yield d
    reset_diagnostics()


@pytest.fixture
def client(engine):
    with TestClient(app) as c:
        yield c


class TestStatus:
    """Tests for GET /api/status."""

    def test_status(self, client, engine):
        """Status reports version, counts and config."""
        engine.snapshot({"a": 1})
        data = client.get("/api/status").json()
        assert data["snapshots"] == 1
        assert data["config"]["dispatch_window"] == 0.02
        assert "version" in data


class TestSnapshots:
    """Tests for the snapshot endpoints."""

    def test_list(self, client, engine):
        """Snapshots are listed without data by default."""
        engine.snapshot({"a": 1}, meta={"note": "boot"})
        data = client.get("/api/snapshots").json()
        assert len(data["snapshots"]) == 1
        assert data["snapshots"][0]["meta"] == {"note": "boot"}
        assert "captured" not in data["snapshots"][0]

    def test_list_with_data(self, client, engine):
        """include_data adds the captured values."""
        engine.snapshot({"a": [1]})
        data = client.get("/api/snapshots", params={"include_data": True}).json()
        assert data["snapshots"][0]["captured"] == {"a": {"0": 1}}

    def test_get_one(self, client, engine):
        """A single snapshot is returned with its data."""
        snap_id = engine.snapshot({"a": 1})
        response = client.get(f"/api/snapshots/{snap_id}")
        assert response.status_code == 200
        assert response.json()["captured"] == {"a": 1}

    def test_missing(self, client):
        """Unknown ids are 404."""
        response = client.get("/api/snapshots/99")
        assert response.status_code == 404
        assert "missing snapshot" in response.json()["detail"]


class TestReports:
    """Tests for GET /api/reports."""

    def test_recent_reports(self, client, engine):
        """Published reports are listed oldest first."""
        engine.publish("first", opts={"level": "info"})
        engine.publish("second")
        data = client.get("/api/reports").json()
        assert [r["report"] for r in data["reports"]] == ["first", "second"]
        assert data["reports"][0]["opts"] == {"level": "info"}

    def test_limit(self, client, engine):
        """limit keeps the newest reports."""
        for text in ("a", "b", "c"):
            engine.publish(text)
        data = client.get("/api/reports", params={"limit": 1}).json()
        assert [r["report"] for r in data["reports"]] == ["c"]


class TestWebSocket:
    """Tests for WS /ws."""

    def test_init_event(self, client, engine):
        """A new connection receives the current status."""
        engine.snapshot({})
        with client.websocket_connect("/ws") as ws:
            event = ws.receive_json()
        assert event["type"] == "init"
        assert event["status"]["snapshots"] == 1

    def test_ping(self, client):
        """Clients can ping the server."""
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("ping")
            assert ws.receive_text() == "pong"


class TestViewer:
    """Tests for the viewer page."""

    def test_index(self, client):
        """The viewer page is served."""
        response = client.get("/")
        assert response.status_code == 200
        assert "statewatch reports" in response.text


class TestInProcessReports:
    """Tests for reports produced in the serving process."""

    def test_dispatch_reaches_reports(self, client, engine):
        """A report dispatched in-process is listed by the API."""
        engine.dispatch("db down", "error")
        reports = client.get("/api/reports").json()["reports"]
        assert len(reports) == 1
        assert "db down" in reports[0]["report"]
        assert reports[0]["opts"]["level"] == "error"

    def test_bound_instance_is_served(self, engine, fast_config):
        """bind serves the given instance instead of the default one."""
        own = Diagnostics(fast_config)
        own.snapshot({"a": 1})
        own.snapshot({"b": 2})
        bind(own)
        try:
            with TestClient(app) as c:
                assert c.get("/api/status").json()["snapshots"] == 2
                own.dispatch("from the application")
                reports = c.get("/api/reports").json()["reports"]
        finally:
            bind(None)
            own.close()
        assert "from the application" in reports[0]["report"]
        assert engine.status()["snapshots"] == 0
