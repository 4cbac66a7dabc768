"""FastAPI server with WebSocket for the live report viewer.

Provides:
- GET / - Serves the single-page viewer
- GET /api/status - Diagnostics status
- GET /api/snapshots - Stored snapshots
- GET /api/snapshots/{snapshot_id} - One snapshot (404 if missing)
- GET /api/reports - Recently published reports
- WS /ws - Real-time report stream
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse, JSONResponse

from statewatch import __version__
from statewatch.dispatch.channel import Subscription
from statewatch.runtime import Diagnostics, get_diagnostics
from statewatch.utils.errors import MissingSnapshot

logger = logging.getLogger(__name__)

# Global state
_active_connections: Set[WebSocket] = set()
_connections_lock: Optional[asyncio.Lock] = None  # Initialized in lifespan
_subscription: Optional[Subscription] = None
_bound: Optional[Diagnostics] = None
MAX_WEBSOCKET_CONNECTIONS = 100


def _get_connections_lock() -> asyncio.Lock:
    """Get connections lock, raising if not initialized."""
    if _connections_lock is None:
        raise RuntimeError("Server not initialized - connections_lock is None")
    return _connections_lock


def bind(diagnostics: Optional[Diagnostics]) -> None:
    """Serve ``diagnostics`` instead of the process default instance."""
    global _bound
    _bound = diagnostics


def _engine() -> Diagnostics:
    return _bound if _bound is not None else get_diagnostics()


def _jsonable(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class EventType(str, Enum):
    """WebSocket event types."""

    INIT = "init"
    REPORT = "report"


@dataclass
class WebSocketEvent:
    """Event sent over WebSocket."""

    type: EventType
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"))

    def to_json(self) -> str:
        return json.dumps({"type": self.type.value, **self.data, "timestamp": self.timestamp}, default=str)


async def broadcast_event(event: WebSocketEvent) -> None:
    """Broadcast event to all connected WebSocket clients."""
    async with _get_connections_lock():
        connections_snapshot = set(_active_connections)

    disconnected = set()
    for ws in connections_snapshot:
        try:
            await ws.send_text(event.to_json())
        except Exception:
            disconnected.add(ws)

    if disconnected:
        async with _get_connections_lock():
            for ws in disconnected:
                _active_connections.discard(ws)


def _on_report(report: str, target: Any, opts: Dict[str, Any]):
    """Channel subscriber: forward every published report to the viewers."""
    if not _active_connections:
        return None
    event = WebSocketEvent(
        type=EventType.REPORT,
        data={"report": report, "opts": _jsonable(opts), "target": type(target).__name__},
    )
    return broadcast_event(event)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context."""
    global _connections_lock, _subscription
    _connections_lock = asyncio.Lock()
    _subscription = _engine().subscribe(_on_report)
    logger.info(f"Starting statewatch viewer v{__version__}")
    yield
    if _subscription is not None:
        _subscription.unsubscribe()
        _subscription = None
    logger.info("Shutting down viewer")


app = FastAPI(
    title="statewatch viewer",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/", response_class=HTMLResponse)
async def get_viewer():
    """Serve the viewer HTML."""
    return HTMLResponse(get_inline_viewer())


@app.get("/api/status")
async def get_status():
    """Get diagnostics status."""
    diagnostics = _engine()
    status = {"version": __version__, "connections": len(_active_connections)}
    status.update(diagnostics.status())
    status["config"] = diagnostics.config.model_dump()
    return JSONResponse(status)


@app.get("/api/snapshots")
async def get_snapshots(include_data: bool = Query(False, description="Include captured values")):
    """List stored snapshots."""
    snapshots = []
    for snapshot in _engine().store.snapshots():
        item = snapshot.to_dict()
        if not include_data:
            item.pop("captured")
        snapshots.append(_jsonable(item))
    return JSONResponse({"snapshots": snapshots})


@app.get("/api/snapshots/{snapshot_id}")
async def get_snapshot(snapshot_id: int):
    """Get one snapshot including its captured value."""
    try:
        snapshot = _engine().get_snapshot(snapshot_id)
    except MissingSnapshot as e:
        raise HTTPException(404, str(e))
    return JSONResponse(_jsonable(snapshot.to_dict()))


@app.get("/api/reports")
async def get_reports(limit: int = Query(50, ge=1, le=200)):
    """Get recently published reports, oldest first."""
    reports = [_jsonable(r.to_dict()) for r in _engine().channel.recent(limit)]
    return JSONResponse({"reports": reports})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time reports."""
    async with _get_connections_lock():
        if len(_active_connections) >= MAX_WEBSOCKET_CONNECTIONS:
            await websocket.close(code=1013)  # Try Again Later
            return

    await websocket.accept()

    async with _get_connections_lock():
        _active_connections.add(websocket)

    try:
        status_response = await get_status()
        status_data = json.loads(status_response.body.decode())
        await websocket.send_json({"type": EventType.INIT.value, "status": status_data})

        # Keep connection alive
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=30)
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                await websocket.send_text("ping")

    except WebSocketDisconnect:
        pass
    finally:
        async with _get_connections_lock():
            _active_connections.discard(websocket)


def get_inline_viewer() -> str:
    """Return inline viewer HTML."""
    return '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>statewatch</title>
    <style>
        body { font-family: system-ui, sans-serif; background: #1a1a2e; color: #e8e8e8; padding: 20px; }
        h1 { font-size: 1.4rem; }
        #status { color: #a0a0a0; margin-bottom: 15px; }
        pre { background: #16213e; padding: 12px; border-radius: 6px; white-space: pre-wrap; }
        pre.error { border-left: 4px solid #ff4444; }
        pre.warn { border-left: 4px solid #ffaa00; }
    </style>
</head>
<body>
    <h1>statewatch reports</h1>
    <div id="status">connecting...</div>
    <div id="reports"></div>
    <script>
        const reports = document.getElementById('reports');
        const status = document.getElementById('status');

        function addReport(text, level) {
            const el = document.createElement('pre');
            el.className = level || 'info';
            el.textContent = text;
            reports.prepend(el);
        }

        fetch('/api/reports').then(r => r.json()).then(data => {
            data.reports.forEach(r => addReport(r.report, r.opts.level));
        });

        const ws = new WebSocket(`${location.protocol === 'https:' ? 'wss' : 'ws'}://${location.host}/ws`);
        ws.onmessage = (msg) => {
            if (msg.data === 'ping') { ws.send('pong'); return; }
            const event = JSON.parse(msg.data);
            if (event.type === 'init') {
                status.textContent = `v${event.status.version} - ${event.status.snapshots} snapshots`;
            } else if (event.type === 'report') {
                addReport(event.report, event.opts.level);
            }
        };
        ws.onclose = () => { status.textContent = 'disconnected'; };
    </script>
</body>
</html>'''


async def serve(
    diagnostics: Optional[Diagnostics] = None,
    host: str = "0.0.0.0",
    port: int = 8090,
    debug: bool = False,
) -> None:
    """Serve the viewer on the running loop until the server exits.

    Reports produced by the application on the same loop reach the viewer
    as they are published.

    Usage:
        async with Diagnostics() as diagnostics:
            viewer = asyncio.create_task(serve(diagnostics, port=8090))
            await run_application(diagnostics)
    """
    import uvicorn

    bind(diagnostics)
    config = uvicorn.Config(app, host=host, port=port, log_level="debug" if debug else "info")
    try:
        await uvicorn.Server(config).serve()
    finally:
        bind(None)


def run_server(
    host: str = "0.0.0.0",
    port: int = 8090,
    debug: bool = False,
):
    """Run the web server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level="debug" if debug else "info")
