"""HTTP and WebSocket front end for the snapshot stream.

Exposes:
  GET /api/snapshot  - one freshly collected snapshot
  GET /api/health    - liveness plus subscriber count
  GET /api/clients   - connected WebSocket subscribers
  WS  /ws            - one encoded snapshot per producer tick
  GET /              - dashboard page

Start with::

    pimonitor serve
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.websockets import WebSocketState

from pimonitor_core import BroadcastHub, HubClosedError, MonitorConfig, StreamProducer, SubscriberSession
from pimonitor_telemetry import CollectionError, SnapshotAssembler, snapshot_to_dict

logger = logging.getLogger("pimonitor.web")

SERVICE_NAME = "pimonitor"
WS_TRY_AGAIN_LATER = 1013
WS_GOING_AWAY = 1001

DEFAULT_INDEX = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>PiMonitor</title></head>
<body>
<h1>PiMonitor</h1>
<p>Live snapshots from <code>/ws</code>; a single reading from <code>/api/snapshot</code>.</p>
<pre id="out">waiting for data...</pre>
<script>
const out = document.getElementById("out");
const ws = new WebSocket((location.protocol === "https:" ? "wss://" : "ws://") + location.host + "/ws");
ws.onmessage = (ev) => { out.textContent = JSON.stringify(JSON.parse(ev.data), null, 2); };
ws.onclose = () => { out.textContent += "\\n[disconnected]"; };
</script>
</body>
</html>
"""


class WebSocketTransport:
    """Adapts a FastAPI ``WebSocket`` to the session transport interface."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    async def receive_text(self) -> str | None:
        message = await self._ws.receive()
        if message["type"] == "websocket.disconnect":
            return None
        if message.get("text") is not None:
            return message["text"]
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def send_text(self, text: str) -> None:
        await self._ws.send_text(text)

    async def close(self, code: int = 1000) -> None:
        if self._ws.client_state == WebSocketState.CONNECTED and self._ws.application_state == WebSocketState.CONNECTED:
            await self._ws.close(code=code)


def _default_factory(config: MonitorConfig) -> Callable[[], SnapshotAssembler]:
    def factory() -> SnapshotAssembler:
        return SnapshotAssembler.create(
            gpio_enabled=config.capabilities.gpio,
            gpu_enabled=config.capabilities.gpu,
        )

    return factory


def create_app(
    config: MonitorConfig | None = None,
    assembler_factory: Callable[[], SnapshotAssembler] | None = None,
    version: str = "0.1.0",
) -> FastAPI:
    """Build the application; probe and hub construction errors surface here."""
    config = config or MonitorConfig()
    factory = assembler_factory or _default_factory(config)

    hub = BroadcastHub(capacity=config.stream.buffer_depth)
    snapshot_assembler = factory()
    producer = StreamProducer(
        factory(),
        interval_ms=config.stream.interval_ms,
        on_error=config.stream.on_error,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(producer.run(hub), name="snapshot-producer")
        logger.info("serving on %s, snapshots every %dms", config.server.bind_address(), config.stream.interval_ms)
        try:
            yield
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            hub.close()
            snapshot_assembler.close()
            logger.info("server stopped")

    app = FastAPI(title="PiMonitor", version=version, lifespan=lifespan)
    app.state.config = config
    app.state.hub = hub
    app.state.producer = producer

    if config.server.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

    static_dir = Path(config.server.static_path).expanduser() if config.server.static_path else None
    index_file = static_dir / "index.html" if static_dir else None
    if static_dir is not None and static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
    elif static_dir is not None:
        logger.info("static directory %s not found, using built-in page", static_dir)

    @app.get("/api/snapshot")
    async def get_snapshot():
        try:
            snapshot = await asyncio.to_thread(snapshot_assembler.collect)
        except CollectionError as exc:
            logger.error("snapshot request failed: %s", exc)
            return JSONResponse(status_code=500, content={"error": str(exc)})
        return snapshot_to_dict(snapshot)

    @app.get("/api/health")
    async def health():
        status = producer.status
        return {
            "status": "ok" if status.running else "degraded",
            "service": SERVICE_NAME,
            "version": version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "subscribers": hub.subscriber_count,
            "stream": {
                "running": status.running,
                "interval_ms": status.interval_ms,
                "ticks": status.ticks,
                "errors": status.errors,
                "last_error": status.last_error,
            },
        }

    @app.get("/api/clients")
    async def clients():
        rows = [info.as_dict() for info in hub.connected_clients()]
        return {"count": len(rows), "clients": rows}

    @app.websocket("/ws")
    async def stream_socket(websocket: WebSocket):
        await websocket.accept()
        transport = WebSocketTransport(websocket)
        if hub.subscriber_count >= config.server.max_connections:
            logger.warning("refusing websocket, %d subscribers connected", hub.subscriber_count)
            await transport.close(code=WS_TRY_AGAIN_LATER)
            return
        try:
            await SubscriberSession(hub, transport).run()
        except HubClosedError:
            await transport.close(code=WS_GOING_AWAY)

    @app.get("/")
    async def index():
        if index_file is not None and index_file.is_file():
            return FileResponse(str(index_file))
        return HTMLResponse(DEFAULT_INDEX)

    return app


def serve(config: MonitorConfig, version: str = "0.1.0") -> None:
    import uvicorn

    app = create_app(config, version=version)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
