"""WebSocket streaming server for per-tick gesture state.

Captures from the server's webcam, runs the pose pipeline, and pushes each
tick's GestureState and keypoints to connected WebSocket clients as JSON.
Render/UI layers subscribe here; nothing is drawn server-side.

Usage:
    posecue serve
    # or
    uvicorn posecue.server:app --host 0.0.0.0 --port 8765
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse

from posecue import __version__
from posecue.config import PipelineConfig
from posecue.errors import MalformedFrameError, PipelineHaltedError
from posecue.metrics import MetricsCollector
from posecue.pipeline import PosePipeline, TickResult
from posecue.sources import CameraSource, FrameSource

logger = logging.getLogger("posecue.server")

app = FastAPI(title="posecue", version=__version__)


# --- State ---

class ServerState:
    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self.metrics = MetricsCollector()
        self.pipeline = PosePipeline(config=self.config, metrics=self.metrics)
        self.clients: set[WebSocket] = set()
        self.source: Optional[FrameSource] = None
        self.task: Optional[asyncio.Task] = None
        self.running = False
        self.autostart = False
        self.last_tick: Optional[TickResult] = None

    def configure(self, config: PipelineConfig):
        """Swap in a new configuration; takes effect on the next capture start."""
        self.config = config
        self.pipeline = PosePipeline(config=config, metrics=self.metrics)
        self.last_tick = None


state = ServerState()


def _state_message(result: TickResult) -> dict:
    return {
        "type": "state",
        "tick": result.tick,
        "timestamp": result.timestamp,
        "latency_ms": round(result.latency_ms, 2),
        "state": result.state.to_dict(),
    }


def _keypoints_message(result: TickResult) -> dict:
    return {
        "type": "keypoints",
        "tick": result.tick,
        "timestamp": result.timestamp,
        "keypoints": [kp.to_dict() for kp in result.keypoints],
    }


# --- API endpoints ---

@app.get("/api/status")
async def api_status():
    stats = state.pipeline.stats
    return {
        "running": state.running,
        "active": stats.active,
        "clients": len(state.clients),
        "fps": round(stats.fps, 1),
        "latency_ms": round(stats.avg_latency_ms, 2),
        "total_ticks": stats.total_ticks,
        "skipped_ticks": stats.skipped_ticks,
        "malformed_frames": stats.malformed_frames,
        "windows": stats.windows,
        "profiler": stats.profiler_summary,
    }


@app.get("/api/state")
async def api_state():
    return {"state": state.pipeline.state.to_dict()}


@app.get("/api/keypoints")
async def api_keypoints():
    return {"keypoints": [kp.to_dict() for kp in state.pipeline.keypoints]}


@app.get("/api/config")
async def api_config():
    return state.config.to_dict()


@app.post("/api/start")
async def api_start():
    if capture_active():
        return {"running": True, "started": False}
    error = start_capture()
    if error:
        return JSONResponse({"running": False, "error": error}, status_code=503)
    return {"running": True, "started": True}


@app.post("/api/stop")
async def api_stop():
    await stop_capture()
    return {"running": False}


# --- Prometheus metrics ---

@app.get("/metrics")
async def metrics():
    state.metrics.set_connections(len(state.clients))
    return PlainTextResponse(
        state.metrics.render(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    state.clients.add(ws)
    logger.info("Client connected (%d total)", len(state.clients))

    try:
        await ws.send_json({
            "type": "connected",
            "running": state.running,
            "state": state.pipeline.state.to_dict(),
        })

        while True:
            try:
                msg = await asyncio.wait_for(ws.receive_text(), timeout=30)
                data = json.loads(msg)
                if data.get("type") == "ping":
                    await ws.send_json({"type": "pong", "server_time": time.time()})
                elif data.get("type") == "get_state":
                    await ws.send_json({"type": "state", "state": state.pipeline.state.to_dict()})
            except asyncio.TimeoutError:
                await ws.send_json({"type": "ping"})
    except WebSocketDisconnect:
        pass
    except (RuntimeError, ValueError) as e:
        logger.debug("WebSocket error: %s", e)
    finally:
        state.clients.discard(ws)
        logger.info("Client disconnected (%d total)", len(state.clients))


async def broadcast(message: dict):
    """Send message to all connected clients, dropping dead ones."""
    if not state.clients:
        return
    dead = set()
    payload = json.dumps(message)
    # clients may connect or leave while a send is awaited
    for ws in list(state.clients):
        try:
            await ws.send_text(payload)
        except (WebSocketDisconnect, RuntimeError):
            dead.add(ws)
    state.clients -= dead


# --- Capture loop ---

def capture_active() -> bool:
    return state.task is not None and not state.task.done()


def start_capture(source: Optional[FrameSource] = None) -> Optional[str]:
    """Open the camera (unless a source is given) and schedule the capture loop.

    Returns an error message when the camera cannot be opened. Must not be
    called while a capture task is still active.
    """
    if source is None:
        cfg = state.config.server
        try:
            source = CameraSource(cfg.camera_index, cfg.camera_width, cfg.camera_height)
        except (ImportError, RuntimeError) as e:
            logger.error("Camera capture unavailable: %s", e)
            return str(e)

    state.running = True
    state.task = asyncio.create_task(capture_loop(source))
    return None


async def stop_capture():
    """Stop the capture loop and wait until it has released its source."""
    state.running = False
    state.pipeline.stop()

    task, state.task = state.task, None
    if task is not None and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    if state.source is not None:
        state.source.close()
        state.source = None


async def capture_loop(source: FrameSource):
    """Main loop: read frames, run the pipeline, broadcast each tick."""
    state.source = source
    state.pipeline.start()
    state.running = True
    logger.info("Capture loop started")

    try:
        while state.running and not source.exhausted:
            frame = await source.read()
            if not state.running:
                break

            try:
                result = state.pipeline.process_frame(frame)
            except PipelineHaltedError as e:
                logger.error("Stopping capture: %s", e)
                break
            except MalformedFrameError:
                continue

            if result is None:
                await asyncio.sleep(0.01)
                continue

            state.last_tick = result
            await broadcast(_state_message(result))
            await broadcast(_keypoints_message(result))
            await asyncio.sleep(0.001)
    finally:
        state.running = False
        state.pipeline.stop()
        source.close()
        if state.source is source:
            state.source = None
        logger.info("Capture loop stopped")


@app.on_event("startup")
async def startup():
    if state.autostart and not capture_active():
        start_capture()


@app.on_event("shutdown")
async def shutdown():
    await stop_capture()
