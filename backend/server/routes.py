"""
Route registration for the voice session API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Map user operations onto the VoiceSession facade
- Push session snapshots to WebSocket clients
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.voice_session import VoiceSession


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/session")
    async def get_session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        session: VoiceSession = app.state.session
        return session.snapshot()

    @app.post("/session/start")
    async def start_session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        session: VoiceSession = app.state.session
        await session.start_session()
        return session.snapshot()

    @app.post("/session/end")
    async def end_session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        session: VoiceSession = app.state.session
        await session.end_session()
        return session.snapshot()

    @app.post("/session/mute")
    async def toggle_mute() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        session: VoiceSession = app.state.session
        await session.toggle_mute()
        return session.snapshot()

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        session: VoiceSession = app.state.session
        outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        unsubscribe = session.subscribe(outbound.put_nowait)
        sender = asyncio.create_task(_pump_snapshots(ws, outbound))

        try:
            await outbound.put(session.snapshot())

            while True:
                text = await ws.receive_text()
                await _dispatch_control(session, outbound, text)

        except WebSocketDisconnect:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECTED",
                "session_id": session.session_id,
            })

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "session_id": session.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            unsubscribe()
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)


async def _dispatch_control(
    session: VoiceSession,
    outbound: asyncio.Queue[dict[str, Any]],
    text: str,
) -> None:
    """
    Handle one client control message.

    Accepted: {"type": "start" | "end" | "mute" | "snapshot"}
    """
    try:
        msg = json.loads(text)
        msg_type = msg.get("type") if isinstance(msg, dict) else None
    except json.JSONDecodeError:
        msg_type = None

    if msg_type == "start":
        await session.start_session()
    elif msg_type == "end":
        await session.end_session()
    elif msg_type == "mute":
        await session.toggle_mute()
    elif msg_type == "snapshot":
        pass
    else:
        await outbound.put({"type": "ERROR", "error": "unknown control message"})
        return

    await outbound.put(session.snapshot())


async def _pump_snapshots(
    ws: WebSocket,
    outbound: asyncio.Queue[dict[str, Any]],
) -> None:
    """Send queued messages in FIFO order until cancelled."""
    while True:
        msg = await outbound.get()
        await ws.send_text(json.dumps(msg))
