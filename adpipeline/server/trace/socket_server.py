"""
Socket.IO bridge for trace events.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict
from logging import getLogger

import socketio

from .trace_emitter import global_tracer

logger = getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


def _on_trace(event: Dict[str, Any]) -> None:
    """
    Called synchronously by TraceEmitter.fire().
    Schedules the async emit on the running event loop, if there is one.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(sio.emit("trace", event))


global_tracer.on_trace(_on_trace)


@sio.event
async def connect(sid: str, environ: dict) -> None:
    logger.debug("Trace client connected: %s", sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug("Trace client disconnected: %s", sid)


def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
