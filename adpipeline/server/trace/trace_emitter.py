"""
TraceEmitter: fan-out of pipeline run events to registered listeners
(the Socket.IO bridge, tests, loggers).
"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, List
from logging import getLogger

from .trace_types import TraceEvent

logger = getLogger(__name__)

TraceListener = Callable[[TraceEvent], None]


class TraceEmitter:
    def __init__(self) -> None:
        self._listeners: List[TraceListener] = []

    def on_trace(self, callback: TraceListener) -> None:
        """Register a callback that receives every emitted trace event."""
        self._listeners.append(callback)

    def off_trace(self, callback: TraceListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def fire(self, payload: Dict[str, Any]) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = _now_ms()
        for cb in list(self._listeners):
            try:
                cb(payload)
            except Exception:
                # a broken listener must not stop the run
                logger.warning("Trace listener failed for %s", payload.get("type"), exc_info=True)


global_tracer = TraceEmitter()


def _now_ms() -> int:
    return int(time.time() * 1000)
