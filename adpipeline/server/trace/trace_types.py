"""
Trace event shapes pushed to editor clients over Socket.IO.
All events are plain dicts; "ts" is stamped by TraceEmitter.fire().
"""
from typing import Literal, TypedDict, Union


class RunStartEvent(TypedDict):
    type: Literal["RUN_START"]
    pipeline: str
    nodeCount: int
    ts: int


class NodeRunningEvent(TypedDict):
    type: Literal["NODE_RUNNING"]
    nodeId: str
    ts: int


class NodeDoneEvent(TypedDict):
    type: Literal["NODE_DONE"]
    nodeId: str
    durationMs: float
    ts: int


class NodeErrorEvent(TypedDict):
    type: Literal["NODE_ERROR"]
    nodeId: str
    error: str
    ts: int


class NodeSkippedEvent(TypedDict):
    type: Literal["NODE_SKIPPED"]
    nodeId: str
    ts: int


class EdgeActiveEvent(TypedDict):
    type: Literal["EDGE_ACTIVE"]
    connectionId: str
    fromNodeId: str
    fromPort: str
    toNodeId: str
    toPort: str
    ts: int


class ExportReadyEvent(TypedDict):
    type: Literal["EXPORT_READY"]
    nodeId: str
    url: str
    ts: int


class RunDoneEvent(TypedDict):
    type: Literal["RUN_DONE"]
    pipeline: str
    ts: int


class RunErrorEvent(TypedDict):
    type: Literal["RUN_ERROR"]
    pipeline: str
    error: str
    ts: int


TraceEvent = Union[
    RunStartEvent,
    NodeRunningEvent,
    NodeDoneEvent,
    NodeErrorEvent,
    NodeSkippedEvent,
    EdgeActiveEvent,
    ExportReadyEvent,
    RunDoneEvent,
    RunErrorEvent,
]
