"""
Pipeline REST routes. All routes are mounted under /api by main.py.

The session is provided through the get_session dependency so tests can
swap in their own (app.dependency_overrides).
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, List, Optional
from logging import getLogger

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...core.Errors import GraphCycleError, PipelineBusyError, UnknownBlockError
from ...core.FieldValues import field_value_from_dict
from ...core.GraphPrimitives import Connection
from ...core.Interface import OperationResult
from ...core.Types import BlockCategory
from ...noderegistry.BlockCatalog import BLOCK_DEFS, LLM_MODELS, SCRAPER_PROVIDERS, VIDEO_MODELS
from ..serializers.graph_serializer import (
    serialize_block,
    serialize_models,
    serialize_node,
    serialize_pipeline,
    serialize_results,
    serialize_summary,
)
from ..state import PipelineSession, get_session
from ..trace.trace_emitter import global_tracer

logger = getLogger(__name__)

router = APIRouter()


@contextmanager
def http_errors():
    """Translate model errors into HTTP responses."""
    try:
        yield
    except HTTPException:
        raise
    except PipelineBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except UnknownBlockError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=exc.args[0] if exc.args else "Not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# ── Catalog ───────────────────────────────────────────────────────────────────

@router.get("/blocks")
async def list_blocks(category: Optional[str] = None) -> List[Dict[str, Any]]:
    blocks = BLOCK_DEFS
    if category:
        try:
            wanted = BlockCategory(category)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown category '{category}'")
        blocks = [b for b in BLOCK_DEFS if b.category == wanted]
    return [serialize_block(b) for b in blocks]


@router.get("/models")
async def list_models() -> Dict[str, Any]:
    return {
        "video": serialize_models(VIDEO_MODELS),
        "llm": serialize_models(LLM_MODELS),
        "scraper": serialize_models(SCRAPER_PROVIDERS),
    }


# ── Pipeline ──────────────────────────────────────────────────────────────────

@router.get("/pipeline")
async def get_pipeline(session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    return serialize_pipeline(session.graph)


class NameBody(BaseModel):
    name: str


@router.put("/pipeline/name")
async def rename_pipeline(body: NameBody, session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        session.rename(body.name)
    return {"name": session.graph.name}


class CreateNodeBody(BaseModel):
    blockId: str
    x: float = 0.0
    y: float = 0.0


@router.post("/pipeline/nodes", status_code=201)
async def create_node(body: CreateNodeBody, session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        node = session.add_node(body.blockId, (body.x, body.y))
    return serialize_node(session.graph, node)


class PositionBody(BaseModel):
    x: float
    y: float


@router.put("/pipeline/nodes/{node_id}/position", status_code=204)
async def move_node(node_id: str, body: PositionBody, session: PipelineSession = Depends(get_session)) -> Response:
    with http_errors():
        session.move_node(node_id, body.x, body.y)
    return Response(status_code=204)


@router.delete("/pipeline/nodes/{node_id}", status_code=204)
async def delete_node(node_id: str, session: PipelineSession = Depends(get_session)) -> Response:
    with http_errors():
        session.delete_node(node_id)
    return Response(status_code=204)


class FieldValueBody(BaseModel):
    # a plain string, or a tagged value such as {"kind": "media", "url": ...}
    value: Any


@router.put("/pipeline/nodes/{node_id}/fields/{key}")
async def set_field(node_id: str, key: str, body: FieldValueBody,
                    session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        value = field_value_from_dict(body.value) if isinstance(body.value, dict) else body.value
        resolved = session.set_field(node_id, key, value)
    return resolved.to_dict()


@router.delete("/pipeline/nodes/{node_id}/fields/{key}", status_code=204)
async def clear_field(node_id: str, key: str, session: PipelineSession = Depends(get_session)) -> Response:
    with http_errors():
        session.clear_field(node_id, key)
    return Response(status_code=204)


class ConnectionBody(BaseModel):
    fromNode: str
    fromPort: str
    toNode: str
    toPort: str


@router.post("/pipeline/connections", status_code=201)
async def add_connection(body: ConnectionBody, session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        conn = session.add_connection(body.fromNode, body.fromPort, body.toNode, body.toPort)
    return {
        "id": conn.id,
        "fromNode": conn.source_node_id,
        "fromPort": conn.source_port,
        "toNode": conn.target_node_id,
        "toPort": conn.target_port,
    }


@router.delete("/pipeline/connections/{connection_id}", status_code=204)
async def delete_connection(connection_id: str, session: PipelineSession = Depends(get_session)) -> Response:
    with http_errors():
        session.delete_connection(connection_id)
    return Response(status_code=204)


@router.get("/pipeline/cost")
async def get_cost(session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    return {"estimatedCost": session.estimated_cost(), "nodeCount": len(session.graph.nodes)}


# ── Running ───────────────────────────────────────────────────────────────────

@router.post("/pipeline/run")
async def run_pipeline(session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    name = session.graph.name
    executor = session.create_executor()

    # ── Wire executor hooks ───────────────────────────────────────────────

    async def _on_before_node(node_id: str) -> None:
        global_tracer.fire({"type": "NODE_RUNNING", "nodeId": node_id})

    def _on_after_node(node_id: str, duration_ms: float, error: Optional[str] = None) -> None:
        if error:
            global_tracer.fire({"type": "NODE_ERROR", "nodeId": node_id, "error": error})
        else:
            global_tracer.fire({"type": "NODE_DONE", "nodeId": node_id, "durationMs": duration_ms})

    def _on_edge_data(conn: Connection) -> None:
        global_tracer.fire({
            "type": "EDGE_ACTIVE",
            "connectionId": conn.id,
            "fromNodeId": conn.source_node_id,
            "fromPort": conn.source_port,
            "toNodeId": conn.target_node_id,
            "toPort": conn.target_port,
        })

    def _on_node_skipped(node_id: str) -> None:
        global_tracer.fire({"type": "NODE_SKIPPED", "nodeId": node_id})

    async def _on_export(node_id: str, url: str) -> None:
        global_tracer.fire({"type": "EXPORT_READY", "nodeId": node_id, "url": url})

    executor.on_before_node = _on_before_node
    executor.on_after_node = _on_after_node
    executor.on_edge_data = _on_edge_data
    executor.on_node_skipped = _on_node_skipped
    executor.on_export = _on_export

    # ─────────────────────────────────────────────────────────────────────

    if session.is_running:
        raise HTTPException(status_code=409, detail="A pipeline run is in progress")

    global_tracer.fire({"type": "RUN_START", "pipeline": name, "nodeCount": len(session.graph.nodes)})
    try:
        results = await session.run(executor)
    except (GraphCycleError, UnknownBlockError, ValueError) as exc:
        global_tracer.fire({"type": "RUN_ERROR", "pipeline": name, "error": str(exc)})
        raise HTTPException(status_code=400, detail=str(exc))
    except PipelineBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    global_tracer.fire({"type": "RUN_DONE", "pipeline": name})

    return {
        "results": serialize_results(results),
        "skipped": list(executor.skipped),
        "pipeline": serialize_pipeline(session.graph),
    }


@router.get("/pipeline/results")
async def get_results(session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    return serialize_results(session.results)


class ExecuteBlockBody(BaseModel):
    blockId: str
    config: Dict[str, str] = Field(default_factory=dict)
    upstreamData: Dict[str, Dict[str, str]] = Field(default_factory=dict)


@router.post("/pipeline/execute")
async def execute_block(body: ExecuteBlockBody, session: PipelineSession = Depends(get_session)) -> JSONResponse:
    """Run a single block's operation outside of a pipeline run. The body is the envelope either way."""
    result: OperationResult = await session.dispatcher.dispatch(body.blockId, body.config, body.upstreamData)
    return JSONResponse(status_code=200 if result.success else 400, content=result.to_dict())


# ── Saved pipelines ───────────────────────────────────────────────────────────

@router.get("/pipelines")
async def list_pipelines(session: PipelineSession = Depends(get_session)) -> List[Dict[str, Any]]:
    return [serialize_summary(s) for s in session.list_saved()]


@router.post("/pipelines/save")
async def save_pipeline(session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        session.save()
    return {"name": session.graph.name}


@router.post("/pipelines/{name}/load")
async def load_pipeline(name: str, session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        graph = session.load(name)
    return serialize_pipeline(graph)


@router.delete("/pipelines/{name}", status_code=204)
async def delete_pipeline(name: str, session: PipelineSession = Depends(get_session)) -> Response:
    session.delete_saved(name)
    return Response(status_code=204)


class NewPipelineBody(BaseModel):
    name: Optional[str] = None


@router.post("/pipelines/new", status_code=201)
async def new_pipeline(body: Optional[NewPipelineBody] = None,
                       session: PipelineSession = Depends(get_session)) -> Dict[str, Any]:
    with http_errors():
        graph = session.new_pipeline(body.name if body else None)
    return serialize_pipeline(graph)
