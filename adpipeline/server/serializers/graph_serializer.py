"""
Graph serializer: converts the in-memory pipeline into the JSON-safe wire
shape the editor renders.

SerializedPort keys:      id, label, color, direction, anchor, connected
SerializedNode keys:      id, blockId, name, category, position, config,
                          inputs, outputs, status, error, output
SerializedConnection keys: id, fromNode, fromPort, toNode, toPort, from, to
SerializedPipeline keys:  name, nodes, connections, estimatedCost
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from ...core.Executor import NodeResult
from ...core.GraphPrimitives import Connection, PipelineGraph
from ...core.Node import PipelineNode
from ...core.Types import PortDirection
from ...noderegistry.BlockCatalog import BlockDefinition, ModelOption, PortDef, estimate_cost, get_block_def


def _serialize_port(graph: PipelineGraph, node: PipelineNode, port: PortDef, is_output: bool) -> Dict[str, Any]:
    x, y = graph.port_anchor(node.id, port.id, is_output)
    return {
        "id": port.id,
        "label": port.label,
        "color": port.color,
        "direction": (PortDirection.OUTPUT if is_output else PortDirection.INPUT).name,
        "anchor": {"x": x, "y": y},
        "connected": graph.is_port_connected(node.id, port.id, is_output),
    }


def serialize_node(graph: PipelineGraph, node: PipelineNode) -> Dict[str, Any]:
    block = get_block_def(node.block_id)
    output = None
    if node.output is not None:
        output = {"url": node.output.url, "kind": node.output.kind.value}

    return {
        "id": node.id,
        "blockId": node.block_id,
        "name": block.name,
        "category": block.category.value,
        "position": {"x": node.position.x, "y": node.position.y},
        "config": {key: value.to_dict() for key, value in node.config.items()},
        "inputs": [_serialize_port(graph, node, p, False) for p in block.inputs],
        "outputs": [_serialize_port(graph, node, p, True) for p in block.outputs],
        "status": node.status.value,
        "error": node.error,
        "output": output,
    }


def serialize_connection(graph: PipelineGraph, conn: Connection) -> Dict[str, Any]:
    from_x, from_y = graph.port_anchor(conn.source_node_id, conn.source_port, True)
    to_x, to_y = graph.port_anchor(conn.target_node_id, conn.target_port, False)
    return {
        "id": conn.id,
        "fromNode": conn.source_node_id,
        "fromPort": conn.source_port,
        "toNode": conn.target_node_id,
        "toPort": conn.target_port,
        "from": {"x": from_x, "y": from_y},
        "to": {"x": to_x, "y": to_y},
    }


def serialize_pipeline(graph: PipelineGraph) -> Dict[str, Any]:
    return {
        "name": graph.name,
        "nodes": [serialize_node(graph, node) for node in graph.nodes.values()],
        "connections": [serialize_connection(graph, c) for c in graph.connections],
        "estimatedCost": estimate_cost(node.block_id for node in graph.nodes.values()),
    }


def serialize_results(results: Dict[str, NodeResult]) -> Dict[str, Any]:
    return {node_id: result.to_dict() for node_id, result in results.items()}


# ── Catalog ───────────────────────────────────────────────────────────────────

def _serialize_model(option: ModelOption) -> Dict[str, Any]:
    return {"id": option.id, "name": option.name, "provider": option.provider, "cost": option.cost}


def serialize_block(block: BlockDefinition) -> Dict[str, Any]:
    return {
        "id": block.id,
        "name": block.name,
        "category": block.category.value,
        "description": block.description,
        "cost": block.cost,
        "poweredBy": block.powered_by,
        "inputs": [{"id": p.id, "label": p.label, "color": p.color} for p in block.inputs],
        "outputs": [{"id": p.id, "label": p.label, "color": p.color} for p in block.outputs],
        "fields": [
            {"key": f.key, "label": f.label, "type": f.kind.value, "options": list(f.options) or None}
            for f in block.fields
        ],
    }


def serialize_models(models) -> list:
    return [_serialize_model(m) for m in models]


def serialize_summary(summary) -> Dict[str, Optional[Any]]:
    return {
        "name": summary.name,
        "nodeCount": summary.node_count,
        "connectionCount": summary.connection_count,
        "createdAt": summary.created_at,
        "updatedAt": summary.updated_at,
    }
