"""
Conversion between a PipelineGraph and its JSON-safe snapshot.

    {
        "name": "My Pipeline",
        "nodes": [{"id", "blockId", "x", "y", "config": {key: tagged value}}],
        "connections": [{"id", "fromNode", "fromPort", "toNode", "toPort"}],
        "createdAt": "...", "updatedAt": "..."
    }

Run state (status, outputs, errors) is never part of a snapshot. Config
values that only make sense inside one browser session are stripped on
the way out; see strip_ephemeral().
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from logging import getLogger

from ..core.FieldValues import ChoiceValue, FieldValue, MediaRef, TextValue, field_value_from_dict
from ..core.GraphPrimitives import PipelineGraph
from ..core.Node import PipelineNode
from ..core.Types import FieldKind, MediaKind
from ..noderegistry.BlockCatalog import get_block_def

logger = getLogger(__name__)

DEFAULT_STRIP_THRESHOLD = 5000

# Companion keys older snapshots stored next to a media field's URL
LEGACY_MEDIA_SUFFIXES = ("_type", "_name", "_thumb")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_ephemeral(value: Optional[str], threshold: int = DEFAULT_STRIP_THRESHOLD) -> bool:
    """blob: URLs die with the page; large inline data: payloads are too big to keep."""
    if not value:
        return False
    return value.startswith("blob:") or (value.startswith("data:") and len(value) > threshold)


def strip_ephemeral(node: PipelineNode, threshold: int = DEFAULT_STRIP_THRESHOLD) -> Dict[str, FieldValue]:
    """
    Config of node with every non-persistable value removed.

    Media thumbnails are kept whatever their size (a blob: thumbnail is
    still dropped). A media field left with neither URL nor thumbnail
    disappears entirely.
    """
    cleaned: Dict[str, FieldValue] = {}
    for key, value in node.config.items():
        if isinstance(value, MediaRef):
            url = None if is_ephemeral(value.url, threshold) else value.url
            thumbnail = value.thumbnail
            if thumbnail and thumbnail.startswith("blob:"):
                thumbnail = None
            if not url and not thumbnail:
                continue
            cleaned[key] = MediaRef(url=url, kind=value.kind, display_name=value.display_name, thumbnail=thumbnail)
        elif is_ephemeral(value.resolve(), threshold):
            continue
        else:
            cleaned[key] = value
    return cleaned


def node_to_dict(node: PipelineNode, threshold: int = DEFAULT_STRIP_THRESHOLD) -> Dict[str, Any]:
    return {
        "id": node.id,
        "blockId": node.block_id,
        "x": node.position.x,
        "y": node.position.y,
        "config": {key: value.to_dict() for key, value in strip_ephemeral(node, threshold).items()},
    }


def graph_to_snapshot(graph: PipelineGraph,
                      created_at: Optional[str] = None,
                      updated_at: Optional[str] = None,
                      threshold: int = DEFAULT_STRIP_THRESHOLD) -> Dict[str, Any]:
    now = utc_timestamp()
    return {
        "name": graph.name,
        "nodes": [node_to_dict(node, threshold) for node in graph.nodes.values()],
        "connections": [
            {
                "id": c.id,
                "fromNode": c.source_node_id,
                "fromPort": c.source_port,
                "toNode": c.target_node_id,
                "toPort": c.target_port,
            }
            for c in graph.connections
        ],
        "createdAt": created_at or now,
        "updatedAt": updated_at or now,
    }


def graph_from_snapshot(snapshot: Dict[str, Any]) -> PipelineGraph:
    """
    Rebuild a graph. Block ids, ports and fields are validated against the
    catalog, so a snapshot referencing unknown blocks raises
    UnknownBlockError and a malformed connection raises ValueError.
    """
    graph = PipelineGraph(snapshot.get("name") or "My Pipeline")

    for data in snapshot.get("nodes", []):
        node = graph.add_node(data["blockId"], (data.get("x", 0), data.get("y", 0)), node_id=data["id"])
        node.config = config_from_dict(node.block_id, data.get("config") or {})

    for data in snapshot.get("connections", []):
        graph.add_connection(data["fromNode"], data["fromPort"], data["toNode"], data["toPort"],
                             connection_id=data.get("id"))
    return graph


def config_from_dict(block_id: str, raw: Dict[str, Any]) -> Dict[str, FieldValue]:
    block = get_block_def(block_id)
    config: Dict[str, FieldValue] = {}

    for key, value in raw.items():
        field = block.get_field(key)
        if field is None:
            # legacy companion keys are folded into their media field below
            if not key.endswith(LEGACY_MEDIA_SUFFIXES):
                logger.debug("Dropping unknown config key %s.%s", block_id, key)
            continue

        if isinstance(value, dict):
            config[key] = field_value_from_dict(value)
        elif field.kind == FieldKind.IMAGE:
            config[key] = MediaRef(
                url=value or None,
                kind=raw.get(key + "_type") or MediaKind.guess(value or "").value,
                display_name=raw.get(key + "_name") or "",
                thumbnail=raw.get(key + "_thumb"),
            )
        elif field.kind.isChoice():
            config[key] = ChoiceValue(str(value))
        else:
            config[key] = TextValue(str(value))

    # a media field whose URL was stripped may survive through its thumbnail only
    for field in block.fields:
        thumb = raw.get(field.key + "_thumb")
        if field.kind == FieldKind.IMAGE and field.key not in config and thumb:
            config[field.key] = MediaRef(
                url=None,
                kind=raw.get(field.key + "_type") or "image",
                display_name=raw.get(field.key + "_name") or "",
                thumbnail=thumb,
            )
    return config
