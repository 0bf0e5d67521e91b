from typing import Dict, List, NamedTuple, Optional, Tuple, Union
from logging import getLogger

import uuid

from .FieldValues import ChoiceValue, FieldValue, MediaRef, TextValue
from .Node import PipelineNode, Position
from .PortResolver import get_port_anchor
from .Types import FieldKind, MediaKind
from ..noderegistry.BlockCatalog import FieldDef, get_block_def, get_model_options

logger = getLogger(__name__)


# Directed wire from one node's output port to another node's input port.
# NamedTuple keeps it immutable and hashable.
class Connection(NamedTuple):
    id: str
    source_node_id: str
    source_port: str
    target_node_id: str
    target_port: str

    def same_endpoints(self, other: 'Connection') -> bool:
        return (self.source_node_id == other.source_node_id and self.source_port == other.source_port
                and self.target_node_id == other.target_node_id and self.target_port == other.target_port)

    def __repr__(self):
        return f"Connection({self.source_node_id}.{self.source_port} -> {self.target_node_id}.{self.target_port})"


def new_connection_id() -> str:
    return f"conn_{uuid.uuid4().hex[:12]}"


class PipelineGraph:
    """
    Node set, connection set and display name of one editing session.

    Nodes keep insertion order; that order is the "definition order" the
    executor uses to pick between ready nodes. Connections keep insertion
    order too, which decides fan-in overwrites when input bundles are built.
    """

    def __init__(self, name: str = "My Pipeline"):
        self.name = name
        self.nodes: Dict[str, PipelineNode] = {}
        self.connections: List[Connection] = []

    # ── Nodes ────────────────────────────────────────────────────────────────

    def add_node(self, block_id: str, position: Tuple[float, float] = (0.0, 0.0),
                 node_id: Optional[str] = None) -> PipelineNode:
        get_block_def(block_id)  # raises UnknownBlockError

        node = PipelineNode(block_id, position, node_id=node_id)
        if node.id in self.nodes:
            raise ValueError(f"Node with id '{node.id}' already exists in the pipeline")

        self.nodes[node.id] = node
        logger.debug("Added node %s (%s)", node.id, block_id)
        return node

    def get_node(self, node_id: str) -> PipelineNode:
        node = self.nodes.get(node_id)
        if node is None:
            raise KeyError(f"Node '{node_id}' not found in pipeline '{self.name}'")
        return node

    def move_node(self, node_id: str, x: float, y: float):
        node = self.get_node(node_id)
        node.position = Position(float(x), float(y))

    def delete_node(self, node_id: str):
        self.get_node(node_id)
        # Cascade: drop every wire touching the node
        self.connections = [
            c for c in self.connections
            if c.source_node_id != node_id and c.target_node_id != node_id
        ]
        del self.nodes[node_id]
        logger.debug("Deleted node %s", node_id)

    # ── Configuration ────────────────────────────────────────────────────────

    def set_field(self, node_id: str, key: str, value: Union[str, FieldValue]) -> FieldValue:
        node = self.get_node(node_id)
        block = get_block_def(node.block_id)
        field = block.get_field(key)
        if field is None:
            raise ValueError(f"Block '{block.id}' has no field '{key}'")

        resolved = coerce_field_value(field, value)
        node.config[key] = resolved
        return resolved

    def clear_field(self, node_id: str, key: str):
        node = self.get_node(node_id)
        node.config.pop(key, None)

    # ── Connections ──────────────────────────────────────────────────────────

    def add_connection(self, source_node_id: str, source_port: str,
                       target_node_id: str, target_port: str,
                       connection_id: Optional[str] = None) -> Connection:
        if source_node_id == target_node_id:
            raise ValueError("Cannot connect a node's output to its own input")

        source = self.get_node(source_node_id)
        target = self.get_node(target_node_id)

        if get_block_def(source.block_id).get_output(source_port) is None:
            raise ValueError(f"Output port '{source_port}' not found on block '{source.block_id}'")
        if get_block_def(target.block_id).get_input(target_port) is None:
            raise ValueError(f"Input port '{target_port}' not found on block '{target.block_id}'")

        candidate = Connection(connection_id or new_connection_id(),
                               source_node_id, source_port, target_node_id, target_port)
        for existing in self.connections:
            if existing.same_endpoints(candidate):
                return existing
            if existing.id == candidate.id:
                raise ValueError(f"Connection with id '{candidate.id}' already exists")

        self.connections.append(candidate)
        return candidate

    def delete_connection(self, connection_id: str):
        remaining = [c for c in self.connections if c.id != connection_id]
        if len(remaining) == len(self.connections):
            raise KeyError(f"Connection '{connection_id}' not found")
        self.connections = remaining

    def incoming(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.target_node_id == node_id]

    def outgoing(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.source_node_id == node_id]

    def upstream_ids(self, node_id: str) -> List[str]:
        ids: List[str] = []
        for c in self.incoming(node_id):
            if c.source_node_id not in ids:
                ids.append(c.source_node_id)
        return ids

    def downstream_ids(self, node_id: str) -> List[str]:
        ids: List[str] = []
        for c in self.outgoing(node_id):
            if c.target_node_id not in ids:
                ids.append(c.target_node_id)
        return ids

    def roots(self) -> List[PipelineNode]:
        targets = {c.target_node_id for c in self.connections}
        return [node for node in self.nodes.values() if node.id not in targets]

    def is_port_connected(self, node_id: str, port_name: str, is_output: bool = False) -> bool:
        if is_output:
            return any(c.source_port == port_name for c in self.outgoing(node_id))
        return any(c.target_port == port_name for c in self.incoming(node_id))

    def port_anchor(self, node_id: str, port_name: str, is_output: bool) -> Tuple[float, float]:
        node = self.get_node(node_id)
        return get_port_anchor(node.position, get_block_def(node.block_id), port_name, is_output)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def reset_run_state(self):
        for node in self.nodes.values():
            node.reset_run_state()

    def clear(self):
        self.nodes.clear()
        self.connections.clear()

    def __repr__(self):
        return f"PipelineGraph({self.name!r}, nodes={len(self.nodes)}, connections={len(self.connections)})"


def coerce_field_value(field: FieldDef, value: Union[str, FieldValue]) -> FieldValue:
    """Turn a raw form value into the variant that matches the field kind."""
    kind = field.kind

    if kind == FieldKind.IMAGE:
        if isinstance(value, MediaRef):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Field '{field.key}' expects a media reference")
        return MediaRef(url=value, kind=MediaKind.guess(value).value)

    if isinstance(value, MediaRef):
        raise ValueError(f"Field '{field.key}' does not accept media")
    raw = value.resolve() if isinstance(value, (TextValue, ChoiceValue)) else value
    if not isinstance(raw, str):
        raise ValueError(f"Field '{field.key}' expects a string value")

    if kind == FieldKind.SELECT:
        if raw not in field.options:
            raise ValueError(f"'{raw}' is not an option of field '{field.key}': {list(field.options)}")
        return ChoiceValue(raw)

    if kind.isModelChoice():
        model_ids = [m.id for m in get_model_options(kind)]
        if raw not in model_ids:
            raise ValueError(f"Unknown model '{raw}' for field '{field.key}'")
        return ChoiceValue(raw)

    return TextValue(raw)


