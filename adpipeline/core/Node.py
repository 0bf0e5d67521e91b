from typing import Dict, NamedTuple, Optional, Tuple
import uuid

from .FieldValues import FieldValue
from .Types import MediaKind, NodeStatus


class Position(NamedTuple):
    x: float
    y: float


class MediaOutput(NamedTuple):
    """Resolved media used for the node preview after a successful run."""
    url: str
    kind: MediaKind


def new_node_id() -> str:
    return f"node_{uuid.uuid4().hex[:12]}"


class PipelineNode:
    """
    One placed instance of a catalog block.

    block_id is fixed at creation. position and config are edited by the
    user; status, output and error are written only by the Executor.
    """

    def __init__(self,
                 block_id: str,
                 position: Tuple[float, float] = (0.0, 0.0),
                 node_id: Optional[str] = None,
                 config: Optional[Dict[str, FieldValue]] = None):
        self.id = node_id or new_node_id()
        self._block_id = block_id
        self.position = Position(float(position[0]), float(position[1]))
        self.config: Dict[str, FieldValue] = dict(config) if config else {}

        self.status = NodeStatus.IDLE
        self.output: Optional[MediaOutput] = None
        self.error: Optional[str] = None

    @property
    def block_id(self) -> str:
        return self._block_id

    def resolved_config(self) -> Dict[str, str]:
        """Flatten the typed config into the string map the dispatcher receives."""
        resolved = {}
        for key, value in self.config.items():
            text = value.resolve()
            if text:
                resolved[key] = text
        return resolved

    def reset_run_state(self):
        self.status = NodeStatus.IDLE
        self.output = None
        self.error = None

    def __repr__(self):
        return f"PipelineNode({self.id}, {self._block_id}, {self.status.value})"
