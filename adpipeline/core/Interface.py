from __future__ import annotations
from typing import Any, Dict, List, NamedTuple, Optional, TYPE_CHECKING

from abc import ABC, abstractmethod

if TYPE_CHECKING:
    from .GraphPrimitives import PipelineGraph


# Upstream payload a node receives: source output port name -> that upstream
# node's whole output bundle.
InputBundle = Dict[str, Dict[str, str]]


class OperationResult:
    """
    Envelope returned by every operation.

        OperationResult.ok({"script": "...", "type": "text"})
        OperationResult.fail("Add Text needs an image.")
    """

    def __init__(self, success: bool, output: Optional[Dict[str, Any]] = None, error: Optional[str] = None):
        self.success = success
        self.output = output if output is not None else {}
        self.error = error

    @classmethod
    def ok(cls, output: Dict[str, Any]) -> 'OperationResult':
        return cls(True, output=output)

    @classmethod
    def fail(cls, error: str) -> 'OperationResult':
        return cls(False, error=error or "Unknown error")

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "output": self.output}
        return {"success": False, "error": self.error}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperationResult':
        if data.get("success"):
            return cls.ok(dict(data.get("output") or {}))
        return cls.fail(str(data.get("error") or "Unknown error"))

    def __repr__(self):
        if self.success:
            return f"OperationResult(ok, {self.output})"
        return f"OperationResult(fail, {self.error!r})"


class IOperationDispatcher(ABC):

    @abstractmethod
    async def dispatch(self, block_id: str, config: Dict[str, str], upstream: InputBundle) -> OperationResult:
        """Run one block's operation. Anticipated failures come back as fail() envelopes."""
        pass


class GraphSummary(NamedTuple):
    name: str
    node_count: int
    connection_count: int
    created_at: str
    updated_at: str


class IPersistenceAdapter(ABC):

    @abstractmethod
    def load(self, name: str) -> 'PipelineGraph':
        pass

    @abstractmethod
    def save(self, graph: 'PipelineGraph') -> None:
        pass

    @abstractmethod
    def list(self) -> List[GraphSummary]:
        pass

    @abstractmethod
    def delete(self, name: str) -> None:
        pass

    @abstractmethod
    def save_active(self, graph: 'PipelineGraph') -> None:
        pass

    @abstractmethod
    def load_active(self) -> Optional['PipelineGraph']:
        pass
