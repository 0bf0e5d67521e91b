"""
PipelineSession: the one editing session the server holds.

Owns the graph being edited, the persistence adapter and the operation
dispatcher. Every mutation auto-saves the graph into the adapter's active
slot so a restart picks up where the editor left off. Only one run may be
in flight at a time.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union
from logging import getLogger

from ..config import settings
from ..core.Errors import PipelineBusyError
from ..core.Executor import Executor, NodeResult
from ..core.FieldValues import FieldValue
from ..core.GraphPrimitives import Connection, PipelineGraph
from ..core.Interface import GraphSummary, IOperationDispatcher, IPersistenceAdapter
from ..core.Node import PipelineNode
from ..noderegistry.BlockCatalog import estimate_cost

logger = getLogger(__name__)


class PipelineSession:

    def __init__(self,
                 persistence: IPersistenceAdapter,
                 dispatcher: IOperationDispatcher,
                 graph: Optional[PipelineGraph] = None,
                 autosave: bool = True):
        self.persistence = persistence
        self.dispatcher = dispatcher
        self.autosave = autosave

        if graph is None:
            graph = persistence.load_active() or PipelineGraph()
        self.graph = graph

        self.results: Dict[str, NodeResult] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _changed(self):
        if not self.autosave:
            return
        try:
            self.persistence.save_active(self.graph)
        except OSError:
            logger.warning("Auto-save of '%s' skipped", self.graph.name, exc_info=True)

    def _ensure_idle(self):
        if self._running:
            raise PipelineBusyError("A pipeline run is in progress")

    # ── Editing ──────────────────────────────────────────────────────────────

    def rename(self, name: str):
        if not name or not name.strip():
            raise ValueError("Pipeline name must not be empty")
        self.graph.name = name.strip()
        self._changed()

    def add_node(self, block_id: str, position: Tuple[float, float] = (0.0, 0.0)) -> PipelineNode:
        self._ensure_idle()
        node = self.graph.add_node(block_id, position)
        self._changed()
        return node

    def move_node(self, node_id: str, x: float, y: float):
        self.graph.move_node(node_id, x, y)
        self._changed()

    def delete_node(self, node_id: str):
        self._ensure_idle()
        self.graph.delete_node(node_id)
        self.results.pop(node_id, None)
        self._changed()

    def set_field(self, node_id: str, key: str, value: Union[str, FieldValue]) -> FieldValue:
        resolved = self.graph.set_field(node_id, key, value)
        self._changed()
        return resolved

    def clear_field(self, node_id: str, key: str):
        self.graph.clear_field(node_id, key)
        self._changed()

    def add_connection(self, source_node_id: str, source_port: str,
                       target_node_id: str, target_port: str) -> Connection:
        self._ensure_idle()
        conn = self.graph.add_connection(source_node_id, source_port, target_node_id, target_port)
        self._changed()
        return conn

    def delete_connection(self, connection_id: str):
        self._ensure_idle()
        self.graph.delete_connection(connection_id)
        self._changed()

    def estimated_cost(self) -> float:
        return estimate_cost(node.block_id for node in self.graph.nodes.values())

    # ── Running ──────────────────────────────────────────────────────────────

    def create_executor(self) -> Executor:
        return Executor(self.graph, self.dispatcher)

    async def run(self, executor: Optional[Executor] = None) -> Dict[str, NodeResult]:
        """
        Run the whole pipeline. Raises PipelineBusyError while another run is
        in flight, and GraphCycleError / UnknownBlockError before anything
        runs if the graph cannot be ordered.
        """
        self._ensure_idle()
        executor = executor or self.create_executor()

        self._running = True
        try:
            self.results = await executor.run()
        finally:
            self._running = False
        return self.results

    # ── Saved pipelines ──────────────────────────────────────────────────────

    def save(self):
        self.persistence.save(self.graph)

    def load(self, name: str) -> PipelineGraph:
        self._ensure_idle()
        self.graph = self.persistence.load(name)
        self.results = {}
        self._changed()
        return self.graph

    def delete_saved(self, name: str):
        self.persistence.delete(name)

    def list_saved(self) -> List[GraphSummary]:
        return self.persistence.list()

    def new_pipeline(self, name: Optional[str] = None) -> PipelineGraph:
        self._ensure_idle()
        self.graph = PipelineGraph(name or f"Pipeline {len(self.list_saved()) + 1}")
        self.results = {}
        self._changed()
        return self.graph


_session: Optional[PipelineSession] = None


def get_session() -> PipelineSession:
    """Module-level session, created on first use from the environment settings."""
    global _session
    if _session is None:
        from ..dispatch import create_dispatcher
        from ..persistence import JsonFilePersistenceAdapter

        _session = PipelineSession(
            JsonFilePersistenceAdapter(settings.PIPELINES_DIR, settings.STRIP_THRESHOLD),
            create_dispatcher(),
        )
        logger.info("Session ready: '%s' (%d nodes)", _session.graph.name, len(_session.graph.nodes))
    return _session
