import asyncio
import time
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional, Set
from logging import getLogger

from .Errors import GraphCycleError, PipelineBusyError
from .GraphPrimitives import Connection, PipelineGraph
from .Interface import InputBundle, IOperationDispatcher, OperationResult
from .Node import MediaOutput, PipelineNode
from .Types import (
    MediaKind,
    NodeStatus,
    RESULT_TYPE_DOWNLOAD,
    RESULT_TYPE_ERROR,
    RESULT_TYPE_IMAGE,
    RESULT_TYPE_TEXT,
    RESULT_TYPE_VIDEO,
)
from ..noderegistry.BlockCatalog import EXPORT_BLOCK_ID, get_block_def

logger = getLogger(__name__)

EXPORT_NO_MEDIA_ERROR = "No upstream video/image to download. Connect a generator block."


class NodeResult(NamedTuple):
    """One entry of a run's result map: the "type" discriminant plus the output bundle."""
    type: str
    data: Dict[str, str]

    @property
    def is_error(self) -> bool:
        return self.type == RESULT_TYPE_ERROR

    def to_dict(self) -> Dict[str, object]:
        return {"type": self.type, "data": dict(self.data)}


BeforeNodeHook = Callable[[str], Awaitable[None]]
AfterNodeHook = Callable[[str, float, Optional[str]], None]
EdgeDataHook = Callable[[Connection], None]
SkipHook = Callable[[str], None]
ExportHook = Callable[[str, str], Awaitable[None]]


class Executor:
    """
    Runs every node of a PipelineGraph once, in dependency order.

    A topological pre-pass rejects unknown blocks and cycles before anything
    runs. Execution then proceeds in batches: every node whose upstream
    producers have all settled is dispatched, batches run concurrently with
    asyncio.gather unless concurrent=False.

    A node whose upstream producers all failed (or were themselves skipped)
    is never dispatched and stays IDLE. Failures are recorded on the node and
    in the result map; they never escape run().

    Hooks (all optional) are assigned as attributes, the way the server
    wires them:
        on_before_node(node_id)                    awaited before dispatch
        on_after_node(node_id, duration_ms, error)
        on_edge_data(connection)                   upstream data consumed
        on_node_skipped(node_id)
        on_export(node_id, url)                    awaited, export side channel
    """

    def __init__(self, graph: PipelineGraph, dispatcher: IOperationDispatcher, concurrent: bool = True):
        self.graph = graph
        self.dispatcher = dispatcher
        self.concurrent = concurrent

        self.results: Dict[str, NodeResult] = {}
        self.skipped: List[str] = []

        self.on_before_node: Optional[BeforeNodeHook] = None
        self.on_after_node: Optional[AfterNodeHook] = None
        self.on_edge_data: Optional[EdgeDataHook] = None
        self.on_node_skipped: Optional[SkipHook] = None
        self.on_export: Optional[ExportHook] = None

        self._claimed: Set[str] = set()
        self._running = False

    # ── Pre-pass ─────────────────────────────────────────────────────────────

    def build_execution_order(self) -> List[str]:
        """
        Topological order of the graph (Kahn), ties broken by definition order.
        Raises UnknownBlockError for unknown block ids and GraphCycleError
        when some nodes can never become ready.
        """
        order_index = {node_id: i for i, node_id in enumerate(self.graph.nodes)}

        for node in self.graph.nodes.values():
            get_block_def(node.block_id)

        in_degree: Dict[str, int] = {node_id: 0 for node_id in self.graph.nodes}
        for conn in self.graph.connections:
            if conn.source_node_id not in in_degree or conn.target_node_id not in in_degree:
                raise ValueError(f"{conn!r} references a node that is not in the pipeline")

        for node_id in self.graph.nodes:
            in_degree[node_id] = len(self.graph.upstream_ids(node_id))

        ready = [node_id for node_id, degree in in_degree.items() if degree == 0]
        order: List[str] = []
        while ready:
            ready.sort(key=order_index.__getitem__)
            node_id = ready.pop(0)
            order.append(node_id)
            for down_id in self.graph.downstream_ids(node_id):
                in_degree[down_id] -= 1
                if in_degree[down_id] == 0:
                    ready.append(down_id)

        if len(order) != len(self.graph.nodes):
            stuck = [node_id for node_id in self.graph.nodes if node_id not in order]
            raise GraphCycleError(stuck)
        return order

    # ── Run ──────────────────────────────────────────────────────────────────

    async def run(self) -> Dict[str, NodeResult]:
        if self._running:
            raise PipelineBusyError("This executor is already running")

        order = self.build_execution_order()
        order_index = {node_id: i for i, node_id in enumerate(order)}

        self._running = True
        try:
            self.graph.reset_run_state()
            self.results = {}
            self.skipped = []
            self._claimed = set()

            pending: Dict[str, Set[str]] = {
                node_id: set(self.graph.upstream_ids(node_id)) for node_id in self.graph.nodes
            }
            settled: Dict[str, bool] = {}

            ready = [node.id for node in self.graph.roots()]
            logger.info("Running pipeline '%s': %d nodes, %d roots",
                        self.graph.name, len(self.graph.nodes), len(ready))

            while ready:
                batch = sorted(ready, key=order_index.__getitem__)
                ready = []

                if self.concurrent:
                    outcomes = await asyncio.gather(*[self._execute_node(node_id) for node_id in batch])
                else:
                    outcomes = [await self._execute_node(node_id) for node_id in batch]

                for node_id, succeeded in zip(batch, outcomes):
                    if succeeded is None:
                        continue
                    settled[node_id] = succeeded
                    self._release_downstream(node_id, pending, settled, ready)

            logger.info("Pipeline '%s' finished: %d results, %d skipped",
                        self.graph.name, len(self.results), len(self.skipped))
            return self.results
        finally:
            self._running = False

    def _release_downstream(self, node_id: str, pending: Dict[str, Set[str]],
                            settled: Dict[str, bool], ready: List[str]):
        for down_id in self.graph.downstream_ids(node_id):
            waiting = pending[down_id]
            waiting.discard(node_id)
            if waiting or down_id in settled or down_id in self._claimed or down_id in ready:
                continue

            if any(settled.get(up_id) for up_id in self.graph.upstream_ids(down_id)):
                ready.append(down_id)
            else:
                # every producer failed or was skipped: never dispatched, stays idle
                settled[down_id] = False
                self.skipped.append(down_id)
                logger.info("Skipping node %s: no upstream producer succeeded", down_id)
                if self.on_node_skipped:
                    try:
                        self.on_node_skipped(down_id)
                    except Exception:
                        logger.warning("skip hook failed for node %s", down_id, exc_info=True)
                self._release_downstream(down_id, pending, settled, ready)

    async def _execute_node(self, node_id: str) -> Optional[bool]:
        """Dispatch one node. Returns True on success, False on failure, None if already claimed."""
        if node_id in self._claimed:
            return None
        self._claimed.add(node_id)

        node = self.graph.get_node(node_id)

        if self.on_before_node:
            try:
                await self.on_before_node(node_id)
            except Exception:
                logger.warning("before-node hook failed for node %s", node_id, exc_info=True)

        node.status = NodeStatus.RUNNING
        t0 = time.time()

        try:
            bundle = self.build_input_bundle(node_id)
            if node.block_id == EXPORT_BLOCK_ID:
                result = self._export(bundle)
            else:
                result = await self.dispatcher.dispatch(node.block_id, node.resolved_config(), bundle)
                if isinstance(result, dict):
                    result = OperationResult.from_dict(result)
        except Exception as exc:
            logger.exception("Node %s (%s) raised during execution", node_id, node.block_id)
            result = OperationResult.fail(str(exc) or exc.__class__.__name__)

        duration_ms = (time.time() - t0) * 1000
        if result.success:
            self._record_success(node, result.output)
        else:
            self._record_failure(node, result.error)

        if self.on_after_node:
            try:
                self.on_after_node(node_id, duration_ms, None if result.success else result.error)
            except Exception:
                logger.warning("after-node hook failed for node %s", node_id, exc_info=True)

        if result.success and node.block_id == EXPORT_BLOCK_ID:
            await self._notify_export(node_id, result.output["download_url"])

        return result.success

    # ── Aggregation ──────────────────────────────────────────────────────────

    def build_input_bundle(self, node_id: str) -> InputBundle:
        """
        Collect upstream outputs keyed by the *source* port name.

        Connections are visited in graph order; when two wires share a
        source port name the later one overwrites the earlier one.
        Failed producers contribute nothing.
        """
        bundle: InputBundle = {}
        for conn in self.graph.incoming(node_id):
            upstream = self.results.get(conn.source_node_id)
            if upstream is None or upstream.is_error:
                continue
            bundle[conn.source_port] = dict(upstream.data)
            if self.on_edge_data:
                self.on_edge_data(conn)
        return bundle

    def _export(self, bundle: InputBundle) -> OperationResult:
        download_url = None
        for data in bundle.values():
            if data.get("video_url"):
                download_url = data["video_url"]
                break
            if data.get("image_url"):
                download_url = data["image_url"]
                break

        if not download_url:
            return OperationResult.fail(EXPORT_NO_MEDIA_ERROR)

        return OperationResult.ok({
            "download_url": download_url,
            "message": f"Ready to download: {download_url}",
            "type": RESULT_TYPE_DOWNLOAD,
        })

    async def _notify_export(self, node_id: str, url: str):
        if not self.on_export:
            return
        try:
            await self.on_export(node_id, url)
        except Exception:
            # the node already succeeded; a failed download trigger is only logged
            logger.warning("Export side channel failed for node %s (%s)", node_id, url, exc_info=True)

    # ── Result recording ─────────────────────────────────────────────────────

    def _record_success(self, node: PipelineNode, output: Dict[str, str]):
        data = dict(output)
        result_type = data.get("type") or RESULT_TYPE_TEXT
        self.results[node.id] = NodeResult(result_type, data)

        node.status = NodeStatus.DONE
        node.error = None
        if result_type == RESULT_TYPE_VIDEO and data.get("video_url"):
            node.output = MediaOutput(data["video_url"], MediaKind.VIDEO)
        elif result_type == RESULT_TYPE_IMAGE and data.get("image_url"):
            node.output = MediaOutput(data["image_url"], MediaKind.IMAGE)
        elif result_type == RESULT_TYPE_DOWNLOAD and data.get("download_url"):
            node.output = MediaOutput(data["download_url"], MediaKind.guess(data["download_url"]))

        logger.info("Node %s (%s) done [%s]", node.id, node.block_id, result_type)

    def _record_failure(self, node: PipelineNode, error: Optional[str]):
        message = error or "Unknown error"
        self.results[node.id] = NodeResult(RESULT_TYPE_ERROR, {"error": message})
        node.status = NodeStatus.ERROR
        node.error = message
        logger.warning("Node %s (%s) failed: %s", node.id, node.block_id, message)
