"""
Storage for named pipelines and the auto-saved active pipeline.

Saved pipelines are kept as an ordered list of snapshots keyed by name;
saving under an existing name replaces that entry in place and keeps its
createdAt. The active slot holds whatever graph is open in the editor.
"""
from __future__ import annotations

import json
import os
import tempfile
from abc import abstractmethod
from typing import Any, Dict, List, Optional
from logging import getLogger

from ..core.GraphPrimitives import PipelineGraph
from ..core.Interface import GraphSummary, IPersistenceAdapter
from .snapshot import DEFAULT_STRIP_THRESHOLD, graph_from_snapshot, graph_to_snapshot, utc_timestamp

logger = getLogger(__name__)

Snapshot = Dict[str, Any]


class SnapshotPersistenceAdapter(IPersistenceAdapter):
    """Adapter logic over a raw snapshot store; subclasses only read and write."""

    def __init__(self, strip_threshold: int = DEFAULT_STRIP_THRESHOLD):
        self.strip_threshold = strip_threshold

    @abstractmethod
    def _read_saved(self) -> List[Snapshot]:
        pass

    @abstractmethod
    def _write_saved(self, snapshots: List[Snapshot]):
        pass

    @abstractmethod
    def _read_active(self) -> Optional[Snapshot]:
        pass

    @abstractmethod
    def _write_active(self, snapshot: Snapshot):
        pass

    def load(self, name: str) -> PipelineGraph:
        for snapshot in self._read_saved():
            if snapshot.get("name") == name:
                return graph_from_snapshot(snapshot)
        raise KeyError(f"No saved pipeline named '{name}'")

    def save(self, graph: PipelineGraph) -> None:
        snapshots = self._read_saved()
        index = next((i for i, s in enumerate(snapshots) if s.get("name") == graph.name), None)

        created_at = snapshots[index].get("createdAt") if index is not None else None
        snapshot = graph_to_snapshot(graph, created_at=created_at, updated_at=utc_timestamp(),
                                     threshold=self.strip_threshold)
        if index is None:
            snapshots.append(snapshot)
        else:
            snapshots[index] = snapshot

        self._write_saved(snapshots)
        logger.info("Saved pipeline '%s' (%d nodes)", graph.name, len(graph.nodes))

    def list(self) -> List[GraphSummary]:
        return [
            GraphSummary(
                name=s.get("name", ""),
                node_count=len(s.get("nodes", [])),
                connection_count=len(s.get("connections", [])),
                created_at=s.get("createdAt", ""),
                updated_at=s.get("updatedAt", ""),
            )
            for s in self._read_saved()
        ]

    def delete(self, name: str) -> None:
        snapshots = self._read_saved()
        remaining = [s for s in snapshots if s.get("name") != name]
        if len(remaining) != len(snapshots):
            self._write_saved(remaining)
            logger.info("Deleted pipeline '%s'", name)

    def save_active(self, graph: PipelineGraph) -> None:
        self._write_active(graph_to_snapshot(graph, threshold=self.strip_threshold))

    def load_active(self) -> Optional[PipelineGraph]:
        snapshot = self._read_active()
        if snapshot is None:
            return None
        return graph_from_snapshot(snapshot)


class InMemoryPersistenceAdapter(SnapshotPersistenceAdapter):

    def __init__(self, strip_threshold: int = DEFAULT_STRIP_THRESHOLD):
        super().__init__(strip_threshold)
        self._saved: List[Snapshot] = []
        self._active: Optional[Snapshot] = None

    # snapshots round-trip through JSON so callers never share mutable state
    def _read_saved(self) -> List[Snapshot]:
        return json.loads(json.dumps(self._saved))

    def _write_saved(self, snapshots: List[Snapshot]):
        self._saved = json.loads(json.dumps(snapshots))

    def _read_active(self) -> Optional[Snapshot]:
        return json.loads(json.dumps(self._active)) if self._active is not None else None

    def _write_active(self, snapshot: Snapshot):
        self._active = json.loads(json.dumps(snapshot))


class JsonFilePersistenceAdapter(SnapshotPersistenceAdapter):
    """
    Stores snapshots as JSON files in one directory:

        <directory>/pipelines.json   list of saved snapshots
        <directory>/active.json      the active pipeline
    """

    SAVED_FILE = "pipelines.json"
    ACTIVE_FILE = "active.json"

    def __init__(self, directory: str, strip_threshold: int = DEFAULT_STRIP_THRESHOLD):
        super().__init__(strip_threshold)
        self.directory = directory

    @property
    def saved_path(self) -> str:
        return os.path.join(self.directory, self.SAVED_FILE)

    @property
    def active_path(self) -> str:
        return os.path.join(self.directory, self.ACTIVE_FILE)

    def _read_json(self, path: str) -> Any:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write_json(self, path: str, data: Any):
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def _read_saved(self) -> List[Snapshot]:
        return self._read_json(self.saved_path) or []

    def _write_saved(self, snapshots: List[Snapshot]):
        self._write_json(self.saved_path, snapshots)

    def _read_active(self) -> Optional[Snapshot]:
        return self._read_json(self.active_path)

    def _write_active(self, snapshot: Snapshot):
        self._write_json(self.active_path, snapshot)
