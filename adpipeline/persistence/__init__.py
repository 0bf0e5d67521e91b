from .adapters import InMemoryPersistenceAdapter, JsonFilePersistenceAdapter, SnapshotPersistenceAdapter
from .snapshot import graph_from_snapshot, graph_to_snapshot, strip_ephemeral
