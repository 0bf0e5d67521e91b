from typing import List


class UnknownBlockError(KeyError):
    """Raised when a node or request references a block id missing from the catalog."""

    def __init__(self, block_id: str):
        super().__init__(block_id)
        self.block_id = block_id

    def __str__(self):
        return f"Unknown block type '{self.block_id}'"


class GraphCycleError(ValueError):
    """Raised before a run starts when the connection set contains a cycle."""

    def __init__(self, node_ids: List[str]):
        super().__init__(f"Pipeline contains a cycle through nodes: {', '.join(node_ids)}")
        self.node_ids = node_ids


class PipelineBusyError(RuntimeError):
    pass


class OperationError(Exception):
    """
    Anticipated operation failure: missing config, missing upstream media,
    provider error, ffmpeg exit code. The dispatcher turns it into a
    failure envelope.
    """
    pass
