"""
Operation dispatch. Importing this package registers every handler module
with the @operation registry.
"""
from .registry import OperationDispatcher, get_handler, operation, registered_blocks

# Side-effect: register handlers
from . import ffmpeg_operations  # noqa: F401
from . import llm_operations  # noqa: F401
from . import media_operations  # noqa: F401


def create_dispatcher() -> OperationDispatcher:
    return OperationDispatcher()
