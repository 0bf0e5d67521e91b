from typing import Awaitable, Callable, Dict, Optional
from logging import getLogger

from ..core.Errors import OperationError, UnknownBlockError
from ..core.Interface import InputBundle, IOperationDispatcher, OperationResult
from ..core.Types import RESULT_TYPE_TEXT
from ..noderegistry.BlockCatalog import EXPORT_BLOCK_ID, has_block

logger = getLogger(__name__)

OperationHandler = Callable[[Dict[str, str], InputBundle], Awaitable[Dict[str, str]]]

_handler_registry: Dict[str, OperationHandler] = {}


def operation(block_id: str) -> Callable[[OperationHandler], OperationHandler]:
    """
    Decorator to register the async handler for a block id.

        @operation("script_writer")
        async def write_script(config, upstream):
            ...
            return {"script": text, "type": "text"}

    Handlers raise OperationError for anticipated failures.
    """
    def decorator(handler: OperationHandler) -> OperationHandler:
        if not has_block(block_id):
            raise UnknownBlockError(block_id)
        if block_id == EXPORT_BLOCK_ID:
            raise ValueError(f"'{block_id}' is handled by the executor, not by an operation")
        if _handler_registry.get(block_id):
            raise ValueError(f"Operation for block '{block_id}' is already registered.")
        _handler_registry[block_id] = handler
        return handler
    return decorator


def get_handler(block_id: str) -> Optional[OperationHandler]:
    return _handler_registry.get(block_id)


def registered_blocks():
    return list(_handler_registry.keys())


class OperationDispatcher(IOperationDispatcher):
    """
    Looks up the handler for a block id and normalizes whatever happens into
    an OperationResult envelope. Never raises for operation failures.

    `handlers` defaults to the module registry; tests pass their own map.
    """

    def __init__(self, handlers: Optional[Dict[str, OperationHandler]] = None):
        self.handlers = handlers if handlers is not None else _handler_registry

    async def dispatch(self, block_id: str, config: Dict[str, str], upstream: InputBundle) -> OperationResult:
        if not has_block(block_id):
            return OperationResult.fail(f"Unknown block type '{block_id}'")

        handler = self.handlers.get(block_id)
        if handler is None:
            return OperationResult.ok({
                "message": f'Block "{block_id}" executed successfully.',
                "type": RESULT_TYPE_TEXT,
            })

        try:
            output = await handler(dict(config or {}), dict(upstream or {}))
        except OperationError as exc:
            logger.info("Operation %s failed: %s", block_id, exc)
            return OperationResult.fail(str(exc))
        except Exception as exc:
            logger.exception("Operation %s raised", block_id)
            return OperationResult.fail(str(exc) or exc.__class__.__name__)

        # drop unset keys so downstream lookups see them as absent
        cleaned = {key: value for key, value in output.items() if value is not None}
        cleaned.setdefault("type", RESULT_TYPE_TEXT)
        return OperationResult.ok(cleaned)
