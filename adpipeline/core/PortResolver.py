from typing import Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..noderegistry.BlockCatalog import BlockDefinition

# Canvas layout constants shared with the editor's node renderer
NODE_WIDTH = 280
HEADER_HEIGHT = 40
PORT_PADDING = 8
PORT_SPACING = 22


def get_port_anchor(position: Tuple[float, float],
                    block_def: 'BlockDefinition',
                    port_name: str,
                    is_output: bool) -> Tuple[float, float]:
    """
    Screen-space anchor of a port dot.

    Inputs sit on the node's left edge, outputs on its right edge; ports are
    stacked below the header in declaration order. Pure: the same inputs
    always give the same point, so wires and drag previews line up.
    """
    ports = block_def.outputs if is_output else block_def.inputs
    index = next((i for i, port in enumerate(ports) if port.id == port_name), None)
    if index is None:
        direction = "Output" if is_output else "Input"
        raise KeyError(f"{direction} port '{port_name}' not found on block '{block_def.id}'")

    x, y = position
    anchor_x = x + NODE_WIDTH if is_output else x
    anchor_y = y + HEADER_HEIGHT + PORT_PADDING + index * PORT_SPACING
    return (anchor_x, anchor_y)
