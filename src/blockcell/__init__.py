"""blockcell: lossless conversion between Deepnote blocks and editor cells.

Blocks are the records of a ``.deepnote`` project file; cells are what a
notebook editor shows. Fields the editor has no place for ride along in
the cell metadata so that blocks -> cells -> blocks is exact.
"""

__all__ = [
    "BlockConverter",
    "TypeRegistry",
    "create_default_registry",
    "OutputCodec",
    "Cell",
    "CellKind",
    "OutputItem",
    "OutputPresentation",
    "Pocket",
    "generate_block_id",
    "generate_sorting_key",
]

__version__ = "0.1.0"

from .convert import BlockConverter  # noqa: E402
from .ids import generate_block_id, generate_sorting_key  # noqa: E402
from .model import Cell, CellKind, OutputItem, OutputPresentation  # noqa: E402
from .outputs import OutputCodec  # noqa: E402
from .pocket import Pocket  # noqa: E402
from .registry import TypeRegistry, create_default_registry  # noqa: E402
