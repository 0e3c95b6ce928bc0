from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .model import Cell
from .outputs import OutputCodec
from .pocket import (
    POCKET_FIELDS,
    POCKET_KEY,
    RESERVED_METADATA_KEYS,
    Pocket,
    extract_pocket,
    recover_block,
    split_pocket,
)
from .registry import TypeRegistry
from .transforms import ContentTransform, PassthroughTransform

logger = logging.getLogger(__name__)

# block keys the converter owns; anything else rides in the pocket extras
_KNOWN_BLOCK_KEYS = frozenset(
    ("id", "content", "metadata", "outputs") + POCKET_FIELDS
)

_CANON_KEY_ORDER = [
    "blockGroup",
    "content",
    "executionCount",
    "id",
    "metadata",
    "outputs",
    "sortingKey",
    "type",
]


def _canonical(block: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: block[k] for k in _CANON_KEY_ORDER if k in block}
    # any remaining keys in original order
    for k, v in block.items():
        if k not in out:
            out[k] = v
    return out


def block_sort_key(block: Any) -> str:
    key = block.get("sortingKey") if isinstance(block, Mapping) else None
    return key if isinstance(key, str) else ""


class BlockConverter:
    """Converts document blocks to editor cells and back.

    blocks -> cells -> blocks reproduces the input blocks exactly as long
    as each block type's transform is an exact inverse on its content.
    """

    def __init__(
        self,
        registry: TypeRegistry,
        codec: Optional[OutputCodec] = None,
        fallback: Optional[ContentTransform] = None,
    ):
        self.registry = registry
        self.codec = codec or OutputCodec()
        self.fallback = fallback or PassthroughTransform()

    def transform_for(self, block_type: Any) -> ContentTransform:
        transform = self.registry.lookup(block_type)
        if transform is None:
            logger.debug("No transform for block type %r, using passthrough", block_type)
            return self.fallback
        return transform

    # ---------- blocks -> cells ----------

    def to_cells(self, blocks: Iterable[Mapping[str, Any]]) -> List[Cell]:
        # sorted() is stable: equal keys keep document order
        ordered = sorted(blocks, key=block_sort_key)
        cells = [self.block_to_cell(b) for b in ordered]
        logger.debug("Converted %d blocks to cells", len(cells))
        return cells

    def block_to_cell(self, block: Mapping[str, Any]) -> Cell:
        transform = self.transform_for(block.get("type"))
        cell = transform.forward(block)

        raw_metadata = block.get("metadata")
        raw: Dict[str, Any] = dict(raw_metadata) if isinstance(raw_metadata, Mapping) else {}
        shadowed = {
            key: copy.deepcopy(raw.pop(key)) for key in RESERVED_METADATA_KEYS if key in raw
        }
        flat = copy.deepcopy(raw)
        if "id" in block:
            flat["id"] = block["id"]
        for key in POCKET_FIELDS:
            if key in block:
                flat[key] = block[key]
        metadata, pocket = split_pocket(flat)

        extras = {k: copy.deepcopy(v) for k, v in block.items() if k not in _KNOWN_BLOCK_KEYS}
        if transform.stashes_content and "content" in block:
            extras["content"] = copy.deepcopy(block["content"])
        explicit_empty = [
            key
            for key, empty in (("metadata", {}), ("outputs", []))
            if key in block and block[key] == empty
        ]
        if extras or explicit_empty or shadowed:
            pocket = pocket or Pocket()
            pocket.extras = extras
            pocket.explicit_empty = explicit_empty
            pocket.shadowed = shadowed
        if pocket is not None:
            metadata[POCKET_KEY] = pocket.to_dict()

        outputs = block.get("outputs")
        cell.metadata = metadata
        cell.outputs = self.codec.encode_all(outputs) if isinstance(outputs, list) else []
        return cell

    # ---------- cells -> blocks ----------

    def to_blocks(self, cells: Iterable[Cell]) -> List[Dict[str, Any]]:
        blocks = [self.cell_to_block(cell, index) for index, cell in enumerate(cells)]
        logger.debug("Converted %d cells to blocks", len(blocks))
        return blocks

    def cell_to_block(self, cell: Cell, index: int) -> Dict[str, Any]:
        block = recover_block(cell.metadata, index)
        self.transform_for(block["type"]).apply(block, cell)

        if cell.outputs:
            block["outputs"] = self.codec.decode_all(cell.outputs)
        else:
            pocket = extract_pocket(cell.metadata)
            if pocket is not None and "outputs" in pocket.explicit_empty:
                block["outputs"] = []
        return _canonical(block)
