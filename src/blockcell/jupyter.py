from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

import nbformat

from .convert import BlockConverter
from .ids import generate_block_id
from .model import Cell, CellKind
from .outputs import OutputCodec
from .pocket import POCKET_KEY, RESERVED_METADATA_KEYS

logger = logging.getLogger(__name__)

# cell metadata key holding the editor metadata (id + pocket) in .ipynb files
JUPYTER_METADATA_KEY = "deepnote"

_JUPYTER_ID_RE = re.compile(r"^[a-zA-Z0-9-_]{1,64}$")

_JUPYTER_TO_BLOCK_TYPE = {"code": "code", "markdown": "markdown", "raw": "raw"}


def _to_plain(value: Any) -> Any:
    # NotebookNode values would not survive a YAML dump
    if isinstance(value, Mapping):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


def _jupyter_output(record: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in the fields nbformat v4 requires for each output type."""
    out = dict(record)
    otype = out.get("output_type")
    if otype == "stream":
        out.setdefault("name", "stdout")
        out.setdefault("text", "")
    elif otype == "error":
        out.setdefault("ename", "Error")
        out.setdefault("evalue", "")
        out.setdefault("traceback", [])
        out.pop("text", None)
    elif otype in ("execute_result", "display_data"):
        out.setdefault("data", {})
        out.setdefault("metadata", {})
        if otype == "execute_result":
            out.setdefault("execution_count", None)
    return out


def cells_to_ipynb_dict(
    cells: List[Cell],
    codec: OutputCodec,
    *,
    name: Optional[str] = None,
    language: str = "python",
) -> Dict:
    """Convert editor cells to an nbformat v4 dict.

    - Executable cells become "code" cells, markup cells "markdown".
    - The full cell metadata (block id and pocket) is kept under
      metadata["deepnote"] so a later import restores the blocks.
    """

    def _cell_to_nb(c: Cell) -> Dict:
        j_meta: Dict = {JUPYTER_METADATA_KEY: copy.deepcopy(c.metadata)}
        nb_cell: Dict[str, Any] = {"metadata": j_meta, "source": c.value}
        block_id = c.block_id
        # nbformat 4.5 requires a cell id of a restricted shape
        nb_cell["id"] = (
            block_id if block_id and _JUPYTER_ID_RE.match(block_id) else generate_block_id()
        )
        if c.kind == CellKind.EXECUTABLE:
            pocket = c.metadata.get(POCKET_KEY) or {}
            count = pocket.get("executionCount") if isinstance(pocket, dict) else None
            nb_cell["cell_type"] = "code"
            nb_cell["execution_count"] = count if isinstance(count, int) else None
            nb_cell["outputs"] = [_jupyter_output(codec.decode(o)) for o in c.outputs]
        else:
            nb_cell["cell_type"] = "markdown"
        return nb_cell

    return {
        "nbformat": 4,
        "nbformat_minor": 5,
        "metadata": {
            "kernelspec": {
                "name": language,
                "display_name": name or language,
                "language": language,
            },
            "language_info": {"name": language},
        },
        "cells": [_cell_to_nb(c) for c in cells],
    }


def ipynb_dict_to_cells(d: Mapping[str, Any], codec: OutputCodec) -> List[Cell]:
    """Convert an nbformat v4 dict to editor cells.

    - Cells exported by cells_to_ipynb_dict get their stored metadata back.
    - Other cells get a pocket typed from the Jupyter cell type; their
      Jupyter metadata becomes block metadata.
    """
    cells_in = d.get("cells", []) if isinstance(d, Mapping) else []
    cells: List[Cell] = []

    for jc in cells_in:
        if not isinstance(jc, Mapping):
            continue
        jtype = str(jc.get("cell_type") or "raw")
        src = jc.get("source", "")
        value = "".join(src) if isinstance(src, list) else str(src)

        jmeta = jc.get("metadata", {})
        jmeta = dict(jmeta) if isinstance(jmeta, Mapping) else {}
        stored = jmeta.pop(JUPYTER_METADATA_KEY, None)
        if isinstance(stored, Mapping):
            metadata = _to_plain(stored)
        else:
            pocket: Dict[str, Any] = {"type": _JUPYTER_TO_BLOCK_TYPE.get(jtype, "raw")}
            count = jc.get("execution_count")
            if isinstance(count, int):
                pocket["executionCount"] = count
            metadata = _to_plain(jmeta)
            shadowed = {k: metadata.pop(k) for k in RESERVED_METADATA_KEYS if k in metadata}
            if shadowed:
                pocket["shadowed"] = shadowed
            if jc.get("id"):
                metadata["id"] = str(jc["id"])
            metadata[POCKET_KEY] = pocket

        outputs = jc.get("outputs") or []
        cells.append(
            Cell(
                kind=CellKind.EXECUTABLE if jtype == "code" else CellKind.MARKUP,
                value=value,
                language_id="python" if jtype == "code" else "markdown",
                metadata=metadata,
                outputs=[codec.encode(_to_plain(o)) for o in outputs if isinstance(o, Mapping)],
            )
        )
    logger.debug("Read %d cells from Jupyter notebook", len(cells))
    return cells


def export_ipynb_text(
    blocks: List[Dict[str, Any]], converter: BlockConverter, *, name: Optional[str] = None
) -> str:
    cells = converter.to_cells(blocks)
    d = cells_to_ipynb_dict(cells, converter.codec, name=name)
    nbnode = nbformat.from_dict(d)
    s = nbformat.writes(nbnode, version=4)
    if not s.endswith("\n"):
        s += "\n"
    return s


def import_ipynb_text(text: str, converter: BlockConverter) -> List[Dict[str, Any]]:
    nbnode = nbformat.reads(text, as_version=4)
    cells = ipynb_dict_to_cells(nbnode, converter.codec)
    return converter.to_blocks(cells)
