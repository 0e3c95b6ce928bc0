"""Per block-type content transforms.

A transform turns a block's raw ``content`` into the text shown in the
editor and back. It never touches pocket fields or outputs. Blocks whose
cell is rendered from metadata live in ``widgets``.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from .model import Cell, CellKind


def _content(block: Mapping[str, Any]) -> str:
    content = block.get("content")
    return content if isinstance(content, str) else ""


class ContentTransform(ABC):
    # set when the block content cannot be rebuilt from the cell; it then rides in the pocket
    stashes_content = False

    @abstractmethod
    def supported_types(self) -> List[str]:
        """Canonical type tags handled by this transform."""

    @abstractmethod
    def forward(self, block: Mapping[str, Any]) -> Cell:
        """Build a cell (kind, value, language) from a block."""

    @abstractmethod
    def inverse(self, cell: Cell) -> str:
        """Return the block content for an edited cell."""

    def apply(self, block: Dict[str, Any], cell: Cell) -> None:
        """Write a cell back into the block recovered from its metadata."""
        block["content"] = self.inverse(cell)


class VerbatimTransform(ContentTransform):
    """Copies content unchanged into a cell of fixed kind and language."""

    def __init__(self, types: List[str], kind: CellKind, language_id: str):
        self._types = list(types)
        self.kind = kind
        self.language_id = language_id

    def supported_types(self) -> List[str]:
        return list(self._types)

    def forward(self, block: Mapping[str, Any]) -> Cell:
        return Cell(kind=self.kind, value=_content(block), language_id=self.language_id)

    def inverse(self, cell: Cell) -> str:
        return cell.value or ""


class CodeTransform(VerbatimTransform):
    def __init__(self):
        super().__init__(["code"], CellKind.EXECUTABLE, "python")


class SqlTransform(VerbatimTransform):
    def __init__(self):
        super().__init__(["sql"], CellKind.EXECUTABLE, "sql")


class MarkdownTransform(VerbatimTransform):
    def __init__(self):
        super().__init__(["markdown"], CellKind.MARKUP, "markdown")


class PassthroughTransform(VerbatimTransform):
    """Fallback for types nobody registered: inert, editable text."""

    def __init__(self):
        super().__init__([], CellKind.MARKUP, "plaintext")


class TextCellTransform(ContentTransform):
    """Rich-text blocks shown as markdown, headings get their marker.

    One instance serves one block type, e.g. ``text-cell-h2`` with "##".
    """

    def __init__(self, block_type: str, marker: str = ""):
        self.block_type = block_type
        self.marker = marker
        self._prefix = f"{marker} " if marker else ""
        self._loose = (
            re.compile(r"^\s*" + re.escape(marker) + r"\s+") if marker else None
        )

    def supported_types(self) -> List[str]:
        return [self.block_type]

    def forward(self, block: Mapping[str, Any]) -> Cell:
        return Cell(
            kind=CellKind.MARKUP,
            value=self._prefix + _content(block),
            language_id="markdown",
        )

    def inverse(self, cell: Cell) -> str:
        value = cell.value or ""
        if not self._prefix:
            return value
        if value.startswith(self._prefix):
            return value[len(self._prefix):]
        # edited by hand, e.g. "  ##  Title"
        return self._loose.sub("", value, count=1)


def heading_transforms() -> List[TextCellTransform]:
    return [
        TextCellTransform("text-cell-h1", "#"),
        TextCellTransform("text-cell-h2", "##"),
        TextCellTransform("text-cell-h3", "###"),
        TextCellTransform("text-cell-p"),
    ]
