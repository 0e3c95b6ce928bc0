from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

STDOUT_MIME = "application/vnd.code.notebook.stdout"
STDERR_MIME = "application/vnd.code.notebook.stderr"
ERROR_MIME = "application/vnd.code.notebook.error"
TEXT_MIME = "text/plain"


class CellKind(str, Enum):
    """Kind of an editor cell."""

    EXECUTABLE = "executable"
    MARKUP = "markup"


@dataclass
class OutputItem:
    """One typed payload of an output presentation.

    unnamed_stream: set on stdout items created from a stream record that
    had no ``name``; decoding then leaves ``name`` out.
    original_base64: exact base64 text of an image payload, kept so the
    document value is restored unchanged.
    """

    mime: str
    data: bytes
    unnamed_stream: bool = False
    original_base64: Optional[str] = None

    @classmethod
    def text(cls, value: str, mime: str = TEXT_MIME) -> "OutputItem":
        return cls(mime=mime, data=value.encode("utf-8"))

    @classmethod
    def stdout(cls, value: str) -> "OutputItem":
        return cls.text(value, STDOUT_MIME)

    @classmethod
    def stderr(cls, value: str) -> "OutputItem":
        return cls.text(value, STDERR_MIME)

    @classmethod
    def error(cls, payload: Dict[str, Any]) -> "OutputItem":
        return cls.text(json.dumps(payload, ensure_ascii=False), ERROR_MIME)

    def as_text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


@dataclass
class OutputPresentation:
    """Editor-side rendering of one output record.

    metadata is None when the record carried no metadata at all.
    output_type: the record's ``output_type``; None for presentations made
    on the editor side, whose kind is then detected from the items.
    has_execution_count: the record had an ``execution_count`` key, even a
    null one.
    plain_text: the record kept its text under ``text`` rather than in a
    ``data`` mime bundle.
    record_fields: record keys the items cannot rebuild, restored verbatim.
    """

    items: List[OutputItem] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    execution_count: Optional[int] = None
    output_type: Optional[str] = None
    has_execution_count: bool = False
    plain_text: bool = False
    record_fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Cell:
    """A single editor cell.

    metadata: flat map holding the block ``id``, the pocket under its
    reserved key and every block metadata entry.
    """

    kind: CellKind
    value: str
    language_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    outputs: List[OutputPresentation] = field(default_factory=list)

    @property
    def block_id(self) -> Optional[str]:
        bid = self.metadata.get("id") if isinstance(self.metadata, dict) else None
        return bid if isinstance(bid, str) else None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view; output bytes are shown as text (images as base64)."""
        return {
            "kind": self.kind.value,
            "value": self.value,
            "languageId": self.language_id,
            "metadata": self.metadata,
            "outputs": [
                {
                    "items": [
                        {
                            "mime": item.mime,
                            "data": (
                                item.original_base64
                                if item.original_base64 is not None
                                else item.as_text()
                            ),
                        }
                        for item in out.items
                    ],
                    **({"outputType": out.output_type} if out.output_type else {}),
                    **({"metadata": out.metadata} if out.metadata is not None else {}),
                    **(
                        {"executionCount": out.execution_count}
                        if out.execution_count is not None
                        else {}
                    ),
                }
                for out in self.outputs
            ],
        }
