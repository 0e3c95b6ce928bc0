"""Side-channel store for block fields the editor model cannot represent.

The block ``id`` stays at the top level of cell metadata since collaborators
address cells by it; outputs travel through the editor's own output list.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .ids import generate_block_id, generate_sorting_key

POCKET_KEY = "__pocket"
POCKET_FIELDS: Tuple[str, ...] = ("blockGroup", "executionCount", "sortingKey", "type")
DEFAULT_BLOCK_TYPE = "code"

_EXTRAS_KEY = "extras"
_EXPLICIT_EMPTY_KEY = "explicitEmpty"
_SHADOWED_KEY = "shadowed"

# cell metadata keys the converter owns; block metadata entries with these
# names are kept in the pocket instead
RESERVED_METADATA_KEYS: Tuple[str, ...] = ("id", POCKET_KEY) + POCKET_FIELDS


@dataclass
class Pocket:
    """Document-only block fields.

    fields: the pocket-eligible block fields that were present, verbatim.
    extras: unknown top-level block fields, restored as-is.
    explicit_empty: block collections ("metadata", "outputs") that were
    present but empty.
    shadowed: block metadata entries whose keys are reserved in cell metadata.
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)
    explicit_empty: List[str] = field(default_factory=list)
    shadowed: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> Optional[str]:
        return self.fields.get("type")

    @property
    def sorting_key(self) -> Optional[str]:
        return self.fields.get("sortingKey")

    @property
    def execution_count(self) -> Optional[int]:
        return self.fields.get("executionCount")

    @property
    def block_group(self) -> Optional[str]:
        return self.fields.get("blockGroup")

    def is_empty(self) -> bool:
        return not (self.fields or self.extras or self.explicit_empty or self.shadowed)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {k: self.fields[k] for k in POCKET_FIELDS if k in self.fields}
        if self.extras:
            out[_EXTRAS_KEY] = copy.deepcopy(self.extras)
        if self.explicit_empty:
            out[_EXPLICIT_EMPTY_KEY] = list(self.explicit_empty)
        if self.shadowed:
            out[_SHADOWED_KEY] = copy.deepcopy(self.shadowed)
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Pocket"]:
        if not isinstance(data, Mapping):
            return None
        extras = data.get(_EXTRAS_KEY)
        explicit = data.get(_EXPLICIT_EMPTY_KEY)
        shadowed = data.get(_SHADOWED_KEY)
        return cls(
            fields={k: data[k] for k in POCKET_FIELDS if k in data},
            extras=copy.deepcopy(dict(extras)) if isinstance(extras, Mapping) else {},
            explicit_empty=[str(x) for x in explicit] if isinstance(explicit, list) else [],
            shadowed=copy.deepcopy(dict(shadowed)) if isinstance(shadowed, Mapping) else {},
        )


def split_pocket(raw: Any) -> Tuple[Dict[str, Any], Optional[Pocket]]:
    """Move pocket-eligible keys out of a flat metadata map.

    Returns (residual, pocket); pocket is None when none of the eligible
    keys were present. Non-mapping input is treated as empty.
    """
    if not isinstance(raw, Mapping):
        return {}, None
    residual = dict(raw)
    found: Dict[str, Any] = {}
    for key in POCKET_FIELDS:
        if key in residual:
            found[key] = residual.pop(key)
    if not found:
        return residual, None
    return residual, Pocket(fields=found)


def add_pocket(metadata: Any) -> Dict[str, Any]:
    """Return ``metadata`` with loose pocket fields gathered under POCKET_KEY."""
    residual, pocket = split_pocket(metadata)
    if pocket is None:
        return residual
    residual[POCKET_KEY] = pocket.to_dict()
    return residual


def extract_pocket(metadata: Any) -> Optional[Pocket]:
    """Read-only accessor for the pocket stored in cell metadata."""
    if not isinstance(metadata, Mapping):
        return None
    return Pocket.from_dict(metadata.get(POCKET_KEY))


def recover_block(metadata: Any, index: int) -> Dict[str, Any]:
    """Rebuild the document-side fields of a block from cell metadata.

    ``outputs`` are not produced here and ``content`` only when the pocket
    stashed it; the rest comes from the content transform and the output
    codec.
    """
    md: Mapping[str, Any] = metadata if isinstance(metadata, Mapping) else {}

    stored = extract_pocket(md)
    without_reserved = {k: v for k, v in md.items() if k not in (POCKET_KEY, "id")}
    residual, loose = split_pocket(without_reserved)
    pocket = stored or Pocket()
    if loose is not None:
        # the reserved pocket wins over loose top-level keys
        pocket.fields = {**loose.fields, **pocket.fields}

    block: Dict[str, Any] = {}
    if "blockGroup" in pocket.fields:
        block["blockGroup"] = pocket.fields["blockGroup"]
    block["id"] = md["id"] if "id" in md else generate_block_id()
    if residual or pocket.shadowed or "metadata" in pocket.explicit_empty:
        block["metadata"] = {**copy.deepcopy(residual), **copy.deepcopy(pocket.shadowed)}
    block["sortingKey"] = (
        pocket.fields["sortingKey"]
        if "sortingKey" in pocket.fields
        else generate_sorting_key(index)
    )
    block["type"] = pocket.fields["type"] if "type" in pocket.fields else DEFAULT_BLOCK_TYPE
    if "executionCount" in pocket.fields:
        block["executionCount"] = pocket.fields["executionCount"]
    for key, value in pocket.extras.items():
        block.setdefault(key, copy.deepcopy(value))
    return block
