"""Blocks whose cell value is rendered from block metadata.

Input widgets, charts and big numbers keep their state in ``metadata``; the
cell shows a rendering of it. An unchanged cell leaves the block exactly as
it was. An edited cell is folded back into the metadata and the block
content is cleared.
"""

from __future__ import annotations

import copy
import datetime
import json
import logging
import re
from abc import abstractmethod
from typing import Any, Dict, List, Mapping

from .model import Cell, CellKind
from .transforms import ContentTransform

logger = logging.getLogger(__name__)

VALUE_KEY = "deepnote_variable_value"
# big-number metadata key holding cell text that is not a valid config
RAW_CONTENT_KEY = "__deepnote_raw_content"

BIG_NUMBER_FIELDS = (
    "deepnote_big_number_title",
    "deepnote_big_number_value",
    "deepnote_big_number_format",
    "deepnote_big_number_comparison_type",
    "deepnote_big_number_comparison_title",
    "deepnote_big_number_comparison_value",
    "deepnote_big_number_comparison_format",
    "deepnote_big_number_comparison_enabled",
)

_QUOTES_RE = re.compile(r"^[\"']|[\"']$")


def _metadata(block: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = block.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


class MetadataTransform(ContentTransform):
    stashes_content = True

    def __init__(self, block_type: str, language_id: str = "python"):
        self.block_type = block_type
        self.language_id = language_id

    def supported_types(self) -> List[str]:
        return [self.block_type]

    @abstractmethod
    def render(self, metadata: Mapping[str, Any]) -> str:
        """The cell value for this block metadata."""

    def update(self, metadata: Dict[str, Any], value: str) -> None:
        """Fold an edited cell value into ``metadata``; read-only by default."""

    def forward(self, block: Mapping[str, Any]) -> Cell:
        return Cell(
            kind=CellKind.EXECUTABLE,
            value=self.render(_metadata(block)),
            language_id=self.language_id,
        )

    def inverse(self, cell: Cell) -> str:
        # edited widgets keep their state in metadata only
        return ""

    def apply(self, block: Dict[str, Any], cell: Cell) -> None:
        current = _metadata(block)
        value = cell.value or ""
        if value == self.render(current):
            return
        updated = copy.deepcopy(dict(current))
        self.update(updated, value)
        if updated == current:
            logger.debug("Ignoring edit of read-only %s block", self.block_type)
            return
        block["metadata"] = updated
        block["content"] = self.inverse(cell)


def _date_text(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat().split("T")[0]
    return str(value)


def _number_text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class TextInputTransform(MetadataTransform):
    """input-text and input-textarea: the cell is the raw text value."""

    def __init__(self, block_type: str = "input-text"):
        super().__init__(block_type, "plaintext")

    def render(self, metadata):
        value = metadata.get(VALUE_KEY)
        return value if isinstance(value, str) else ""

    def update(self, metadata, value):
        metadata[VALUE_KEY] = value


class SelectInputTransform(MetadataTransform):
    def __init__(self):
        super().__init__("input-select")

    def render(self, metadata):
        value = metadata.get(VALUE_KEY)
        if isinstance(value, list):
            return "[" + ", ".join(f'"{v}"' for v in value) + "]"
        if isinstance(value, str):
            return f'"{value}"'
        return ""


class SliderInputTransform(MetadataTransform):
    def __init__(self):
        super().__init__("input-slider")

    def render(self, metadata):
        return _number_text(metadata.get(VALUE_KEY))

    def update(self, metadata, value):
        try:
            number = float(value.strip())
        except ValueError:
            existing = metadata.get(VALUE_KEY)
            number = existing if _number_text(existing) else 0
        if isinstance(number, float) and number.is_integer():
            number = int(number)
        metadata[VALUE_KEY] = number


class CheckboxInputTransform(MetadataTransform):
    def __init__(self):
        super().__init__("input-checkbox")

    def render(self, metadata):
        return "True" if metadata.get(VALUE_KEY) else "False"


class DateInputTransform(MetadataTransform):
    def __init__(self):
        super().__init__("input-date")

    def render(self, metadata):
        return f'"{_date_text(metadata.get(VALUE_KEY))}"'


class DateRangeInputTransform(MetadataTransform):
    def __init__(self):
        super().__init__("input-date-range")

    def render(self, metadata):
        value = metadata.get(VALUE_KEY)
        if not (isinstance(value, list) and len(value) == 2):
            value = metadata.get("deepnote_variable_default_value")
            if not (isinstance(value, list) and len(value) == 2):
                return ""
        start, end = _date_text(value[0]), _date_text(value[1])
        return f'("{start}", "{end}")' if start or end else ""


class FileInputTransform(MetadataTransform):
    def __init__(self):
        super().__init__("input-file")

    def render(self, metadata):
        value = metadata.get(VALUE_KEY)
        return f'"{value}"' if isinstance(value, str) and value else ""

    def update(self, metadata, value):
        metadata[VALUE_KEY] = _QUOTES_RE.sub("", value.strip())


class ButtonTransform(MetadataTransform):
    def __init__(self):
        super().__init__("button")

    def render(self, metadata):
        return ""


class VisualizationTransform(MetadataTransform):
    """Chart blocks shown as an editable JSON config: variable, spec, filters."""

    def __init__(self):
        super().__init__("visualization")

    def render(self, metadata):
        chart_filter = metadata.get("deepnote_chart_filter")
        filters = chart_filter.get("advancedFilters") if isinstance(chart_filter, Mapping) else None
        return _pretty(
            {
                "variable": metadata.get("deepnote_variable_name") or "df",
                "spec": metadata.get("deepnote_visualization_spec") or {},
                "filters": filters or [],
            }
        )

    def update(self, metadata, value):
        try:
            config = json.loads(value or "{}")
        except ValueError as e:
            logger.warning("Invalid visualization config, keeping metadata: %s", e)
            return
        if not isinstance(config, dict):
            logger.warning("Visualization config must be a JSON object, keeping metadata")
            return
        if config.get("variable"):
            metadata["deepnote_variable_name"] = config["variable"]
        if config.get("spec"):
            metadata["deepnote_visualization_spec"] = config["spec"]
        if config.get("filters"):
            chart_filter = metadata.get("deepnote_chart_filter")
            chart_filter = dict(chart_filter) if isinstance(chart_filter, Mapping) else {}
            chart_filter["advancedFilters"] = config["filters"]
            metadata["deepnote_chart_filter"] = chart_filter


def _big_number_config(data: Any) -> Dict[str, Any] | None:
    if not isinstance(data, Mapping):
        return None
    config = {}
    for key in BIG_NUMBER_FIELDS:
        value = data.get(key)
        expected = bool if key.endswith("_enabled") else str
        if value is not None and not isinstance(value, expected):
            return None
        config[key] = value
    return config


class BigNumberTransform(MetadataTransform):
    """Big-number blocks shown as their JSON config."""

    def __init__(self):
        super().__init__("big-number", "json")

    def render(self, metadata):
        raw = metadata.get(RAW_CONTENT_KEY)
        if isinstance(raw, str):
            return raw
        config = _big_number_config(metadata)
        if config is None:
            logger.debug("Invalid big-number metadata, showing defaults")
            config = {key: None for key in BIG_NUMBER_FIELDS}
        return _pretty(config)

    def update(self, metadata, value):
        try:
            config = _big_number_config(json.loads(value))
        except ValueError:
            config = None
        if config is None:
            metadata[RAW_CONTENT_KEY] = value
            return
        metadata.pop(RAW_CONTENT_KEY, None)
        metadata.update(config)


def widget_transforms() -> List[MetadataTransform]:
    return [
        TextInputTransform("input-text"),
        TextInputTransform("input-textarea"),
        SelectInputTransform(),
        SliderInputTransform(),
        CheckboxInputTransform(),
        DateInputTransform(),
        DateRangeInputTransform(),
        FileInputTransform(),
        ButtonTransform(),
        VisualizationTransform(),
        BigNumberTransform(),
    ]
