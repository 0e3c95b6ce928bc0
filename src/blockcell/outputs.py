"""Mapping between document output records and editor output presentations.

A record is a Jupyter-shaped dict tagged by ``output_type``. A presentation
is an ordered list of typed items. Each output kind has its own handler;
the editor-to-document direction picks the handler by inspecting item mimes.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .mime import MimeProcessorRegistry
from .model import (
    ERROR_MIME,
    STDERR_MIME,
    STDOUT_MIME,
    OutputItem,
    OutputPresentation,
)

logger = logging.getLogger(__name__)

STREAM_MIMES = (STDOUT_MIME, STDERR_MIME)
RICH_OUTPUT_TYPES = ("execute_result", "display_data")

# Jupyter error fields kept verbatim inside the error item
_ERROR_RECORD_FIELDS = ("ename", "evalue", "traceback", "text")


@dataclass
class Detection:
    kind: str  # "error" | "stream" | "rich"
    error_item: Optional[OutputItem] = None
    stream_items: List[OutputItem] = field(default_factory=list)


class OutputTypeDetector:
    def detect(self, presentation: OutputPresentation) -> Detection:
        items = presentation.items
        for item in items:
            if item.mime == ERROR_MIME:
                return Detection("error", error_item=item)
        stream_items = [item for item in items if item.mime in STREAM_MIMES]
        if stream_items:
            return Detection("stream", stream_items=stream_items)
        return Detection("rich")


class StreamOutputHandler:
    def to_items(self, record: Mapping[str, Any]) -> List[OutputItem]:
        text = record.get("text")
        if not text:
            return []
        if not isinstance(text, str):
            text = "".join(str(t) for t in text)
        name = record.get("name")
        if name == "stderr":
            return [OutputItem.stderr(text)]
        if name == "stdout":
            return [OutputItem.stdout(text)]
        item = OutputItem.stdout(text)
        item.unnamed_stream = True
        return [item]

    def to_record(self, stream_items: List[OutputItem]) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "output_type": "stream",
            "text": "".join(item.as_text() for item in stream_items),
        }
        mimes = {item.mime for item in stream_items}
        if mimes == {STDERR_MIME}:
            record["name"] = "stderr"
        elif mimes == {STDOUT_MIME} and not any(i.unnamed_stream for i in stream_items):
            record["name"] = "stdout"
        return record


class ErrorOutputHandler:
    def to_items(self, record: Mapping[str, Any]) -> List[OutputItem]:
        ename = record.get("ename")
        evalue = record.get("evalue")
        name = ename or "Error"
        message = evalue or record.get("text") or "Error"
        traceback = record.get("traceback")
        if isinstance(traceback, list) and traceback:
            stack = f"{name}: {evalue or 'Unknown error'}\n" + "\n".join(
                str(line) for line in traceback
            )
        else:
            stack = f"{name}: {message}"
        payload: Dict[str, Any] = {"name": name, "message": message, "stack": stack}
        for key in _ERROR_RECORD_FIELDS:
            if key in record:
                payload[key] = copy.deepcopy(record[key])
        return [OutputItem.error(payload)]

    def to_record(self, item: OutputItem) -> Dict[str, Any]:
        record: Dict[str, Any] = {"output_type": "error"}
        text = item.as_text()
        try:
            payload = json.loads(text)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            record.update({"ename": "Error", "evalue": text, "traceback": [text]})
            return record

        if any(key in payload for key in _ERROR_RECORD_FIELDS):
            for key in _ERROR_RECORD_FIELDS:
                if key in payload:
                    record[key] = payload[key]
            return record

        # an error raised on the editor side: only name/message/stack
        record["ename"] = payload.get("name") or "Error"
        record["evalue"] = payload.get("message") or ""
        stack = payload.get("stack")
        record["traceback"] = stack.split("\n")[1:] if isinstance(stack, str) else []
        return record


class RichOutputHandler:
    def __init__(self, mimes: MimeProcessorRegistry | None = None):
        self.mimes = mimes or MimeProcessorRegistry()

    def to_items(self, record: Mapping[str, Any]) -> List[OutputItem]:
        data = record.get("data")
        if not isinstance(data, Mapping):
            text = record.get("text")
            return [OutputItem.text(text)] if isinstance(text, str) and text else []
        return [self.mimes.to_item(value, mime) for mime, value in data.items()]

    def to_record(self, presentation: OutputPresentation) -> Dict[str, Any]:
        items = [
            item
            for item in presentation.items
            if item.mime not in STREAM_MIMES and item.mime != ERROR_MIME
        ]
        output_type = presentation.output_type
        if presentation.plain_text and output_type:
            return {
                "output_type": output_type,
                "text": "".join(item.as_text() for item in items),
            }
        if not items:
            return {"output_type": output_type or "execute_result"}
        if output_type not in RICH_OUTPUT_TYPES:
            output_type = (
                "execute_result" if presentation.execution_count is not None else "display_data"
            )
        return {
            "output_type": output_type,
            "data": {item.mime: self.mimes.to_value(item) for item in items},
        }


class OutputCodec:
    """Converts output records to presentations and back."""

    def __init__(self, mimes: MimeProcessorRegistry | None = None):
        self.detector = OutputTypeDetector()
        self.stream = StreamOutputHandler()
        self.error = ErrorOutputHandler()
        self.rich = RichOutputHandler(mimes)

    def encode(self, record: Any) -> OutputPresentation:
        if not isinstance(record, Mapping):
            record = {}
        output_type = record.get("output_type")
        plain_text = False
        if output_type == "stream":
            items = self.stream.to_items(record)
            handled: Tuple[str, ...] = ("text",)
            if record.get("name") in (None, "stdout", "stderr"):
                handled += ("name",)
        elif output_type == "error":
            items = self.error.to_items(record)
            handled = _ERROR_RECORD_FIELDS
        elif output_type in RICH_OUTPUT_TYPES and isinstance(record.get("data"), Mapping):
            items = self.rich.to_items(record)
            handled = ("data",)
        elif isinstance(record.get("text"), str) and record.get("text"):
            items = [OutputItem.text(record["text"])]
            handled = ("text",)
            plain_text = True
        else:
            if output_type not in RICH_OUTPUT_TYPES and output_type != "stream":
                logger.debug("Output of unrecognized type %r has no text to show", output_type)
            items = []
            handled = ()

        metadata = record.get("metadata")
        count = record.get("execution_count")
        count_ok = count is None or isinstance(count, int)
        kept = {
            key: copy.deepcopy(value)
            for key, value in record.items()
            if key != "output_type"
            # with no items nothing can be rebuilt, so keep everything
            and (key not in handled or not items)
            and not (key == "metadata" and isinstance(value, Mapping))
            and not (key == "execution_count" and count_ok)
        }
        return OutputPresentation(
            items=items,
            metadata=copy.deepcopy(dict(metadata)) if isinstance(metadata, Mapping) else None,
            execution_count=count if isinstance(count, int) else None,
            output_type=output_type if isinstance(output_type, str) else None,
            has_execution_count="execution_count" in record and count_ok,
            plain_text=plain_text,
            record_fields=kept,
        )

    def decode(self, presentation: OutputPresentation) -> Dict[str, Any]:
        if not presentation.items and presentation.output_type:
            record: Dict[str, Any] = {"output_type": presentation.output_type}
        else:
            detection = self.detector.detect(presentation)
            if detection.kind == "error" and detection.error_item is not None:
                record = self.error.to_record(detection.error_item)
            elif detection.kind == "stream":
                record = self.stream.to_record(detection.stream_items)
            else:
                record = self.rich.to_record(presentation)

        for key, value in presentation.record_fields.items():
            record.setdefault(key, copy.deepcopy(value))
        if presentation.metadata is not None:
            merged = dict(record.get("metadata") or {})
            merged.update(copy.deepcopy(presentation.metadata))
            record["metadata"] = merged
        if presentation.execution_count is not None or presentation.has_execution_count:
            record["execution_count"] = presentation.execution_count
        return record

    def encode_all(self, records: List[Any]) -> List[OutputPresentation]:
        return [self.encode(r) for r in records]

    def decode_all(self, presentations: List[OutputPresentation]) -> List[Dict[str, Any]]:
        return [self.decode(p) for p in presentations]
