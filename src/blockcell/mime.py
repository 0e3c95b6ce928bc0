from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, List

from .model import OutputItem

logger = logging.getLogger(__name__)


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else _pretty(value)


class MimeProcessor:
    """Converts one ``data`` value of an output record to an item and back."""

    def can_handle(self, mime: str) -> bool:
        return True

    def to_item(self, value: Any, mime: str) -> OutputItem:
        return OutputItem.text(_as_text(value), mime)

    def to_value(self, item: OutputItem) -> Any:
        return item.as_text()


class TextMimeProcessor(MimeProcessor):
    def can_handle(self, mime: str) -> bool:
        return mime.startswith("text/") or mime == "image/svg+xml"


class ImageMimeProcessor(MimeProcessor):
    """Binary images stored as base64 text on the document side."""

    def can_handle(self, mime: str) -> bool:
        return mime.startswith("image/")

    def to_item(self, value: Any, mime: str) -> OutputItem:
        if isinstance(value, (bytes, bytearray)):
            return OutputItem(mime=mime, data=bytes(value))
        if not isinstance(value, str):
            return OutputItem.text(_pretty(value), mime)
        try:
            raw = base64.b64decode(value)
        except (binascii.Error, ValueError):
            logger.warning("Invalid base64 payload for %s, keeping it as text", mime)
            raw = value.encode("utf-8")
        return OutputItem(mime=mime, data=raw, original_base64=value)

    def to_value(self, item: OutputItem) -> Any:
        if item.original_base64 is not None:
            return item.original_base64
        return base64.b64encode(item.data).decode("ascii")


class JsonMimeProcessor(MimeProcessor):
    """application/* payloads: parsed back to JSON when possible."""

    def can_handle(self, mime: str) -> bool:
        return mime.startswith("application/")

    def to_value(self, item: OutputItem) -> Any:
        text = item.as_text()
        try:
            return json.loads(text)
        except ValueError:
            return text


class MimeProcessorRegistry:
    def __init__(self, processors: List[MimeProcessor] | None = None):
        # the generic processor goes last, it accepts everything
        self._processors: List[MimeProcessor] = processors or [
            TextMimeProcessor(),
            ImageMimeProcessor(),
            JsonMimeProcessor(),
            MimeProcessor(),
        ]

    def processor_for(self, mime: str) -> MimeProcessor:
        for proc in self._processors:
            if proc.can_handle(mime):
                return proc
        return MimeProcessor()

    def to_item(self, value: Any, mime: str) -> OutputItem:
        return self.processor_for(mime).to_item(value, mime)

    def to_value(self, item: OutputItem) -> Any:
        return self.processor_for(item.mime).to_value(item)
