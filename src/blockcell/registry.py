from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .transforms import (
    CodeTransform,
    ContentTransform,
    MarkdownTransform,
    SqlTransform,
    heading_transforms,
)
from .widgets import widget_transforms

logger = logging.getLogger(__name__)


class TypeRegistry:
    """
    Maps block type tags to content transforms.

    Build it once, before any conversion runs; lookups are case-insensitive.
    """

    def __init__(self):
        # normalized tag -> (canonical tag, transform)
        self._transforms: Dict[str, Tuple[str, ContentTransform]] = {}

    @staticmethod
    def _normalize(tag: str) -> str:
        return tag.strip().lower()

    def register(self, transform: ContentTransform) -> None:
        """
        Register a transform for every tag it declares.

        A tag registered twice keeps the most recent transform.
        """
        for tag in transform.supported_types():
            key = self._normalize(tag)
            if key in self._transforms:
                logger.debug("Overriding transform for block type %r", tag)
            self._transforms[key] = (tag, transform)

    def lookup(self, tag: Optional[str]) -> Optional[ContentTransform]:
        if not isinstance(tag, str):
            return None
        entry = self._transforms.get(self._normalize(tag))
        return entry[1] if entry else None

    def list_supported_types(self) -> List[str]:
        return sorted(canonical for canonical, _ in self._transforms.values())

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and self._normalize(tag) in self._transforms


def create_default_registry() -> TypeRegistry:
    """A fresh registry with the built-in block types."""
    registry = TypeRegistry()
    registry.register(CodeTransform())
    registry.register(MarkdownTransform())
    registry.register(SqlTransform())
    for transform in heading_transforms():
        registry.register(transform)
    for transform in widget_transforms():
        registry.register(transform)
    return registry
