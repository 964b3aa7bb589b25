from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .base import ContentType


class ContentTypeRegistry:
    def __init__(self, content_types: Iterable[ContentType] = ()) -> None:
        self._registry: Dict[str, ContentType] = {}
        for content_type in content_types:
            self.register(content_type)

    def register(self, content_type: ContentType) -> None:
        """Add a content type. Registering the same id twice is an error."""
        if content_type.type_id in self._registry:
            raise ValueError(f"Content type already registered: {content_type.type_id}")
        self._registry[content_type.type_id] = content_type

    def get(self, content_type_id: str) -> Optional[ContentType]:
        return self._registry.get(content_type_id)

    def __contains__(self, content_type_id: object) -> bool:
        return content_type_id in self._registry

    def type_ids(self) -> List[str]:
        return sorted(self._registry)

    def policy_type_ids(self) -> List[str]:
        return sorted(k for k, v in self._registry.items() if v.is_policy)
