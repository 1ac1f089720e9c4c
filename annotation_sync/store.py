"""In-memory cache of raw backend entries, one per endpoint URL."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from typing import Any

_LOGGER = logging.getLogger(__name__)


class AnnotationStore:
    """Maps canonical annotation ids to the entry the server last acknowledged.

    Entries are kept in their raw wire form so ownership checks and metadata
    lookups compare against exactly what the backend stored.
    """

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self._entries: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, annotation_id: object) -> bool:
        return annotation_id in self._entries

    def __repr__(self) -> str:
        return f"AnnotationStore({self.endpoint!r}, entries={len(self._entries)})"

    def add(self, annotation_id: str, entry: Mapping[str, Any]) -> None:
        if not annotation_id:
            return
        self._entries[annotation_id] = copy.deepcopy(dict(entry))

    def update(self, annotation_id: str, entry: Mapping[str, Any]) -> None:
        self.add(annotation_id, entry)

    def remove(self, annotation_id: str) -> None:
        self._entries.pop(annotation_id, None)

    def get_value(self, annotation_id: str) -> dict[str, Any] | None:
        entry = self._entries.get(annotation_id)
        return copy.deepcopy(entry) if entry is not None else None

    def clear(self) -> None:
        self._entries.clear()

    def items(self) -> Iterator[tuple[str, dict[str, Any]]]:
        for annotation_id, entry in list(self._entries.items()):
            yield annotation_id, copy.deepcopy(entry)


class AnnotationStoreRegistry:
    """Owns one :class:`AnnotationStore` per endpoint for the session lifetime."""

    def __init__(self) -> None:
        self._stores: dict[str, AnnotationStore] = {}

    def get(self, endpoint: str) -> AnnotationStore:
        store = self._stores.get(endpoint)
        if store is None:
            _LOGGER.debug("Creating annotation store for %s", endpoint)
            store = self._stores[endpoint] = AnnotationStore(endpoint)
        return store

    def evict(self, endpoint: str) -> None:
        self._stores.pop(endpoint, None)

    def clear(self) -> None:
        self._stores.clear()

    def endpoints(self) -> list[str]:
        return list(self._stores)


__all__ = ["AnnotationStore", "AnnotationStoreRegistry"]
