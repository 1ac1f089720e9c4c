"""Bulk download of every annotation of an endpoint."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from .client import AnnotationClient
from .config import SourceParameters
from .const import SOURCE_DOWNLOADED_LAST
from .encoders import EncoderSet, make_encoders
from .events import AnnotationSignals
from .model import Annotation, with_source
from .serializer import AnnotationSerializer, SerializedAnnotations
from .store import AnnotationStore, AnnotationStoreRegistry
from .utils.logging import warn_once

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AnnotationChunk:
    """Result of one bulk download."""

    annotations: list[Annotation] = field(default_factory=list)
    data: SerializedAnnotations | None = None
    skipped: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.annotations)


def _iter_entries(response: Any) -> Iterator[tuple[str, Any]]:
    """Yield ``(key, entry)`` pairs from a keyed map or a list of keyed entries."""
    if isinstance(response, Mapping):
        for key, entry in response.items():
            yield str(key), entry
    elif isinstance(response, list):
        for index, entry in enumerate(response):
            key = entry.get("key") if isinstance(entry, Mapping) else None
            yield (str(key) if key else str(index)), entry
    elif response is not None:
        _LOGGER.warning("Unexpected annotation listing of type %s", type(response).__name__)


def _provenance(index: int, last: int) -> str:
    return SOURCE_DOWNLOADED_LAST if index == last else f"downloaded:{index}/{last}"


class AnnotationChunkSource:
    """Downloads, decodes, caches and serializes all annotations of a dataset."""

    def __init__(
        self,
        parameters: SourceParameters,
        client: AnnotationClient,
        stores: AnnotationStoreRegistry,
        *,
        signals: AnnotationSignals | None = None,
    ) -> None:
        self.parameters = parameters
        self.client = client
        self.endpoints = parameters.endpoints
        self.encoders: EncoderSet = make_encoders(parameters.api, parameters.kind)
        self.stores = stores
        self.signals = signals if signals is not None else AnnotationSignals()

    @property
    def store(self) -> AnnotationStore:
        return self.stores.get(self.endpoints.all_annotations_url)

    async def download(self, *, emit_add_signals: bool = True) -> AnnotationChunk:
        store = self.store
        store.clear()
        url = self.endpoints.all_annotations_url
        response = await self.client.get_json(url, refreshable=self.parameters.auth_refreshable)
        return self.reconcile(response, emit_add_signals=emit_add_signals)

    def reconcile(self, response: Any, *, emit_add_signals: bool = True) -> AnnotationChunk:
        """Decode a listing response into the cache and a serialized chunk."""
        store = self.store
        serializer = AnnotationSerializer()
        chunk = AnnotationChunk()
        entries = list(_iter_entries(response))
        last = len(entries) - 1
        for index, (map_key, entry) in enumerate(entries):
            if not entry:
                chunk.skipped.append(map_key)
                _LOGGER.debug("Skipping empty annotation entry %s", map_key)
                continue
            key = map_key
            if isinstance(entry, Mapping):
                if entry.get("key"):
                    key = str(entry["key"])
                if "Kind" not in entry:
                    entry = {**entry, "Kind": self.parameters.kind}
            annotation = self.encoders.decode(key, entry)
            if annotation is None:
                chunk.skipped.append(key)
                warn_once(
                    _LOGGER,
                    f"decode_failed:{self.parameters.dataset}:{key}",
                    f"skipping annotation {key} that could not be decoded",
                )
                continue
            annotation = with_source(annotation, _provenance(index, last))
            store.add(annotation.id, entry)
            serializer.add(annotation)
            chunk.annotations.append(annotation)
            if emit_add_signals:
                self.signals.child_added.dispatch(annotation)
        chunk.data = serializer.serialize()
        _LOGGER.debug(
            "Reconciled %d annotations (%d skipped) for %s",
            len(chunk.annotations),
            len(chunk.skipped),
            self.parameters.dataset,
        )
        return chunk


__all__ = ["AnnotationChunk", "AnnotationChunkSource"]
