"""Single-annotation create, update, delete and metadata lookups."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .chunk import AnnotationChunkSource
from .client import AnnotationClient
from .config import SourceParameters
from .const import DEFAULT_POINT_KIND
from .encoders import Encoder, EncoderSet, make_encoders, parse_description
from .errors import ConflictError, EncodeError, OwnershipError, ValidationError
from .events import AnnotationSignals
from .identity import is_valid_id, key_of, require_type
from .model import (
    Annotation,
    GeometryType,
    refresh,
    round_half_up,
    round_position,
    with_id,
    with_key,
    with_kind,
    with_prop,
    with_timestamp,
    with_user,
)
from .schema import schema_for_kind, validate_annotation
from .store import AnnotationStore, AnnotationStoreRegistry

_LOGGER = logging.getLogger(__name__)


def _acknowledged_key(response: Any) -> str | None:
    """Extract the server-assigned key from a write acknowledgement."""
    if isinstance(response, str):
        return response or None
    if isinstance(response, Mapping):
        key = response.get("key")
        if isinstance(key, str) and key:
            return key
    return None


class AnnotationSource:
    """Keeps one endpoint's cache and backend in step for single annotations.

    Ownership and overwrite checks are local: the backend offers no
    compare-and-swap, so two sessions racing on the same id both win in turn.
    The checks only see what was cached through *stores*, so every source
    talking to the same endpoint must share one registry.
    """

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
        self.schema = parameters.schema if parameters.schema is not None else schema_for_kind(parameters.kind)

    @property
    def store(self) -> AnnotationStore:
        return self.stores.get(self.endpoints.all_annotations_url)

    def chunk_source(self) -> AnnotationChunkSource:
        """Bulk loader filling the same cache and firing the same signals."""
        return AnnotationChunkSource(self.parameters, self.client, self.stores, signals=self.signals)

    @property
    def readonly(self) -> bool:
        return self.parameters.readonly

    @property
    def user(self) -> str | None:
        return self.parameters.user

    def _check_writable(self) -> None:
        if self.parameters.readonly:
            raise OwnershipError("permission denied for changing annotations")

    def _encoder(self, annotation: Annotation) -> Encoder:
        encoder = self.encoders.for_annotation(annotation)
        if encoder is None:
            raise EncodeError(f"{annotation.type.value} annotations are not supported by this backend")
        return encoder

    # ------------------------------------------------------------------
    def encode_annotation(self, annotation: Annotation) -> dict[str, Any] | None:
        encoder = self.encoders.for_annotation(annotation)
        return encoder.encode(annotation) if encoder is not None else None

    def decode_annotation(self, key: str, entry: Any) -> Annotation | None:
        return self.encoders.decode(key, entry)

    def derive_id(self, annotation: Annotation, key: str | None = None) -> str:
        return self._encoder(annotation).derive_id(annotation, key)

    def uploadable(self, annotation: Annotation | str) -> bool:
        """Return whether changes to *annotation* (or a cached id) reach the backend."""
        encoder = self.encoders.for_annotation(annotation)
        if encoder is None:
            return False
        if isinstance(annotation, str):
            entry = self.store.get_value(annotation)
            decoded = encoder.decode(key_of(annotation), entry) if entry is not None else None
            return encoder.uploadable(decoded if decoded is not None else annotation)
        return encoder.uploadable(annotation)

    def validation_errors(self, annotation: Annotation) -> list[str]:
        return validate_annotation(annotation, self.schema)

    def prepare(self, annotation: Annotation) -> Annotation:
        """Apply the defaults every new annotation receives before upload."""
        prepared = with_timestamp(annotation)
        if self.parameters.user:
            prepared = with_user(prepared, self.parameters.user)
        if prepared.type is GeometryType.POINT:
            prepared = with_kind(prepared, self.parameters.kind or DEFAULT_POINT_KIND)
            if annotation.description:
                structured = parse_description(annotation.description)
                if structured:
                    prepared = with_prop(prepared, structured)
        return refresh(round_position(prepared))

    # ------------------------------------------------------------------
    async def _write(
        self,
        annotation: Annotation,
        *,
        overwrite: bool,
        annotation_id: str | None = None,
    ) -> tuple[Annotation, Any]:
        user = self.parameters.user
        if not user:
            raise ValidationError("cannot upload an annotation without a user")
        annotation = with_user(annotation, user)
        if annotation_id is not None and annotation.key and self.derive_id(annotation) != annotation_id:
            # a stale server key would otherwise move the annotation to a new id
            annotation = with_key(annotation, None)

        encoder = self._encoder(annotation)
        encoded = encoder.encode(annotation)
        if encoded is None:
            raise EncodeError("unable to encode the annotation")

        derived_id = encoder.derive_id(annotation)
        store = self.store
        if not overwrite and derived_id in store:
            raise ConflictError(f"annotation {derived_id} already exists", annotation_id=derived_id)

        previous = store.get_value(derived_id)
        store.update(derived_id, encoded)
        annotation = with_id(annotation, derived_id)
        if not encoder.uploadable(annotation):
            _LOGGER.debug("Keeping %s local; not uploadable", derived_id)
            return annotation, key_of(derived_id)

        position = [round_half_up(value) for value in annotation.positions[:3]]
        try:
            response = await self.client.post_json(
                self.endpoints.write_url(position),
                encoded,
                refreshable=self.parameters.auth_refreshable,
            )
        except BaseException:
            # the backend never acknowledged the entry
            if previous is None:
                store.remove(derived_id)
            else:
                store.update(derived_id, previous)
            raise
        return annotation, response

    async def add(self, annotation: Annotation) -> str:
        """Create *annotation* remotely and return its final id."""
        self._check_writable()
        prepared = self.prepare(annotation)
        written, response = await self._write(prepared, overwrite=False)
        final_id = self.derive_id(written, _acknowledged_key(response))
        if final_id != written.id:
            store = self.store
            entry = store.get_value(written.id)
            store.remove(written.id)
            if entry is not None:
                store.add(final_id, entry)
            written = with_id(with_key(written, key_of(final_id)), final_id)
        self.signals.child_added.dispatch(written)
        return final_id

    async def update(self, annotation: Annotation, *, overwrite: bool = True, id: str | None = None) -> Any:
        """Write *annotation* and return the backend acknowledgement."""
        self._check_writable()
        written, response = await self._write(
            refresh(round_position(annotation)),
            overwrite=overwrite,
            annotation_id=id,
        )
        self.signals.child_updated.dispatch(written)
        return response

    async def delete(self, annotation_id: str) -> None:
        self._check_writable()
        if not is_valid_id(annotation_id):
            _LOGGER.debug("Ignoring delete of invalid annotation id %s", annotation_id)
            return
        store = self.store
        if self.uploadable(annotation_id):
            cached = store.get_value(annotation_id)
            owner = cached.get("user") if cached else None
            if owner and owner != self.parameters.user:
                raise OwnershipError(f"unable to delete annotation owned by {owner}", owner=owner)
            await self.client.delete(
                self.endpoints.delete_url(key_of(annotation_id)),
                refreshable=self.parameters.auth_refreshable,
            )
        store.remove(annotation_id)
        self.signals.child_deleted.dispatch(annotation_id)

    def get_metadata(self, annotation_id: str) -> Annotation | None:
        """Decode the cached entry for *annotation_id*; no network access."""
        require_type(annotation_id)
        entry = self.store.get_value(annotation_id)
        if entry is None:
            return None
        return self.encoders.decode(key_of(annotation_id), entry)

    def invalidate_cache(self) -> None:
        self.store.clear()


__all__ = ["AnnotationSource"]
