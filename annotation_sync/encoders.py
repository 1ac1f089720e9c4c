"""Per-backend conversion between :class:`Annotation` and raw JSON entries.

Two wire families exist and are deliberately kept apart:

* family ``A`` (``v1``/top-level API): a flat ``{Kind, description, title,
  user, Prop}`` map for points only, keyed by ``x_y_z``;
* family ``B`` (``v2``/``v3``): an envelope tagged with ``kind`` and a flat
  ``pos`` array, supporting points, line segments and spheres.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, TypeVar

from .const import FAMILY_B_APIS, KIND_ATLAS, KIND_NORMAL, KIND_NOTE
from .errors import DecodeError, ValidationError
from .identity import coordinate_id, derive_id, position_from_key, type_of
from .model import (
    Annotation,
    GeometryType,
    comment_of,
    is_checked,
    refresh,
    round_half_up,
    title_of,
    user_of,
)

_LOGGER = logging.getLogger(__name__)

FAMILY_A = "A"
FAMILY_B = "B"

_DESCRIPTION_SENTINEL = re.compile(r"^\$\{(.*):JSON\}$", re.DOTALL)
# Metadata that travels as top-level entry fields rather than inside Prop/prop
_METADATA_PROP_KEYS = frozenset({"title", "comment", "user", "checked"})

T = TypeVar("T")


def parse_description(description: str) -> dict[str, Any] | None:
    """Return the object embedded as ``${<json>:JSON}``, or ``None`` for plain text."""
    matched = _DESCRIPTION_SENTINEL.match(description)
    if matched is None:
        return None
    try:
        parsed = json.loads(matched.group(1))
    except json.JSONDecodeError as err:
        raise ValidationError(f"invalid structured description: {err}") from err
    if not isinstance(parsed, dict):
        raise ValidationError("structured description must be a JSON object")
    return parsed


# ----------------------------------------------------------------------
# entry verification helpers


def _require(entry: Mapping[str, Any], name: str, verifier: Callable[[Any], T]) -> T:
    if name not in entry:
        raise DecodeError(f"missing property {name!r}")
    try:
        return verifier(entry[name])
    except DecodeError as err:
        raise DecodeError(f"error parsing {name!r} property: {err}") from err


def _verify_string(value: Any) -> str:
    if not isinstance(value, str):
        raise DecodeError(f"expected string, received {value!r}")
    return value


def _verify_object(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise DecodeError(f"expected JSON object, received {value!r}")
    return dict(value)


def _verify_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise DecodeError(f"expected boolean, received {value!r}")
    return value


def _int_vec(length: int) -> Callable[[Any], tuple[int, ...]]:
    def verifier(value: Any) -> tuple[int, ...]:
        if not isinstance(value, list | tuple) or len(value) != length:
            raise DecodeError(f"expected array of length {length}, received {value!r}")
        out: list[int] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, int | float) or int(item) != item:
                raise DecodeError(f"expected integer, received {item!r}")
            out.append(int(item))
        return tuple(out)

    return verifier


def _int_positions(annotation: Annotation) -> list[int]:
    return [round_half_up(value) for value in annotation.positions]


def _strip_metadata(prop: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in prop.items() if key not in _METADATA_PROP_KEYS}


# ----------------------------------------------------------------------
# encoders


class Encoder:
    """Strategy converting one geometry to and from one wire format."""

    family: ClassVar[str]
    geometry: ClassVar[GeometryType]
    wire_tag: ClassVar[str | None] = None
    default_kind: ClassVar[str | None] = None

    def __init__(self, sending_to_server: bool = True) -> None:
        self.sending_to_server = sending_to_server

    def uploadable(self, annotation: Annotation | str | None) -> bool:
        """Return whether the annotation should reach the backend at all."""
        return self.sending_to_server

    def derive_id(self, annotation: Annotation, key: str | None = None) -> str:
        raise NotImplementedError

    def encode(self, annotation: Annotation) -> dict[str, Any] | None:
        raise NotImplementedError

    def _decode(self, key: str, entry: Mapping[str, Any]) -> Annotation:
        raise NotImplementedError

    def decode(self, key: str, entry: Any) -> Annotation | None:
        """Decode *entry*; schema mismatches are logged and yield ``None``."""
        if not isinstance(entry, Mapping):
            _LOGGER.debug("Cannot decode %s: entry is not an object", key)
            return None
        try:
            return self._decode(key, entry)
        except (DecodeError, ValidationError, ValueError) as err:
            _LOGGER.debug("Cannot decode %s as %s: %s", key, self.geometry.value, err)
            return None


class V1PointEncoder(Encoder):
    """Flat ``{Kind, description, title, user, Prop}`` points keyed by position."""

    family = FAMILY_A
    geometry = GeometryType.POINT

    def derive_id(self, annotation: Annotation, key: str | None = None) -> str:
        return coordinate_id(annotation)

    def encode(self, annotation: Annotation) -> dict[str, Any] | None:
        obj: dict[str, Any] = {"Kind": annotation.kind}
        comment = comment_of(annotation)
        if comment is not None:
            obj["description"] = comment
        elif annotation.kind == KIND_ATLAS:
            obj["description"] = ""
        title = title_of(annotation)
        if title is not None:
            obj["title"] = title
        obj["user"] = user_of(annotation)
        if annotation.prop:
            obj["Prop"] = _strip_metadata(annotation.prop)
        return obj

    def _decode(self, key: str, entry: Mapping[str, Any]) -> Annotation:
        kind = _require(entry, "Kind", _verify_string)
        position = position_from_key(key)
        if position is None:
            pos_key = "location" if "location" in entry else "Pos"
            x, y, z = _require(entry, pos_key, _int_vec(3))
            position = (x, y, z)

        prop: dict[str, Any] = {}
        if "Prop" in entry:
            prop = _require(entry, "Prop", _verify_object)
        title = _require(entry, "title", _verify_string) if "title" in entry else ""
        user = _require(entry, "user", _verify_string) if "user" in entry else ""
        description = _require(entry, "description", _verify_string) if "description" in entry else ""

        if title and description.startswith(f"{title}: "):
            # older writers stored the rendered "title: comment" text
            description = description[len(title) + 2 :]
        if description:
            prop["comment"] = description
        if title:
            prop["title"] = title
        if user:
            prop["user"] = user

        related: tuple[tuple[int, ...], ...] = ()
        if kind == KIND_NOTE and prop.get("body ID"):
            try:
                related = ((int(prop["body ID"]),),)
            except (TypeError, ValueError):
                _LOGGER.debug("Ignoring non-numeric body ID on %s", key)

        annotation = Annotation.make_point(position, kind=kind, prop=prop, related_segments=related)
        annotation = refresh(annotation)
        return replace(annotation, id=coordinate_id(annotation))


class _V2Encoder(Encoder):
    """Shared envelope handling for the ``v2``/``v3`` backends."""

    family = FAMILY_B

    def derive_id(self, annotation: Annotation, key: str | None = None) -> str:
        return derive_id(annotation, key)

    def encode(self, annotation: Annotation) -> dict[str, Any] | None:
        user = user_of(annotation)
        if not user:
            return None
        obj: dict[str, Any] = {"tags": []}
        comment = comment_of(annotation)
        if comment is not None:
            obj["description"] = comment
        obj["user"] = user
        if "verified" in annotation.ext or "checked" in annotation.prop:
            obj["verified"] = is_checked(annotation)
        title = title_of(annotation)
        if title is not None:
            obj["title"] = title
        obj["prop"] = _strip_metadata(annotation.prop)
        obj["kind"] = self.wire_tag
        obj["pos"] = _int_positions(annotation)
        return obj

    def _decode(self, key: str, entry: Mapping[str, Any]) -> Annotation:
        tag = _require(entry, "kind", _verify_string)
        if tag != self.wire_tag:
            raise DecodeError(f"invalid kind {tag!r} for {self.geometry.value} annotation data")
        pos = _require(entry, "pos", _int_vec(self.geometry.coordinate_count))

        prop: dict[str, Any] = {}
        ext: dict[str, Any] = {}
        if "prop" in entry:
            prop = _require(entry, "prop", _verify_object)
        if entry.get("description"):
            description = _require(entry, "description", _verify_string)
            structured = parse_description(description)
            if structured is not None:
                prop.update(structured)
            else:
                ext["description"] = description
        if entry.get("title"):
            ext["title"] = _require(entry, "title", _verify_string)
        if entry.get("user"):
            ext["user"] = _require(entry, "user", _verify_string)
        if "verified" in entry:
            ext["verified"] = _require(entry, "verified", _verify_bool)

        if self.geometry is GeometryType.POINT:
            annotation = Annotation.make_point(pos, key=key, kind=self.default_kind, prop=prop, ext=ext)
        else:
            annotation = Annotation(
                type=self.geometry,
                point_a=(pos[0], pos[1], pos[2]),
                point_b=(pos[3], pos[4], pos[5]),
                key=key,
                kind=self.default_kind,
                prop=prop,
                ext=ext,
            )
        annotation = refresh(annotation)
        return replace(annotation, id=self.derive_id(annotation))


class V2PointEncoder(_V2Encoder):
    geometry = GeometryType.POINT
    wire_tag = "point"
    default_kind = KIND_NORMAL


class V2LineEncoder(_V2Encoder):
    geometry = GeometryType.LINE
    wire_tag = "lineseg"


class V2SphereEncoder(_V2Encoder):
    geometry = GeometryType.SPHERE
    wire_tag = "sphere"


class V2AtlasEncoder(V2PointEncoder):
    """Atlas landmarks are only persisted once they carry a title."""

    default_kind = KIND_ATLAS

    def uploadable(self, annotation: Annotation | str | None) -> bool:
        if not super().uploadable(annotation):
            return False
        if not isinstance(annotation, Annotation):
            return False
        title = title_of(annotation)
        return isinstance(title, str) and len(title) > 0


# ----------------------------------------------------------------------
# registry


@dataclass(slots=True)
class EncoderSet:
    """Encoders available for one (api, kind) pair, keyed by geometry."""

    family: str
    encoders: dict[GeometryType, Encoder] = field(default_factory=dict)

    def __contains__(self, geometry: object) -> bool:
        return geometry in self.encoders

    def __iter__(self) -> Iterator[Encoder]:
        return iter(self.encoders.values())

    def for_type(self, geometry: GeometryType | None) -> Encoder | None:
        if geometry is None:
            return None
        return self.encoders.get(geometry)

    def for_id(self, annotation_id: str) -> Encoder | None:
        return self.for_type(type_of(annotation_id))

    def for_annotation(self, annotation: Annotation | str) -> Encoder | None:
        if isinstance(annotation, str):
            return self.for_id(annotation)
        return self.for_type(annotation.type)

    def for_wire_tag(self, tag: str | None) -> Encoder | None:
        for encoder in self.encoders.values():
            if encoder.wire_tag is not None and encoder.wire_tag == tag:
                return encoder
        return None

    def decode(self, key: str, entry: Any) -> Annotation | None:
        """Classify *key* once, then dispatch to the matching encoder."""
        encoder = self.for_id(key)
        if encoder is None and self.family == FAMILY_A:
            # flat entries may carry their position in Pos/location instead of the key
            encoder = self.for_type(GeometryType.POINT)
        elif encoder is None and isinstance(entry, Mapping):
            encoder = self.for_wire_tag(entry.get("kind"))
        if encoder is None:
            _LOGGER.debug("No encoder for annotation key %s", key)
            return None
        return encoder.decode(key, entry)


def family_for_api(api: str | None) -> str:
    return FAMILY_B if api in FAMILY_B_APIS else FAMILY_A


def make_encoders(api: str | None, kind: str | None, *, sending_to_server: bool = True) -> EncoderSet:
    """Build the encoder table for a backend API version and annotation kind."""
    if family_for_api(api) == FAMILY_B:
        if kind == KIND_ATLAS:
            return EncoderSet(FAMILY_B, {GeometryType.POINT: V2AtlasEncoder(sending_to_server)})
        return EncoderSet(
            FAMILY_B,
            {
                GeometryType.POINT: V2PointEncoder(sending_to_server),
                GeometryType.LINE: V2LineEncoder(sending_to_server),
                GeometryType.SPHERE: V2SphereEncoder(sending_to_server),
            },
        )
    return EncoderSet(FAMILY_A, {GeometryType.POINT: V1PointEncoder(sending_to_server)})


__all__ = [
    "FAMILY_A",
    "FAMILY_B",
    "Encoder",
    "EncoderSet",
    "V1PointEncoder",
    "V2AtlasEncoder",
    "V2LineEncoder",
    "V2PointEncoder",
    "V2SphereEncoder",
    "family_for_api",
    "make_encoders",
    "parse_description",
]
