"""Derive canonical annotation ids and classify id strings by geometry."""

from __future__ import annotations

import logging
import re
from typing import NamedTuple

from .errors import ValidationError
from .model import Annotation, GeometryType, round_half_up, user_of

_LOGGER = logging.getLogger(__name__)

_INT = r"-?\d+"
_TRIPLE = rf"{_INT}_{_INT}_{_INT}"
_SEXTUPLE = rf"{_TRIPLE}_{_TRIPLE}"

_ID_PATTERNS: tuple[tuple[GeometryType, re.Pattern[str]], ...] = (
    (GeometryType.LINE, re.compile(rf"^{_TRIPLE}-{_TRIPLE}-Line$")),
    (GeometryType.LINE, re.compile(rf"^Ln{_SEXTUPLE}")),
    (GeometryType.SPHERE, re.compile(rf"^{_TRIPLE}-{_TRIPLE}-Sphere$")),
    (GeometryType.SPHERE, re.compile(rf"^Sp{_SEXTUPLE}")),
    (GeometryType.POINT, re.compile(rf"^{_TRIPLE}(?:\[|$)")),
    (GeometryType.POINT, re.compile(rf"^Pt{_TRIPLE}")),
)
_USER_ID_PATTERN = re.compile(r"(.*)\[user:(.*)\]")
_POSITION_PATTERN = re.compile(rf"({_INT})_({_INT})_({_INT})")

_KEY_PREFIX = {
    GeometryType.POINT: "Pt",
    GeometryType.LINE: "Ln",
    GeometryType.SPHERE: "Sp",
}
_LEGACY_SUFFIX = {
    GeometryType.LINE: "Line",
    GeometryType.SPHERE: "Sphere",
}


class ParsedId(NamedTuple):
    key: str
    user: str


def type_of(annotation_id: str | None) -> GeometryType | None:
    """Return the geometry encoded in *annotation_id*, or ``None`` if unrecognised."""
    if not annotation_id:
        return None
    for geometry, pattern in _ID_PATTERNS:
        if pattern.match(annotation_id):
            return geometry
    _LOGGER.debug("Invalid annotation id: %s", annotation_id)
    return None


def require_type(annotation_id: str | None) -> GeometryType:
    geometry = type_of(annotation_id)
    if geometry is None:
        raise ValidationError(f"invalid annotation id: {annotation_id!r}")
    return geometry


def is_valid_id(annotation_id: str | None) -> bool:
    return type_of(annotation_id) is not None


def _int_coords(annotation: Annotation) -> list[int]:
    return [round_half_up(value) for value in annotation.positions]


def derive_key(annotation: Annotation, key: str | None = None) -> str:
    """Return the storage key; a server-assigned key always wins."""
    explicit = key or annotation.key
    if explicit:
        return explicit
    coords = "_".join(str(value) for value in _int_coords(annotation))
    return f"{_KEY_PREFIX[annotation.type]}{coords}"


def derive_id(annotation: Annotation, key: str | None = None) -> str:
    """Compose ``key[user:name]`` so equal coordinates by two users never collide."""
    return f"{derive_key(annotation, key)}[user:{user_of(annotation) or ''}]"


def coordinate_id(annotation: Annotation) -> str:
    """Purely geometric id used by the flat v1 format (``x_y_z``)."""
    coords = _int_coords(annotation)
    first = "_".join(str(value) for value in coords[:3])
    if annotation.type is GeometryType.POINT:
        return first
    second = "_".join(str(value) for value in coords[3:])
    return f"{first}-{second}-{_LEGACY_SUFFIX[annotation.type]}"


def parse_id(annotation_id: str) -> ParsedId | None:
    matched = _USER_ID_PATTERN.match(annotation_id)
    if matched is None:
        return None
    return ParsedId(key=matched.group(1), user=matched.group(2))


def key_of(annotation_id: str) -> str:
    parsed = parse_id(annotation_id)
    return parsed.key if parsed else annotation_id


def position_from_key(key: str | None) -> tuple[int, int, int] | None:
    """Recover ``(x, y, z)`` from a bare ``x_y_z`` key."""
    if not key:
        return None
    parts = key.split("_")
    if len(parts) != 3:
        return None
    try:
        x, y, z = (int(part) for part in parts)
    except ValueError:
        return None
    return (x, y, z)


def position_from_id(annotation_id: str) -> tuple[int, int, int] | None:
    """Return the first integer triple embedded in an id or key."""
    matched = _POSITION_PATTERN.search(annotation_id)
    if matched is None:
        return None
    x, y, z = (int(group) for group in matched.groups())
    return (x, y, z)


__all__ = [
    "ParsedId",
    "coordinate_id",
    "derive_id",
    "derive_key",
    "is_valid_id",
    "key_of",
    "parse_id",
    "position_from_id",
    "position_from_key",
    "require_type",
    "type_of",
]
