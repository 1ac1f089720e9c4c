"""Annotation data model and pure update helpers.

Every helper returns a new :class:`Annotation`; ``description`` and
``properties`` are derived fields and are recomputed by :func:`refresh`
whenever metadata changes.
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .const import (
    BOOKMARK_FALSE_MERGE,
    BOOKMARK_FALSE_SPLIT,
    BOOKMARK_OTHER,
    KIND_ATLAS,
    KIND_NOTE,
    KIND_POSTSYN,
    KIND_PRESYN,
    RENDERING_ATTRIBUTE_CHECKED,
    RENDERING_ATTRIBUTE_DEFAULT,
    RENDERING_ATTRIBUTE_FALSE_MERGE,
    RENDERING_ATTRIBUTE_FALSE_SPLIT,
    RENDERING_ATTRIBUTE_HIDDEN,
    RENDERING_ATTRIBUTE_POSTSYN,
    RENDERING_ATTRIBUTE_PRESYN,
)

Vec3 = tuple[float, float, float]

# prop key -> ext key echoing the same field back from the server
_EXT_ECHO = {
    "title": "title",
    "comment": "description",
    "user": "user",
    "checked": "verified",
}


class GeometryType(str, Enum):
    """Geometric discriminant of an annotation."""

    POINT = "point"
    LINE = "line"
    SPHERE = "sphere"

    @property
    def coordinate_count(self) -> int:
        return 3 if self is GeometryType.POINT else 6


def _vec3(values: Sequence[float]) -> Vec3:
    if len(values) != 3:
        raise ValueError(f"expected 3 coordinates, got {len(values)}")
    return (values[0], values[1], values[2])


@dataclass(slots=True, frozen=True)
class Annotation:
    """A point, line segment or sphere plus its free-form metadata."""

    type: GeometryType
    point: Vec3 | None = None
    point_a: Vec3 | None = None
    point_b: Vec3 | None = None
    id: str = ""
    key: str | None = None
    kind: str | None = None
    description: str = ""
    properties: tuple[int, ...] = ()
    prop: dict[str, Any] = field(default_factory=dict)
    ext: dict[str, Any] = field(default_factory=dict)
    related_segments: tuple[tuple[int, ...], ...] = ()
    source: str | None = None

    @classmethod
    def make_point(cls, point: Sequence[float], **kwargs: Any) -> Annotation:
        return cls(type=GeometryType.POINT, point=_vec3(point), **kwargs)

    @classmethod
    def make_line(cls, point_a: Sequence[float], point_b: Sequence[float], **kwargs: Any) -> Annotation:
        return cls(type=GeometryType.LINE, point_a=_vec3(point_a), point_b=_vec3(point_b), **kwargs)

    @classmethod
    def make_sphere(cls, point_a: Sequence[float], point_b: Sequence[float], **kwargs: Any) -> Annotation:
        return cls(type=GeometryType.SPHERE, point_a=_vec3(point_a), point_b=_vec3(point_b), **kwargs)

    @property
    def positions(self) -> tuple[float, ...]:
        """Flat coordinates: 3 for points, 6 (A then B) otherwise."""
        if self.type is GeometryType.POINT:
            if self.point is None:
                raise ValueError("point annotation without a position")
            return tuple(self.point)
        if self.point_a is None or self.point_b is None:
            raise ValueError(f"{self.type.value} annotation without both endpoints")
        return (*self.point_a, *self.point_b)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def title_of(annotation: Annotation) -> str | None:
    if "title" in annotation.ext:
        return annotation.ext["title"]
    return annotation.prop.get("title")


def comment_of(annotation: Annotation) -> str | None:
    if "description" in annotation.ext:
        return annotation.ext["description"]
    return annotation.prop.get("comment")


def user_of(annotation: Annotation) -> str | None:
    return annotation.ext.get("user") or annotation.prop.get("user") or None


def is_checked(annotation: Annotation) -> bool:
    return bool(annotation.ext.get("verified") or annotation.prop.get("checked") or False)


def timestamp_of(annotation: Annotation) -> int:
    """Creation time in milliseconds, 0 when unknown."""
    raw = annotation.prop.get("timestamp")
    if not raw:
        return 0
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


def bookmark_type(annotation: Annotation) -> str:
    """Classify the ``type`` tag a proofreader attached to a bookmark."""
    tag = annotation.prop.get("type")
    if tag == "Split":
        return BOOKMARK_FALSE_MERGE
    if tag == "Merge":
        return BOOKMARK_FALSE_SPLIT
    return BOOKMARK_OTHER


def rendering_attribute(annotation: Annotation) -> int:
    kind = annotation.kind
    if kind == KIND_ATLAS:
        if not title_of(annotation):
            return RENDERING_ATTRIBUTE_HIDDEN
        if is_checked(annotation):
            return RENDERING_ATTRIBUTE_CHECKED
        return RENDERING_ATTRIBUTE_DEFAULT
    if kind == KIND_PRESYN:
        return RENDERING_ATTRIBUTE_PRESYN
    if kind == KIND_POSTSYN:
        return RENDERING_ATTRIBUTE_POSTSYN
    if kind == KIND_NOTE and is_checked(annotation):
        return RENDERING_ATTRIBUTE_CHECKED
    bookmark = bookmark_type(annotation)
    if bookmark == BOOKMARK_FALSE_SPLIT:
        return RENDERING_ATTRIBUTE_FALSE_SPLIT
    if bookmark == BOOKMARK_FALSE_MERGE:
        return RENDERING_ATTRIBUTE_FALSE_MERGE
    return RENDERING_ATTRIBUTE_DEFAULT


def presentation(annotation: Annotation) -> str:
    """Return ``title: comment`` when titled, otherwise the bare comment."""
    title = title_of(annotation)
    comment = comment_of(annotation) or ""
    if title:
        return f"{title}: {comment}"
    return comment


def refresh(annotation: Annotation) -> Annotation:
    """Recompute the derived ``description`` and ``properties`` fields."""
    return replace(
        annotation,
        description=presentation(annotation),
        properties=(rendering_attribute(annotation),),
    )


def with_prop(annotation: Annotation, values: Mapping[str, Any]) -> Annotation:
    """Merge *values* into ``prop``; local edits supersede server echoes."""
    prop = {**annotation.prop, **values}
    superseded = {_EXT_ECHO[key] for key in values if key in _EXT_ECHO}
    ext = {key: value for key, value in annotation.ext.items() if key not in superseded}
    return refresh(replace(annotation, prop=prop, ext=ext))


def with_title(annotation: Annotation, title: str | None) -> Annotation:
    return with_prop(annotation, {"title": title})


def with_comment(annotation: Annotation, comment: str | None) -> Annotation:
    return with_prop(annotation, {"comment": comment})


def with_user(annotation: Annotation, user: str | None) -> Annotation:
    return with_prop(annotation, {"user": user})


def with_checked(annotation: Annotation, checked: bool) -> Annotation:
    return with_prop(annotation, {"checked": bool(checked)})


def with_timestamp(annotation: Annotation, timestamp_ms: float | None = None) -> Annotation:
    if timestamp_ms is None:
        timestamp_ms = time.time() * 1000
    return with_prop(annotation, {"timestamp": str(int(timestamp_ms))})


def with_kind(annotation: Annotation, kind: str | None) -> Annotation:
    return refresh(replace(annotation, kind=kind))


def with_key(annotation: Annotation, key: str | None) -> Annotation:
    return replace(annotation, key=key)


def with_id(annotation: Annotation, annotation_id: str) -> Annotation:
    return replace(annotation, id=annotation_id)


def with_source(annotation: Annotation, source: str | None) -> Annotation:
    return replace(annotation, source=source)


def with_related_segments(annotation: Annotation, groups: Iterable[Iterable[int]]) -> Annotation:
    return replace(annotation, related_segments=tuple(tuple(int(v) for v in group) for group in groups))


def round_position(annotation: Annotation) -> Annotation:
    """Snap every coordinate to the nearest integer (halves round up)."""

    def _round(vec: Vec3 | None) -> Vec3 | None:
        if vec is None:
            return None
        return (round_half_up(vec[0]), round_half_up(vec[1]), round_half_up(vec[2]))

    return replace(
        annotation,
        point=_round(annotation.point),
        point_a=_round(annotation.point_a),
        point_b=_round(annotation.point_b),
    )


__all__ = [
    "Annotation",
    "GeometryType",
    "Vec3",
    "bookmark_type",
    "comment_of",
    "is_checked",
    "presentation",
    "refresh",
    "rendering_attribute",
    "round_half_up",
    "round_position",
    "timestamp_of",
    "title_of",
    "user_of",
    "with_checked",
    "with_comment",
    "with_id",
    "with_key",
    "with_kind",
    "with_prop",
    "with_related_segments",
    "with_source",
    "with_timestamp",
    "with_title",
    "with_user",
]
