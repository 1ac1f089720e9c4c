"""JSON schemas describing the editable properties of an annotation."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from jsonschema import Draft202012Validator

from .const import KIND_ATLAS
from .model import Annotation, comment_of, title_of

_DESCRIPTION_FIELD = {"type": "string", "title": "Description", "default": ""}
_TITLE_FIELD = {"type": "string", "title": "Title", "default": ""}

DEFAULT_ANNOTATION_SCHEMA: dict[str, Any] = {
    "$defs": {},
    "type": "object",
    "required": ["Prop"],
    "properties": {
        "Prop": {
            "type": "object",
            "title": "Properties",
            "required": ["description"],
            "properties": {"description": _DESCRIPTION_FIELD},
        }
    },
}

DEFAULT_ATLAS_SCHEMA: dict[str, Any] = {
    "$defs": {},
    "type": "object",
    "required": ["Prop"],
    "properties": {
        "Prop": {
            "type": "object",
            "title": "Properties",
            "required": ["title", "description"],
            "properties": {"title": _TITLE_FIELD, "description": _DESCRIPTION_FIELD},
        }
    },
}

# Integer render hint exported alongside every annotation
RENDERING_PROPERTIES: tuple[dict[str, Any], ...] = (
    {
        "identifier": "rendering_attribute",
        "description": "rendering attribute",
        "type": "int32",
        "default": 0,
        "min": 0,
        "max": 5,
        "step": 1,
    },
)


def schema_for_kind(kind: str | None) -> dict[str, Any]:
    source = DEFAULT_ATLAS_SCHEMA if kind == KIND_ATLAS else DEFAULT_ANNOTATION_SCHEMA
    return copy.deepcopy(source)


def form_data(annotation: Annotation) -> dict[str, Any]:
    """Return the document validated against a property schema."""
    prop = {key: value for key, value in annotation.prop.items() if key != "comment"}
    title = title_of(annotation)
    if title is not None:
        prop["title"] = title
    else:
        prop.pop("title", None)
    prop["description"] = comment_of(annotation) or ""
    return {"Prop": prop}


def validate_annotation(annotation: Annotation, schema: Mapping[str, Any] | None) -> list[str]:
    """Return a list of human-readable errors (empty if valid)."""
    if schema is None:
        return []
    validator = Draft202012Validator(schema)
    issues: list[str] = []
    for err in validator.iter_errors(form_data(annotation)):
        location = ".".join(str(part) for part in err.absolute_path) or "<root>"
        issues.append(f"{location}: {err.message}")
    return issues


__all__ = [
    "DEFAULT_ANNOTATION_SCHEMA",
    "DEFAULT_ATLAS_SCHEMA",
    "RENDERING_PROPERTIES",
    "form_data",
    "schema_for_kind",
    "validate_annotation",
]
