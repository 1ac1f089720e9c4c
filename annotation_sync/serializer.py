"""Pack decoded annotations into the binary layout consumed by renderers."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .model import Annotation, GeometryType


def record_dtype(geometry: GeometryType, property_count: int = 1) -> np.dtype:
    """Little-endian float32 coordinates followed by int32 properties."""
    return np.dtype(
        [
            ("position", "<f4", (geometry.coordinate_count,)),
            ("properties", "<i4", (property_count,)),
        ]
    )


@dataclass(slots=True)
class SerializedAnnotations:
    """Binary records grouped by geometry, with per-type lookup tables."""

    data: bytes
    type_to_ids: dict[GeometryType, list[str]] = field(default_factory=dict)
    type_to_offset: dict[GeometryType, int] = field(default_factory=dict)
    type_to_count: dict[GeometryType, int] = field(default_factory=dict)
    property_count: int = 1

    def records(self, geometry: GeometryType) -> np.ndarray:
        dtype = record_dtype(geometry, self.property_count)
        count = self.type_to_count.get(geometry, 0)
        if not count:
            return np.zeros(0, dtype=dtype)
        return np.frombuffer(
            self.data,
            dtype=dtype,
            count=count,
            offset=self.type_to_offset.get(geometry, 0),
        )


class AnnotationSerializer:
    def __init__(self, property_count: int = 1) -> None:
        self.property_count = property_count
        self._annotations: dict[GeometryType, list[Annotation]] = {geometry: [] for geometry in GeometryType}

    def __len__(self) -> int:
        return sum(len(items) for items in self._annotations.values())

    def add(self, annotation: Annotation) -> None:
        self._annotations[annotation.type].append(annotation)

    def _properties(self, annotation: Annotation) -> list[int]:
        values = [int(value) for value in annotation.properties[: self.property_count]]
        return values + [0] * (self.property_count - len(values))

    def serialize(self) -> SerializedAnnotations:
        chunks: list[bytes] = []
        result = SerializedAnnotations(data=b"", property_count=self.property_count)
        offset = 0
        for geometry in GeometryType:
            items = self._annotations[geometry]
            records = np.zeros(len(items), dtype=record_dtype(geometry, self.property_count))
            if items:
                records["position"] = np.asarray([a.positions for a in items], dtype=np.float32)
                records["properties"] = np.asarray([self._properties(a) for a in items], dtype=np.int32)
            buffer = records.tobytes()
            result.type_to_ids[geometry] = [a.id for a in items]
            result.type_to_offset[geometry] = offset
            result.type_to_count[geometry] = len(items)
            chunks.append(buffer)
            offset += len(buffer)
        result.data = b"".join(chunks)
        return result


__all__ = ["AnnotationSerializer", "SerializedAnnotations", "record_dtype"]
