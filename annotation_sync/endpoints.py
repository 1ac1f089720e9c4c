"""URL layout of an annotation backend for one dataset."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING

from yarl import URL

from .const import API_TOPLEVEL, KIND_ATLAS
from .errors import ValidationError
from .identity import position_from_id

if TYPE_CHECKING:
    from .config import SourceParameters

_PRECOMPUTED_PREFIX = "precomputed://"
_DVID_PREFIX = "dvid://"
_DVID_SOURCE = re.compile(r"^([^/]+://[^/]+)/([^/]+)/([^/?]+)")


def grayscale_info_url(source: str) -> str:
    """Return the ``info`` URL describing the grayscale volume at *source*."""
    if source.startswith(_PRECOMPUTED_PREFIX):
        source = source[len(_PRECOMPUTED_PREFIX) :]
    if source.startswith(_DVID_PREFIX):
        # dvid://https://host/<node>/<instance>
        matched = _DVID_SOURCE.match(source[len(_DVID_PREFIX) :])
        if matched is None:
            raise ValidationError(f"invalid DVID grayscale source: {source!r}")
        base_url, node, instance = matched.groups()
        return f"{base_url}/api/node/{node}/{instance}/info"
    url = URL(source)
    scheme = url.scheme
    host = url.raw_host or ""
    path = url.raw_path.rstrip("/")
    if scheme == "gs":
        return f"https://storage.googleapis.com/{host}{path}/info"
    if scheme in ("http", "https"):
        port = f":{url.explicit_port}" if url.explicit_port else ""
        return f"{scheme}://{host}{port}{path}/info"
    raise ValidationError(f"unrecognized grayscale source: {source!r}")


class AnnotationEndpoints:
    """Builds every URL the annotation source talks to."""

    def __init__(self, parameters: SourceParameters) -> None:
        self.parameters = parameters

    @property
    def top_level_url(self) -> str:
        return f"{self.parameters.base_url}/{self.parameters.api or API_TOPLEVEL}"

    @property
    def datasets_url(self) -> str:
        return f"{self.top_level_url}/datasets"

    @property
    def collection(self) -> str:
        return "atlas" if self.parameters.kind == KIND_ATLAS else "annotations"

    @property
    def entry_url(self) -> str:
        return f"{self.top_level_url}/{self.collection}/{self.parameters.dataset}"

    @property
    def all_annotations_url(self) -> str:
        """Canonical listing URL; also the identity of the endpoint's cache."""
        if self.parameters.groups:
            return f"{self.entry_url}?groups={self.parameters.groups}"
        return self.entry_url

    @property
    def has_point_query_api(self) -> bool:
        return self.parameters.api == API_TOPLEVEL or self.parameters.kind == KIND_ATLAS

    def position_url(self, position: Sequence[int | str]) -> str:
        return f"{self.entry_url}?x={position[0]}&y={position[1]}&z={position[2]}"

    def write_url(self, position: Sequence[int | str]) -> str:
        """Return the POST target for a write at *position*.

        Only backends with the point-query API receive the position, as
        ``?x=&y=&z=``. Others get the bare entry URL; family A bodies carry no
        position either, so such a write does not tell the server where the
        point is.
        """
        if self.has_point_query_api:
            return self.position_url(position)
        return self.entry_url

    def delete_url(self, key: str) -> str:
        if self.has_point_query_api:
            position = position_from_id(key)
            if position is not None:
                return self.position_url(position)
        return f"{self.entry_url}/{key}"

    @property
    def grayscale_info_url(self) -> str | None:
        if not self.parameters.grayscale:
            return None
        return grayscale_info_url(self.parameters.grayscale)


__all__ = ["AnnotationEndpoints", "grayscale_info_url"]
