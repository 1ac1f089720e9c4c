"""Source parameters: validation, URL parsing and server-side completion."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, replace
from typing import TYPE_CHECKING, Any

import voluptuous as vol
from yarl import URL

from .const import (
    CONF_API,
    CONF_AUTH_SERVER,
    CONF_AUTH_TOKEN,
    CONF_BASE_URL,
    CONF_DATASET,
    CONF_GATEWAY_RETRY_DELAY,
    CONF_GRAYSCALE,
    CONF_GROUPS,
    CONF_KIND,
    CONF_MAX_GATEWAY_RETRIES,
    CONF_READONLY,
    CONF_SCHEMA,
    CONF_TIMEOUT,
    CONF_USER,
    DEFAULT_GATEWAY_RETRY_DELAY,
    DEFAULT_KIND,
    DEFAULT_MAX_GATEWAY_RETRIES,
    DEFAULT_TIMEOUT,
    KIND_ATLAS,
    TOKEN_REALM_PREFIX,
)
from .credentials import is_auth_refreshable, user_from_token
from .endpoints import AnnotationEndpoints
from .errors import ValidationError

if TYPE_CHECKING:
    from .client import AnnotationClient

_LOGGER = logging.getLogger(__name__)

# scheme://host/[api/]dataset[?|#query]
_SOURCE_URL = re.compile(r"^([^/]+://[^/]+)/(?:([^/?#]+)/)?([^/?#]+)(?:[?#](.*))?$")


def _normalise_kind(value: str) -> str:
    return KIND_ATLAS if value.lower() == "atlas" else value


def _strip_slash(value: str) -> str:
    return value.rstrip("/")


_OPTIONAL_TEXT = vol.Any(None, str)

SOURCE_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_BASE_URL): vol.All(str, vol.Length(min=1), _strip_slash),
        vol.Required(CONF_DATASET): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_API, default=None): _OPTIONAL_TEXT,
        vol.Optional(CONF_KIND, default=DEFAULT_KIND): vol.All(str, vol.Length(min=1), _normalise_kind),
        vol.Optional(CONF_USER, default=None): _OPTIONAL_TEXT,
        vol.Optional(CONF_GROUPS, default=None): _OPTIONAL_TEXT,
        vol.Optional(CONF_GRAYSCALE, default=None): _OPTIONAL_TEXT,
        vol.Optional(CONF_AUTH_SERVER, default=None): _OPTIONAL_TEXT,
        vol.Optional(CONF_AUTH_TOKEN, default=None): _OPTIONAL_TEXT,
        vol.Optional(CONF_READONLY, default=False): vol.Boolean(),
        vol.Optional(CONF_SCHEMA, default=None): vol.Any(None, dict),
        vol.Optional(CONF_MAX_GATEWAY_RETRIES, default=DEFAULT_MAX_GATEWAY_RETRIES): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional(CONF_GATEWAY_RETRY_DELAY, default=DEFAULT_GATEWAY_RETRY_DELAY): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(slots=True)
class SourceParameters:
    """Everything needed to reach one dataset on one annotation backend."""

    base_url: str
    dataset: str
    api: str | None = None
    kind: str = DEFAULT_KIND
    user: str | None = None
    groups: str | None = None
    grayscale: str | None = None
    auth_server: str | None = None
    auth_token: str | None = None
    readonly: bool = False
    schema: dict[str, Any] | None = field(default=None, repr=False)
    max_gateway_retries: int = DEFAULT_MAX_GATEWAY_RETRIES
    gateway_retry_delay: float = DEFAULT_GATEWAY_RETRY_DELAY
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> SourceParameters:
        try:
            data = SOURCE_SCHEMA(dict(options))
        except vol.Invalid as err:
            raise ValidationError(f"invalid source options: {err}") from err
        return cls(**data)

    def to_options(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @property
    def auth_refreshable(self) -> bool:
        return is_auth_refreshable(self.auth_server)

    @property
    def endpoints(self) -> AnnotationEndpoints:
        return AnnotationEndpoints(self)


def parse_source_url(url: str) -> SourceParameters:
    """Parse ``scheme://host/[api/]dataset[?query]`` into parameters.

    Recognised query keys: ``token``, ``auth``, ``user``, ``kind`` and
    ``groups``.
    """
    matched = _SOURCE_URL.match(url.strip())
    if matched is None:
        raise ValidationError(f"invalid annotation source URL: {url!r}")
    base_url, api, dataset, query_string = matched.groups()
    options: dict[str, Any] = {CONF_BASE_URL: base_url, CONF_DATASET: dataset, CONF_API: api}

    query = URL(f"?{query_string}").query if query_string else {}
    token = query.get("token")
    if token:
        options[CONF_AUTH_TOKEN] = token
        options[CONF_AUTH_SERVER] = f"{TOKEN_REALM_PREFIX}{token}"
    elif query.get("auth"):
        options[CONF_AUTH_SERVER] = query["auth"]

    if query.get("user"):
        options[CONF_USER] = query["user"]
    elif token:
        options[CONF_USER] = user_from_token(token)

    if query.get("kind"):
        options[CONF_KIND] = query["kind"]
    if query.get("groups"):
        options[CONF_GROUPS] = query["groups"]
    return SourceParameters.from_options(options)


def _grayscale_from_dataset(info: Mapping[str, Any]) -> str | None:
    location = info.get("location")
    if isinstance(location, str):
        return location
    main_layer = info.get("mainLayer")
    if not isinstance(main_layer, str):
        return None
    neuroglancer = info.get("neuroglancer")
    layers = neuroglancer.get("layers") if isinstance(neuroglancer, Mapping) else None
    if not isinstance(layers, list):
        raise ValidationError(f"dataset names main layer {main_layer!r} but lists no layers")
    for layer in layers:
        if not isinstance(layer, Mapping) or layer.get("name") != main_layer:
            continue
        source = layer.get("source")
        if isinstance(source, Mapping) and isinstance(source.get("url"), str):
            return source["url"]
        if isinstance(source, str):
            return source
        raise ValidationError(f"main layer {main_layer!r} has no usable source")
    raise ValidationError(f"main layer {main_layer!r} not found in dataset layers")


async def async_complete_parameters(client: AnnotationClient, parameters: SourceParameters) -> SourceParameters:
    """Fill in the session user and grayscale location from the backend."""
    if not parameters.user and parameters.auth_server:
        token = await client.credentials.get()
        if token:
            parameters = replace(parameters, auth_token=token, user=user_from_token(token))

    datasets = await client.get_json(parameters.endpoints.datasets_url, refreshable=parameters.auth_refreshable)
    if not isinstance(datasets, Mapping):
        raise ValidationError("datasets response is not a JSON object")
    info = datasets.get(parameters.dataset)
    if not isinstance(info, Mapping):
        raise ValidationError(f"dataset {parameters.dataset!r} is not known to {parameters.base_url}")
    grayscale = _grayscale_from_dataset(info)
    if grayscale is None:
        _LOGGER.debug("Dataset %s has no grayscale location", parameters.dataset)
        return parameters
    return replace(parameters, grayscale=grayscale)


__all__ = ["SOURCE_SCHEMA", "SourceParameters", "async_complete_parameters", "parse_source_url"]
