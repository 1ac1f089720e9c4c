from __future__ import annotations

import pytest

from annotation_sync.config import SourceParameters, async_complete_parameters, parse_source_url
from annotation_sync.errors import ValidationError


def test_parse_source_url_with_query() -> None:
    params = parse_source_url("https://clio.test/v2/hemibrain?user=alice&kind=atlas&groups=g1,g2")
    assert params.base_url == "https://clio.test"
    assert params.api == "v2"
    assert params.dataset == "hemibrain"
    assert params.user == "alice"
    assert params.kind == "Atlas"
    assert params.groups == "g1,g2"
    assert params.auth_server is None


def test_parse_source_url_defaults() -> None:
    params = parse_source_url("https://clio.test/hemibrain")
    assert params.api is None
    assert params.kind == "Normal"
    assert params.user is None
    assert not params.auth_refreshable

    params = parse_source_url("https://clio.test/v1/mb20#kind=Note")
    assert params.api == "v1"
    assert params.kind == "Note"


def test_parse_source_url_token(jwt_factory) -> None:
    token = jwt_factory({"email": "alice@example.org"})
    params = parse_source_url(f"https://clio.test/v2/hemibrain?token={token}")
    assert params.auth_token == token
    assert params.auth_server == f"token:{token}"
    assert params.user == "alice@example.org"
    assert not params.auth_refreshable


def test_parse_source_url_auth_realm() -> None:
    params = parse_source_url("https://clio.test/v2/hemibrain?auth=neurohub&user=bob")
    assert params.auth_server == "neurohub"
    assert params.auth_refreshable
    assert params.user == "bob"


@pytest.mark.parametrize("url", ["not a url", "https://clio.test", "https://clio.test/a/b/c"])
def test_parse_source_url_rejects_malformed(url) -> None:
    with pytest.raises(ValidationError):
        parse_source_url(url)


def test_from_options_validates_and_coerces() -> None:
    params = SourceParameters.from_options(
        {
            "base_url": "https://clio.test/",
            "dataset": "hemibrain",
            "max_gateway_retries": "3",
            "readonly": "yes",
            "unknown": 1,
        }
    )
    assert params.base_url == "https://clio.test"
    assert params.max_gateway_retries == 3
    assert params.readonly is True
    assert params.timeout == 30.0
    assert "unknown" not in params.to_options()


@pytest.mark.parametrize(
    "options",
    [
        {"base_url": "https://clio.test"},
        {"base_url": "", "dataset": "d"},
        {"base_url": "https://clio.test", "dataset": "d", "max_gateway_retries": -1},
        {"base_url": "https://clio.test", "dataset": "d", "timeout": 0},
        {"base_url": "https://clio.test", "dataset": "d", "user": 5},
    ],
)
def test_from_options_rejects_invalid(options) -> None:
    with pytest.raises(ValidationError):
        SourceParameters.from_options(options)


@pytest.mark.asyncio
async def test_complete_parameters_from_location(session, client, v2_params) -> None:
    session.queue(200, {"hemibrain": {"location": "gs://bucket/em"}})
    completed = await async_complete_parameters(client, v2_params)
    assert completed.grayscale == "gs://bucket/em"
    assert session.calls[0].url == "https://clio.test/v2/datasets"
    assert v2_params.grayscale is None


@pytest.mark.asyncio
async def test_complete_parameters_from_main_layer(session, client, v2_params) -> None:
    session.queue(
        200,
        {
            "hemibrain": {
                "mainLayer": "em",
                "neuroglancer": {
                    "layers": [
                        {"name": "seg", "source": "precomputed://gs://bucket/seg"},
                        {"name": "em", "source": {"url": "precomputed://gs://bucket/em"}},
                    ]
                },
            }
        },
    )
    completed = await async_complete_parameters(client, v2_params)
    assert completed.grayscale == "precomputed://gs://bucket/em"


@pytest.mark.asyncio
async def test_complete_parameters_resolves_user(session, make_client, jwt_factory) -> None:
    token = jwt_factory({"user": "alice"})
    params = SourceParameters(base_url="https://clio.test", dataset="hemibrain", auth_server=f"token:{token}")
    session.queue(200, {"hemibrain": {}})
    completed = await async_complete_parameters(make_client(params.auth_server), params)
    assert completed.user == "alice"
    assert completed.auth_token == token
    assert completed.grayscale is None


@pytest.mark.asyncio
async def test_complete_parameters_unknown_dataset(session, client, v2_params) -> None:
    session.queue(200, {"other": {}})
    with pytest.raises(ValidationError):
        await async_complete_parameters(client, v2_params)
