from __future__ import annotations

import asyncio
import base64
import json as jsonlib
import types
from collections.abc import Callable

import pytest

from annotation_sync.client import AnnotationClient
from annotation_sync.config import SourceParameters
from annotation_sync.credentials import CredentialsProvider
from annotation_sync.store import AnnotationStoreRegistry
from annotation_sync.utils.logging import reset_warnings


class DummyResp:
    def __init__(self, status=200, data=None, text=None, block=False):
        self.status = status
        self._data = data
        self._text = text
        self._block = block

    async def __aenter__(self):
        if self._block:
            await asyncio.Event().wait()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if self._text is not None and self._data is None:
            return jsonlib.loads(self._text) if self._text.strip() else None
        return self._data

    async def text(self):
        if self._text is not None:
            return self._text
        return "" if self._data is None else jsonlib.dumps(self._data)

    async def read(self):
        return (await self.text()).encode()


class Session:
    """Records every request and replays queued responses in order."""

    def __init__(self):
        self.calls: list[types.SimpleNamespace] = []
        self.responses: list[DummyResp] = []
        self.handler: Callable[[str, str, object], DummyResp] | None = None
        self.closed = False

    def queue(self, status=200, data=None, text=None, block=False) -> None:
        self.responses.append(DummyResp(status, data, text, block))

    def request(self, method, url, headers=None, json=None):
        self.calls.append(types.SimpleNamespace(method=method, url=url, headers=dict(headers or {}), json=json))
        if self.handler is not None:
            return self.handler(method, url, json)
        return self.responses.pop(0)

    def get(self, url, headers=None):
        self.calls.append(types.SimpleNamespace(method="GET", url=url, headers=headers, json=None))
        if self.handler is not None:
            return self.handler("GET", url, None)
        return self.responses.pop(0)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False


def make_jwt(claims: dict) -> str:
    def _segment(payload: dict) -> str:
        raw = jsonlib.dumps(payload).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    return f"{_segment({'alg': 'none'})}.{_segment(claims)}.signature"


@pytest.fixture(autouse=True)
def _reset_warn_once():
    reset_warnings()
    yield
    reset_warnings()


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def jwt_factory():
    return make_jwt


@pytest.fixture
def make_client(session):
    def _make(realm: str | None = "token:abc", **kwargs) -> AnnotationClient:
        kwargs.setdefault("gateway_retry_delay", 0)
        return AnnotationClient(session, CredentialsProvider(realm, session=session), **kwargs)

    return _make


@pytest.fixture
def client(make_client) -> AnnotationClient:
    return make_client()


@pytest.fixture
def stores() -> AnnotationStoreRegistry:
    return AnnotationStoreRegistry()


@pytest.fixture
def v2_params() -> SourceParameters:
    return SourceParameters(
        base_url="https://clio.test",
        dataset="hemibrain",
        api="v2",
        user="alice",
        auth_server="token:abc",
    )


@pytest.fixture
def v1_params() -> SourceParameters:
    return SourceParameters(
        base_url="https://clio.test",
        dataset="hemibrain",
        api=None,
        user="alice",
        auth_server="token:abc",
    )


@pytest.fixture
def atlas_params() -> SourceParameters:
    return SourceParameters(
        base_url="https://clio.test",
        dataset="hemibrain",
        api="v2",
        kind="Atlas",
        user="alice",
        auth_server="token:abc",
    )
