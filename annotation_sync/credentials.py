"""Bearer token acquisition for annotation backends."""

from __future__ import annotations

import asyncio
import base64
import binascii
import inspect
import json
import logging
from collections.abc import Awaitable, Callable

import aiohttp

from .const import HUB_REALM, TOKEN_REALM_PREFIX
from .errors import AuthError
from .utils.redact import redact_url

_LOGGER = logging.getLogger(__name__)

HubTokenGetter = Callable[[], Awaitable[str | None] | str | None]


def is_auth_refreshable(realm: str | None) -> bool:
    """Return ``True`` when a rejected token can be fetched again for *realm*."""
    if not realm:
        return False
    return realm == HUB_REALM or realm.startswith("http")


def user_from_token(token: str | None, default_user: str | None = None) -> str | None:
    """Extract the ``user`` (or ``email``) claim from a JWT.

    Returns ``None`` when the token cannot be decoded or names someone other
    than *default_user*.
    """
    if not token:
        return None
    parts = token.split(".")
    if len(parts) < 2:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode()))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        _LOGGER.debug("Token payload is not valid JSON")
        return None
    if not isinstance(claims, dict):
        return None
    user = claims.get("user") or claims.get("email")
    if not isinstance(user, str) or not user:
        return None
    if default_user and user != default_user:
        return None
    return user


class CredentialsProvider:
    """Resolves and caches the bearer token for one auth realm.

    Realms:

    * ``None``/``""``: no token; requests rely on ambient cookies.
    * ``token:<literal>``: a fixed token, never refreshed.
    * ``neurohub``: delegated to ``hub_token_getter``.
    * ``http(s)://...``: the response body of a GET on that URL.
    """

    def __init__(
        self,
        realm: str | None,
        *,
        session: aiohttp.ClientSession | None = None,
        hub_token_getter: HubTokenGetter | None = None,
    ) -> None:
        self.realm = realm or ""
        self._session = session
        self._hub_token_getter = hub_token_getter
        self._token: str | None = None
        self._lock = asyncio.Lock()

    @property
    def refreshable(self) -> bool:
        return is_auth_refreshable(self.realm)

    @property
    def cached_token(self) -> str | None:
        return self._token

    def invalidate(self) -> None:
        self._token = None

    async def get(self) -> str:
        """Return the current token, fetching it at most once concurrently."""
        if self._token is not None:
            return self._token
        async with self._lock:
            if self._token is None:
                self._token = await self._fetch()
            return self._token

    async def _fetch(self) -> str:
        realm = self.realm
        if not realm:
            return ""
        if realm.startswith(TOKEN_REALM_PREFIX):
            return realm[len(TOKEN_REALM_PREFIX) :]
        if realm == HUB_REALM:
            return await self._fetch_hub_token()
        if realm.startswith("http"):
            return await self._fetch_url_token(realm)
        _LOGGER.debug("Unknown auth realm %s; continuing without a token", realm)
        return ""

    async def _fetch_hub_token(self) -> str:
        if self._hub_token_getter is None:
            return ""
        result = self._hub_token_getter()
        if inspect.isawaitable(result):
            result = await result
        return result or ""

    async def _fetch_url_token(self, url: str) -> str:
        if self._session is None:
            raise AuthError(f"no HTTP session to fetch a token from {redact_url(url)}", status=0, url=url)
        try:
            return await self._get_text(url, headers={"Accept": "text/plain"})
        except (AuthError, aiohttp.ClientError) as err:
            _LOGGER.debug("Token request to %s failed (%s); retrying without headers", redact_url(url), err)
        try:
            return await self._get_text(url, headers=None)
        except aiohttp.ClientError as err:
            raise AuthError(f"token request failed: {err}", status=0, url=url) from err

    async def _get_text(self, url: str, *, headers: dict[str, str] | None) -> str:
        if self._session is None:
            raise AuthError(f"no HTTP session to fetch a token from {redact_url(url)}", status=0, url=url)
        async with self._session.get(url, headers=headers) as resp:
            if resp.status >= 400:
                raise AuthError(f"token request failed: HTTP {resp.status}", status=resp.status, url=url)
            text = await resp.text()
        return text.strip()


__all__ = ["CredentialsProvider", "is_auth_refreshable", "user_from_token"]
