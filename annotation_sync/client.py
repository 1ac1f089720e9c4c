"""HTTP client applying credentials, auth refresh and gateway retry policy."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

import aiohttp

from .const import (
    AUTH_FAILURE_STATUSES,
    DEFAULT_GATEWAY_RETRY_DELAY,
    DEFAULT_MAX_GATEWAY_RETRIES,
    DEFAULT_TIMEOUT,
    GATEWAY_TIMEOUT,
)
from .credentials import CredentialsProvider
from .errors import AuthError, RemoteError, TransientServerError
from .utils.logging import warn_once
from .utils.redact import redact_url

_LOGGER = logging.getLogger(__name__)

ResponseType = Literal["json", "text", "bytes"]
_MAX_ERROR_TEXT = 200


class AnnotationClient:
    """Thin wrapper around an :class:`aiohttp.ClientSession`.

    Every request carries ``Authorization: Bearer <token>`` when the
    credentials provider yields a token; otherwise the session's cookie jar
    supplies whatever ambient credentials the backend expects.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        credentials: CredentialsProvider,
        *,
        max_gateway_retries: int = DEFAULT_MAX_GATEWAY_RETRIES,
        gateway_retry_delay: float = DEFAULT_GATEWAY_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self.credentials = credentials
        self._max_gateway_retries = max(0, int(max_gateway_retries))
        self._gateway_retry_delay = max(0.0, float(gateway_retry_delay))
        self._timeout = timeout

    @staticmethod
    def _headers(token: str, has_body: bool) -> dict[str, str]:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self,
        method: str,
        url: str,
        *,
        payload: Any = None,
        response_type: ResponseType = "json",
        refreshable: bool = False,
    ) -> Any:
        """Send one logical request and return the decoded body.

        Raises :class:`AuthError`, :class:`TransientServerError` or
        :class:`RemoteError`; task cancellation propagates unchanged.
        """
        safe_url = redact_url(url)
        refreshed = False
        gateway_failures = 0
        while True:
            token = await self.credentials.get()
            headers = self._headers(token, payload is not None)
            try:
                async with asyncio.timeout(self._timeout):
                    async with self._session.request(method, url, headers=headers, json=payload) as resp:
                        _LOGGER.debug("%s %s -> %s", method, safe_url, resp.status)
                        if resp.status in AUTH_FAILURE_STATUSES:
                            if refreshable and not refreshed:
                                _LOGGER.debug("Refreshing credentials after HTTP %s", resp.status)
                                self.credentials.invalidate()
                                refreshed = True
                                continue
                            raise AuthError(
                                f"{method} {safe_url} rejected: HTTP {resp.status}",
                                status=resp.status,
                                url=url,
                            )
                        if resp.status == GATEWAY_TIMEOUT:
                            gateway_failures += 1
                            if gateway_failures > self._max_gateway_retries:
                                raise TransientServerError(
                                    f"{method} {safe_url} timed out at the gateway {gateway_failures} times",
                                    status=resp.status,
                                    url=url,
                                )
                            warn_once(_LOGGER, "http_504", f"gateway timeout from {safe_url}; retrying")
                        elif resp.status >= 400:
                            detail = (await resp.text())[:_MAX_ERROR_TEXT]
                            raise RemoteError(
                                f"{method} {safe_url} failed: HTTP {resp.status} {detail}".rstrip(),
                                status=resp.status,
                                url=url,
                            )
                        else:
                            return await self._read(resp, response_type, safe_url)
            except TimeoutError as err:
                raise RemoteError(f"{method} {safe_url} timed out", status=0, url=url) from err
            except aiohttp.ClientError as err:
                raise RemoteError(f"{method} {safe_url} failed: {err}", status=0, url=url) from err
            await asyncio.sleep(self._gateway_retry_delay)

    @staticmethod
    async def _read(resp: aiohttp.ClientResponse, response_type: ResponseType, safe_url: str) -> Any:
        if response_type == "bytes":
            return await resp.read()
        if response_type == "text":
            return await resp.text()
        try:
            return await resp.json(content_type=None)
        except ValueError as err:
            raise RemoteError(f"invalid JSON from {safe_url}: {err}", status=resp.status) from err

    async def get_json(self, url: str, *, refreshable: bool = False) -> Any:
        return await self.request("GET", url, refreshable=refreshable)

    async def get_text(self, url: str, *, refreshable: bool = False) -> str:
        return await self.request("GET", url, response_type="text", refreshable=refreshable)

    async def post_json(self, url: str, payload: Any, *, refreshable: bool = False) -> Any:
        return await self.request("POST", url, payload=payload, refreshable=refreshable)

    async def delete(self, url: str, *, refreshable: bool = False) -> str:
        return await self.request("DELETE", url, response_type="text", refreshable=refreshable)


__all__ = ["AnnotationClient", "ResponseType"]
