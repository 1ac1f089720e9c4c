"""Simple data redaction helpers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from yarl import URL

REDACTED = "***REDACTED***"
SENSITIVE_QUERY_KEYS = frozenset({"token", "access_token", "auth_token"})


def redact(data: Mapping[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    """Return a copy of *data* with sensitive *keys* hidden."""
    hidden = set(keys)
    return {k: (REDACTED if k in hidden else v) for k, v in data.items()}


def redact_url(url: str) -> str:
    """Hide token-like query values so URLs can be logged."""
    parsed = URL(url)
    if not parsed.query or not SENSITIVE_QUERY_KEYS.intersection(parsed.query):
        return url
    query = [(key, REDACTED if key in SENSITIVE_QUERY_KEYS else value) for key, value in parsed.query.items()]
    return str(parsed.with_query(query))
