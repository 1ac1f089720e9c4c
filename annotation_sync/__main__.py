"""Command line entry point: ``python -m annotation_sync pull <url>``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from aiohttp import ClientSession

from .chunk import AnnotationChunkSource
from .client import AnnotationClient
from .config import async_complete_parameters, parse_source_url
from .credentials import CredentialsProvider
from .errors import AnnotationSyncError
from .model import Annotation
from .store import AnnotationStoreRegistry
from .utils.redact import redact

_LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="annotation_sync", description="Synchronise remote annotations")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)
    pull = sub.add_parser("pull", help="Download every annotation of a source and print it as JSON lines")
    pull.add_argument("url", help="Source URL, e.g. https://host/v2/dataset?user=me")
    pull.add_argument("--user", help="Session user (overrides the URL)")
    pull.add_argument("--auth", help="Auth realm (token:<t>, neurohub or a token URL)")
    pull.add_argument("--complete", action="store_true", help="Resolve user and grayscale from the backend first")
    return parser.parse_args(argv)


def annotation_to_json(annotation: Annotation) -> dict[str, Any]:
    return {
        "id": annotation.id,
        "type": annotation.type.value,
        "kind": annotation.kind,
        "description": annotation.description,
        "position": list(annotation.positions),
    }


async def pull(args: argparse.Namespace, session: ClientSession) -> int:
    parameters = parse_source_url(args.url)
    if args.user:
        parameters = replace(parameters, user=args.user)
    if args.auth:
        parameters = replace(parameters, auth_server=args.auth)
    _LOGGER.debug("Source options: %s", redact(parameters.to_options(), ("auth_server", "auth_token")))
    credentials = CredentialsProvider(parameters.auth_server, session=session)
    client = AnnotationClient(
        session,
        credentials,
        max_gateway_retries=parameters.max_gateway_retries,
        gateway_retry_delay=parameters.gateway_retry_delay,
        timeout=parameters.timeout,
    )
    if args.complete:
        parameters = await async_complete_parameters(client, parameters)
    source = AnnotationChunkSource(parameters, client, AnnotationStoreRegistry())
    chunk = await source.download(emit_add_signals=False)
    for annotation in chunk.annotations:
        print(json.dumps(annotation_to_json(annotation)))
    if chunk.skipped:
        _LOGGER.warning("Skipped %d empty or undecodable annotations", len(chunk.skipped))
    return 0


async def main_async(args: argparse.Namespace) -> int:
    async with ClientSession() as session:
        return await pull(args, session)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        return asyncio.run(main_async(args))
    except AnnotationSyncError as err:
        _LOGGER.error("%s", err)
        return 1
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        _LOGGER.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
