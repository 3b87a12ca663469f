"""Startup connectivity checks. Any failure keeps the server from starting."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import httpx

from attachments.registry.repository import IdentifierRegistry, RegistryUnavailable

logger = logging.getLogger(__name__)

StartupCheck = Callable[[], Awaitable[None]]

OBJECT_STORE_PROBE_TIMEOUT = 5.0


class StartupConnectionError(RuntimeError):
    """A required backend could not be reached at startup."""


def registry_check(registry: IdentifierRegistry) -> StartupCheck:
    async def _check() -> None:
        try:
            await registry.ping()
        except RegistryUnavailable as exc:
            raise StartupConnectionError(f"unable to reach file id registry: {exc}") from exc
        logger.info("file id registry reachable")

    return _check


def object_store_check(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> StartupCheck:
    """Any HTTP answer from the endpoint counts as reachable; S3 answers anonymous GETs with 403."""

    async def _check() -> None:
        async with httpx.AsyncClient(timeout=OBJECT_STORE_PROBE_TIMEOUT, transport=transport) as client:
            try:
                response = await client.get(url)
            except httpx.HTTPError as exc:
                raise StartupConnectionError(f"unable to reach object store {url}: {exc}") from exc
        logger.info("object store %s reachable (status %s)", url, response.status_code)

    return _check
