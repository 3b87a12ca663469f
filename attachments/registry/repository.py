"""Repository for the file name -> tus upload id association."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol
from urllib.parse import urlparse

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from attachments.config.runtime_config import ConfigError

logger = logging.getLogger(__name__)

# Hash holding every association: field = file name, value = upload id.
FILE_ID_MAP_KEY = "TUS:FileIdMap"

REDIS_SCHEMES = {"redis", "rediss", "unix"}


class RegistryError(RuntimeError):
    """Base class for registry failures."""


class FileIdNotFound(RegistryError, LookupError):
    def __init__(self, file_name: str) -> None:
        super().__init__(f"no upload id recorded for file name {file_name!r}")
        self.file_name = file_name


class RegistryUnavailable(RegistryError):
    """Raised when the backing store cannot be reached."""


class IdentifierRegistry(Protocol):
    """Storage abstraction for file name -> upload id associations."""

    async def resolve(self, file_name: str) -> str: ...
    async def record(self, file_name: str, upload_id: str) -> None: ...
    async def ping(self) -> None: ...
    async def close(self) -> None: ...


class InMemoryIdentifierRegistry:
    """In-memory implementation for dev/tests; state dies with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._map: Dict[str, str] = dict(initial or {})

    async def resolve(self, file_name: str) -> str:
        try:
            return self._map[file_name]
        except KeyError:
            raise FileIdNotFound(file_name) from None

    async def record(self, file_name: str, upload_id: str) -> None:
        self._map[file_name] = upload_id

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def snapshot(self) -> Dict[str, str]:
        return dict(self._map)


class RedisIdentifierRegistry:
    """Redis hash backed registry. Per-field atomicity of HSET is relied upon."""

    def __init__(self, client: aioredis.Redis, key: str = FILE_ID_MAP_KEY) -> None:
        self._client = client
        self._key = key

    @classmethod
    def from_url(cls, url: str, key: str = FILE_ID_MAP_KEY) -> "RedisIdentifierRegistry":
        """Build from redis://<user>:<pass>@host:6379/<db>."""
        try:
            client = aioredis.from_url(url, decode_responses=True)
        except ValueError as exc:
            raise ConfigError(f"invalid redis url: {exc}") from exc
        return cls(client, key=key)

    async def resolve(self, file_name: str) -> str:
        try:
            upload_id = await self._client.hget(self._key, file_name)
        except RedisError as exc:
            raise RegistryUnavailable(f"hget {self._key}[{file_name!r}] failed: {exc}") from exc
        if upload_id is None:
            raise FileIdNotFound(file_name)
        return upload_id

    async def record(self, file_name: str, upload_id: str) -> None:
        try:
            await self._client.hset(self._key, file_name, upload_id)
        except RedisError as exc:
            raise RegistryUnavailable(
                f"hset {self._key}[{file_name!r}]={upload_id!r} failed: {exc}"
            ) from exc

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as exc:
            raise RegistryUnavailable(f"redis ping failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


def registry_from_url(url: str) -> IdentifierRegistry:
    scheme = urlparse(url).scheme.lower()
    if scheme == "memory":
        logger.warning("using in-memory identifier registry; associations are not durable")
        return InMemoryIdentifierRegistry()
    if scheme in REDIS_SCHEMES:
        return RedisIdentifierRegistry.from_url(url)
    raise ConfigError(f"unsupported registry url scheme {scheme!r}; expected redis:// or memory://")
