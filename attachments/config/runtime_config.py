"""Runtime configuration helpers for the attachments gateway."""
from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Mapping, Optional

QUEUE_POLICY_BLOCK = "block"
QUEUE_POLICY_DROP_OLDEST = "drop_oldest"
QUEUE_POLICIES = (QUEUE_POLICY_BLOCK, QUEUE_POLICY_DROP_OLDEST)

DEFAULT_BASE_PATH = "/attachments"
DEFAULT_HOOKS_PATH = "/hooks/tusd"
DEFAULT_QUEUE_SIZE = 1024


class ConfigError(ValueError):
    """Raised when a required startup parameter is missing or invalid."""


@dataclass(frozen=True)
class Settings:
    redis_url: str
    object_store_url: str
    secret: bytes
    upstream_url: str
    base_path: str = DEFAULT_BASE_PATH
    hooks_path: str = DEFAULT_HOOKS_PATH
    queue_size: int = DEFAULT_QUEUE_SIZE
    queue_policy: str = QUEUE_POLICY_BLOCK

    def __repr__(self) -> str:
        return (
            f"Settings(redis_url={self.redis_url!r}, object_store_url={self.object_store_url!r}, "
            f"secret=<redacted>, upstream_url={self.upstream_url!r}, base_path={self.base_path!r}, "
            f"hooks_path={self.hooks_path!r}, queue_size={self.queue_size}, "
            f"queue_policy={self.queue_policy!r})"
        )


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def get_redis_url() -> Optional[str]:
    return _get_env("ATTACHMENTS_REDIS_URL")


def get_object_store_url() -> Optional[str]:
    return _get_env("ATTACHMENTS_OBJECT_STORE_URL")


def get_secret() -> Optional[str]:
    return _get_env("ATTACHMENTS_SECRET")


def get_upstream_url() -> Optional[str]:
    return _get_env("ATTACHMENTS_UPSTREAM_URL")


def get_base_path() -> str:
    return _get_env("ATTACHMENTS_BASE_PATH") or DEFAULT_BASE_PATH


def get_hooks_path() -> str:
    return _get_env("ATTACHMENTS_HOOKS_PATH") or DEFAULT_HOOKS_PATH


def get_queue_size() -> Optional[str]:
    return _get_env("ATTACHMENTS_QUEUE_SIZE")


def get_queue_policy() -> str:
    return (_get_env("ATTACHMENTS_QUEUE_POLICY") or QUEUE_POLICY_BLOCK).lower()


def get_log_level() -> str:
    return (_get_env("LOG_LEVEL") or "INFO").upper()


def decode_secret(value: str) -> bytes:
    """Decode the base64 shared secret; an empty decoded value is rejected."""
    try:
        secret = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigError(f"secret is not valid base64: {exc}") from exc
    if not secret:
        raise ConfigError("secret decodes to an empty value")
    return secret


def normalize_path(path: str, name: str) -> str:
    stripped = path.strip()
    if not stripped.startswith("/"):
        raise ConfigError(f"{name} must start with '/': {path!r}")
    return stripped.rstrip("/")


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigError(f"{name} is required")
    return value


def load_settings(overrides: Optional[Mapping[str, Optional[str]]] = None) -> Settings:
    """Build Settings from the environment, with non-empty overrides (CLI flags) taking precedence.

    Raises ConfigError for any missing required value so the process never starts half-configured.
    """
    given = {k: v for k, v in (overrides or {}).items() if v not in (None, "")}

    redis_url = _require(given.get("redis_url") or get_redis_url(), "redis url (ATTACHMENTS_REDIS_URL)")
    object_store_url = _require(
        given.get("object_store_url") or get_object_store_url(),
        "object store url (ATTACHMENTS_OBJECT_STORE_URL)",
    )
    raw_secret = _require(given.get("secret") or get_secret(), "secret key (ATTACHMENTS_SECRET)")
    upstream_url = _require(
        given.get("upstream_url") or get_upstream_url(),
        "upload handler url (ATTACHMENTS_UPSTREAM_URL)",
    )

    raw_size = given.get("queue_size") or get_queue_size()
    queue_size = DEFAULT_QUEUE_SIZE
    if raw_size:
        try:
            queue_size = int(raw_size)
        except ValueError as exc:
            raise ConfigError(f"queue size must be an integer: {raw_size!r}") from exc
        if queue_size <= 0:
            raise ConfigError(f"queue size must be positive: {queue_size}")

    queue_policy = (given.get("queue_policy") or get_queue_policy()).lower()
    if queue_policy not in QUEUE_POLICIES:
        raise ConfigError(f"queue policy must be one of {QUEUE_POLICIES}, got {queue_policy!r}")

    base_path = normalize_path(given.get("base_path") or get_base_path(), "base path")
    hooks_path = normalize_path(given.get("hooks_path") or get_hooks_path(), "hooks path")
    if not base_path or not hooks_path:
        raise ConfigError("base path and hooks path must not be the root")
    if hooks_path == base_path or hooks_path.startswith(base_path + "/"):
        raise ConfigError(f"hooks path {hooks_path!r} must live outside base path {base_path!r}")

    return Settings(
        redis_url=redis_url,
        object_store_url=object_store_url,
        secret=decode_secret(raw_secret),
        upstream_url=upstream_url.rstrip("/"),
        base_path=base_path,
        hooks_path=hooks_path,
        queue_size=queue_size,
        queue_policy=queue_policy,
    )
