"""File name -> upload id registry."""

from attachments.registry.repository import (  # noqa: F401
    FileIdNotFound,
    IdentifierRegistry,
    InMemoryIdentifierRegistry,
    RedisIdentifierRegistry,
    RegistryUnavailable,
    registry_from_url,
)
