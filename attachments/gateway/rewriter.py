"""Name-addressed retrieval: resolve file name -> upload id and readdress the request."""
from __future__ import annotations

import logging

from fastapi import Request

from attachments.common.error_envelope import not_found_error, registry_unavailable_error
from attachments.registry.repository import FileIdNotFound, IdentifierRegistry, RegistryUnavailable
from attachments.upstream.models import ForwardRequest

logger = logging.getLogger(__name__)


class RequestRewriter:
    def __init__(self, registry: IdentifierRegistry, base_path: str) -> None:
        self.registry = registry
        self.base_path = base_path.rstrip("/")

    def path_for(self, tail: str) -> str:
        return f"{self.base_path}/{tail}"

    def candidate_name(self, path: str) -> str:
        prefix = self.base_path + "/"
        if path.startswith(prefix):
            return path[len(prefix):]
        return ""

    async def rewrite(self, request: ForwardRequest) -> ForwardRequest:
        """Return a new request addressed by upload id.

        Raises an HTTPException carrying a 404 envelope for unknown names and a
        503 envelope when the registry is unreachable; the upload handler is
        never called in either case.
        """
        file_name = self.candidate_name(request.path)
        try:
            upload_id = await self.registry.resolve(file_name)
        except FileIdNotFound:
            logger.info("no upload id for file name=%r path=%s", file_name, request.path)
            raise not_found_error(file_name)
        except RegistryUnavailable as exc:
            logger.error("registry unavailable resolving file name=%r path=%s: %s", file_name, request.path, exc)
            raise registry_unavailable_error(file_name)

        rewritten = request.with_path(self.path_for(upload_id))
        logger.info("rewrote %s -> %s (file name=%r upload id=%s)", request.path, rewritten.path, file_name, upload_id)
        return rewritten


def get_rewriter(request: Request) -> RequestRewriter:
    return request.app.state.rewriter
