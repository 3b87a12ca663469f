"""Upload handler adapter: the wrapped tus protocol handler.

The gateway only ever talks to tusd through `UploadHandler.handle`. Storage
and locking are tusd's own pluggable backends (s3store/filestore, memorylocker)
and never reached from here.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from attachments.common.error_envelope import error_json
from attachments.upstream.models import ForwardRequest

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}
_REQUEST_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"host"}


class UploadHandler(Protocol):
    async def handle(self, request: ForwardRequest) -> Response: ...
    async def aclose(self) -> None: ...


def upstream_target(request: ForwardRequest) -> str:
    path = quote(request.path, safe="/+")
    return f"{path}?{request.query}" if request.query else path


def outbound_headers(request: ForwardRequest) -> list[tuple[str, str]]:
    skip = _REQUEST_SKIP_HEADERS if request.streamed else _REQUEST_SKIP_HEADERS | {"content-length"}
    # A streamed body keeps the client Content-Length; httpx then sends it unchunked.
    headers = [(k, v) for k, v in request.headers if k.lower() not in skip]
    host = request.header("host")
    if host:
        headers.append(("X-Forwarded-Host", host))
    headers.append(("X-Forwarded-Proto", request.scheme))
    return headers


class HttpUploadHandler:
    """Proxy to a tusd HTTP endpoint (run tusd with -behind-proxy and the same -base-path)."""

    def __init__(self, upstream_url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.upstream_url = upstream_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.upstream_url, timeout=None)

    async def handle(self, request: ForwardRequest) -> Response:
        outbound = self._client.build_request(
            request.method,
            upstream_target(request),
            headers=outbound_headers(request),
            content=request.body,
        )
        try:
            upstream = await self._client.send(outbound, stream=True)
        except httpx.TransportError as exc:
            logger.error(
                "upload handler unreachable method=%s path=%s upstream=%s error=%s",
                request.method,
                request.path,
                self.upstream_url,
                exc,
            )
            return error_json(
                code="attachments.upstream_unavailable",
                message="upload handler unavailable",
                status_code=502,
                resource_kind="attachment",
                details={"path": request.path},
            )

        logger.debug("upstream %s %s -> %s", request.method, request.path, upstream.status_code)
        try:
            response = StreamingResponse(
                upstream.aiter_raw(),
                status_code=upstream.status_code,
                background=BackgroundTask(upstream.aclose),
            )
            # Raw byte pairs: tusd may send UTF-8 file names in Content-Disposition.
            response.raw_headers = [
                (k, v) for k, v in upstream.headers.raw if k.decode("latin-1").lower() not in HOP_BY_HOP_HEADERS
            ]
        except Exception:
            await upstream.aclose()
            raise
        return response

    async def aclose(self) -> None:
        await self._client.aclose()
