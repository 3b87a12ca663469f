"""HTTP routes for the attachments surface.

Both mount variants (`{base}` and `{base}/...`) share one chain:
authentication gate -> rewriter (GET only) -> upload handler.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from attachments.gateway.auth import is_safe_method, require_credentials
from attachments.gateway.rewriter import RequestRewriter, get_rewriter
from attachments.upstream.handler import UploadHandler
from attachments.upstream.models import ForwardRequest

# Every method the tus protocol uses: download, status, creation, append, termination, discovery.
TUS_METHODS = ["GET", "HEAD", "POST", "PATCH", "DELETE", "OPTIONS"]


def get_upload_handler(request: Request) -> UploadHandler:
    return request.app.state.upload_handler


async def _serve(
    request: Request,
    tail: str,
    rewriter: RequestRewriter,
    handler: UploadHandler,
) -> Response:
    forward = await ForwardRequest.from_request(request, path=rewriter.path_for(tail))
    if is_safe_method(forward.method):
        forward = await rewriter.rewrite(forward)
    return await handler.handle(forward)


async def serve_base(
    request: Request,
    rewriter: RequestRewriter = Depends(get_rewriter),
    handler: UploadHandler = Depends(get_upload_handler),
) -> Response:
    return await _serve(request, "", rewriter, handler)


async def serve_attachment(
    tail: str,
    request: Request,
    rewriter: RequestRewriter = Depends(get_rewriter),
    handler: UploadHandler = Depends(get_upload_handler),
) -> Response:
    return await _serve(request, tail, rewriter, handler)


def build_router(base_path: str) -> APIRouter:
    base = base_path.rstrip("/")
    router = APIRouter(tags=["attachments"], dependencies=[Depends(require_credentials)])
    router.add_api_route(base, serve_base, methods=TUS_METHODS, name="attachments_base")
    router.add_api_route(base + "/{tail:path}", serve_attachment, methods=TUS_METHODS, name="attachments_path")
    return router
