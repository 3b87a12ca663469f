"""tusd HTTP hook endpoint feeding the completion listener."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from attachments.common.error_envelope import error_response
from attachments.completion.listener import CompletionListener
from attachments.completion.models import HOOK_POST_FINISH, HookRequest
from attachments.gateway.auth import require_credentials

logger = logging.getLogger(__name__)


def get_listener(request: Request) -> CompletionListener:
    return request.app.state.listener


async def receive_hook(request: Request, listener: CompletionListener = Depends(get_listener)) -> dict:
    """Accept a tusd hook call; only post-finish events reach the listener."""
    raw = await request.body()
    try:
        hook = HookRequest.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("malformed hook payload: %s", exc)
        raise error_response(
            code="hooks.invalid_payload",
            message="invalid hook payload",
            status_code=400,
            resource_kind="hook",
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        )

    if hook.Type != HOOK_POST_FINISH:
        logger.debug("ignoring hook type=%s upload id=%s", hook.Type, hook.Event.Upload.ID)
        return {}

    await listener.publish(hook.to_notification())
    return {}


def build_router(hooks_path: str) -> APIRouter:
    router = APIRouter(tags=["hooks"], dependencies=[Depends(require_credentials)])
    router.add_api_route(hooks_path, receive_hook, methods=["POST"], name="tusd_hook")
    return router
