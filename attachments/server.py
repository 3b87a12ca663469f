"""Application factory for the attachments gateway."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI

from attachments import __version__
from attachments.common.connectivity import StartupCheck, object_store_check, registry_check
from attachments.common.error_envelope import register_error_handlers
from attachments.common.health import router as health_router
from attachments.completion.listener import CompletionListener
from attachments.completion.routes import build_router as build_hooks_router
from attachments.config.runtime_config import Settings
from attachments.gateway.auth import SharedSecretAuthenticator
from attachments.gateway.rewriter import RequestRewriter
from attachments.gateway.routes import build_router as build_attachments_router
from attachments.registry.repository import IdentifierRegistry, registry_from_url
from attachments.upstream.handler import HttpUploadHandler, UploadHandler

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_TIMEOUT = 30.0


def create_app(
    settings: Settings,
    registry: IdentifierRegistry,
    upload_handler: UploadHandler,
    startup_checks: Sequence[StartupCheck] = (),
    listener: Optional[CompletionListener] = None,
    drain_timeout: Optional[float] = SHUTDOWN_DRAIN_TIMEOUT,
) -> FastAPI:
    """Wire the gateway around explicit dependencies; nothing is read from module globals."""
    listener = listener or CompletionListener(
        registry,
        maxsize=settings.queue_size,
        policy=settings.queue_policy,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for check in startup_checks:
            await check()
        listener.start()
        logger.info(
            "attachments gateway ready base_path=%s hooks_path=%s upstream=%s",
            settings.base_path,
            settings.hooks_path,
            getattr(upload_handler, "upstream_url", "<in-process>"),
        )
        try:
            yield
        finally:
            await listener.drain(drain_timeout)
            await listener.stop()
            await upload_handler.aclose()
            await registry.close()

    app = FastAPI(title="Attachments Gateway", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.upload_handler = upload_handler
    app.state.listener = listener
    app.state.authenticator = SharedSecretAuthenticator(settings.secret)
    app.state.rewriter = RequestRewriter(registry, settings.base_path)

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(build_hooks_router(settings.hooks_path))
    app.include_router(build_attachments_router(settings.base_path))
    return app


def build_app(settings: Settings) -> FastAPI:
    """Production wiring: Redis registry, tusd proxy, startup connectivity checks."""
    registry = registry_from_url(settings.redis_url)
    upload_handler = HttpUploadHandler(settings.upstream_url)
    checks = [registry_check(registry), object_store_check(settings.object_store_url)]
    return create_app(settings, registry, upload_handler, startup_checks=checks)
