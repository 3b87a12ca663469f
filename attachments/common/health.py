"""Liveness and readiness endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from attachments import __version__
from attachments.registry.repository import RegistryUnavailable

router = APIRouter(tags=["system"])


class HealthStatus(BaseModel):
    status: str
    version: str = __version__
    registry: str = "unknown"
    listener: str = "unknown"


@router.get("/health", response_model=HealthStatus)
def health_check():
    return HealthStatus(status="ok")


@router.get("/ready", response_model=HealthStatus)
async def readiness_check(request: Request):
    state = request.app.state
    try:
        await state.registry.ping()
        registry = "ok"
    except RegistryUnavailable:
        registry = "unavailable"
    listener = "ok" if state.listener.running else "stopped"
    status = HealthStatus(
        status="ok" if registry == "ok" and listener == "ok" else "degraded",
        registry=registry,
        listener=listener,
    )
    return JSONResponse(content=status.model_dump(), status_code=200 if status.status == "ok" else 503)
