import sys
from dataclasses import replace
from pathlib import Path
from typing import List

import pytest
from fastapi.responses import Response
from fastapi.testclient import TestClient

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from attachments.config.runtime_config import Settings  # noqa: E402
from attachments.registry.repository import InMemoryIdentifierRegistry  # noqa: E402
from attachments.server import create_app  # noqa: E402
from attachments.upstream.models import ForwardRequest  # noqa: E402

SHARED_SECRET = b"phase1-secret"


class RecordingUploadHandler:
    """Stand-in for tusd: records every forwarded request and answers deterministically by path."""

    def __init__(self) -> None:
        self.calls: List[ForwardRequest] = []
        self.closed = False

    async def handle(self, request: ForwardRequest) -> Response:
        if request.streamed:
            request = replace(request, body=b"".join([chunk async for chunk in request.body]))
        self.calls.append(request)
        if request.method != "GET":
            return Response(status_code=204, headers={"Tus-Resumable": "1.0.0"})
        return Response(
            content=f"content-of:{request.path}".encode(),
            status_code=200,
            headers={"X-Upstream-Path": request.path, "Tus-Resumable": "1.0.0"},
            media_type="application/octet-stream",
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        redis_url="memory://",
        object_store_url="http://minio.test:9000",
        secret=SHARED_SECRET,
        upstream_url="http://tusd.test:1080",
    )


@pytest.fixture
def registry() -> InMemoryIdentifierRegistry:
    return InMemoryIdentifierRegistry()


@pytest.fixture
def upload_handler() -> RecordingUploadHandler:
    return RecordingUploadHandler()


@pytest.fixture
def app(settings, registry, upload_handler):
    return create_app(settings, registry, upload_handler)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def basic_auth():
    def _auth(password: bytes = SHARED_SECRET, username: str = "anyone"):
        return (username, password.decode("utf-8"))

    return _auth
