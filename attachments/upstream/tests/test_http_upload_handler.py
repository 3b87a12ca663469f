import asyncio

import httpx
from fastapi.testclient import TestClient

from attachments.registry.repository import InMemoryIdentifierRegistry
from attachments.server import create_app
from attachments.upstream.handler import HttpUploadHandler, outbound_headers, upstream_target
from attachments.upstream.models import ForwardRequest


def run_async(coro):
    return asyncio.run(coro)


def _handler(transport_fn) -> HttpUploadHandler:
    client = httpx.AsyncClient(base_url="http://tusd.test:1080", transport=httpx.MockTransport(transport_fn))
    return HttpUploadHandler("http://tusd.test:1080", client=client)


async def _chunks(data: bytes):
    yield data[:4]
    yield data[4:]


def test_upstream_target_keeps_query_and_plus_signs():
    request = ForwardRequest(method="GET", path="/attachments/obj+mp id", query="a=1&b=2")
    assert upstream_target(request) == "/attachments/obj+mp%20id?a=1&b=2"


def test_outbound_headers_drop_hop_by_hop_and_add_forwarding():
    request = ForwardRequest(
        method="PATCH",
        path="/attachments/abc",
        headers=(
            ("host", "files.example.com"),
            ("connection", "keep-alive"),
            ("content-length", "5"),
            ("upload-offset", "0"),
            ("authorization", "Basic eDp5"),
        ),
        scheme="https",
    )

    headers = dict((k.lower(), v) for k, v in outbound_headers(request))

    assert "connection" not in headers
    assert "host" not in headers
    assert "content-length" not in headers
    assert headers["upload-offset"] == "0"
    assert headers["authorization"] == "Basic eDp5"
    assert headers["x-forwarded-host"] == "files.example.com"
    assert headers["x-forwarded-proto"] == "https"


def test_proxy_forwards_request_and_streams_response():
    seen = {}

    def _upstream(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = request.content
        seen["offset"] = request.headers.get("Upload-Offset")
        return httpx.Response(
            204,
            headers={"Upload-Offset": "5", "Tus-Resumable": "1.0.0", "Connection": "close"},
        )

    handler = _handler(_upstream)
    request = ForwardRequest(
        method="PATCH",
        path="/attachments/abc123",
        headers=(("upload-offset", "0"), ("content-type", "application/offset+octet-stream")),
        body=b"hello",
    )

    async def _test():
        response = await handler.handle(request)
        await handler.aclose()
        return response

    response = run_async(_test())

    assert seen == {
        "method": "PATCH",
        "url": "http://tusd.test:1080/attachments/abc123",
        "body": b"hello",
        "offset": "0",
    }
    assert response.status_code == 204
    header_names = {k.decode().lower() for k, _ in response.raw_headers}
    assert "upload-offset" in header_names
    assert "connection" not in header_names


def test_named_download_through_app_returns_upstream_bytes(settings):
    def _upstream(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/attachments/abc123"
        return httpx.Response(200, content=_chunks(b"%PDF-1.7 ..."), headers={"Content-Type": "application/pdf"})

    registry = InMemoryIdentifierRegistry({"report.pdf": "abc123"})
    app = create_app(settings, registry, _handler(_upstream))

    with TestClient(app) as client:
        response = client.get("/attachments/report.pdf")

    assert response.status_code == 200
    assert response.content == b"%PDF-1.7 ..."
    assert response.headers["content-type"] == "application/pdf"


def test_unreachable_upstream_returns_bad_gateway(settings, basic_auth):
    def _upstream(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    app = create_app(settings, InMemoryIdentifierRegistry(), _handler(_upstream))

    with TestClient(app) as client:
        response = client.post("/attachments/", auth=basic_auth(), headers={"Upload-Length": "10"})

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "attachments.upstream_unavailable"


def test_outbound_headers_keep_content_length_for_streamed_body():
    request = ForwardRequest(
        method="PATCH",
        path="/attachments/abc",
        headers=(("content-length", "10"), ("transfer-encoding", "chunked")),
        body=_chunks(b"0123456789"),
    )

    headers = dict((k.lower(), v) for k, v in outbound_headers(request))

    assert headers["content-length"] == "10"
    assert "transfer-encoding" not in headers


def test_streamed_patch_body_reaches_upstream_unbuffered():
    seen = {}

    def _upstream(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        seen["content-length"] = request.headers.get("Content-Length")
        seen["transfer-encoding"] = request.headers.get("Transfer-Encoding")
        return httpx.Response(204, headers={"Upload-Offset": "10"})

    handler = _handler(_upstream)
    request = ForwardRequest(
        method="PATCH",
        path="/attachments/abc123",
        headers=(("content-length", "10"), ("upload-offset", "0")),
        body=_chunks(b"0123456789"),
    )

    async def _test():
        response = await handler.handle(request)
        await handler.aclose()
        return response

    response = run_async(_test())

    assert response.status_code == 204
    assert seen == {"body": b"0123456789", "content-length": "10", "transfer-encoding": None}


def test_patch_through_app_forwards_request_stream(settings, basic_auth):
    seen = {}

    def _upstream(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.content
        seen["content-length"] = request.headers.get("Content-Length")
        return httpx.Response(204, headers={"Upload-Offset": "11", "Tus-Resumable": "1.0.0"})

    app = create_app(settings, InMemoryIdentifierRegistry(), _handler(_upstream))
    chunk = b"chunk-bytes"

    with TestClient(app) as client:
        response = client.patch(
            "/attachments/abc123",
            content=chunk,
            auth=basic_auth(),
            headers={"Upload-Offset": "0", "Content-Type": "application/offset+octet-stream"},
        )

    assert response.status_code == 204
    assert response.headers["Upload-Offset"] == "11"
    assert seen == {"body": chunk, "content-length": str(len(chunk))}


def test_utf8_response_headers_pass_through_as_bytes():
    disposition = 'inline;filename="报告.pdf"'.encode("utf-8")

    def _upstream(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers=[(b"Content-Disposition", disposition), (b"Connection", b"close")],
            content=_chunks(b"%PDF-1.7 ..."),
        )

    handler = _handler(_upstream)

    async def _test():
        response = await handler.handle(ForwardRequest(method="GET", path="/attachments/abc123"))
        body = b"".join([chunk async for chunk in response.body_iterator])
        await response.background()
        await handler.aclose()
        return response, body

    response, body = run_async(_test())

    assert response.status_code == 200
    assert (b"Content-Disposition", disposition) in response.raw_headers
    assert all(k.lower() != b"connection" for k, _ in response.raw_headers)
    assert body == b"%PDF-1.7 ..."


def test_named_download_with_utf8_file_name_through_app(settings):
    disposition = 'inline;filename="报告.pdf"'.encode("utf-8")

    def _upstream(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/attachments/abc123"
        return httpx.Response(
            200,
            headers=[(b"Content-Disposition", disposition), (b"Content-Type", b"application/pdf")],
            content=_chunks(b"%PDF-1.7 ..."),
        )

    registry = InMemoryIdentifierRegistry({"报告.pdf": "abc123"})
    app = create_app(settings, registry, _handler(_upstream))

    async def _test():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://gateway.test") as client:
            return await client.get("/attachments/报告.pdf")

    response = run_async(_test())

    assert response.status_code == 200
    assert response.content == b"%PDF-1.7 ..."
    assert (b"Content-Disposition", disposition) in response.headers.raw


def test_bodiless_delete_is_not_sent_chunked(settings, basic_auth):
    seen = {}

    def _upstream(request: httpx.Request) -> httpx.Response:
        seen["transfer-encoding"] = request.headers.get("Transfer-Encoding")
        seen["body"] = request.content
        return httpx.Response(204)

    app = create_app(settings, InMemoryIdentifierRegistry(), _handler(_upstream))

    with TestClient(app) as client:
        response = client.delete("/attachments/abc123", auth=basic_auth())

    assert response.status_code == 204
    assert seen == {"transfer-encoding": None, "body": b""}
