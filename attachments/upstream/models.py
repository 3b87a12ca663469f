"""Request value handed to the upload handler."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import AsyncIterable, Optional, Tuple, Union

from fastapi import Request

Headers = Tuple[Tuple[str, str], ...]
Body = Union[bytes, AsyncIterable[bytes]]


def _has_body(request: Request) -> bool:
    return request.headers.get("content-length", "0") != "0" or "transfer-encoding" in request.headers


@dataclass(frozen=True)
class ForwardRequest:
    """Immutable snapshot of an inbound request.

    Rewriting builds a new value with `with_path`; the original is never touched.
    Non-GET bodies (tus PATCH chunks) stay an async byte stream and can be
    consumed once.
    """

    method: str
    path: str
    query: str = ""
    headers: Headers = ()
    body: Body = b""
    scheme: str = "http"

    @classmethod
    async def from_request(cls, request: Request, path: str) -> "ForwardRequest":
        method = request.method.upper()
        body: Body = request.stream() if method != "GET" and _has_body(request) else await request.body()
        return cls(
            method=method,
            path=path,
            query=request.url.query,
            headers=tuple((k, v) for k, v in request.headers.items()),
            body=body,
            scheme=request.url.scheme,
        )

    @property
    def streamed(self) -> bool:
        return not isinstance(self.body, bytes)

    def with_path(self, path: str) -> "ForwardRequest":
        return replace(self, path=path)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None
