"""Shared-secret gate for mutating requests. Retrieval stays public."""
from __future__ import annotations

import base64
import binascii
import hmac
import logging
from typing import Optional, Tuple

from fastapi import Depends, Header, Request

from attachments.common.error_envelope import AuthFailure

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET"})


def is_safe_method(method: str) -> bool:
    return method.upper() in SAFE_METHODS


def parse_basic_auth(authorization: Optional[str]) -> Optional[Tuple[str, bytes]]:
    """Return (username, password) from a Basic Authorization header, or None if absent/malformed."""
    if not authorization:
        return None
    scheme, _, encoded = authorization.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError):
        return None
    username, sep, password = decoded.partition(b":")
    if not sep:
        return None
    return username.decode("utf-8", errors="replace"), password


class SharedSecretAuthenticator:
    """Binary check of a password against the one configured secret; usernames are not identities."""

    def __init__(self, secret: bytes) -> None:
        if not secret:
            raise ValueError("shared secret must not be empty")
        self._secret = secret

    def check(self, username: str, password: bytes) -> bool:
        return hmac.compare_digest(password, self._secret)


def get_authenticator(request: Request) -> SharedSecretAuthenticator:
    return request.app.state.authenticator


def require_credentials(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    authenticator: SharedSecretAuthenticator = Depends(get_authenticator),
) -> None:
    if is_safe_method(request.method):
        return
    credentials = parse_basic_auth(authorization)
    if credentials is None:
        logger.warning("basic auth missing or malformed method=%s path=%s", request.method, request.url.path)
        raise AuthFailure()
    username, password = credentials
    if not authenticator.check(username, password):
        logger.warning(
            "basic auth check failed method=%s path=%s user=%s", request.method, request.url.path, username
        )
        raise AuthFailure()
