"""Adapter for the wrapped tus upload handler."""

from attachments.upstream.handler import HttpUploadHandler, UploadHandler  # noqa: F401
from attachments.upstream.models import ForwardRequest  # noqa: F401
