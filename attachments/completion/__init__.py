"""Upload completion handling."""

from attachments.completion.listener import CompletionListener  # noqa: F401
from attachments.completion.models import CompletionNotification  # noqa: F401
