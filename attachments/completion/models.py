"""Upload completion notifications and the tusd hook payload they arrive in."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

HOOK_POST_FINISH = "post-finish"

# tus-js-client and uppy send "filename"; "fileName" is accepted as well.
FILENAME_METADATA_KEYS = ("filename", "fileName")


class CompletionNotification(BaseModel):
    upload_id: str
    metadata: Dict[str, str] = Field(default_factory=dict)

    def file_name(self) -> Optional[str]:
        for key in FILENAME_METADATA_KEYS:
            value = self.metadata.get(key)
            if value:
                return value
        return None


class HookUpload(BaseModel):
    model_config = ConfigDict(extra="allow")

    ID: str
    MetaData: Optional[Dict[str, str]] = None


class HookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    Upload: HookUpload
    HTTPRequest: Optional[Dict[str, Any]] = None


class HookRequest(BaseModel):
    """Body of a tusd v2 HTTP hook call."""

    model_config = ConfigDict(extra="allow")

    Type: str
    Event: HookEvent

    def to_notification(self) -> CompletionNotification:
        return CompletionNotification(
            upload_id=self.Event.Upload.ID,
            metadata=dict(self.Event.Upload.MetaData or {}),
        )
