"""
Typed notifications produced by the classifier.

Every item found in a provider delivery becomes exactly one notification.
The set of kinds is closed; anything the classifier cannot interpret becomes
an ``UnknownNotification`` so new provider kinds degrade safely.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    TEXT = "text"
    MEDIA = "media"
    LOCATION = "location"
    CONTACT = "contact"
    BUTTON = "button"
    INTERACTIVE = "interactive"
    FLOW = "flow"
    SYSTEM = "system"
    STATUS = "status"
    REACTION = "reaction"
    UNKNOWN = "unknown"


# Kinds that materialize a new Message
MESSAGE_KINDS = {
    NotificationKind.TEXT,
    NotificationKind.MEDIA,
    NotificationKind.LOCATION,
    NotificationKind.CONTACT,
    NotificationKind.BUTTON,
    NotificationKind.INTERACTIVE,
    NotificationKind.FLOW,
    NotificationKind.SYSTEM,
}


class NotificationBase(BaseModel):
    """Attributes shared by every notification variant."""
    messenger_id: Optional[str] = Field(None, description="Provider message id")
    sender: Optional[str] = Field(None, description="Sender channel identity (chat id)")
    channel_identity: Optional[str] = Field(None, description="Receiving phone_number_id")
    timestamp: int = Field(0, description="Provider timestamp, unix seconds")
    reply_to: Optional[str] = Field(None, description="Provider id of the quoted message")
    forwarded: bool = False
    profile_name: Optional[str] = None
    wa_id: Optional[str] = None


class MediaReference(BaseModel):
    """Opaque provider media handle plus what is needed to store it."""
    media_id: str
    mime_type: str = "application/octet-stream"
    filename: Optional[str] = None
    kind: Literal["image", "video", "audio", "document"] = "document"

    def resolved_filename(self) -> str:
        """Provider filename, or ``{media_id}.{subtype}`` derived from the mime type."""
        if self.filename:
            return self.filename
        mime = self.mime_type.split(";")[0].strip()
        extension = mime.split("/")[-1] if "/" in mime else "bin"
        return f"{self.media_id}.{extension}"


class TextNotification(NotificationBase):
    kind: Literal[NotificationKind.TEXT] = NotificationKind.TEXT
    body: str = ""


class MediaNotification(NotificationBase):
    kind: Literal[NotificationKind.MEDIA] = NotificationKind.MEDIA
    media: MediaReference
    caption: str = ""


class LocationNotification(NotificationBase):
    kind: Literal[NotificationKind.LOCATION] = NotificationKind.LOCATION
    latitude: float
    longitude: float
    name: Optional[str] = None
    address: Optional[str] = None


class ContactNotification(NotificationBase):
    kind: Literal[NotificationKind.CONTACT] = NotificationKind.CONTACT
    formatted_name: str = ""
    phone: Optional[str] = None


class ButtonNotification(NotificationBase):
    kind: Literal[NotificationKind.BUTTON] = NotificationKind.BUTTON
    text: str = ""
    payload: Optional[str] = None


class InteractiveNotification(NotificationBase):
    kind: Literal[NotificationKind.INTERACTIVE] = NotificationKind.INTERACTIVE
    title: str = ""
    reply_id: Optional[str] = None


class FlowNotification(NotificationBase):
    kind: Literal[NotificationKind.FLOW] = NotificationKind.FLOW
    body: str = ""
    response_json: Optional[str] = None


class SystemNotification(NotificationBase):
    kind: Literal[NotificationKind.SYSTEM] = NotificationKind.SYSTEM
    body: str = ""


class StatusNotification(NotificationBase):
    kind: Literal[NotificationKind.STATUS] = NotificationKind.STATUS
    status: str
    recipient_id: Optional[str] = None
    unread_count: Optional[int] = None
    errors: list[dict[str, Any]] = Field(default_factory=list)


class ReactionNotification(NotificationBase):
    kind: Literal[NotificationKind.REACTION] = NotificationKind.REACTION
    target_messenger_id: Optional[str] = None
    emoji: Optional[str] = None


class UnknownNotification(NotificationBase):
    kind: Literal[NotificationKind.UNKNOWN] = NotificationKind.UNKNOWN
    reason: str = ""
    provider_type: Optional[str] = None


Notification = Annotated[
    Union[
        TextNotification,
        MediaNotification,
        LocationNotification,
        ContactNotification,
        ButtonNotification,
        InteractiveNotification,
        FlowNotification,
        SystemNotification,
        StatusNotification,
        ReactionNotification,
        UnknownNotification,
    ],
    Field(discriminator="kind"),
]
