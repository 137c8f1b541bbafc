"""
Message Ingestion.

Materializes an inbound message exactly once per (channel, messenger_id),
attaching media and reply references, and updates the room it belongs to.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from wabridge.events import new_message_event
from wabridge.media import MediaFetcher, StoredMedia
from wabridge.models import Message
from wabridge.notifications import (
    ButtonNotification,
    ContactNotification,
    FlowNotification,
    InteractiveNotification,
    LocationNotification,
    MediaNotification,
    Notification,
    SystemNotification,
    TextNotification,
    UnknownNotification,
)
from wabridge.resolver import resolve_reply, resolve_room
from wabridge.schemas import ProcessingResult
from wabridge.storage import get_message_by_messenger_id, insert_message, utc_now_iso

logger = logging.getLogger(__name__)

MAPS_URL = "https://www.google.com/maps?q={lat},{long}"


def message_content(notification: Notification) -> str:
    """Content string stored for each message kind."""
    if isinstance(notification, TextNotification):
        return notification.body
    if isinstance(notification, MediaNotification):
        return notification.caption
    if isinstance(notification, LocationNotification):
        return MAPS_URL.format(lat=notification.latitude, long=notification.longitude)
    if isinstance(notification, ContactNotification):
        if notification.phone:
            return f"{notification.formatted_name} ({notification.phone})"
        return notification.formatted_name
    if isinstance(notification, ButtonNotification):
        return notification.text
    if isinstance(notification, InteractiveNotification):
        return notification.title
    if isinstance(notification, (FlowNotification, SystemNotification)):
        return notification.body
    # Unknown kinds are still recorded for audit continuity
    return ""


def _duplicate(kind: str, messenger_id: str, message) -> ProcessingResult:
    return ProcessingResult(
        kind=kind,
        messenger_id=messenger_id,
        success=True,
        outcome="duplicate",
        event=new_message_event(message.room, message),
    )


def ingest_message(
    db: Session,
    channel: str,
    notification: Notification,
    fetcher: Optional[MediaFetcher] = None,
) -> ProcessingResult:
    """
    Persist an inbound message and return its updateNewMessage event.

    Re-delivery of the same provider message is a no-op that returns the
    existing event with outcome "duplicate".
    """
    kind = notification.kind.value
    messenger_id = notification.messenger_id

    if not messenger_id or not notification.sender:
        logger.info(f"Skipping {kind} notification without messenger id or sender")
        return ProcessingResult(kind=kind, messenger_id=messenger_id, success=False, outcome="skipped")

    existing = get_message_by_messenger_id(db, channel, messenger_id)
    if existing is not None:
        logger.info(f"Message {messenger_id} already ingested")
        return _duplicate(kind, messenger_id, existing)

    # Fetched before any write so the download holds no database lock
    media: Optional[StoredMedia] = None
    if isinstance(notification, MediaNotification):
        if fetcher is None:
            logger.warning(f"No media fetcher configured, storing {messenger_id} without media")
        else:
            media = fetcher.fetch(notification.media)
            if media is None:
                logger.warning(f"Media {notification.media.media_id} unavailable, storing {messenger_id} without media")

    room = resolve_room(db, channel, notification)
    reply_message_id = resolve_reply(db, channel, notification.reply_to)

    is_system = isinstance(notification, SystemNotification)
    # System and unknown items never count as unread
    counts_unread = not (is_system or isinstance(notification, UnknownNotification))
    message = Message(
        channel=channel,
        messenger_id=messenger_id,
        room_id=room.id,
        chat_id=room.chat_id,
        content=message_content(notification),
        from_me=False,
        saved=True,
        distributed=True,
        seen=not counts_unread,
        system=is_system,
        deleted=False,
        forwarded=notification.forwarded,
        failure=None,
        reply_message_id=reply_message_id,
        reactions={},
        file_type=media.kind if media else None,
        file_path=media.path if media else None,
        file_name=media.filename if media else None,
        file_mime=media.mime_type if media else None,
        timestamp=notification.timestamp,
        created_at=utc_now_iso(),
    )
    message, is_duplicate = insert_message(db, message)
    if is_duplicate:
        return _duplicate(kind, messenger_id, message)

    if notification.timestamp >= (room.last_activity or 0):
        room.last_message_id = message.id
        room.last_activity = notification.timestamp
    if counts_unread:
        room.unread_count = (room.unread_count or 0) + 1
    db.flush()

    if isinstance(notification, UnknownNotification):
        logger.info(f"Recorded unknown notification {messenger_id}: {notification.reason}")

    return ProcessingResult(
        kind=kind,
        messenger_id=messenger_id,
        success=True,
        outcome="created",
        event=new_message_event(room, message),
    )
