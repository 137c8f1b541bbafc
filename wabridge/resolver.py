"""
Conversation Resolver.

Finds or creates the room for an external chat identity and resolves
reply-thread linkage from provider ids to internal message ids.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from wabridge.notifications import NotificationBase
from wabridge.storage import create_room, get_message_by_messenger_id, get_room

logger = logging.getLogger(__name__)

DEFAULT_AVATAR = "empty-avatar.png"
DEFAULT_PRESENCE = "offline"


def resolve_room(db: Session, channel: str, notification: NotificationBase):
    """
    Find the room for the notification's sender, creating it on first contact.

    The room is seeded from the sender profile: display name falls back to the
    raw contact identity, avatar to a placeholder, presence to offline.
    """
    chat_id = notification.sender
    room = get_room(db, channel, chat_id)
    if room is not None:
        return room

    room, created = create_room(
        db,
        channel=channel,
        chat_id=chat_id,
        name=notification.profile_name or notification.wa_id or chat_id,
        avatar=DEFAULT_AVATAR,
        username=notification.profile_name,
        phone=notification.wa_id or chat_id,
        status_state=DEFAULT_PRESENCE,
        status_last_changed=0,
    )
    if not created:
        logger.info(f"Room for {chat_id} was created concurrently, using existing row")
    return room


def resolve_reply(db: Session, channel: str, reply_to: Optional[str]) -> Optional[int]:
    """Internal id of the quoted message, or None when it is unknown here."""
    if not reply_to:
        return None
    message = get_message_by_messenger_id(db, channel, reply_to)
    if message is None:
        logger.info(f"Reply target not found: {reply_to}")
        return None
    return message.id
