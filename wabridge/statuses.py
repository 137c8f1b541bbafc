"""
Status Reconciler.

Applies provider delivery statuses to messages. Delivery state only moves
forward: Sent -> Delivered -> Seen, where Seen implies the other two.
"""

import logging

from sqlalchemy.orm import Session

from wabridge.events import message_status_event
from wabridge.models import Message
from wabridge.notifications import StatusNotification
from wabridge.schemas import ProcessingResult
from wabridge.storage import get_message_by_messenger_id

logger = logging.getLogger(__name__)

OFFLINE = "offline"


def mark_saved(message) -> None:
    message.saved = True


def mark_distributed(message) -> None:
    message.saved = True
    message.distributed = True


def mark_seen(db: Session, message) -> int:
    """
    Mark the message and every earlier unseen message of the same direction
    in its room as seen.

    Returns:
        Number of messages that were not seen before
    """
    pending = (
        db.query(Message)
        .filter(
            Message.room_id == message.room_id,
            Message.from_me == message.from_me,
            Message.seen.is_(False),
            Message.timestamp <= message.timestamp,
        )
        .all()
    )
    if not message.seen and message not in pending:
        pending.append(message)

    for item in pending:
        item.seen = True
        item.saved = True
        item.distributed = True
    return len(pending)


def _failure_description(notification: StatusNotification) -> str:
    if not notification.errors:
        return "failed"
    error = notification.errors[0]
    title = error.get("title") or error.get("message") or "failed"
    code = error.get("code")
    return f"{code}: {title}" if code is not None else str(title)


def reconcile_status(db: Session, channel: str, notification: StatusNotification) -> ProcessingResult:
    """
    Apply one status notification.

    Unknown target messages are not reconstructed: the result is a failure
    with outcome "not_found".
    """
    kind = notification.kind.value
    messenger_id = notification.messenger_id

    message = get_message_by_messenger_id(db, channel, messenger_id)
    if message is None:
        logger.info(f"Status {notification.status} for unknown message {messenger_id}")
        return ProcessingResult(kind=kind, messenger_id=messenger_id, success=False, outcome="not_found")

    room = message.room
    status = notification.status
    newly_seen = 0

    if status == "sent":
        mark_saved(message)
    elif status == "delivered":
        mark_distributed(message)
    elif status == "read":
        newly_seen = mark_seen(db, message)
        if not message.from_me:
            if notification.unread_count is not None:
                room.unread_count = max(0, notification.unread_count)
            else:
                room.unread_count = max(0, (room.unread_count or 0) - newly_seen)
            # A read receipt doubles as the counterpart's last-seen presence
            room.status_state = OFFLINE
            room.status_last_changed = notification.timestamp
    elif status == "failed":
        message.failure = _failure_description(notification)
        logger.warning(f"Message {messenger_id} failed: {message.failure}")
    else:
        logger.info(f"Unrecognized status {status!r} for message {messenger_id}")
        return ProcessingResult(kind=kind, messenger_id=messenger_id, success=False, outcome="unrecognized_status")

    db.flush()
    logger.info(f"Message {messenger_id} status {status} applied (newly seen: {newly_seen})")

    return ProcessingResult(
        kind=kind,
        messenger_id=messenger_id,
        success=True,
        outcome="updated",
        event=message_status_event(room, message, newly_seen),
    )
