"""
Normalized events handed to the broadcaster.

Every event is a plain dict with the discriminator key ``_``.
"""

from wabridge.schemas import MessageResponse, RoomResponse

NEW_MESSAGE = "updateNewMessage"
MESSAGE_STATUS = "updateMessageStatus"
EDIT_MESSAGE = "updateEditMessage"


def room_snapshot(room) -> dict:
    return RoomResponse.model_validate(room).model_dump()


def message_snapshot(message) -> dict:
    return MessageResponse.model_validate(message).model_dump()


def new_message_event(room, message) -> dict:
    return {
        "_": NEW_MESSAGE,
        "success": True,
        "room": room_snapshot(room),
        "message": message_snapshot(message),
    }


def message_status_event(room, message, newly_seen: int = 0) -> dict:
    return {
        "_": MESSAGE_STATUS,
        "success": True,
        "room_id": room.id,
        "chat_id": room.chat_id,
        "unread_count": room.unread_count,
        "message_id": message.id,
        "messenger_id": message.messenger_id,
        "saved": message.saved,
        "distributed": message.distributed,
        "seen": message.seen,
        "failure": message.failure,
        "newly_seen": newly_seen,
    }


def edit_message_event(message) -> dict:
    return {
        "_": EDIT_MESSAGE,
        "success": True,
        "room_id": message.room_id,
        "chat_id": message.chat_id,
        "message": message_snapshot(message),
    }
