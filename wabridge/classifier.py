"""
Notification Classifier.

Turns a raw WhatsApp Business webhook envelope into a flat list of typed
notifications, one per message, status or reaction item, in payload order.

A single bad item never aborts the batch: it is classified as
``UnknownNotification`` and logged.
"""

import logging
from typing import Any, Optional

from wabridge.notifications import (
    ButtonNotification,
    ContactNotification,
    FlowNotification,
    InteractiveNotification,
    LocationNotification,
    MediaNotification,
    MediaReference,
    Notification,
    ReactionNotification,
    StatusNotification,
    SystemNotification,
    TextNotification,
    UnknownNotification,
)

logger = logging.getLogger(__name__)

# Provider message type -> semantic media kind
MEDIA_TYPES = {
    "image": "image",
    "sticker": "image",
    "video": "video",
    "audio": "audio",
    "document": "document",
}

# Errors raised while reading a malformed item
MALFORMED_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError)


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_list(value: Any, name: str) -> list:
    """The value when it is a JSON array, otherwise an empty list."""
    if isinstance(value, list):
        return value
    if value is not None:
        logger.info(f"Ignoring non-list {name}: {type(value).__name__}")
    return []


def _profiles(value: dict) -> dict[str, Optional[str]]:
    """Map wa_id -> profile name from the change's contacts block."""
    profiles = {}
    for contact in _as_list(value.get("contacts"), "contacts"):
        if not isinstance(contact, dict):
            continue
        wa_id = contact.get("wa_id")
        if wa_id is not None:
            profile = contact.get("profile")
            profiles[str(wa_id)] = profile.get("name") if isinstance(profile, dict) else None
    return profiles


def _common_fields(item: dict, channel_identity: Optional[str], profiles: dict) -> dict:
    context = item.get("context") or {}
    sender = item.get("from")
    sender = str(sender) if sender is not None else None
    return {
        "messenger_id": str(item["id"]) if item.get("id") is not None else None,
        "sender": sender,
        "channel_identity": channel_identity,
        "timestamp": _to_int(item.get("timestamp")),
        "reply_to": context.get("id"),
        "forwarded": bool(context.get("forwarded") or context.get("frequently_forwarded")),
        "profile_name": profiles.get(sender) if sender else None,
        "wa_id": sender if sender in profiles else None,
    }


def classify_message(item: dict, channel_identity: Optional[str], profiles: dict) -> Notification:
    """Classify one element of ``value.messages[]``."""
    common = _common_fields(item, channel_identity, profiles)
    message_type = item.get("type")

    if item.get("errors") and message_type in (None, "unsupported", "unknown"):
        return UnknownNotification(
            **common,
            reason=str(item["errors"][0].get("title", "provider error")),
            provider_type=message_type,
        )

    if message_type == "text":
        return TextNotification(**common, body=item["text"]["body"])

    if message_type in MEDIA_TYPES:
        data = item[message_type]
        media = MediaReference(
            media_id=str(data["id"]),
            mime_type=data.get("mime_type") or "application/octet-stream",
            filename=data.get("filename"),
            kind=MEDIA_TYPES[message_type],
        )
        return MediaNotification(**common, media=media, caption=data.get("caption") or "")

    if message_type == "location":
        data = item["location"]
        return LocationNotification(
            **common,
            latitude=data["latitude"],
            longitude=data["longitude"],
            name=data.get("name"),
            address=data.get("address"),
        )

    if message_type == "contacts":
        contact = item["contacts"][0]
        phones = contact.get("phones") or []
        return ContactNotification(
            **common,
            formatted_name=contact["name"]["formatted_name"],
            phone=phones[0].get("phone") if phones else None,
        )

    if message_type == "button":
        data = item["button"]
        return ButtonNotification(**common, text=data.get("text", ""), payload=data.get("payload"))

    if message_type == "interactive":
        data = item["interactive"]
        reply_type = data.get("type")
        if reply_type == "nfm_reply":
            reply = data["nfm_reply"]
            return FlowNotification(
                **common,
                body=reply.get("body") or "",
                response_json=reply.get("response_json"),
            )
        if reply_type in ("button_reply", "list_reply"):
            reply = data[reply_type]
            return InteractiveNotification(**common, title=reply.get("title", ""), reply_id=reply.get("id"))
        return UnknownNotification(
            **common,
            reason=f"unsupported interactive type: {reply_type}",
            provider_type=message_type,
        )

    if message_type == "system":
        return SystemNotification(**common, body=item["system"].get("body", ""))

    if message_type == "reaction":
        data = item["reaction"]
        return ReactionNotification(
            **common,
            target_messenger_id=data["message_id"],
            emoji=data.get("emoji") or None,
        )

    return UnknownNotification(
        **common,
        reason=f"unsupported message type: {message_type}",
        provider_type=message_type,
    )


def classify_status(item: dict, channel_identity: Optional[str]) -> Notification:
    """Classify one element of ``value.statuses[]``."""
    recipient = item.get("recipient_id")
    unread_count = item.get("unread_count")
    return StatusNotification(
        messenger_id=str(item["id"]),
        sender=str(recipient) if recipient is not None else None,
        channel_identity=channel_identity,
        timestamp=_to_int(item.get("timestamp")),
        status=str(item["status"]),
        recipient_id=str(recipient) if recipient is not None else None,
        unread_count=int(unread_count) if unread_count is not None else None,
        errors=item.get("errors") or [],
    )


def classify_change(change: Any) -> list[Notification]:
    """Classify every message and status item of a single ``entry.changes[]`` element."""
    value = change.get("value") if isinstance(change, dict) else None
    metadata = value.get("metadata") if isinstance(value, dict) else None
    if not isinstance(metadata, dict) or not metadata.get("phone_number_id"):
        logger.info("Skipping change without value metadata", extra={"change": change})
        return [UnknownNotification(reason="change without value metadata")]

    channel_identity = str(metadata["phone_number_id"])
    profiles = _profiles(value)
    notifications: list[Notification] = []

    for item in _as_list(value.get("messages"), "messages"):
        try:
            notifications.append(classify_message(item, channel_identity, profiles))
        except MALFORMED_ERRORS as e:
            logger.info(f"Malformed message item: {e!r}")
            notifications.append(_unknown_from(item, channel_identity, f"malformed message: {e!r}"))

    for item in _as_list(value.get("statuses"), "statuses"):
        try:
            notifications.append(classify_status(item, channel_identity))
        except MALFORMED_ERRORS as e:
            logger.info(f"Malformed status item: {e!r}")
            notifications.append(_unknown_from(item, channel_identity, f"malformed status: {e!r}"))

    if not notifications:
        notifications.append(
            UnknownNotification(channel_identity=channel_identity, reason="change without messages or statuses")
        )
    return notifications


def _unknown_from(item: Any, channel_identity: str, reason: str) -> UnknownNotification:
    item = item if isinstance(item, dict) else {}
    messenger_id = item.get("id")
    sender = item.get("from")
    return UnknownNotification(
        messenger_id=str(messenger_id) if messenger_id is not None else None,
        sender=str(sender) if sender is not None else None,
        channel_identity=channel_identity,
        timestamp=_to_int(item.get("timestamp")),
        reason=reason,
        provider_type=item.get("type") if isinstance(item.get("type"), str) else None,
    )


def classify_payload(payload: Any) -> list[Notification]:
    """
    Classify a whole webhook envelope.

    Args:
        payload: Decoded JSON body ``{"entry": [{"changes": [...]}]}``

    Returns:
        Notifications in payload order. Never raises for malformed input.
    """
    if not isinstance(payload, dict):
        return [UnknownNotification(reason="payload is not an object")]

    notifications: list[Notification] = []
    for entry in _as_list(payload.get("entry"), "entry"):
        changes = entry.get("changes") if isinstance(entry, dict) else None
        for change in _as_list(changes, "changes"):
            notifications.extend(classify_change(change))

    unknown = sum(1 for n in notifications if isinstance(n, UnknownNotification))
    logger.debug(f"Classified {len(notifications)} notifications ({unknown} unknown)")
    return notifications
