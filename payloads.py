"""
Builders for WhatsApp Business webhook payloads used across the tests.
"""

import hashlib
import hmac
import json
import os
from typing import Optional

PHONE_NUMBER_ID = os.environ["WB_PHONE_NUMBER_ID"]
WEBHOOK_SECRET = os.environ["WEBHOOK_SECRET"]


def compute_signature(body: str, secret: str = WEBHOOK_SECRET) -> str:
    """X-Hub-Signature-256 header value for a request body."""
    digest = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def envelope(*values: dict) -> dict:
    """Wrap change values into a single-entry envelope."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "102290129340398",
                "changes": [{"field": "messages", "value": value} for value in values],
            }
        ],
    }


def change_value(
    messages: Optional[list] = None,
    statuses: Optional[list] = None,
    contacts: Optional[list] = None,
    phone_number_id: str = PHONE_NUMBER_ID,
) -> dict:
    value = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "15550783881", "phone_number_id": phone_number_id},
    }
    if contacts is not None:
        value["contacts"] = contacts
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    return value


def contact(wa_id: str, name: Optional[str] = None) -> dict:
    item = {"wa_id": wa_id}
    if name is not None:
        item["profile"] = {"name": name}
    return item


def message(messenger_id: str, sender: str, message_type: str, body: dict, timestamp: int = 1700000000,
            context: Optional[dict] = None) -> dict:
    item = {
        "from": sender,
        "id": messenger_id,
        "timestamp": str(timestamp),
        "type": message_type,
        message_type: body,
    }
    if context is not None:
        item["context"] = context
    return item


def text_message(messenger_id: str, sender: str, text: str, timestamp: int = 1700000000,
                 reply_to: Optional[str] = None) -> dict:
    context = {"from": sender, "id": reply_to} if reply_to else None
    return message(messenger_id, sender, "text", {"body": text}, timestamp, context)


def reaction_message(messenger_id: str, sender: str, target: str, emoji: Optional[str]) -> dict:
    body = {"message_id": target}
    if emoji is not None:
        body["emoji"] = emoji
    return message(messenger_id, sender, "reaction", body)


def status_item(messenger_id: str, status: str, recipient: str, timestamp: int = 1700000100, **extra) -> dict:
    item = {
        "id": messenger_id,
        "status": status,
        "timestamp": str(timestamp),
        "recipient_id": recipient,
    }
    item.update(extra)
    return item


def text_delivery(messenger_id: str, sender: str, text: str, name: Optional[str] = None, **kwargs) -> dict:
    """Envelope with a single text message and its sender profile."""
    return envelope(
        change_value(
            contacts=[contact(sender, name)],
            messages=[text_message(messenger_id, sender, text, **kwargs)],
        )
    )


def status_delivery(messenger_id: str, status: str, recipient: str, **kwargs) -> dict:
    return envelope(change_value(statuses=[status_item(messenger_id, status, recipient, **kwargs)]))


def dumps(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False)
