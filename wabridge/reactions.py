"""
Reaction Merger.

A message keeps at most one active reaction per chat id. An empty emoji
removes the entry instead of storing a blank value.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from wabridge.events import edit_message_event
from wabridge.notifications import ReactionNotification
from wabridge.schemas import ProcessingResult
from wabridge.storage import get_message_by_messenger_id

logger = logging.getLogger(__name__)


def merge_reactions(reactions: Optional[dict], emoji: Optional[str], chat_id: str) -> dict:
    """
    Merge one reaction into a reaction set.

    Args:
        reactions: Current chat_id -> emoji mapping (not modified)
        emoji: New emoji; empty or None removes the chat id's reaction
        chat_id: Reacting chat id

    Returns:
        New mapping
    """
    merged = dict(reactions or {})
    if emoji:
        merged[chat_id] = emoji
    else:
        merged.pop(chat_id, None)
    return merged


def apply_reaction(db: Session, channel: str, notification: ReactionNotification) -> ProcessingResult:
    kind = notification.kind.value
    target_id = notification.target_messenger_id

    message = get_message_by_messenger_id(db, channel, target_id) if target_id else None
    if message is None:
        logger.info(f"Reaction for unknown message {target_id}")
        return ProcessingResult(kind=kind, messenger_id=target_id, success=False, outcome="not_found")

    reactor = notification.sender or message.chat_id
    # Reassign so the JSON column is marked dirty
    message.reactions = merge_reactions(message.reactions, notification.emoji, reactor)
    db.flush()
    logger.info(f"Reaction from {reactor} on {target_id}: {notification.emoji or 'removed'}")

    return ProcessingResult(
        kind=kind,
        messenger_id=target_id,
        success=True,
        outcome="updated",
        event=edit_message_event(message),
    )
