"""
classify -> guard -> route -> reconcile.

Each notification is reconciled in its own transaction. Events are
broadcast only after that transaction commits.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from wabridge.broadcast import Broadcaster, InMemoryBroadcaster
from wabridge.classifier import classify_payload
from wabridge.guard import channel_guard
from wabridge.ingestion import ingest_message
from wabridge.media import MediaFetcher
from wabridge.metrics import record_notification_outcome
from wabridge.notifications import MESSAGE_KINDS, Notification, NotificationKind
from wabridge.reactions import apply_reaction
from wabridge.schemas import ProcessingResult
from wabridge.statuses import reconcile_status

logger = logging.getLogger(__name__)


class ProcessingContext:
    """Everything a notification needs besides the session, passed explicitly."""

    def __init__(
        self,
        channel: str,
        phone_number_id: str,
        fetcher: Optional[MediaFetcher] = None,
        broadcaster: Optional[Broadcaster] = None,
    ) -> None:
        self.channel = channel
        self.phone_number_id = phone_number_id
        self.fetcher = fetcher
        self.broadcaster = broadcaster if broadcaster is not None else InMemoryBroadcaster()


def route(db: Session, notification: Notification, context: ProcessingContext) -> ProcessingResult:
    kind = notification.kind

    if kind in MESSAGE_KINDS:
        return ingest_message(db, context.channel, notification, context.fetcher)
    if kind == NotificationKind.STATUS:
        return reconcile_status(db, context.channel, notification)
    if kind == NotificationKind.REACTION:
        return apply_reaction(db, context.channel, notification)
    if kind == NotificationKind.UNKNOWN:
        logger.info(f"Unknown notification: {notification.reason}")
        if notification.messenger_id and notification.sender:
            return ingest_message(db, context.channel, notification, context.fetcher)
        return ProcessingResult(kind=kind.value, messenger_id=notification.messenger_id, success=False, outcome="skipped")

    raise ValueError(f"Unhandled notification kind: {kind}")


def process_notification(db: Session, notification: Notification, context: ProcessingContext) -> ProcessingResult:
    kind = notification.kind.value

    if channel_guard(notification, context.phone_number_id) is None:
        result = ProcessingResult(kind=kind, messenger_id=notification.messenger_id, success=False, outcome="dropped")
        record_notification_outcome(kind, result.outcome)
        return result

    try:
        result = route(db, notification, context)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Failed to reconcile {kind} notification {notification.messenger_id}")
        result = ProcessingResult(kind=kind, messenger_id=notification.messenger_id, success=False, outcome="error")

    if result.should_broadcast:
        try:
            context.broadcaster.publish(result.event)
        except Exception:
            logger.exception(f"Broadcast failed for {kind} notification {notification.messenger_id}")

    record_notification_outcome(kind, result.outcome)
    return result


def process_payload(db: Session, payload: Any, context: ProcessingContext) -> list[ProcessingResult]:
    """
    Reconcile every notification of a webhook delivery, in payload order.

    Returns:
        One result per notification. Never raises for a single bad item.
    """
    notifications = classify_payload(payload)
    results = [process_notification(db, notification, context) for notification in notifications]

    processed = sum(1 for r in results if r.success)
    logger.info(f"Processed {processed} of {len(results)} notifications")
    return results
