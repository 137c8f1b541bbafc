"""
Tests for the status reconciler.

Tests cover:
- sent / delivered / read transitions
- Monotonicity: no status moves a message backward
- Unread accounting for read receipts, floored at zero
- Presence flip on read receipts
- Unknown messages and unrecognized statuses
"""

import pytest

from wabridge.ingestion import ingest_message
from wabridge.models import Message, Room
from wabridge.notifications import StatusNotification, TextNotification
from wabridge.statuses import reconcile_status

CHANNEL = "whatsapp_business"
SENDER = "16315551234"


def ingest(db, messenger_id: str, timestamp: int = 1700000000):
    ingest_message(db, CHANNEL, TextNotification(
        messenger_id=messenger_id, sender=SENDER, timestamp=timestamp, body=messenger_id,
    ))
    db.commit()
    return db.query(Message).filter(Message.messenger_id == messenger_id).one()


def status(messenger_id: str, value: str, **kwargs) -> StatusNotification:
    return StatusNotification(messenger_id=messenger_id, status=value, recipient_id=SENDER,
                              timestamp=kwargs.pop("timestamp", 1700000500), **kwargs)


def outbound(db, messenger_id: str, timestamp: int = 1700000000) -> Message:
    """An outbound message in the sender's room with no delivery flags yet."""
    message = ingest(db, messenger_id, timestamp)
    message.from_me = True
    message.saved = False
    message.distributed = False
    message.room.unread_count -= 1
    db.commit()
    return message


class TestTransitions:

    def test_sent(self, db):
        message = outbound(db, "out1")

        result = reconcile_status(db, CHANNEL, status("out1", "sent"))
        db.commit()

        assert result.success is True
        assert result.outcome == "updated"
        assert result.event["_"] == "updateMessageStatus"
        assert (message.saved, message.distributed, message.seen) == (True, False, False)

    def test_delivered_implies_saved(self, db):
        message = outbound(db, "out1")

        reconcile_status(db, CHANNEL, status("out1", "delivered"))
        db.commit()

        assert (message.saved, message.distributed, message.seen) == (True, True, False)

    def test_read_implies_delivered_and_saved(self, db):
        message = outbound(db, "out1")

        reconcile_status(db, CHANNEL, status("out1", "read"))
        db.commit()

        assert (message.saved, message.distributed, message.seen) == (True, True, True)

    @pytest.mark.parametrize("late_status", ["sent", "delivered"])
    def test_late_status_never_moves_backward(self, db, late_status):
        message = outbound(db, "out1")
        reconcile_status(db, CHANNEL, status("out1", "read"))
        db.commit()

        reconcile_status(db, CHANNEL, status("out1", late_status))
        db.commit()

        assert (message.saved, message.distributed, message.seen) == (True, True, True)

    def test_read_of_own_message_keeps_unread_counter(self, db):
        ingest(db, "in1")
        outbound(db, "out1", timestamp=1700000010)

        reconcile_status(db, CHANNEL, status("out1", "read"))
        db.commit()

        assert db.query(Room).one().unread_count == 1

    def test_failed_records_failure(self, db):
        message = outbound(db, "out1")

        result = reconcile_status(db, CHANNEL, status(
            "out1", "failed", errors=[{"code": 131047, "title": "Re-engagement message"}],
        ))
        db.commit()

        assert result.success is True
        assert message.failure == "131047: Re-engagement message"
        assert message.saved is False


class TestUnreadAccounting:

    def test_read_of_latest_covers_earlier_unseen(self, db):
        ingest(db, "m1", 1700000001)
        ingest(db, "m2", 1700000002)
        room = db.query(Room).one()
        room.unread_count = 3
        db.commit()

        result = reconcile_status(db, CHANNEL, status("m2", "read"))
        db.commit()

        assert result.event["newly_seen"] == 2
        assert room.unread_count == 1
        assert all(m.seen for m in db.query(Message).all())

    def test_never_below_zero(self, db):
        ingest(db, "m1", 1700000001)
        ingest(db, "m2", 1700000002)
        room = db.query(Room).one()
        room.unread_count = 1
        db.commit()

        reconcile_status(db, CHANNEL, status("m2", "read"))
        db.commit()

        assert room.unread_count == 0

    def test_later_messages_stay_unseen(self, db):
        ingest(db, "m1", 1700000001)
        later = ingest(db, "m2", 1700000002)

        reconcile_status(db, CHANNEL, status("m1", "read"))
        db.commit()

        assert later.seen is False
        assert db.query(Room).one().unread_count == 1

    def test_repeated_read_is_not_counted_twice(self, db):
        ingest(db, "m1")
        ingest(db, "m2", 1700000005)
        reconcile_status(db, CHANNEL, status("m1", "read"))
        db.commit()

        result = reconcile_status(db, CHANNEL, status("m1", "read"))
        db.commit()

        assert result.event["newly_seen"] == 0
        assert db.query(Room).one().unread_count == 1

    def test_explicit_unread_count(self, db):
        ingest(db, "m1")
        ingest(db, "m2", 1700000005)

        reconcile_status(db, CHANNEL, status("m1", "read", unread_count=7))
        db.commit()

        assert db.query(Room).one().unread_count == 7

    def test_read_flips_presence_offline(self, db):
        ingest(db, "m1")
        room = db.query(Room).one()
        room.status_state = "online"
        db.commit()

        reconcile_status(db, CHANNEL, status("m1", "read", timestamp=1700000999))
        db.commit()

        assert room.status_state == "offline"
        assert room.status_last_changed == 1700000999


class TestFailures:

    def test_unknown_message(self, db):
        result = reconcile_status(db, CHANNEL, status("never-seen", "read"))

        assert result.success is False
        assert result.outcome == "not_found"
        assert result.event is None
        assert db.query(Message).count() == 0

    def test_unrecognized_status(self, db):
        message = ingest(db, "m1")

        result = reconcile_status(db, CHANNEL, status("m1", "deleted"))
        db.commit()

        assert result.success is False
        assert result.outcome == "unrecognized_status"
        assert message.seen is False
