"""
Tests for the /webhook endpoints.

Tests cover:
- Subscription verification handshake
- Signature validation (401) and body validation (422)
- End-to-end message, status and reaction reconciliation
- Idempotent redelivery
- Channel mismatch and unknown items inside a batch
- Broadcast only after successful reconciliation
"""

import pytest
from fastapi.testclient import TestClient

from payloads import (
    PHONE_NUMBER_ID,
    change_value,
    compute_signature,
    contact,
    dumps,
    envelope,
    message,
    reaction_message,
    status_delivery,
    text_delivery,
    text_message,
)
from wabridge.broadcast import InMemoryBroadcaster
from wabridge.main import app, get_context
from wabridge.models import Message, Room
from wabridge.pipeline import ProcessingContext
from wabridge.storage import Base, SessionLocal, engine

SENDER = "16315551234"


class NoMediaFetcher:
    def fetch(self, media):
        return None


@pytest.fixture
def broadcaster():
    return InMemoryBroadcaster()


@pytest.fixture(scope="function")
def client(broadcaster):
    """Create test client with fresh database and an in-memory broadcaster."""
    Base.metadata.create_all(bind=engine)
    context = ProcessingContext(
        channel="whatsapp_business",
        phone_number_id=PHONE_NUMBER_ID,
        fetcher=NoMediaFetcher(),
        broadcaster=broadcaster,
    )
    app.dependency_overrides[get_context] = lambda: context

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


def post(client, payload, signature=None):
    body = dumps(payload) if not isinstance(payload, str) else payload
    headers = {"Content-Type": "application/json"}
    headers["X-Hub-Signature-256"] = compute_signature(body) if signature is None else signature
    return client.post("/webhook", content=body.encode("utf-8"), headers=headers)


def rooms():
    with SessionLocal() as db:
        return db.query(Room).all()


def messages():
    with SessionLocal() as db:
        return db.query(Message).order_by(Message.id).all()


class TestVerification:

    def test_challenge_echoed(self, client):
        response = client.get("/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "test-verify-token",
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token(self, client):
        response = client.get("/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "nope",
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 403

    def test_wrong_mode(self, client):
        response = client.get("/webhook", params={
            "hub.mode": "unsubscribe",
            "hub.verify_token": "test-verify-token",
            "hub.challenge": "1",
        })

        assert response.status_code == 403


class TestSignatureAndValidation:

    def test_missing_signature(self, client):
        body = dumps(text_delivery("wamid.1", SENDER, "Hello"))
        response = client.post("/webhook", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 401
        assert response.json() == {"detail": "invalid signature"}

    def test_wrong_secret(self, client):
        body = dumps(text_delivery("wamid.1", SENDER, "Hello"))
        response = post(client, body, signature=compute_signature(body, "wrong_secret"))

        assert response.status_code == 401
        assert messages() == []

    def test_bare_hex_signature_accepted(self, client):
        body = dumps(text_delivery("wamid.1", SENDER, "Hello"))
        response = post(client, body, signature=compute_signature(body)[len("sha256="):])

        assert response.status_code == 200

    def test_invalid_json(self, client):
        response = post(client, "not valid json")

        assert response.status_code == 422

    def test_non_object_body(self, client):
        response = post(client, "[1, 2, 3]")

        assert response.status_code == 422


class TestEndToEnd:

    def test_text_message_then_read(self, client, broadcaster):
        response = post(client, text_delivery("wamid.1", SENDER, "Hello", name="Kerry Fisher"))

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1, "processed": 1}

        [room] = rooms()
        assert room.chat_id == SENDER
        assert room.name == "Kerry Fisher"
        assert room.status_state == "offline"
        assert room.unread_count == 1

        [stored] = messages()
        assert stored.from_me is False
        assert stored.content == "Hello"
        assert stored.seen is False

        response = post(client, status_delivery("wamid.1", "read", SENDER))

        assert response.json()["processed"] == 1
        [stored] = messages()
        assert stored.seen is True
        assert rooms()[0].unread_count == 0

        assert [event["_"] for event in broadcaster.events] == ["updateNewMessage", "updateMessageStatus"]

    def test_redelivery_creates_one_message(self, client, broadcaster):
        payload = text_delivery("wamid.1", SENDER, "Hello")

        first = post(client, payload)
        second = post(client, payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert len(messages()) == 1
        assert rooms()[0].unread_count == 1
        assert len(broadcaster.events) == 1

    def test_reaction_round_trip(self, client, broadcaster):
        post(client, text_delivery("wamid.1", SENDER, "Hello"))

        post(client, envelope(change_value(messages=[reaction_message("wamid.2", SENDER, "wamid.1", "👍")])))
        assert messages()[0].reactions == {SENDER: "👍"}

        post(client, envelope(change_value(messages=[reaction_message("wamid.3", SENDER, "wamid.1", "")])))
        assert messages()[0].reactions == {}

        assert broadcaster.events[-1]["_"] == "updateEditMessage"
        assert len(messages()) == 1

    def test_status_for_unknown_message_acknowledged(self, client, broadcaster):
        response = post(client, status_delivery("never-seen", "delivered", SENDER))

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1, "processed": 0}
        assert messages() == []
        assert broadcaster.events == []

    def test_reply_linkage(self, client):
        post(client, text_delivery("wamid.1", SENDER, "Question"))
        post(client, text_delivery("wamid.2", SENDER, "Answer", reply_to="wamid.1", timestamp=1700000100))

        first, second = messages()
        assert second.reply_message_id == first.id

    def test_media_without_fetch_result_is_stored_media_less(self, client):
        payload = envelope(change_value(
            contacts=[contact(SENDER)],
            messages=[message("wamid.1", SENDER, "image", {"id": "media-1", "mime_type": "image/jpeg", "caption": "pic"})],
        ))
        post(client, payload)

        [stored] = messages()
        assert stored.content == "pic"
        assert stored.file_path is None


class TestChannelGuard:

    def test_other_phone_number_id_changes_nothing(self, client, broadcaster):
        payload = envelope(change_value(
            contacts=[contact(SENDER)],
            messages=[text_message("wamid.1", SENDER, "Hello")],
            phone_number_id="999999999",
        ))
        response = post(client, payload)

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1, "processed": 0}
        assert rooms() == []
        assert messages() == []
        assert broadcaster.events == []


class TestBatches:

    def test_unknown_items_do_not_block_batch(self, client, broadcaster):
        payload = envelope(
            {"messaging_product": "whatsapp"},
            change_value(
                contacts=[contact(SENDER)],
                messages=[
                    {"from": SENDER, "id": "wamid.bad", "type": "text"},
                    text_message("wamid.1", SENDER, "first", timestamp=1700000001),
                    message("wamid.2", SENDER, "order", {"catalog_id": "1"}, timestamp=1700000002),
                    text_message("wamid.3", SENDER, "second", timestamp=1700000003),
                ],
            ),
        )
        response = post(client, payload)

        assert response.status_code == 200
        assert response.json()["received"] == 5
        contents = [m.content for m in messages()]
        assert "first" in contents
        assert "second" in contents
        assert len(rooms()) == 1

    def test_mixed_batch_in_order(self, client, broadcaster):
        payload = envelope(
            change_value(contacts=[contact(SENDER)], messages=[text_message("wamid.1", SENDER, "Hello")]),
            change_value(statuses=[{"id": "wamid.1", "status": "delivered", "timestamp": "1700000001",
                                    "recipient_id": SENDER}]),
        )
        response = post(client, payload)

        assert response.json() == {"status": "ok", "received": 2, "processed": 2}
        assert [event["_"] for event in broadcaster.events] == ["updateNewMessage", "updateMessageStatus"]

    def test_wrongly_typed_envelope_fields_acknowledged(self, client, broadcaster):
        value = change_value(contacts=[contact(SENDER)])
        value["messages"] = 5
        response = post(client, envelope(value, {"metadata": "x"}))

        assert response.status_code == 200
        assert response.json()["processed"] == 0
        assert messages() == []
        assert broadcaster.events == []


class TestHealth:

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "ok", "reason": None}

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_metrics(self, client):
        post(client, text_delivery("wamid.1", SENDER, "Hello"))
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "notifications_total" in response.text
