"""
Inbound Webhook Router tests - routing, fail-closed checks, write-ahead logging.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime

import pytest

from gateway.core.auth import sign_payload
from gateway.core.errors import RoutingError, SignatureError
from gateway.models.entities.channels import ChannelMessage, WebhookEvent
from gateway.models.entities.conversation import Conversation
from gateway.models.schemas.messages import CanonicalMessage, MessageContent, Participant
from gateway.services.webhook_router import WebhookRouter
from gateway.tests.conftest import AGENT, OTHER_TENANT, slack_message, whatsapp_payload, whatsapp_text


def _count(store, entity) -> int:
    with store.session() as db:
        return db.query(entity).count()


def _body(payload) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def router(registry, store, threader):
    return WebhookRouter(registry, store, threader)


@pytest.fixture
def whatsapp_channel(make_channel):
    return make_channel(
        "whatsapp",
        configuration={"phoneNumberId": "PN123", "businessAccountId": "WABA1"},
        authentication={"accessToken": "tok", "verifyToken": "let-me-in"},
    )


class TestVerification:

    def test_exact_token_echoes_challenge(self, router, whatsapp_channel, routing_token, store):
        challenge = router.verify_subscription(
            "whatsapp", routing_token(whatsapp_channel), "subscribe", "let-me-in", "1158201444",
        )
        assert challenge == "1158201444"
        assert _count(store, WebhookEvent) == 0

    @pytest.mark.parametrize("mode,token", [
        ("subscribe", "let-me-in-please"),
        ("subscribe", None),
        ("unsubscribe", "let-me-in"),
        (None, "let-me-in"),
    ])
    def test_anything_else_rejected_without_writes(self, router, whatsapp_channel, routing_token, store, mode, token):
        with pytest.raises(RoutingError):
            router.verify_subscription("whatsapp", routing_token(whatsapp_channel), mode, token, "123")
        assert _count(store, WebhookEvent) == 0

    def test_channel_without_verify_token_rejects(self, router, make_channel, routing_token):
        channel = make_channel("whatsapp")
        with pytest.raises(RoutingError):
            router.verify_subscription("whatsapp", routing_token(channel), "subscribe", "", "123")

    def test_bad_identifier(self, router):
        with pytest.raises(RoutingError):
            router.verify_subscription("whatsapp", "forged", "subscribe", "let-me-in", "123")


class TestRouting:

    def test_tenant_mismatch(self, router, whatsapp_channel, routing_token, store):
        token = routing_token(whatsapp_channel, tenant_id=OTHER_TENANT)
        with pytest.raises(RoutingError):
            router.receive("whatsapp", token, _body(whatsapp_payload(messages=[])), {})
        assert _count(store, WebhookEvent) == 0

    def test_channel_type_mismatch(self, router, whatsapp_channel, routing_token, store):
        with pytest.raises(RoutingError):
            router.receive("slack", routing_token(whatsapp_channel), _body(slack_message()), {})
        assert _count(store, WebhookEvent) == 0

    def test_deleted_channel(self, router, registry, whatsapp_channel, routing_token, store):
        token = routing_token(whatsapp_channel)
        registry.delete(whatsapp_channel.tenant_id, whatsapp_channel.id)
        with pytest.raises(RoutingError):
            router.receive("whatsapp", token, _body(whatsapp_payload(messages=[])), {})


class TestDelivery:

    def test_valid_delivery_writes_exactly_one_event(self, router, whatsapp_channel, routing_token, store):
        payload = whatsapp_payload(messages=[whatsapp_text("15557654321", "hi", "wamid.IN1")])

        receipt = router.receive("whatsapp", routing_token(whatsapp_channel), _body(payload), {})

        assert receipt.processed is True
        assert _count(store, WebhookEvent) == 1
        event = store.get_event(receipt.event_id)
        assert event.processed is True
        assert event.event_type == "messages"
        assert event.payload == payload

        messages = store.list_messages(whatsapp_channel.id)
        assert len(messages) == 1
        assert messages[0].direction.value == "inbound"
        assert messages[0].conversation_id is not None

    def test_redelivery_is_deduplicated(self, router, whatsapp_channel, routing_token, store):
        body = _body(whatsapp_payload(messages=[whatsapp_text("15557654321", "hi", "wamid.DUP")]))
        token = routing_token(whatsapp_channel)

        router.receive("whatsapp", token, body, {})
        router.receive("whatsapp", token, body, {})

        assert _count(store, WebhookEvent) == 2
        assert _count(store, ChannelMessage) == 1

    def test_own_echo_filtered(self, router, whatsapp_channel, routing_token, store):
        payload = whatsapp_payload(messages=[whatsapp_text("15550001111", "echo")], display_phone_number="15550001111")

        receipt = router.receive("whatsapp", routing_token(whatsapp_channel), _body(payload), {})

        assert receipt.processed is True
        assert _count(store, ChannelMessage) == 0
        assert _count(store, Conversation) == 0

    def test_extraction_failure_recorded_on_event(self, router, whatsapp_channel, routing_token, store):
        receipt = router.receive("whatsapp", routing_token(whatsapp_channel), _body({"object": "page"}), {})

        assert receipt.processed is False
        event = store.get_event(receipt.event_id)
        assert event.processed is False
        assert "Not a WhatsApp Business webhook" in event.processing_error

    def test_invalid_json_logged_as_failed(self, router, whatsapp_channel, routing_token, store):
        receipt = router.receive("whatsapp", routing_token(whatsapp_channel), b"{not json", {})

        event = store.get_event(receipt.event_id)
        assert event.event_type == "invalid_payload"
        assert event.processed is False

    def test_channel_without_agent_keeps_messages(self, router, make_channel, routing_token, store):
        channel = make_channel("webchat", agent_id=None)

        receipt = router.receive("webchat", routing_token(channel), _body({"sessionId": "s1", "message": "hi"}), {})

        assert receipt.processed is False
        assert "no agent" in store.get_event(receipt.event_id).processing_error
        assert _count(store, ChannelMessage) == 1

    def test_status_receipts_advance_outbound_messages(self, router, whatsapp_channel, routing_token, store):
        store.insert_message(CanonicalMessage(
            id="out-1", channel_id=whatsapp_channel.id, channel_type="whatsapp", direction="outbound",
            content=MessageContent(data="hello"), sender=Participant(id=AGENT),
            recipient=Participant(id="15557654321"), timestamp=datetime.utcnow(),
            status="sent", external_id="wamid.OUT",
        ))
        payload = whatsapp_payload(statuses=[{"id": "wamid.OUT", "status": "delivered"}])

        router.receive("whatsapp", routing_token(whatsapp_channel), _body(payload), {})

        assert store.get_message("out-1").status.value == "delivered"


class TestSignatures:

    def test_whatsapp_app_secret_enforced(self, router, make_channel, routing_token, store):
        channel = make_channel(
            "whatsapp",
            configuration={"phoneNumberId": "PN123", "businessAccountId": "WABA1"},
            authentication={"accessToken": "tok", "appSecret": "meta-secret"},
        )
        body = _body(whatsapp_payload(messages=[whatsapp_text("15557654321", "hi")]))

        with pytest.raises(SignatureError):
            router.receive("whatsapp", routing_token(channel), body, {"X-Hub-Signature-256": "sha256=bad"})
        assert _count(store, WebhookEvent) == 0

        receipt = router.receive(
            "whatsapp", routing_token(channel), body,
            {"X-Hub-Signature-256": sign_payload(body, "meta-secret")},
        )
        assert receipt.processed is True

    def test_slack_signing_secret_enforced(self, router, make_channel, routing_token, store):
        channel = make_channel("slack", authentication={"botToken": "xoxb", "signingSecret": "slack-secret"})
        body = _body(slack_message())
        ts = str(int(time.time()))
        good = "v0=" + hmac.new(b"slack-secret", f"v0:{ts}:{body.decode()}".encode(), hashlib.sha256).hexdigest()

        with pytest.raises(SignatureError):
            router.receive("slack", routing_token(channel), body,
                           {"X-Slack-Signature": "v0=bad", "X-Slack-Request-Timestamp": ts})
        assert _count(store, WebhookEvent) == 0

        receipt = router.receive("slack", routing_token(channel), body,
                                 {"X-Slack-Signature": good, "X-Slack-Request-Timestamp": ts})
        assert receipt.processed is True


class TestSlackScenario:

    def test_message_threaded_by_agent_user_and_channel(self, router, make_channel, routing_token, store):
        channel = make_channel("slack", authentication={"botToken": "xoxb"})

        receipt = router.receive("slack", routing_token(channel), _body(slack_message(user="U1", text="hello")), {})

        assert receipt.processed is True
        with store.session() as db:
            conversation = db.query(Conversation).one()
        assert (conversation.agent_id, conversation.customer_id, conversation.channel) == (AGENT, "U1", "slack")
        thread = store.list_conversation_messages(conversation.id)
        assert [m.content["data"] for m in thread] == ["hello"]

    def test_url_verification_answered(self, router, make_channel, routing_token, store):
        channel = make_channel("slack", authentication={"botToken": "xoxb"})
        payload = {"type": "url_verification", "challenge": "3eZbrw1aB"}

        receipt = router.receive("slack", routing_token(channel), _body(payload), {})

        assert receipt.handshake == {"challenge": "3eZbrw1aB"}
        assert store.get_event(receipt.event_id).event_type == "url_verification"
        assert _count(store, ChannelMessage) == 0


class TestUnexpectedShapes:

    @pytest.mark.parametrize("channel_type,payload", [
        ("whatsapp", {"object": "whatsapp_business_account", "entry": ["x"]}),
        ("whatsapp", {"object": "whatsapp_business_account", "entry": [{"changes": ["x"]}]}),
        ("slack", {"type": "event_callback", "event": "x"}),
    ])
    def test_malformed_object_logged_and_failed(self, router, make_channel, routing_token, store,
                                                 channel_type, payload):
        channel = make_channel(channel_type, authentication={"botToken": "xoxb"})

        receipt = router.receive(channel_type, routing_token(channel), _body(payload), {})

        assert receipt.processed is False
        assert _count(store, WebhookEvent) == 1
        event = store.get_event(receipt.event_id)
        assert event.event_type == "unknown"
        assert event.payload == payload
        assert event.processed is False
        assert event.processing_error

    def test_top_level_list_logged_and_failed(self, router, make_channel, routing_token, store):
        channel = make_channel("slack", authentication={"botToken": "xoxb"})

        receipt = router.receive("slack", routing_token(channel), _body([1, 2]), {})

        assert receipt.processed is False
        assert receipt.handshake is None
        event = store.get_event(receipt.event_id)
        assert event.payload == [1, 2]
        assert event.processing_error == "Payload is not a JSON object"
        assert _count(store, ChannelMessage) == 0
