"""
Inbound Webhook Router.

All tenants share one public endpoint per channel type. The signed routing
token in the URL is the only source of tenant and credential; nothing in a
provider payload is trusted for routing.

Every authenticated delivery is written to webhook_events before it is
processed, and the provider is acknowledged once that write lands, whatever
processing does afterwards.
"""

import hmac
import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, NamedTuple, Optional

from gateway.core.errors import ConfigurationError, RoutingError, SignatureError
from gateway.core.routing import decode_routing_token
from gateway.models.entities.base import new_id
from gateway.models.entities.channels import WebhookEvent
from gateway.models.schemas.channels import ChannelSnapshot
from gateway.models.schemas.messages import CanonicalMessage, MessageDraft
from gateway.services.channel_registry import ChannelRegistry
from gateway.services.channels import get_adapter
from gateway.services.conversation_store import ConversationStore
from gateway.services.conversation_threader import ConversationThreader
from gateway.services.outbound_dispatcher import OutboundDispatcher

logger = logging.getLogger(__name__)

SUBSCRIBE_MODE = "subscribe"


class WebhookReceipt(NamedTuple):
    event_id: str
    processed: bool
    error: Optional[str] = None
    handshake: Optional[Dict[str, Any]] = None


class WebhookRouter:

    def __init__(self, registry: ChannelRegistry, store: ConversationStore,
                 threader: Optional[ConversationThreader] = None,
                 dispatcher: Optional[OutboundDispatcher] = None):
        self.registry = registry
        self.store = store
        self.threader = threader or ConversationThreader(store)
        self.dispatcher = dispatcher or OutboundDispatcher(registry, store, self.threader)

    # ═══════════════════════════════════════════════════════════
    # Routing
    # ═══════════════════════════════════════════════════════════

    def resolve(self, channel_type: str, token: Optional[str]) -> ChannelSnapshot:
        """Turn the URL's routing token into the channel it was issued for."""
        target = decode_routing_token(token)

        channel = self.registry.get(target.credential_id)
        if channel is None:
            raise RoutingError("Unknown channel", {"channel_id": target.credential_id})
        if channel.tenant_id != target.tenant_id:
            logger.warning(f"Routing token tenant does not own channel {channel.id}")
            raise RoutingError("Unknown channel", {"channel_id": target.credential_id})
        if channel.type != channel_type:
            raise RoutingError(
                f"Channel {channel.id} is not a {channel_type} channel",
                {"channel_id": channel.id, "type": channel.type},
            )
        return channel

    # ═══════════════════════════════════════════════════════════
    # Verification handshake (GET)
    # ═══════════════════════════════════════════════════════════

    def verify_subscription(self, channel_type: str, token: Optional[str], mode: Optional[str],
                            verify_token: Optional[str], challenge: Optional[str]) -> str:
        """
        Answer a provider's subscription check. Returns the challenge to echo;
        raises RoutingError on anything short of an exact token match.
        Never writes.
        """
        channel = self.resolve(channel_type, token)

        if mode != SUBSCRIBE_MODE:
            raise RoutingError("Unsupported verification mode", {"mode": mode})

        expected = get_adapter(channel.type).expected_verify_token(channel)
        if not expected or not verify_token or not hmac.compare_digest(str(expected), str(verify_token)):
            logger.warning(f"Verify token mismatch for channel {channel.id}")
            raise RoutingError("Verification token mismatch")

        if challenge is None:
            raise RoutingError("Missing challenge")

        logger.info(f"Webhook verified for {channel.type} channel {channel.id}")
        return challenge

    # ═══════════════════════════════════════════════════════════
    # Event delivery (POST)
    # ═══════════════════════════════════════════════════════════

    def receive(self, channel_type: str, token: Optional[str], body: bytes,
                headers: Mapping[str, str]) -> WebhookReceipt:
        """
        Route, log and process one delivery.

        RoutingError (bad token) and SignatureError (bad signature) are raised
        before anything is written. After the event row exists, failures are
        recorded on it instead of raised.
        """
        channel = self.resolve(channel_type, token)
        adapter = get_adapter(channel.type)

        if not adapter.verify_signature(channel, body, headers):
            logger.warning(f"Rejected {channel.type} webhook for channel {channel.id}: bad signature")
            raise SignatureError("Invalid webhook signature", {"channel_id": channel.id})

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            payload = {"raw": body.decode("utf-8", errors="replace")}
            return self._reject(channel, payload, "invalid_payload", "Payload is not valid JSON")

        if not isinstance(payload, dict):
            return self._reject(channel, payload, "unknown", "Payload is not a JSON object")

        event = self._log_event(channel, self._classify(channel, adapter, payload), payload)

        try:
            handshake = adapter.handshake_response(payload)
            if handshake is not None:
                logger.info(f"Answered {channel.type} URL verification for channel {channel.id}")
                self.store.finish_event(event.id, True)
                return WebhookReceipt(event.id, True, handshake=handshake)
            self._process(channel, adapter, payload)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"Processing webhook event {event.id} failed: {error}")
            self.store.finish_event(event.id, False, error)
            return WebhookReceipt(event.id, False, error)

        self.store.finish_event(event.id, True)
        return WebhookReceipt(event.id, True)

    @staticmethod
    def _classify(channel: ChannelSnapshot, adapter, payload: Dict[str, Any]) -> str:
        try:
            return adapter.classify_event(payload)
        except Exception as e:
            logger.warning(f"Could not classify {channel.type} webhook for channel {channel.id}: {e}")
            return "unknown"

    def _log_event(self, channel: ChannelSnapshot, event_type: str, payload: Any) -> WebhookEvent:
        event = self.store.insert_event(WebhookEvent(
            id=new_id(),
            channel_id=channel.id,
            channel_type=channel.type,
            event_type=event_type,
            payload=payload,
            processed=False,
        ))
        logger.info(f"Logged {channel.type} webhook event {event.id} ({event_type}) for channel {channel.id}")
        return event

    def _reject(self, channel: ChannelSnapshot, payload: Any, event_type: str, error: str) -> WebhookReceipt:
        """Log a delivery that cannot be processed and mark it failed."""
        event = self._log_event(channel, event_type, payload)
        self.store.finish_event(event.id, False, error)
        return WebhookReceipt(event.id, False, error)

    def _process(self, channel: ChannelSnapshot, adapter, payload: Dict[str, Any]):
        extracted = adapter.extract(channel, payload)

        unthreaded = 0
        for draft in extracted.messages:
            if adapter.is_self_sent(channel, draft):
                logger.debug(f"Skipped echo of our own message on channel {channel.id}")
                continue
            message = self._record_inbound(channel, draft)
            if message is None:
                continue
            if channel.agent_id:
                self.threader.thread_inbound(channel.agent_id, channel.tenant_id, message)
            else:
                unthreaded += 1

        for update in extracted.status_updates:
            self.dispatcher.apply_status_update(channel.id, update)

        if unthreaded:
            raise ConfigurationError(
                f"Channel {channel.id} has no agent assigned; {unthreaded} message(s) stored unthreaded",
                {"channel_id": channel.id},
            )

    def _record_inbound(self, channel: ChannelSnapshot, draft: MessageDraft) -> Optional[CanonicalMessage]:
        """Persist an inbound draft; None when the provider already delivered it."""
        message = CanonicalMessage(
            id=new_id(),
            channel_id=channel.id,
            channel_type=channel.type,
            direction="inbound",
            content=draft.content,
            sender=draft.sender,
            recipient=draft.recipient,
            timestamp=draft.timestamp or datetime.utcnow(),
            status="delivered",
            external_id=draft.external_id,
        )
        if not self.store.insert_message(message):
            return None
        return message
