"""
Provider adapter contract.

One adapter per channel type translates between the canonical message model
and the provider's wire format: it tests credentials, sends, classifies and
unpacks inbound webhooks, and knows which senders are the channel itself.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set

import httpx

from gateway.core.auth import verify_hub_signature
from gateway.core.errors import ConfigurationError
from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.models.schemas.messages import (
    CanonicalMessage,
    ExtractedEvent,
    MessageContent,
    MessageDraft,
    Participant,
)

logger = logging.getLogger(__name__)

# Signature header for generic inbound/outbound webhooks
GATEWAY_SIGNATURE_HEADER = "X-Gateway-Signature"


class ChannelAdapter(ABC):
    """Base class for all provider adapters."""

    channel_type: str = ""
    display_name: str = ""

    # Fields checked before any network call
    required_configuration: tuple = ()
    required_authentication: tuple = ()

    # ── Validation ─────────────────────────────────────────────────────────

    def check_requirements(self, channel: ChannelSnapshot):
        missing = [f"configuration.{k}" for k in self.required_configuration if not channel.config_value(k)]
        missing += [f"authentication.{k}" for k in self.required_authentication if not channel.auth_value(k)]
        if missing:
            raise ConfigurationError(
                f"Missing required {self.display_name or self.channel_type} configuration",
                {"missing": missing},
            )

    # ── Outbound ───────────────────────────────────────────────────────────

    @abstractmethod
    async def test_connection(self, channel: ChannelSnapshot, client: httpx.AsyncClient) -> ConnectionTestResult:
        """Probe the provider with the channel's credentials."""

    @abstractmethod
    async def send(self, channel: ChannelSnapshot, message: CanonicalMessage,
                   client: httpx.AsyncClient) -> Optional[str]:
        """Deliver one message. Returns the provider's message id when it gives one."""

    # ── Inbound ────────────────────────────────────────────────────────────

    def classify_event(self, payload: Dict[str, Any]) -> str:
        if payload.get("test") is True:
            return "test"
        return str(payload.get("event") or payload.get("eventType") or payload.get("type") or "message")

    def extract(self, channel: ChannelSnapshot, payload: Dict[str, Any]) -> ExtractedEvent:
        return ExtractedEvent(messages=generic_messages(channel, payload))

    def self_identities(self, channel: ChannelSnapshot) -> Set[str]:
        """Sender ids that belong to the channel itself (echo filtering)."""
        identities = {channel.config_value("selfId"), channel.config_value("botUserId")}
        return {str(i) for i in identities if i}

    def is_self_sent(self, channel: ChannelSnapshot, draft: MessageDraft) -> bool:
        return draft.sender.id in self.self_identities(channel)

    def verify_signature(self, channel: ChannelSnapshot, body: bytes, headers: Mapping[str, str]) -> bool:
        """Check the inbound signature when the channel has a signing secret configured."""
        secret = channel.auth_value("signingSecret")
        if not secret:
            return True
        return verify_hub_signature(body, secret, headers.get(GATEWAY_SIGNATURE_HEADER))

    def expected_verify_token(self, channel: ChannelSnapshot) -> Optional[str]:
        return channel.auth_value("verifyToken")

    def handshake_response(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Body to answer a provider's POST-time URL handshake with, if this is one."""
        return None


# ── Generic envelope extraction (webchat / api / webhook) ─────────────────

def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        # Millisecond epochs come from browsers
        seconds = value / 1000 if value > 1e11 else value
        return datetime.utcfromtimestamp(seconds)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return None
    return None


def _content_from(raw: Any) -> MessageContent:
    if isinstance(raw, dict) and "data" in raw:
        return MessageContent(**raw)
    if isinstance(raw, dict):
        return MessageContent(type="text", data=raw.get("text", raw))
    return MessageContent(type="text", data=raw)


def _participant(raw: Any, fallback_id: Optional[str] = None) -> Optional[Participant]:
    if isinstance(raw, dict) and raw.get("id") not in (None, ""):
        return Participant(id=raw["id"], name=raw.get("name"))
    if isinstance(raw, (str, int)) and str(raw):
        return Participant(id=raw)
    if fallback_id:
        return Participant(id=fallback_id)
    return None


def generic_messages(channel: ChannelSnapshot, payload: Dict[str, Any]) -> List[MessageDraft]:
    """
    Unpack the gateway's own envelope.

    Accepts one message `{sender, content, recipient?, messageId?, timestamp?}`,
    a batch under `messages`, or the web widget's `{sessionId, message, userName}`.
    Anything else carries no messages.
    """
    items = payload.get("messages") if isinstance(payload.get("messages"), list) else [payload]
    channel_identity = Participant(id=channel.id or channel.type, name=channel.name or None)
    drafts = []

    for item in items:
        if not isinstance(item, dict):
            continue

        if item.get("sessionId") and item.get("message") not in (None, ""):
            sender = Participant(id=item["sessionId"], name=item.get("userName"))
            content = _content_from(item["message"])
        elif item.get("sender") and item.get("content") not in (None, ""):
            sender = _participant(item["sender"])
            content = _content_from(item["content"])
        else:
            continue

        if sender is None:
            continue

        drafts.append(MessageDraft(
            content=content,
            sender=sender,
            recipient=_participant(item.get("recipient")) or channel_identity,
            external_id=str(item.get("messageId") or item.get("id") or "") or None,
            timestamp=_parse_timestamp(item.get("timestamp")),
        ))

    return drafts
