"""
WhatsApp Business adapter (Meta Graph API).
Configuration keys: phoneNumberId, businessAccountId, displayPhoneNumber?
Authentication keys: accessToken, verifyToken?, appSecret?
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set

import httpx

from gateway.core.auth import verify_hub_signature
from gateway.core.config import settings
from gateway.core.errors import ProviderError
from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.models.schemas.messages import (
    CanonicalMessage,
    ExtractedEvent,
    MessageContent,
    MessageDraft,
    Participant,
    StatusUpdate,
)
from gateway.services.channels.base import ChannelAdapter
from gateway.services.channels.http import ensure_success, response_json, send_request

logger = logging.getLogger(__name__)

WEBHOOK_OBJECT = "whatsapp_business_account"

# Canonical content type -> WhatsApp message type
OUTBOUND_TYPES = {
    "text": "text",
    "image": "image",
    "audio": "audio",
    "video": "video",
    "file": "document",
}

# WhatsApp message type -> canonical content type
INBOUND_TYPES = {
    "text": "text",
    "image": "image",
    "sticker": "image",
    "audio": "audio",
    "voice": "audio",
    "video": "video",
    "document": "file",
}

DELIVERY_STATUSES = {"sent", "delivered", "read", "failed"}


def _digits(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


def _graph_error(body: Dict[str, Any], default: str) -> str:
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return default


class WhatsAppAdapter(ChannelAdapter):
    channel_type = "whatsapp"
    display_name = "WhatsApp"
    required_configuration = ("phoneNumberId", "businessAccountId")
    required_authentication = ("accessToken",)

    def _headers(self, channel: ChannelSnapshot) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {channel.auth_value('accessToken')}",
            "Content-Type": "application/json",
        }

    # ── Outbound ───────────────────────────────────────────────────────────

    async def test_connection(self, channel: ChannelSnapshot, client: httpx.AsyncClient) -> ConnectionTestResult:
        phone_number_id = channel.config_value("phoneNumberId")
        response = await send_request(
            client, "GET", f"{settings.WHATSAPP_GRAPH_URL}/{phone_number_id}", "WhatsApp API",
            headers=self._headers(channel),
        )
        data = response_json(response)
        ensure_success(response, "WhatsApp API", _graph_error(data, "WhatsApp API connection failed"))

        display = data.get("display_phone_number") or phone_number_id
        return ConnectionTestResult(
            success=True,
            message=f"Successfully connected to WhatsApp Business phone number: {display}",
            details=data,
        )

    def build_payload(self, message: CanonicalMessage) -> Dict[str, Any]:
        wa_type = OUTBOUND_TYPES.get(message.content.type, "text")
        data = message.content.data
        if wa_type == "text" and not isinstance(data, dict):
            data = {"body": str(data)}
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.recipient.id,
            "type": wa_type,
            wa_type: data,
        }

    async def send(self, channel: ChannelSnapshot, message: CanonicalMessage,
                   client: httpx.AsyncClient) -> Optional[str]:
        phone_number_id = channel.config_value("phoneNumberId")
        response = await send_request(
            client, "POST", f"{settings.WHATSAPP_GRAPH_URL}/{phone_number_id}/messages", "WhatsApp API",
            json=self.build_payload(message),
            headers=self._headers(channel),
        )
        data = response_json(response)
        ensure_success(response, "WhatsApp API", _graph_error(data, "WhatsApp message send failed"))

        messages = data.get("messages") or [{}]
        return messages[0].get("id")

    # ── Inbound ────────────────────────────────────────────────────────────

    @staticmethod
    def _changes(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        changes = []
        for entry in payload.get("entry") or []:
            changes.extend(entry.get("changes") or [])
        return changes

    def classify_event(self, payload: Dict[str, Any]) -> str:
        changes = self._changes(payload)
        if not changes:
            return str(payload.get("object") or "unknown")
        value = changes[0].get("value") or {}
        if value.get("statuses") and not value.get("messages"):
            return "statuses"
        return str(changes[0].get("field") or "messages")

    @staticmethod
    def _content(message: Dict[str, Any]) -> MessageContent:
        wa_type = message.get("type", "text")
        body = message.get(wa_type)

        if wa_type == "text":
            return MessageContent(type="text", data=(body or {}).get("body", ""))
        if wa_type in INBOUND_TYPES:
            return MessageContent(type=INBOUND_TYPES[wa_type], data=body or {}, metadata={"whatsapp_type": wa_type})
        if wa_type == "interactive":
            reply = (body or {}).get("button_reply") or (body or {}).get("list_reply") or {}
            return MessageContent(type="text", data=reply.get("title", ""), metadata={"whatsapp_type": wa_type, "reply": reply})
        if wa_type == "button":
            return MessageContent(type="text", data=(body or {}).get("text", ""), metadata={"whatsapp_type": wa_type})
        if wa_type == "location":
            loc = body or {}
            return MessageContent(
                type="text",
                data=f"[Location: {loc.get('latitude')}, {loc.get('longitude')}]",
                metadata={"whatsapp_type": wa_type, "location": loc},
            )
        return MessageContent(type="text", data=f"[{wa_type}]", metadata={"whatsapp_type": wa_type, "raw": body})

    def extract(self, channel: ChannelSnapshot, payload: Dict[str, Any]) -> ExtractedEvent:
        if payload.get("object") != WEBHOOK_OBJECT:
            raise ProviderError("Not a WhatsApp Business webhook", {"object": payload.get("object")})

        event = ExtractedEvent()
        for change in self._changes(payload):
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            business = Participant(
                id=metadata.get("phone_number_id") or channel.config_value("phoneNumberId") or channel.id,
                name=metadata.get("display_phone_number"),
            )
            names = {
                c.get("wa_id"): (c.get("profile") or {}).get("name")
                for c in value.get("contacts") or []
            }

            for message in value.get("messages") or []:
                sender_id = message.get("from")
                if not sender_id:
                    continue
                timestamp = message.get("timestamp")
                event.messages.append(MessageDraft(
                    content=self._content(message),
                    sender=Participant(id=sender_id, name=names.get(sender_id)),
                    recipient=business,
                    external_id=message.get("id"),
                    timestamp=datetime.utcfromtimestamp(int(timestamp)) if timestamp else None,
                ))

            for status in value.get("statuses") or []:
                if status.get("status") not in DELIVERY_STATUSES or not status.get("id"):
                    continue
                errors = status.get("errors") or []
                error = None
                if errors:
                    error = errors[0].get("title") or errors[0].get("message")
                event.status_updates.append(StatusUpdate(
                    external_id=status["id"], status=status["status"], error=error,
                ))

        return event

    def self_identities(self, channel: ChannelSnapshot) -> Set[str]:
        identities = {
            _digits(channel.config_value("phoneNumberId")),
            _digits(channel.config_value("displayPhoneNumber")),
        }
        return {i for i in identities if i}

    def is_self_sent(self, channel: ChannelSnapshot, draft: MessageDraft) -> bool:
        sender = _digits(draft.sender.id)
        # The business number as the provider reported it in this payload
        if sender and sender == _digits(draft.recipient.name):
            return True
        return sender in self.self_identities(channel)

    def verify_signature(self, channel: ChannelSnapshot, body: bytes, headers: Mapping[str, str]) -> bool:
        app_secret = channel.auth_value("appSecret")
        if not app_secret:
            return True
        return verify_hub_signature(body, app_secret, headers.get("X-Hub-Signature-256"))
