"""
Slack adapter (Web API + Events API).
Configuration keys: botName?, botUserId?
Authentication keys: botToken, signingSecret?
"""

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Set

import httpx

from gateway.core.auth import verify_slack_signature
from gateway.core.config import settings
from gateway.core.errors import AuthenticationError, ProviderError
from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.models.schemas.messages import (
    CanonicalMessage,
    ExtractedEvent,
    MessageContent,
    MessageDraft,
    Participant,
)
from gateway.services.channels.base import ChannelAdapter
from gateway.services.channels.http import ensure_success, response_json, send_request

logger = logging.getLogger(__name__)

DEFAULT_BOT_NAME = "Assistant"

# Slack error codes that mean the token itself is bad
AUTH_ERRORS = {"invalid_auth", "not_authed", "token_revoked", "account_inactive", "token_expired"}

# Message subtypes that represent a person writing something
USER_SUBTYPES = {None, "file_share", "thread_broadcast"}


def _raise_for_slack(data: Dict[str, Any], default: str):
    if data.get("ok"):
        return
    code = data.get("error") or default
    if code in AUTH_ERRORS:
        raise AuthenticationError(code, data)
    raise ProviderError(code, data)


class SlackAdapter(ChannelAdapter):
    channel_type = "slack"
    display_name = "Slack"
    required_authentication = ("botToken",)

    def _headers(self, channel: ChannelSnapshot) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {channel.auth_value('botToken')}",
            "Content-Type": "application/json; charset=utf-8",
        }

    # ── Outbound ───────────────────────────────────────────────────────────

    async def test_connection(self, channel: ChannelSnapshot, client: httpx.AsyncClient) -> ConnectionTestResult:
        response = await send_request(
            client, "POST", f"{settings.SLACK_API_URL}/auth.test", "Slack API",
            headers=self._headers(channel),
        )
        ensure_success(response, "Slack API")
        data = response_json(response)
        _raise_for_slack(data, "Slack API connection failed")

        return ConnectionTestResult(
            success=True,
            message=f"Successfully connected to Slack workspace: {data.get('team')}",
            details=data,
        )

    @staticmethod
    def message_text(message: CanonicalMessage) -> str:
        data = message.content.data
        if isinstance(data, dict):
            return str(data.get("text") or data.get("url") or "")
        return str(data)

    async def send(self, channel: ChannelSnapshot, message: CanonicalMessage,
                   client: httpx.AsyncClient) -> Optional[str]:
        payload = {
            "channel": message.recipient.id,
            "text": self.message_text(message),
            "username": channel.config_value("botName", DEFAULT_BOT_NAME),
        }
        thread_ts = message.content.metadata.get("thread_ts")
        if thread_ts:
            payload["thread_ts"] = thread_ts

        response = await send_request(
            client, "POST", f"{settings.SLACK_API_URL}/chat.postMessage", "Slack API",
            json=payload,
            headers=self._headers(channel),
        )
        ensure_success(response, "Slack API")
        data = response_json(response)
        _raise_for_slack(data, "Slack message send failed")
        return data.get("ts")

    # ── Inbound ────────────────────────────────────────────────────────────

    @staticmethod
    def _event(payload: Dict[str, Any]) -> Dict[str, Any]:
        if payload.get("type") == "event_callback":
            return payload.get("event") or {}
        return payload

    def classify_event(self, payload: Dict[str, Any]) -> str:
        if payload.get("type") == "event_callback":
            return str((payload.get("event") or {}).get("type") or "event_callback")
        return str(payload.get("type") or "unknown")

    def handshake_response(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}
        return None

    def extract(self, channel: ChannelSnapshot, payload: Dict[str, Any]) -> ExtractedEvent:
        event = self._event(payload)
        if event.get("type") not in ("message", "app_mention"):
            return ExtractedEvent()

        # Bot posts, including our own, and edits/deletes are not customer messages
        if event.get("bot_id") or event.get("subtype") not in USER_SUBTYPES or not event.get("user"):
            return ExtractedEvent()

        ts = event.get("ts")
        metadata = {"ts": ts}
        if event.get("thread_ts"):
            metadata["thread_ts"] = event["thread_ts"]
        if payload.get("team_id"):
            metadata["team_id"] = payload["team_id"]

        draft = MessageDraft(
            content=MessageContent(type="text", data=event.get("text") or "", metadata=metadata),
            sender=Participant(id=event["user"]),
            recipient=Participant(id=event.get("channel") or channel.id),
            external_id=event.get("client_msg_id") or (f"{event.get('channel')}:{ts}" if ts else None),
            timestamp=datetime.utcfromtimestamp(float(ts)) if ts else None,
        )
        return ExtractedEvent(messages=[draft])

    def self_identities(self, channel: ChannelSnapshot) -> Set[str]:
        identities = {channel.config_value("botUserId"), channel.auth_value("botUserId")}
        return {str(i) for i in identities if i}

    def verify_signature(self, channel: ChannelSnapshot, body: bytes, headers: Mapping[str, str]) -> bool:
        signing_secret = channel.auth_value("signingSecret")
        if not signing_secret:
            return True
        return verify_slack_signature(
            body,
            headers.get("X-Slack-Signature"),
            headers.get("X-Slack-Request-Timestamp"),
            signing_secret,
        )
