"""
Generic outgoing webhook adapter.
Configuration keys: url, method? (POST, PUT or PATCH), contentType? (application/json), headers?
Authentication keys: secret? (signs outbound bodies), signingSecret? (verifies inbound)
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from gateway.core.auth import sign_payload
from gateway.core.config import settings
from gateway.core.errors import ConfigurationError
from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.models.schemas.messages import CanonicalMessage
from gateway.services.channels.api import envelope
from gateway.services.channels.base import GATEWAY_SIGNATURE_HEADER, ChannelAdapter
from gateway.services.channels.http import ensure_success, send_request

TEST_MESSAGE = "Test webhook from channel gateway"

# The payload travels in the request body
BODY_METHODS = ("POST", "PUT", "PATCH")


class WebhookAdapter(ChannelAdapter):
    channel_type = "webhook"
    display_name = "Webhook"
    required_configuration = ("url",)

    def _request(self, channel: ChannelSnapshot, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = json.dumps(payload, separators=(",", ":")).encode()
        headers = {
            "Content-Type": channel.config_value("contentType", "application/json"),
            "User-Agent": settings.WEBHOOK_USER_AGENT,
        }
        extra = channel.config_value("headers")
        if isinstance(extra, dict):
            headers.update({str(k): str(v) for k, v in extra.items()})

        secret = channel.auth_value("secret")
        if secret:
            headers[GATEWAY_SIGNATURE_HEADER] = sign_payload(body, secret)

        return {"content": body, "headers": headers}

    def _method(self, channel: ChannelSnapshot) -> str:
        method = str(channel.config_value("method", "POST")).upper()
        if method not in BODY_METHODS:
            raise ConfigurationError(
                f"Webhook method must be one of {', '.join(BODY_METHODS)}",
                {"method": method},
            )
        return method

    def check_requirements(self, channel: ChannelSnapshot):
        super().check_requirements(channel)
        self._method(channel)

    async def test_connection(self, channel: ChannelSnapshot, client: httpx.AsyncClient) -> ConnectionTestResult:
        payload = {
            "test": True,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "message": TEST_MESSAGE,
        }
        response = await send_request(
            client, self._method(channel), channel.config_value("url"), "webhook endpoint",
            **self._request(channel, payload),
        )
        ensure_success(response, "Webhook")
        return ConnectionTestResult(
            success=True,
            message="Webhook endpoint is accessible and responding correctly",
        )

    async def send(self, channel: ChannelSnapshot, message: CanonicalMessage,
                   client: httpx.AsyncClient) -> Optional[str]:
        response = await send_request(
            client, self._method(channel), channel.config_value("url"), "webhook endpoint",
            **self._request(channel, envelope(message)),
        )
        ensure_success(response, "Webhook")
        return None
