"""
Generic REST adapter.
Configuration keys: baseUrl, version?
Authentication keys: type in {bearer, basic, apikey} plus token | username/password | keyName/keyValue
"""

import base64
from typing import Any, Dict, Optional

import httpx

from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.models.schemas.messages import CanonicalMessage
from gateway.services.channels.base import ChannelAdapter
from gateway.services.channels.http import ensure_success, response_json, send_request


def auth_headers(channel: ChannelSnapshot) -> Dict[str, str]:
    """Headers for the authentication scheme configured on the channel."""
    headers = {"Content-Type": "application/json"}
    auth_type = channel.auth_value("type")

    if auth_type == "bearer" and channel.auth_value("token"):
        headers["Authorization"] = f"Bearer {channel.auth_value('token')}"
    elif auth_type == "basic" and channel.auth_value("username") and channel.auth_value("password"):
        raw = f"{channel.auth_value('username')}:{channel.auth_value('password')}".encode()
        headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"
    elif auth_type == "apikey" and channel.auth_value("keyName") and channel.auth_value("keyValue"):
        headers[channel.auth_value("keyName")] = channel.auth_value("keyValue")

    return headers


def messages_url(channel: ChannelSnapshot) -> str:
    base_url = channel.config_value("baseUrl").rstrip("/")
    version = channel.config_value("version")
    return f"{base_url}/{version}/messages" if version else f"{base_url}/messages"


def envelope(message: CanonicalMessage) -> Dict[str, Any]:
    return message.model_dump(mode="json")


class ApiAdapter(ChannelAdapter):
    channel_type = "api"
    display_name = "API"
    required_configuration = ("baseUrl",)

    async def test_connection(self, channel: ChannelSnapshot, client: httpx.AsyncClient) -> ConnectionTestResult:
        url = f"{channel.config_value('baseUrl').rstrip('/')}/health"
        response = await send_request(client, "GET", url, "API endpoint", headers=auth_headers(channel))
        ensure_success(response, "API")
        return ConnectionTestResult(
            success=True,
            message="API endpoint is accessible and authentication is valid",
        )

    async def send(self, channel: ChannelSnapshot, message: CanonicalMessage,
                   client: httpx.AsyncClient) -> Optional[str]:
        response = await send_request(
            client, "POST", messages_url(channel), "API endpoint",
            json=envelope(message),
            headers=auth_headers(channel),
        )
        ensure_success(response, "API")
        data = response_json(response)
        external_id = data.get("messageId") or data.get("id")
        return str(external_id) if external_id else None
