"""
Embeddable web chat adapter.

The widget polls or streams messages straight from the store, so sending
is just recording; there is no provider to call.
"""

import logging
from typing import Optional

import httpx

from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.models.schemas.messages import CanonicalMessage
from gateway.services.channels.base import ChannelAdapter

logger = logging.getLogger(__name__)


class WebChatAdapter(ChannelAdapter):
    channel_type = "webchat"
    display_name = "Web chat"

    async def test_connection(self, channel: ChannelSnapshot, client: httpx.AsyncClient) -> ConnectionTestResult:
        return ConnectionTestResult(success=True, message="Web chat widget configuration is valid")

    async def send(self, channel: ChannelSnapshot, message: CanonicalMessage,
                   client: httpx.AsyncClient) -> Optional[str]:
        logger.debug(f"Web chat message {message.id} queued for widget delivery on channel {channel.id}")
        return None
