"""
Provider adapter set.

ADAPTERS maps each channel type to its adapter; everything outside this
package reaches an adapter through get_adapter().
"""

from typing import Dict

from gateway.core.errors import UnsupportedChannelError
from gateway.services.channels.api import ApiAdapter
from gateway.services.channels.base import ChannelAdapter
from gateway.services.channels.slack import SlackAdapter
from gateway.services.channels.webchat import WebChatAdapter
from gateway.services.channels.webhook import WebhookAdapter
from gateway.services.channels.whatsapp import WhatsAppAdapter

ADAPTERS: Dict[str, ChannelAdapter] = {
    adapter.channel_type: adapter
    for adapter in (
        WhatsAppAdapter(),
        SlackAdapter(),
        WebChatAdapter(),
        ApiAdapter(),
        WebhookAdapter(),
    )
}


def get_adapter(channel_type) -> ChannelAdapter:
    key = getattr(channel_type, "value", channel_type)
    adapter = ADAPTERS.get(key)
    if adapter is None:
        raise UnsupportedChannelError(str(key))
    return adapter


__all__ = ["ADAPTERS", "ChannelAdapter", "get_adapter"]
