"""
Gateway database entities.
"""

from gateway.models.entities.base import Base, BaseEntity
from gateway.models.entities.channels import (
    ChannelConfig,
    ChannelMessage,
    ChannelType,
    ConnectionTestStatus,
    MessageDirection,
    MessageStatus,
    WebhookEvent,
    can_transition,
)
from gateway.models.entities.conversation import Conversation, ConversationStatus

__all__ = [
    'Base',
    'BaseEntity',
    'ChannelConfig',
    'ChannelMessage',
    'ChannelType',
    'ConnectionTestStatus',
    'MessageDirection',
    'MessageStatus',
    'WebhookEvent',
    'can_transition',
    'Conversation',
    'ConversationStatus',
]
