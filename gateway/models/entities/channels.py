"""
Channel entities: tenant channel configurations, the canonical message log
and the raw webhook receipt log.

Messages and webhook events keep ``channel_id`` as a plain indexed column
rather than a foreign key: deleting a configuration must never rewrite or
cascade into history.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, ForeignKey, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from gateway.models.entities.base import BaseEntity


def _values(enum_cls):
    return [member.value for member in enum_cls]


class ChannelType(str, Enum):
    WHATSAPP = "whatsapp"
    SLACK = "slack"
    WEBCHAT = "webchat"
    API = "api"
    WEBHOOK = "webhook"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class ConnectionTestStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


# Forward-only delivery progression; FAILED is terminal
STATUS_RANK = {
    MessageStatus.PENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
}


def can_transition(current: MessageStatus, new: MessageStatus) -> bool:
    """True when moving a message from ``current`` to ``new`` goes forward."""
    current, new = MessageStatus(current), MessageStatus(new)
    if current == MessageStatus.FAILED:
        return False
    if new == MessageStatus.FAILED:
        return current in (MessageStatus.PENDING, MessageStatus.SENT)
    return STATUS_RANK[new] > STATUS_RANK[current]


class ChannelConfig(BaseEntity):
    """One tenant's integration with one messaging provider."""

    __tablename__ = "channel_configs"

    tenant_id = Column(String(64), nullable=False, index=True)
    type = Column(SAEnum(ChannelType, values_callable=_values, native_enum=False, length=20),
                  nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Agent that inbound traffic on this channel is threaded to
    agent_id = Column(String(64), nullable=True, index=True)

    enabled = Column(Boolean, default=True, nullable=False)
    configuration = Column(JSON, default=dict, nullable=False)
    authentication = Column(JSON, default=dict, nullable=False)
    test_results = Column(JSON, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            'tenant_id': self.tenant_id,
            'type': self.type.value if self.type else None,
            'name': self.name,
            'description': self.description,
            'agent_id': self.agent_id,
            'enabled': self.enabled,
            'configuration': self.configuration or {},
            # Secrets never leave the store through to_dict
            'authentication_keys': sorted((self.authentication or {}).keys()),
            'test_results': self.test_results,
        })
        return base


class ChannelMessage(BaseEntity):
    """Canonical envelope for one physical inbound or outbound message."""

    __tablename__ = "channel_messages"
    __table_args__ = (
        UniqueConstraint("channel_id", "external_id", name="uq_channel_messages_external_id"),
    )

    channel_id = Column(String(36), nullable=False, index=True)
    channel_type = Column(String(20), nullable=False)
    direction = Column(SAEnum(MessageDirection, values_callable=_values, native_enum=False, length=10),
                       nullable=False, index=True)
    content = Column(JSON, nullable=False)
    sender = Column(JSON, nullable=False)
    recipient = Column(JSON, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    status = Column(SAEnum(MessageStatus, values_callable=_values, native_enum=False, length=10),
                    nullable=False, default=MessageStatus.PENDING, index=True)
    error = Column(Text, nullable=True)

    # Provider-assigned message id (dedup key where the provider supplies one)
    external_id = Column(String(255), nullable=True)

    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=True, index=True)
    conversation = relationship("Conversation", back_populates="messages")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'channel_id': self.channel_id,
            'channel_type': self.channel_type,
            'direction': self.direction.value if self.direction else None,
            'content': self.content,
            'sender': self.sender,
            'recipient': self.recipient,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'status': self.status.value if self.status else None,
            'error': self.error,
            'external_id': self.external_id,
            'conversation_id': self.conversation_id,
        }


class WebhookEvent(BaseEntity):
    """Raw receipt of an inbound provider callback; the replay log."""

    __tablename__ = "webhook_events"

    channel_id = Column(String(36), nullable=False, index=True)
    channel_type = Column(String(20), nullable=False)
    event_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    processed = Column(Boolean, default=False, nullable=False, index=True)
    processing_error = Column(Text, nullable=True)

    def mark_processed(self):
        self.processed = True
        self.processing_error = None

    def mark_failed(self, error: Optional[str]):
        self.processed = False
        self.processing_error = error or "Unknown processing error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'channel_id': self.channel_id,
            'channel_type': self.channel_type,
            'event_type': self.event_type,
            'payload': self.payload,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'processed': self.processed,
            'processing_error': self.processing_error,
        }
