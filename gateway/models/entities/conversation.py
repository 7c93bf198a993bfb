"""
Conversation entity: one thread between an agent and a customer on a channel.
"""

from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, Enum as SAEnum, Index, JSON, String, text
from sqlalchemy.orm import relationship

from gateway.models.entities.base import BaseEntity


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ESCALATED = "escalated"
    CLOSED = "closed"


class Conversation(BaseEntity):
    """
    Threads inbound and outbound traffic for one (agent, customer, channel).

    The partial unique index allows any number of escalated/closed threads but
    at most one active thread per triple; find-or-create relies on it.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index(
            "uq_conversations_active_thread",
            "agent_id", "customer_id", "channel",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    agent_id = Column(String(64), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(255), nullable=False)
    channel = Column(String(20), nullable=False)
    status = Column(
        SAEnum(ConversationStatus, values_callable=lambda e: [m.value for m in e],
               native_enum=False, length=10),
        nullable=False,
        default=ConversationStatus.ACTIVE,
        index=True,
    )
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, default=dict, nullable=False)

    messages = relationship(
        "ChannelMessage",
        back_populates="conversation",
        order_by="ChannelMessage.timestamp",
    )

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            'agent_id': self.agent_id,
            'tenant_id': self.tenant_id,
            'customer_id': self.customer_id,
            'channel': self.channel,
            'status': self.status.value if self.status else None,
            'metadata': self.meta or {},
        })
        return base
