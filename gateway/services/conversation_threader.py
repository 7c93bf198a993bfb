"""
Conversation Threader - groups messages into conversations.

Inbound messages are keyed by (agent, sender, channel type), outbound by
(agent, recipient, channel type). Find-or-create is one atomic store call,
so two deliveries racing for a brand-new customer end up in one thread.
"""

import logging
from datetime import datetime
from typing import Optional

from gateway.models.entities.conversation import Conversation, ConversationStatus
from gateway.models.schemas.messages import CanonicalMessage
from gateway.services.agent_runtime import AgentReply
from gateway.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class ConversationThreader:

    def __init__(self, store: ConversationStore):
        self.store = store

    def _thread(self, agent_id: str, tenant_id: str, customer, message: CanonicalMessage) -> Conversation:
        metadata = {"customer_name": customer.name} if customer.name else {}
        conversation = self.store.find_or_create_active_conversation(
            agent_id=agent_id,
            tenant_id=tenant_id,
            customer_id=customer.id,
            channel=message.channel_type,
            metadata=metadata,
        )
        self.store.attach_message(message.id, conversation.id)
        message.conversation_id = conversation.id
        return conversation

    def thread_inbound(self, agent_id: str, tenant_id: str, message: CanonicalMessage) -> Conversation:
        """Append an inbound message to the sender's active conversation."""
        return self._thread(agent_id, tenant_id, message.sender, message)

    def thread_outbound(self, agent_id: str, tenant_id: str, message: CanonicalMessage) -> Conversation:
        """Append an outbound message to the recipient's active conversation."""
        return self._thread(agent_id, tenant_id, message.recipient, message)

    def escalate(self, conversation_id: str, reason: Optional[str] = None) -> Optional[Conversation]:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            return None
        if conversation.status == ConversationStatus.CLOSED:
            logger.warning(f"Not escalating closed conversation {conversation_id}")
            return conversation

        self.store.merge_conversation_metadata(conversation_id, {
            "escalated_at": datetime.utcnow().isoformat(),
            "escalation_reason": reason,
        })
        logger.info(f"Conversation {conversation_id} escalated: {reason or 'no reason given'}")
        return self.store.set_conversation_status(conversation_id, ConversationStatus.ESCALATED)

    def close(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self.store.set_conversation_status(conversation_id, ConversationStatus.CLOSED)
        if conversation is not None:
            logger.info(f"Conversation {conversation_id} closed")
        return conversation

    def apply_agent_reply(self, conversation_id: str, reply: AgentReply) -> Optional[Conversation]:
        """Record the escalation flag the Agent Runtime returned with a reply."""
        if reply.escalate:
            return self.escalate(conversation_id, reply.reason)
        return self.store.get_conversation(conversation_id)
