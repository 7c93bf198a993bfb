"""
Outbound Dispatcher - sends a canonical message through its channel's adapter.

Every attempt on an enabled channel leaves exactly one message record behind,
`sent` or `failed`. There is no retry here; failed records are the queue an
external reconciler works from.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from gateway.models.entities.base import new_id
from gateway.models.entities.channels import MessageStatus
from gateway.models.schemas.messages import CanonicalMessage, MessageDraft, StatusUpdate
from gateway.services.channel_registry import ChannelRegistry
from gateway.services.channels import get_adapter
from gateway.services.channels.http import provider_client
from gateway.services.conversation_store import ConversationStore
from gateway.services.conversation_threader import ConversationThreader

logger = logging.getLogger(__name__)


class OutboundDispatcher:

    def __init__(self, registry: ChannelRegistry, store: ConversationStore,
                 threader: Optional[ConversationThreader] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.registry = registry
        self.store = store
        self.threader = threader or ConversationThreader(store)
        self.client = client

    async def send(self, channel_id: str, draft: MessageDraft) -> Optional[CanonicalMessage]:
        """
        Send draft on channel_id.

        Returns None (and writes nothing) when the channel is missing or
        disabled; otherwise the persisted message, whatever its outcome.
        """
        channel = self.registry.get(channel_id)
        if channel is None:
            logger.warning(f"Send skipped: channel {channel_id} not found")
            return None
        if not channel.enabled:
            logger.warning(f"Send skipped: channel {channel_id} is disabled")
            return None

        message = CanonicalMessage(
            id=new_id(),
            channel_id=channel.id,
            channel_type=channel.type,
            direction="outbound",
            content=draft.content,
            sender=draft.sender,
            recipient=draft.recipient,
            timestamp=draft.timestamp or datetime.utcnow(),
            status=MessageStatus.PENDING.value,
        )

        try:
            adapter = get_adapter(channel.type)
            async with provider_client(self.client) as client:
                external_id = await adapter.send(channel, message, client)
            message.status = MessageStatus.SENT.value
            message.external_id = external_id
        except Exception as e:
            message.status = MessageStatus.FAILED.value
            message.error = str(e) or e.__class__.__name__
            logger.error(f"Send failed on {channel.type} channel {channel.id}: {message.error}")

        inserted = self.store.insert_message(message)
        if not inserted:
            # Keep the attempt; the provider id already belongs to another record
            logger.warning(f"Outbound message {message.id} collided with an existing provider id {message.external_id}")
            message.error = f"Provider message id {message.external_id} is already recorded on this channel"
            message.external_id = None
            inserted = self.store.insert_message(message)

        if inserted and channel.agent_id:
            try:
                self.threader.thread_outbound(channel.agent_id, channel.tenant_id, message)
            except Exception as e:
                logger.error(f"Threading outbound message {message.id} failed: {e}")

        return message

    def apply_status_update(self, channel_id: str, update: StatusUpdate) -> bool:
        """Apply a provider delivery receipt; out-of-order receipts are ignored."""
        applied = self.store.advance_message_status(channel_id, update.external_id, update.status, update.error)
        if applied:
            logger.debug(f"Message {update.external_id} on channel {channel_id} is now {update.status}")
        return applied
