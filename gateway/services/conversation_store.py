"""
Conversation Store - the gateway's only persistence surface.

Every method opens and closes its own unit of work, so callers never hold a
session across a network call. Returned entities are detached (the session
factory is built with expire_on_commit=False).

The two places concurrent deliveries can race, message dedup and
conversation find-or-create, are expressed as a single conditional insert
against a unique index instead of read-then-write.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from gateway.models.database import SessionLocal, get_db_context
from gateway.models.entities.base import new_id
from gateway.models.entities.channels import (
    ChannelConfig,
    ChannelMessage,
    ChannelType,
    MessageDirection,
    MessageStatus,
    WebhookEvent,
    can_transition,
)
from gateway.models.entities.conversation import Conversation, ConversationStatus
from gateway.models.schemas.messages import CanonicalMessage

logger = logging.getLogger(__name__)

# Fields a caller may set on a channel configuration
CHANNEL_FIELDS = ("type", "name", "description", "agent_id", "enabled", "configuration", "authentication")


def _insert_for(db: Session):
    """Dialect-specific INSERT construct (both support ON CONFLICT DO NOTHING)."""
    if db.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


def _message_values(message: CanonicalMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "channel_id": message.channel_id,
        "channel_type": message.channel_type,
        "direction": MessageDirection(message.direction),
        "content": message.content.model_dump(mode="json"),
        "sender": message.sender.model_dump(mode="json", exclude_none=True),
        "recipient": message.recipient.model_dump(mode="json", exclude_none=True),
        "timestamp": message.timestamp,
        "status": MessageStatus(message.status),
        "error": message.error,
        "external_id": message.external_id,
        "conversation_id": message.conversation_id,
    }


class ConversationStore:
    """SQLAlchemy-backed repository for channels, messages, events and conversations."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal

    def session(self):
        return get_db_context(self._session_factory)

    # ═══════════════════════════════════════════════════════════
    # Channels
    # ═══════════════════════════════════════════════════════════

    def get_channel(self, channel_id: str) -> Optional[ChannelConfig]:
        if not channel_id:
            return None
        with self.session() as db:
            return db.query(ChannelConfig).filter(ChannelConfig.id == channel_id).first()

    def list_channels(self, tenant_id: str) -> List[ChannelConfig]:
        with self.session() as db:
            return (
                db.query(ChannelConfig)
                .filter(ChannelConfig.tenant_id == tenant_id)
                .order_by(ChannelConfig.created_at.asc())
                .all()
            )

    def save_channel(self, tenant_id: str, data: Dict[str, Any]) -> Optional[ChannelConfig]:
        """
        Insert or update a channel configuration owned by tenant_id.

        An id that exists under another tenant is never touched; None is
        returned instead.
        """
        values = {k: data[k] for k in CHANNEL_FIELDS if k in data}
        if "type" in values:
            values["type"] = ChannelType(values["type"])

        with self.session() as db:
            channel_id = data.get("id")
            channel = None
            if channel_id:
                channel = db.query(ChannelConfig).filter(ChannelConfig.id == channel_id).first()
                if channel is not None and channel.tenant_id != tenant_id:
                    logger.warning(f"Refused cross-tenant update of channel {channel_id} by tenant {tenant_id}")
                    return None

            if channel is None:
                if "type" not in values:
                    raise ValueError("type is required to create a channel")
                channel = ChannelConfig(
                    id=channel_id or new_id(),
                    tenant_id=tenant_id,
                    name=values.pop("name", None) or values["type"].value,
                    configuration={},
                    authentication={},
                )
                db.add(channel)

            for key, value in values.items():
                if key in ("configuration", "authentication") and value is None:
                    value = {}
                setattr(channel, key, value)

            db.flush()
            db.refresh(channel)
            return channel

    def delete_channel(self, tenant_id: str, channel_id: str) -> bool:
        with self.session() as db:
            deleted = (
                db.query(ChannelConfig)
                .filter(ChannelConfig.id == channel_id, ChannelConfig.tenant_id == tenant_id)
                .delete(synchronize_session=False)
            )
            return deleted > 0

    def record_test_result(self, tenant_id: str, channel_id: str, result: Dict[str, Any]) -> bool:
        with self.session() as db:
            channel = (
                db.query(ChannelConfig)
                .filter(ChannelConfig.id == channel_id, ChannelConfig.tenant_id == tenant_id)
                .first()
            )
            if channel is None:
                return False
            channel.test_results = result
            return True

    # ═══════════════════════════════════════════════════════════
    # Messages
    # ═══════════════════════════════════════════════════════════

    def insert_message(self, message: CanonicalMessage) -> bool:
        """
        Persist a new message. Returns False when (channel_id, external_id)
        was already recorded, which makes redelivered webhooks no-ops.
        """
        with self.session() as db:
            insert = _insert_for(db)
            stmt = (
                insert(ChannelMessage.__table__)
                .values(**_message_values(message))
                .on_conflict_do_nothing()
            )
            result = db.execute(stmt)
            inserted = result.rowcount == 1

        if not inserted:
            logger.info(f"Duplicate message {message.external_id} on channel {message.channel_id} ignored")
        return inserted

    def get_message(self, message_id: str) -> Optional[ChannelMessage]:
        with self.session() as db:
            return db.query(ChannelMessage).filter(ChannelMessage.id == message_id).first()

    def advance_message_status(self, channel_id: str, external_id: str,
                               status: MessageStatus, error: Optional[str] = None) -> bool:
        """Move a message's delivery status forward; backwards moves are ignored."""
        status = MessageStatus(status)
        with self.session() as db:
            message = (
                db.query(ChannelMessage)
                .filter(ChannelMessage.channel_id == channel_id, ChannelMessage.external_id == external_id)
                .first()
            )
            if message is None:
                return False
            if not can_transition(message.status, status):
                logger.debug(f"Ignored status {status.value} for message {message.id} (currently {message.status.value})")
                return False
            message.status = status
            if status == MessageStatus.FAILED:
                message.error = error or "Delivery failed"
            return True

    def attach_message(self, message_id: str, conversation_id: str) -> bool:
        """Append a message to a conversation and touch the conversation."""
        # Write-first statements: no read lock is held while waiting for the write lock
        with self.session() as db:
            touched = (
                db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .update({Conversation.updated_at: datetime.utcnow()}, synchronize_session=False)
            )
            if not touched:
                return False
            attached = (
                db.query(ChannelMessage)
                .filter(ChannelMessage.id == message_id)
                .update({ChannelMessage.conversation_id: conversation_id}, synchronize_session=False)
            )
            return attached > 0

    def list_messages(self, channel_id: str, limit: int = 50) -> List[ChannelMessage]:
        with self.session() as db:
            return (
                db.query(ChannelMessage)
                .filter(ChannelMessage.channel_id == channel_id)
                .order_by(ChannelMessage.timestamp.desc())
                .limit(limit)
                .all()
            )

    def list_conversation_messages(self, conversation_id: str) -> List[ChannelMessage]:
        with self.session() as db:
            return (
                db.query(ChannelMessage)
                .filter(ChannelMessage.conversation_id == conversation_id)
                .order_by(ChannelMessage.timestamp.asc(), ChannelMessage.created_at.asc())
                .all()
            )

    # ═══════════════════════════════════════════════════════════
    # Webhook events
    # ═══════════════════════════════════════════════════════════

    def insert_event(self, event: WebhookEvent) -> WebhookEvent:
        with self.session() as db:
            db.add(event)
            db.flush()
            return event

    def finish_event(self, event_id: str, processed: bool, error: Optional[str] = None) -> bool:
        with self.session() as db:
            event = db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()
            if event is None:
                return False
            if processed:
                event.mark_processed()
            else:
                event.mark_failed(error)
            return True

    def get_event(self, event_id: str) -> Optional[WebhookEvent]:
        with self.session() as db:
            return db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()

    def list_events(self, channel_id: str, processed: Optional[bool] = None,
                    limit: int = 50) -> List[WebhookEvent]:
        with self.session() as db:
            query = db.query(WebhookEvent).filter(WebhookEvent.channel_id == channel_id)
            if processed is not None:
                query = query.filter(WebhookEvent.processed == processed)
            return query.order_by(WebhookEvent.timestamp.desc()).limit(limit).all()

    # ═══════════════════════════════════════════════════════════
    # Conversations
    # ═══════════════════════════════════════════════════════════

    def find_or_create_active_conversation(self, agent_id: str, tenant_id: str, customer_id: str,
                                           channel: str, metadata: Optional[Dict[str, Any]] = None
                                           ) -> Conversation:
        """
        Return the active conversation for (agent, customer, channel),
        creating it if there is none.

        The insert is a no-op when another writer already holds the active
        slot (partial unique index), so concurrent callers converge on one row.
        """
        with self.session() as db:
            insert = _insert_for(db)
            stmt = (
                insert(Conversation.__table__)
                .values(**{
                    "id": new_id(),
                    "agent_id": agent_id,
                    "tenant_id": tenant_id,
                    "customer_id": customer_id,
                    "channel": channel,
                    "status": ConversationStatus.ACTIVE,
                    "metadata": metadata or {},
                })
                .on_conflict_do_nothing()
            )
            result = db.execute(stmt)
            if result.rowcount == 1:
                logger.info(f"Opened conversation for agent {agent_id}, customer {customer_id} on {channel}")

            return (
                db.query(Conversation)
                .filter(
                    Conversation.agent_id == agent_id,
                    Conversation.customer_id == customer_id,
                    Conversation.channel == channel,
                    Conversation.status == ConversationStatus.ACTIVE,
                )
                .one()
            )

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self.session() as db:
            return db.query(Conversation).filter(Conversation.id == conversation_id).first()

    def set_conversation_status(self, conversation_id: str, status: ConversationStatus) -> Optional[Conversation]:
        status = ConversationStatus(status)
        with self.session() as db:
            conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
            if conversation is None:
                return None
            conversation.status = status
            db.flush()
            return conversation

    def merge_conversation_metadata(self, conversation_id: str, updates: Dict[str, Any]) -> Optional[Conversation]:
        with self.session() as db:
            conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
            if conversation is None:
                return None
            # Reassign so the JSON column registers the change
            conversation.meta = {**(conversation.meta or {}), **updates}
            db.flush()
            return conversation
