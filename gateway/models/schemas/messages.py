"""
Canonical message schemas for the channel gateway.

Every provider payload is reconciled into these shapes before it touches the
store, and every outbound send starts from a MessageDraft.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ContentType = Literal["text", "image", "audio", "video", "file"]
Direction = Literal["inbound", "outbound"]
DeliveryStatus = Literal["pending", "sent", "delivered", "read", "failed"]


class MessageContent(BaseModel):
    type: ContentType = "text"
    data: Any = Field(..., description="Text string or a media/structured payload")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Participant(BaseModel):
    id: str = Field(..., min_length=1)
    name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify(cls, v):
        # Providers hand out numeric ids (phone numbers) as ints
        return str(v) if isinstance(v, int) else v


class MessageDraft(BaseModel):
    """
    A message before it has a home in the store.

    Outbound drafts come from callers of the dispatcher; inbound drafts come
    out of adapter extraction and carry the provider's message id and time.
    """
    content: MessageContent
    sender: Participant
    recipient: Participant
    external_id: Optional[str] = None
    timestamp: Optional[datetime] = None


class CanonicalMessage(BaseModel):
    """Stored envelope for one physical message."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    channel_id: str
    channel_type: str
    direction: Direction
    content: MessageContent
    sender: Participant
    recipient: Participant
    timestamp: datetime
    status: DeliveryStatus = "pending"
    error: Optional[str] = None
    external_id: Optional[str] = None
    conversation_id: Optional[str] = None


class StatusUpdate(BaseModel):
    """Provider delivery receipt for a message we sent earlier."""
    external_id: str
    status: DeliveryStatus
    error: Optional[str] = None


class ExtractedEvent(BaseModel):
    """Everything an adapter pulled out of one webhook payload."""
    messages: List[MessageDraft] = Field(default_factory=list)
    status_updates: List[StatusUpdate] = Field(default_factory=list)
