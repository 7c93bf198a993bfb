from gateway.models.schemas.channels import (
    ChannelSnapshot,
    ConnectionTestResult,
    TestResultRecord,
)
from gateway.models.schemas.messages import (
    CanonicalMessage,
    ExtractedEvent,
    MessageContent,
    MessageDraft,
    Participant,
    StatusUpdate,
)

__all__ = [
    'ChannelSnapshot',
    'ConnectionTestResult',
    'TestResultRecord',
    'CanonicalMessage',
    'ExtractedEvent',
    'MessageContent',
    'MessageDraft',
    'Participant',
    'StatusUpdate',
]
