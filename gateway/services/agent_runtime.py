"""
Contract with the Agent Runtime.

The runtime is driven by the orchestration layer, not by the gateway; the
gateway only consumes what it returns.
"""

from typing import Optional

from pydantic import BaseModel, Field


class AgentReply(BaseModel):
    """What the Agent Runtime hands back for one inbound message."""
    text: str = Field(default="", description="Reply text to send back on the channel")
    escalate: bool = Field(default=False, description="Conversation needs a human")
    reason: Optional[str] = Field(default=None, description="Why the runtime escalated")
