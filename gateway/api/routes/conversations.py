"""
API routes for conversation lifecycle.

  GET    /conversations/{id}             - conversation with its messages
  POST   /conversations/{id}/escalate    - hand the conversation to a human
  POST   /conversations/{id}/close       - close; the next message opens a new one
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gateway.api.dependencies import get_store, get_threader
from gateway.core.auth import get_current_tenant
from gateway.models.entities.conversation import Conversation
from gateway.services.conversation_store import ConversationStore
from gateway.services.conversation_threader import ConversationThreader

router = APIRouter(prefix="/conversations", tags=["Conversations"])


class EscalateRequest(BaseModel):
    reason: Optional[str] = None


def _get_conversation_or_404(store: ConversationStore, tenant_id: str, conversation_id: str) -> Conversation:
    conversation = store.get_conversation(conversation_id)
    if conversation is None or conversation.tenant_id != tenant_id:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
    return conversation


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    tenant_id: str = Depends(get_current_tenant),
    store: ConversationStore = Depends(get_store),
):
    conversation = _get_conversation_or_404(store, tenant_id, conversation_id)
    messages = store.list_conversation_messages(conversation_id)
    return {**conversation.to_dict(), "messages": [m.to_dict() for m in messages]}


@router.post("/{conversation_id}/escalate")
async def escalate_conversation(
    conversation_id: str,
    request: Optional[EscalateRequest] = None,
    tenant_id: str = Depends(get_current_tenant),
    store: ConversationStore = Depends(get_store),
    threader: ConversationThreader = Depends(get_threader),
):
    _get_conversation_or_404(store, tenant_id, conversation_id)
    conversation = threader.escalate(conversation_id, request.reason if request else None)
    return conversation.to_dict()


@router.post("/{conversation_id}/close")
async def close_conversation(
    conversation_id: str,
    tenant_id: str = Depends(get_current_tenant),
    store: ConversationStore = Depends(get_store),
    threader: ConversationThreader = Depends(get_threader),
):
    _get_conversation_or_404(store, tenant_id, conversation_id)
    return threader.close(conversation_id).to_dict()
