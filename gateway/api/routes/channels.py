"""
API routes for channel configuration, testing and outbound sends.

Endpoints (all scoped to the caller's tenant):
  GET    /channels/                      - list channels
  POST   /channels/                      - create channel
  POST   /channels/test                  - test an unsaved configuration
  GET    /channels/{id}                  - get channel detail
  PUT    /channels/{id}                  - update channel config
  DELETE /channels/{id}                  - delete channel
  POST   /channels/{id}/test             - test connection and record the result
  POST   /channels/{id}/send             - send a message
  GET    /channels/{id}/messages         - list recent messages
  GET    /channels/{id}/webhook-events   - list webhook receipts (replay candidates)
  GET    /channels/{id}/webhook-url      - public callback URL for the provider
"""

from typing import Optional, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from gateway.api.dependencies import get_dispatcher, get_registry, get_store, get_tester
from gateway.core.auth import get_current_tenant
from gateway.core.config import settings
from gateway.core.routing import encode_routing_token
from gateway.models.entities.channels import ChannelType
from gateway.models.schemas.channels import ChannelSnapshot
from gateway.models.schemas.messages import MessageContent, MessageDraft, Participant
from gateway.services.channel_registry import ChannelRegistry
from gateway.services.connection_tester import ConnectionTester
from gateway.services.conversation_store import ConversationStore
from gateway.services.outbound_dispatcher import OutboundDispatcher

router = APIRouter(tags=["Channels"])


# ═══════════════════════════════════════════════════════════
# REQUEST / RESPONSE SCHEMAS
# ═══════════════════════════════════════════════════════════

class ChannelCreateRequest(BaseModel):
    type: str = Field(..., description="Channel type slug, e.g. 'whatsapp'")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    agent_id: Optional[str] = Field(default=None, description="Agent inbound traffic is threaded to")
    enabled: bool = True
    configuration: Dict[str, Any] = Field(default_factory=dict)
    authentication: Dict[str, Any] = Field(default_factory=dict)


class ChannelUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    agent_id: Optional[str] = None
    enabled: Optional[bool] = None
    configuration: Optional[Dict[str, Any]] = None
    authentication: Optional[Dict[str, Any]] = None


class ChannelTestRequest(BaseModel):
    type: str
    name: str = ""
    configuration: Dict[str, Any] = Field(default_factory=dict)
    authentication: Dict[str, Any] = Field(default_factory=dict)


class SendMessageRequest(BaseModel):
    recipient: Participant
    content: MessageContent
    sender: Optional[Participant] = Field(default=None, description="Defaults to the channel's agent")


# ═══════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════

def _validate_type(channel_type: str):
    try:
        ChannelType(channel_type)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid channel type '{channel_type}'. Valid: {[t.value for t in ChannelType]}"
        )


def _get_channel_or_404(registry: ChannelRegistry, tenant_id: str, channel_id: str) -> ChannelSnapshot:
    channel = registry.get_for_tenant(tenant_id, channel_id)
    if not channel:
        raise HTTPException(status_code=404, detail=f"Channel {channel_id} not found")
    return channel


def _webhook_url(channel: ChannelSnapshot) -> str:
    return settings.webhook_url(channel.type, encode_routing_token(channel.tenant_id, channel.id))


def _channel_response(channel: ChannelSnapshot) -> Dict[str, Any]:
    data = channel.model_dump(mode="json", exclude={"authentication"})
    # Secrets never leave the gateway; the UI only learns which keys are set
    data["authentication_keys"] = sorted(channel.authentication.keys())
    data["webhook_url"] = _webhook_url(channel)
    return data


# ═══════════════════════════════════════════════════════════
# CRUD ENDPOINTS
# ═══════════════════════════════════════════════════════════

@router.get("/channels/")
async def list_channels(
    channel_type: Optional[str] = None,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
):
    """List the tenant's channels, optionally filtered by type."""
    channels = registry.list_by_tenant(tenant_id)
    if channel_type:
        channels = [c for c in channels if c.type == channel_type]
    return {
        "channels": [_channel_response(c) for c in channels],
        "total": len(channels),
    }


@router.post("/channels/", status_code=status.HTTP_201_CREATED)
async def create_channel(
    request: ChannelCreateRequest,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
):
    _validate_type(request.type)
    channel = registry.save(tenant_id, request.model_dump())
    return _channel_response(channel)


@router.post("/channels/test")
async def test_unsaved_channel(
    request: ChannelTestRequest,
    tenant_id: str = Depends(get_current_tenant),
    tester: ConnectionTester = Depends(get_tester),
):
    """Test credentials before the configuration is saved. Nothing is recorded."""
    result = await tester.test(tenant_id, ChannelSnapshot(tenant_id=tenant_id, **request.model_dump()))
    return result.model_dump()


@router.get("/channels/{channel_id}")
async def get_channel(
    channel_id: str,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
):
    return _channel_response(_get_channel_or_404(registry, tenant_id, channel_id))


@router.put("/channels/{channel_id}")
async def update_channel(
    channel_id: str,
    request: ChannelUpdateRequest,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
):
    _get_channel_or_404(registry, tenant_id, channel_id)

    updates = request.model_dump(exclude_unset=True)
    channel = registry.save(tenant_id, {"id": channel_id, **updates})
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Channel {channel_id} not found")
    return _channel_response(channel)


@router.delete("/channels/{channel_id}")
async def delete_channel(
    channel_id: str,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
):
    """Delete a channel. Its message and webhook history is kept."""
    if not registry.delete(tenant_id, channel_id):
        raise HTTPException(status_code=404, detail=f"Channel {channel_id} not found")
    return {"deleted": True, "id": channel_id}


# ═══════════════════════════════════════════════════════════
# OPERATIONS
# ═══════════════════════════════════════════════════════════

@router.post("/channels/{channel_id}/test")
async def test_channel(
    channel_id: str,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
    tester: ConnectionTester = Depends(get_tester),
):
    channel = _get_channel_or_404(registry, tenant_id, channel_id)
    result = await tester.test(tenant_id, channel)
    return result.model_dump()


@router.post("/channels/{channel_id}/send")
async def send_message(
    channel_id: str,
    request: SendMessageRequest,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
):
    """Send a message. Provider failures come back as a `failed` message, not an HTTP error."""
    channel = _get_channel_or_404(registry, tenant_id, channel_id)

    sender = request.sender or Participant(id=channel.agent_id or channel.id, name=channel.name or None)
    message = await dispatcher.send(channel_id, MessageDraft(
        content=request.content,
        sender=sender,
        recipient=request.recipient,
    ))
    if message is None:
        raise HTTPException(status_code=409, detail=f"Channel {channel_id} is disabled")
    return message.model_dump(mode="json")


@router.get("/channels/{channel_id}/messages")
async def list_messages(
    channel_id: str,
    limit: int = Query(50, ge=1, le=500),
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
    store: ConversationStore = Depends(get_store),
):
    _get_channel_or_404(registry, tenant_id, channel_id)
    messages = store.list_messages(channel_id, limit=limit)
    return {"messages": [m.to_dict() for m in messages], "total": len(messages)}


@router.get("/channels/{channel_id}/webhook-events")
async def list_webhook_events(
    channel_id: str,
    processed: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=500),
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
    store: ConversationStore = Depends(get_store),
):
    """Webhook receipts; processed=false lists what a reconciler should replay."""
    _get_channel_or_404(registry, tenant_id, channel_id)
    events = store.list_events(channel_id, processed=processed, limit=limit)
    return {"events": [e.to_dict() for e in events], "total": len(events)}


@router.get("/channels/{channel_id}/webhook-url")
async def get_webhook_url(
    channel_id: str,
    tenant_id: str = Depends(get_current_tenant),
    registry: ChannelRegistry = Depends(get_registry),
):
    channel = _get_channel_or_404(registry, tenant_id, channel_id)
    return {
        "channel_id": channel.id,
        "type": channel.type,
        "webhook_url": _webhook_url(channel),
        "verify_token_configured": bool(channel.auth_value("verifyToken")),
    }
