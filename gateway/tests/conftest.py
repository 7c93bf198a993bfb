"""
Shared fixtures - in-memory SQLite store, fake providers, signed routing tokens.
No test touches the real network.
"""

import os
from typing import Any, Callable, Dict, List, Optional

# Settings are read once at import; pin them before any gateway module loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["WEBHOOK_SIGNING_SECRET"] = "test-webhook-signing-secret"
os.environ["SECRET_KEY"] = "test-dashboard-secret"
os.environ["BASE_URL"] = "https://gateway.test"

import httpx
import pytest

from gateway.core.routing import encode_routing_token
from gateway.models.database import build_engine, build_session_factory, init_db
from gateway.services.channel_registry import ChannelRegistry
from gateway.services.conversation_store import ConversationStore
from gateway.services.conversation_threader import ConversationThreader

TENANT = "tenant-1"
OTHER_TENANT = "tenant-2"
AGENT = "agent-1"


# ───────────────────────────────────────────
# Fake provider
# ───────────────────────────────────────────

class FakeProvider:
    """
    httpx transport that records every request and answers with a handler.
    Use `client()` inside an async test.
    """

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self.handler = handler or (lambda request: httpx.Response(200, json={"ok": True}))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


# ───────────────────────────────────────────
# Store / services
# ───────────────────────────────────────────

@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> ConversationStore:
    return ConversationStore(build_session_factory(engine))


@pytest.fixture
def registry(store) -> ChannelRegistry:
    return ChannelRegistry(store)


@pytest.fixture
def threader(store) -> ConversationThreader:
    return ConversationThreader(store)


@pytest.fixture
def make_channel(registry):
    """Factory: save a channel for a tenant and return its snapshot."""

    def _make(channel_type: str = "webchat", tenant_id: str = TENANT, **fields: Any):
        data: Dict[str, Any] = {
            "type": channel_type,
            "name": fields.pop("name", f"{channel_type} channel"),
            "agent_id": fields.pop("agent_id", AGENT),
            "configuration": fields.pop("configuration", {}),
            "authentication": fields.pop("authentication", {}),
        }
        data.update(fields)
        return registry.save(tenant_id, data)

    return _make


@pytest.fixture
def routing_token():
    def _token(channel, tenant_id: Optional[str] = None) -> str:
        return encode_routing_token(tenant_id or channel.tenant_id, channel.id)
    return _token


# ───────────────────────────────────────────
# Provider payloads
# ───────────────────────────────────────────

def whatsapp_payload(messages=None, statuses=None, display_phone_number="15550001111",
                     phone_number_id="PN123") -> Dict[str, Any]:
    value: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": display_phone_number, "phone_number_id": phone_number_id},
    }
    if messages is not None:
        value["contacts"] = [{"wa_id": m["from"], "profile": {"name": "Customer"}} for m in messages]
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA1", "changes": [{"field": "messages", "value": value}]}],
    }


def whatsapp_text(sender: str, body: str, message_id: str = "wamid.1", ts: int = 1700000000) -> Dict[str, Any]:
    return {"from": sender, "id": message_id, "timestamp": str(ts), "type": "text", "text": {"body": body}}


def slack_message(user: str = "U1", text: str = "hello", channel: str = "C1",
                  ts: str = "1700000000.000100", **event_fields) -> Dict[str, Any]:
    event = {"type": "message", "user": user, "text": text, "channel": channel, "ts": ts}
    event.update(event_fields)
    return {"type": "event_callback", "team_id": "T1", "event_id": "Ev1", "event": event}
