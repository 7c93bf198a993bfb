"""
FastAPI dependencies that assemble the gateway services per request.
Tests swap the store out via app.dependency_overrides[get_store].
"""

from fastapi import Depends

from gateway.services.channel_registry import ChannelRegistry
from gateway.services.connection_tester import ConnectionTester
from gateway.services.conversation_store import ConversationStore
from gateway.services.conversation_threader import ConversationThreader
from gateway.services.outbound_dispatcher import OutboundDispatcher
from gateway.services.webhook_router import WebhookRouter


def get_store() -> ConversationStore:
    return ConversationStore()


def get_registry(store: ConversationStore = Depends(get_store)) -> ChannelRegistry:
    return ChannelRegistry(store)


def get_threader(store: ConversationStore = Depends(get_store)) -> ConversationThreader:
    return ConversationThreader(store)


def get_tester(registry: ChannelRegistry = Depends(get_registry)) -> ConnectionTester:
    return ConnectionTester(registry)


def get_dispatcher(
    registry: ChannelRegistry = Depends(get_registry),
    store: ConversationStore = Depends(get_store),
    threader: ConversationThreader = Depends(get_threader),
) -> OutboundDispatcher:
    return OutboundDispatcher(registry, store, threader)


def get_webhook_router(
    registry: ChannelRegistry = Depends(get_registry),
    store: ConversationStore = Depends(get_store),
    threader: ConversationThreader = Depends(get_threader),
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> WebhookRouter:
    return WebhookRouter(registry, store, threader, dispatcher)
