"""
Channel Registry - tenant-scoped CRUD over channel configurations.

Hands out detached ChannelSnapshot objects and keeps a small per-instance
cache in front of the store. A registry lives as long as one request or job,
so the cache is never shared across processes and never needed for
correctness.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from gateway.core.config import settings
from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult, TestResultRecord
from gateway.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class ChannelRegistry:
    """Tenant-scoped access to channel configurations."""

    def __init__(self, store: ConversationStore, cache_size: Optional[int] = None):
        self.store = store
        self._cache: "OrderedDict[str, ChannelSnapshot]" = OrderedDict()
        self._cache_size = cache_size if cache_size is not None else settings.CHANNEL_CACHE_SIZE

    # ── Cache ──────────────────────────────────────────────────────────────

    def _remember(self, snapshot: ChannelSnapshot) -> ChannelSnapshot:
        if self._cache_size <= 0:
            return snapshot
        self._cache[snapshot.id] = snapshot
        self._cache.move_to_end(snapshot.id)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return snapshot

    def _forget(self, channel_id: str):
        self._cache.pop(channel_id, None)

    # ── Operations ─────────────────────────────────────────────────────────

    def get(self, channel_id: str) -> Optional[ChannelSnapshot]:
        """Fetch a channel by id regardless of tenant (webhook routing path)."""
        if not channel_id:
            return None
        cached = self._cache.get(channel_id)
        if cached is not None:
            return cached

        entity = self.store.get_channel(channel_id)
        if entity is None:
            return None
        return self._remember(ChannelSnapshot.from_entity(entity))

    def get_for_tenant(self, tenant_id: str, channel_id: str) -> Optional[ChannelSnapshot]:
        channel = self.get(channel_id)
        if channel is None or channel.tenant_id != tenant_id:
            return None
        return channel

    def list_by_tenant(self, tenant_id: str) -> List[ChannelSnapshot]:
        return [self._remember(ChannelSnapshot.from_entity(e)) for e in self.store.list_channels(tenant_id)]

    def save(self, tenant_id: str, data: Dict[str, Any]) -> Optional[ChannelSnapshot]:
        """
        Upsert a configuration for tenant_id.

        Returns None when data names an id owned by another tenant.
        """
        if data.get("id"):
            self._forget(data["id"])

        entity = self.store.save_channel(tenant_id, data)
        if entity is None:
            return None

        logger.info(f"Saved {entity.type.value} channel {entity.id} for tenant {tenant_id}")
        return self._remember(ChannelSnapshot.from_entity(entity))

    def delete(self, tenant_id: str, channel_id: str) -> bool:
        self._forget(channel_id)
        deleted = self.store.delete_channel(tenant_id, channel_id)
        if deleted:
            logger.info(f"Deleted channel {channel_id} for tenant {tenant_id}")
        return deleted

    def record_test_result(self, tenant_id: str, channel_id: str, result: ConnectionTestResult) -> bool:
        record = TestResultRecord(
            status="success" if result.success else "error",
            message=result.message,
            timestamp=datetime.utcnow(),
        )
        stored = self.store.record_test_result(tenant_id, channel_id, record.model_dump(mode="json"))
        self._forget(channel_id)
        return stored
