"""
Connection Tester - validates a channel configuration against its provider.

Never raises: every failure comes back as a ConnectionTestResult with
success=False. Saved configurations get the outcome recorded on them.
"""

import logging
from typing import Any, Dict, Optional, Union

import httpx

from gateway.core.errors import GatewayError
from gateway.models.schemas.channels import ChannelSnapshot, ConnectionTestResult
from gateway.services.channel_registry import ChannelRegistry
from gateway.services.channels import get_adapter
from gateway.services.channels.http import provider_client

logger = logging.getLogger(__name__)


class ConnectionTester:

    def __init__(self, registry: Optional[ChannelRegistry] = None, client: Optional[httpx.AsyncClient] = None):
        self.registry = registry
        self.client = client

    async def test(self, tenant_id: str,
                   config: Union[ChannelSnapshot, Dict[str, Any]]) -> ConnectionTestResult:
        """Run the provider probe for config and return a structured outcome."""
        channel = config if isinstance(config, ChannelSnapshot) else ChannelSnapshot(**config)
        result = await self._probe(channel)

        if channel.id and self.registry is not None:
            recorded = self.registry.record_test_result(tenant_id, channel.id, result)
            if not recorded:
                logger.debug(f"Test result for channel {channel.id} not recorded (unsaved or not owned by tenant)")

        return result

    async def _probe(self, channel: ChannelSnapshot) -> ConnectionTestResult:
        try:
            adapter = get_adapter(channel.type)
            adapter.check_requirements(channel)
            async with provider_client(self.client) as client:
                result = await adapter.test_connection(channel, client)
        except GatewayError as e:
            logger.info(f"Connection test failed for {channel.type} channel {channel.id}: {e.message}")
            return ConnectionTestResult(success=False, message=e.message, details=e.details or None)
        except Exception as e:
            logger.error(f"Connection test errored for {channel.type} channel {channel.id}: {e}")
            return ConnectionTestResult(
                success=False,
                message=str(e) or "Connection test failed",
                details={"error": e.__class__.__name__},
            )

        logger.info(f"Connection test passed for {channel.type} channel {channel.id}")
        return result
