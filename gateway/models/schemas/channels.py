"""
Channel configuration schemas.

`ChannelSnapshot` is the detached, read-only view of a ChannelConfig row that
the registry hands to adapters, the tester and the dispatcher.
"""

from datetime import datetime
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TestResultRecord(BaseModel):
    """Last connection-test outcome stored on a channel."""
    __test__ = False

    status: Literal["pending", "success", "error"]
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None


class ChannelSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[str] = None
    tenant_id: Optional[str] = None
    type: str
    name: str = ""
    description: Optional[str] = None
    agent_id: Optional[str] = None
    enabled: bool = True
    configuration: Dict[str, Any] = Field(default_factory=dict)
    authentication: Dict[str, Any] = Field(default_factory=dict)
    test_results: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, entity) -> "ChannelSnapshot":
        return cls(
            id=entity.id,
            tenant_id=entity.tenant_id,
            type=entity.type.value if hasattr(entity.type, "value") else entity.type,
            name=entity.name,
            description=entity.description,
            agent_id=entity.agent_id,
            enabled=bool(entity.enabled),
            configuration=dict(entity.configuration or {}),
            authentication=dict(entity.authentication or {}),
            test_results=entity.test_results,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    def config_value(self, key: str, default: Any = None) -> Any:
        value = self.configuration.get(key)
        return default if value in (None, "") else value

    def auth_value(self, key: str, default: Any = None) -> Any:
        value = self.authentication.get(key)
        return default if value in (None, "") else value
