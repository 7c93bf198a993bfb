"""
Base entity model for all gateway database models.
Provides common functionality like timestamps, UUIDs, and serialization.
"""

from datetime import datetime
from typing import Any, Dict
from sqlalchemy import Column, String, DateTime, event
from sqlalchemy.orm import declarative_base, declared_attr
import uuid

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class BaseEntity(Base):
    """Abstract base class for all gateway entities."""

    __abstract__ = True

    id = Column(String(36), primary_key=True, default=new_id)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """Generate table name from class name."""
        return cls.__name__.lower() + 's'

    def to_dict(self) -> Dict[str, Any]:
        """Convert entity to dictionary for API responses."""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<{self.__class__.__name__}(id={self.id})>"


@event.listens_for(BaseEntity, 'before_update', propagate=True)
def receive_before_update(mapper, connection, target):
    """Automatically update the updated_at timestamp."""
    target.updated_at = datetime.utcnow()
