"""
Database configuration and session management for the channel gateway.
PostgreSQL-backed with connection pooling; SQLite is accepted for local
development and tests.
"""

from typing import Generator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from gateway.core.config import settings
from gateway.models.entities.base import Base


def build_engine(database_url: str = None, echo: bool = None) -> Engine:
    """Create an engine with pool options suited to the backing database."""
    url = database_url or settings.DATABASE_URL
    echo = settings.SQL_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases vanish with their connection; share one
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    new_engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )

    if new_engine.dialect.name == "postgresql":
        @event.listens_for(new_engine, "connect")
        def set_timezone(dbapi_conn, connection_record):
            """Set UTC timezone for all connections."""
            cursor = dbapi_conn.cursor()
            cursor.execute("SET timezone TO 'UTC'")
            cursor.close()

    return new_engine


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,   # Entities are read after their session closes
        bind=bind,
    )


engine = build_engine()

# Session factory
SessionLocal = build_session_factory(engine)


@contextmanager
def get_db_context(session_factory: sessionmaker = None) -> Generator[Session, None, None]:
    """Unit of work: commit on success, roll back on error, always close."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_health(bind: Engine = None) -> dict:
    """Check database connectivity and performance."""
    bind = bind or engine
    try:
        start = datetime.utcnow()
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        latency = (datetime.utcnow() - start).total_seconds() * 1000
        return {
            "status": "healthy",
            "latency_ms": round(latency, 2),
            "database": "connected"
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "database": "disconnected"
        }


def init_db(bind: Engine = None):
    """
    Initialize database: create all tables via SQLAlchemy metadata.
    Imports every entity so their mappers register with Base.metadata
    before create_all() runs.
    """
    # ── Channels ─────────────────────────────────────────────────────────────
    from gateway.models.entities.channels import (  # noqa: F401
        ChannelConfig, ChannelMessage, WebhookEvent
    )

    # ── Conversations ────────────────────────────────────────────────────────
    from gateway.models.entities.conversation import Conversation  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
