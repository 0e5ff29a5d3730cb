"""Base database configuration and mixins."""

import uuid
from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy import Column, DateTime, Uuid, func, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, declared_attr, sessionmaker

from carscout.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Sync engine for Celery tasks. Created on first use."""
    settings = get_settings()
    kwargs = {"echo": settings.debug}
    if not settings.database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10, pool_timeout=30)
    return create_engine(settings.database_url, **kwargs)


SyncSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
)


def get_session() -> Session:
    """Open a session bound to the configured engine."""
    return SyncSessionLocal(bind=get_engine())


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower() + "s"


class TimestampMixin:
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UUIDMixin:
    id = Column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
