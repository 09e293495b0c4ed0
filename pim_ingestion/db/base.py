"""SQLAlchemy engine, session factory and declarative base for the import tables."""
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import MetaData, func
from datetime import datetime
import uuid

from pim_ingestion.config import Settings, settings

# Index names match the alembic revisions; check constraints are named explicitly
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base shared by import sources, jobs and product versions."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UUIDMixin:
    """Surrogate UUID key; business keys (source_id, job_id, entity_code) stay separate."""
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
        nullable=False,
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def build_engine(config: Settings) -> AsyncEngine:
    """Create the worker's engine; one pool per worker process."""
    return create_async_engine(
        config.database_url,
        echo=False,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,
    )


engine = build_engine(settings)

# Stores open short sessions per operation; loaded rows stay readable after commit
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
