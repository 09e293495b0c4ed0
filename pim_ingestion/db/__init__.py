"""Database module."""
from pim_ingestion.db.base import (
    Base,
    UUIDMixin,
    TimestampMixin,
    build_engine,
    engine,
    async_session_maker,
)

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "build_engine",
    "engine",
    "async_session_maker",
]
