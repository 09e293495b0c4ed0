"""ImportSource ORM model holding per-source import configuration."""
from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column
from pim_ingestion.db.base import Base, UUIDMixin, TimestampMixin
from typing import Any, Dict, List, Optional


class ImportSource(Base, UUIDMixin, TimestampMixin):
    """Configuration of one external product feed.

    Sources are managed outside the pipeline; the worker reads them and
    only writes back the ``stats`` document after each import.

    Attributes:
        source_id: Stable external identifier
        source_type: ``file`` or ``api``
        field_mapping: List of ``{source_field, pim_field, transform}``
        overwrite_level: ``automatic`` (import wins) or ``manual`` (edits win)
        limits: ``{max_batch_size, warn_batch_size, chunk_size}``
        api_config: Default API descriptor for API-backed sources
        stats: ``{total_imports, total_products, last_import_at, last_import_status}``
    """

    __tablename__ = "import_sources"
    __table_args__ = (
        CheckConstraint(
            "min_score_threshold >= 0 AND min_score_threshold <= 100",
            name="check_min_score_threshold",
        ),
        CheckConstraint(
            "overwrite_level IN ('automatic', 'manual')",
            name="check_overwrite_level",
        ),
    )

    source_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    source_name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False, server_default="file")
    field_mapping: Mapped[List[Dict[str, Any]]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
    )
    auto_publish_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    min_score_threshold: Mapped[int] = mapped_column(Integer, nullable=False, server_default="80")
    required_fields: Mapped[List[str]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
    )
    overwrite_level: Mapped[str] = mapped_column(String(20), nullable=False, server_default="automatic")
    limits: Mapped[Dict[str, Any]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="{}",
    )
    default_language: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    api_config: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=True,
    )
    stats: Mapped[Dict[str, Any]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="{}",
    )

    def __repr__(self) -> str:
        return f"<ImportSource(source_id='{self.source_id}', type='{self.source_type}')>"
