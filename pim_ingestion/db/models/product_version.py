"""ProductVersion ORM model: append-only product version chain."""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column
from pim_ingestion.db.base import Base, UUIDMixin, TimestampMixin
from datetime import datetime
from typing import Any, Dict, List, Optional


class ProductVersion(Base, UUIDMixin, TimestampMixin):
    """One version of a catalog product.

    Versions of an entity code form ``1..N``. Exactly one of them is
    current, enforced by the partial unique index on ``entity_code``.
    Manual-edit provenance (``manually_edited*``, ``locked_fields``,
    ``last_manual_update_at``) is written by the catalog editor and only
    carried forward by imports.
    """

    __tablename__ = "product_versions"
    __table_args__ = (
        UniqueConstraint("entity_code", "version", name="unique_entity_code_version"),
        Index(
            "uq_product_versions_current",
            "entity_code",
            unique=True,
            postgresql_where=text("is_current"),
        ),
        CheckConstraint("version >= 1", name="check_version_positive"),
        CheckConstraint(
            "status IN ('draft', 'published', 'archived')",
            name="check_product_version_status",
        ),
        CheckConstraint(
            "NOT is_current_published OR (is_current AND status = 'published')",
            name="check_current_published",
        ),
        CheckConstraint(
            "completeness_score >= 0 AND completeness_score <= 100",
            name="check_completeness_score",
        ),
    )

    entity_code: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    is_current_published: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="draft")
    sku: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    completeness_score: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    critical_issues: Mapped[List[str]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
    )
    auto_publish_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    auto_publish_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    manually_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    manually_edited_fields: Mapped[List[str]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
    )
    locked_fields: Mapped[List[str]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
    )
    last_manual_update_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    has_conflict: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    conflict_data: Mapped[List[Dict[str, Any]]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
        doc="[{field, manual_value, api_value, detected_at}]",
    )

    source: Mapped[Dict[str, Any]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="{}",
        doc="{source_id, source_name, batch_id, job_id, imported_at}",
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    analytics: Mapped[Dict[str, Any]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="{}",
        doc="{views_30d, clicks_30d, add_to_cart_30d, conversions_30d, priority_score}",
    )
    data: Mapped[Dict[str, Any]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="{}",
    )

    def __repr__(self) -> str:
        return (
            f"<ProductVersion(entity_code='{self.entity_code}', version={self.version}, "
            f"current={self.is_current}, status='{self.status}')>"
        )
