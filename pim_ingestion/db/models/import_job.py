"""ImportJob ORM model tracking one queued import."""
from sqlalchemy import CheckConstraint, DateTime, Float, Integer, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column
from pim_ingestion.db.base import Base, UUIDMixin, TimestampMixin
from datetime import datetime
from typing import Any, Dict, List, Optional


class ImportJob(Base, UUIDMixin, TimestampMixin):
    """Import job record.

    Created as ``pending`` when the job is submitted, moved to
    ``processing`` by the worker and finished exactly once as
    ``completed`` or ``failed``. Counters are written with targeted
    updates, never by replacing the row.
    """

    __tablename__ = "import_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="check_import_job_status",
        ),
    )

    job_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_config: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=True,
    )

    batch_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    batch_part: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    batch_total_parts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    batch_total_items: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="pending", index=True)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    successful_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    failed_rows: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    auto_published_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    import_errors: Mapped[List[Dict[str, Any]]] = mapped_column(
        postgresql.JSONB(astext_type=Text),
        nullable=False,
        server_default="[]",
        doc="Capped list of {row, entity_code, error, raw_data}",
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<ImportJob(job_id='{self.job_id}', status='{self.status}')>"
