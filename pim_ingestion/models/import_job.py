"""Pydantic models for import job records and status read models."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


JobStatus = Literal["pending", "processing", "completed", "failed"]
BatchOverallStatus = Literal["incomplete", "in_progress", "failed", "complete", "partial_success"]

TERMINAL_JOB_STATUSES = ("completed", "failed")


class ImportErrorEntry(BaseModel):
    """One row-level (or synthetic row-0) import error."""

    row: int = Field(..., ge=0)
    entity_code: str = ""
    error: str
    raw_data: Optional[Dict[str, Any]] = None


class ImportJobRecord(BaseModel):
    """Import job as stored in the job collection."""

    job_id: str
    source_id: str
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    batch_id: Optional[str] = None
    batch_part: Optional[int] = None
    batch_total_parts: Optional[int] = None
    batch_total_items: Optional[int] = None
    status: JobStatus = "pending"
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    auto_published_count: int = 0
    import_errors: List[ImportErrorEntry] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class JobStatusView(BaseModel):
    """Per-job status read model exposed to status-reporting surfaces."""

    job_id: str
    status: JobStatus
    total_rows: int
    processed_rows: int
    successful_rows: int
    failed_rows: int
    auto_published_count: int
    import_errors: List[ImportErrorEntry] = Field(default_factory=list)
    duration_seconds: Optional[float] = None

    @classmethod
    def from_record(cls, record: ImportJobRecord) -> "JobStatusView":
        return cls(
            job_id=record.job_id,
            status=record.status,
            total_rows=record.total_rows,
            processed_rows=record.processed_rows,
            successful_rows=record.successful_rows,
            failed_rows=record.failed_rows,
            auto_published_count=record.auto_published_count,
            import_errors=record.import_errors,
            duration_seconds=record.duration_seconds,
        )


class BatchPartSummary(BaseModel):
    """One job of a batch as shown in the aggregated view."""

    job_id: str
    batch_part: Optional[int] = None
    status: JobStatus
    total_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0


class BatchStatus(BaseModel):
    """Aggregated view over every job sharing a ``batch_id``."""

    batch_id: str
    status: BatchOverallStatus
    is_complete: bool
    expected_parts: int
    received_parts: int
    missing_parts: List[int] = Field(default_factory=list)
    completed_parts: int = 0
    failed_parts: int = 0
    in_progress_parts: int = 0
    total_items_expected: int = 0
    total_items_processed: int = 0
    total_items_failed: int = 0
    jobs: List[BatchPartSummary] = Field(default_factory=list)
