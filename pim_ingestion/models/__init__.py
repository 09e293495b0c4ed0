"""Pydantic validation models."""

from pim_ingestion.models.import_source import (
    OverwriteLevel,
    AuthType,
    FieldMapping,
    BatchLimits,
    ApiConfig,
    SourceStats,
    ImportSourceConfig,
)
from pim_ingestion.models.queue_message import (
    BatchMetadata,
    ImportJobMessage,
    SyncProductsMessage,
)
from pim_ingestion.models.import_job import (
    JobStatus,
    BatchOverallStatus,
    TERMINAL_JOB_STATUSES,
    ImportErrorEntry,
    ImportJobRecord,
    JobStatusView,
    BatchPartSummary,
    BatchStatus,
)
from pim_ingestion.models.product import (
    ProductStatus,
    MappedRow,
    ConflictEntry,
    ConflictResult,
    AutoPublishDecision,
    ScoreBreakdownEntry,
    ProductVersionSnapshot,
    NewProductVersion,
    VersionWriteResult,
)

__all__ = [
    # Source configuration
    "OverwriteLevel",
    "AuthType",
    "FieldMapping",
    "BatchLimits",
    "ApiConfig",
    "SourceStats",
    "ImportSourceConfig",
    # Queue messages
    "BatchMetadata",
    "ImportJobMessage",
    "SyncProductsMessage",
    # Jobs and batches
    "JobStatus",
    "BatchOverallStatus",
    "TERMINAL_JOB_STATUSES",
    "ImportErrorEntry",
    "ImportJobRecord",
    "JobStatusView",
    "BatchPartSummary",
    "BatchStatus",
    # Products
    "ProductStatus",
    "MappedRow",
    "ConflictEntry",
    "ConflictResult",
    "AutoPublishDecision",
    "ScoreBreakdownEntry",
    "ProductVersionSnapshot",
    "NewProductVersion",
    "VersionWriteResult",
]
