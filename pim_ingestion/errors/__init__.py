"""Error handling module."""
from pim_ingestion.errors.exceptions import (
    DataIngestionError,
    ParserError,
    ValidationError,
    DatabaseError,
    SourceNotFoundError,
    SourceConfigError,
    BatchSizeExceededError,
    FetchError,
    TransformError,
    FieldPathError,
    VersionConflictError,
)

__all__ = [
    "DataIngestionError",
    "ParserError",
    "ValidationError",
    "DatabaseError",
    "SourceNotFoundError",
    "SourceConfigError",
    "BatchSizeExceededError",
    "FetchError",
    "TransformError",
    "FieldPathError",
    "VersionConflictError",
]
