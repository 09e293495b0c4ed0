"""Custom exception hierarchy for product ingestion errors."""
from typing import Optional


class DataIngestionError(Exception):
    """Base exception for all data ingestion errors."""
    
    def __init__(self, message: str, *args, **kwargs):
        """Initialize error with message."""
        self.message = message
        super().__init__(message, *args, **kwargs)


class ParserError(DataIngestionError):
    """Raised when parser encounters an error during data parsing."""
    pass


class ValidationError(DataIngestionError):
    """Raised when data validation fails."""
    pass


class DatabaseError(DataIngestionError):
    """Raised when database operations fail."""
    pass


class SourceNotFoundError(DataIngestionError):
    """Raised when an import source does not exist."""
    pass


class SourceConfigError(DataIngestionError):
    """Raised when a job or source is missing configuration it needs."""
    pass


class BatchSizeExceededError(DataIngestionError):
    """Raised when a job's row count exceeds the source's hard limit."""

    def __init__(self, row_count: int, max_batch_size: int):
        self.row_count = row_count
        self.max_batch_size = max_batch_size
        super().__init__(
            f"Batch size {row_count:,} exceeds maximum allowed {max_batch_size:,}. "
            f"Please split into smaller batches or raise the limit for this source."
        )


class FetchError(DataIngestionError):
    """Raised when a file or API fetch fails at the transport level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TransformError(DataIngestionError):
    """Raised when a field transform cannot convert a value."""
    pass


class FieldPathError(DataIngestionError):
    """Raised when a field path cannot be walked or written."""
    pass


class VersionConflictError(DataIngestionError):
    """Raised when the current version of an entity changed under the writer."""

    def __init__(self, entity_code: str, expected_version: Optional[int], attempts: int):
        self.entity_code = entity_code
        self.expected_version = expected_version
        self.attempts = attempts
        super().__init__(
            f"Concurrent update on entity_code '{entity_code}' "
            f"(expected current version {expected_version}) after {attempts} attempts"
        )
