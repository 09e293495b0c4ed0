"""Pydantic models for queue messages."""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing_extensions import Self
from typing import List, Literal, Optional
from datetime import datetime, timezone

from pim_ingestion.models.import_source import ApiConfig


class BatchMetadata(BaseModel):
    """Position of one job inside a logically split upload."""

    batch_id: str = Field(..., min_length=1, max_length=255)
    batch_part: int = Field(..., description="1-based part number")
    batch_total_parts: int = Field(..., ge=1)
    batch_total_items: int = Field(default=0, ge=0)


class ImportJobMessage(BaseModel):
    """Message schema for enqueuing import jobs in the Redis queue.

    Exactly one of ``file_url`` or ``api_config`` describes where the rows
    come from. ``batch_metadata`` is range-checked by the worker, not here,
    so that an invalid part still produces a failed job record.
    """

    job_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique identifier for this import job"
    )
    source_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Import source providing mapping and policies"
    )
    file_url: Optional[str] = Field(
        default=None,
        description="URL of the uploaded file (file imports)"
    )
    file_name: Optional[str] = Field(
        default=None,
        description="Original filename, used for format detection"
    )
    api_config: Optional[ApiConfig] = Field(
        default=None,
        description="Remote API descriptor (API imports)"
    )
    batch_metadata: Optional[BatchMetadata] = None
    enqueued_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="ISO 8601 timestamp when job was enqueued"
    )

    @field_validator('job_id', 'source_id')
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Validate identifier format."""
        if not v.strip():
            raise ValueError('identifier cannot be empty or whitespace')
        return v.strip()

    @model_validator(mode='after')
    def validate_single_origin(self) -> Self:
        """A job reads either a file or an API, never both."""
        if self.file_url and self.api_config:
            raise ValueError('file_url and api_config are mutually exclusive')
        return self

    @property
    def is_api_import(self) -> bool:
        return self.api_config is not None

    model_config = {
        "json_schema_extra": {
            "example": {
                "job_id": "import_1732623600000_k3f9",
                "source_id": "supplier-feed-1",
                "file_url": "https://cdn.example.com/uploads/products-part-1.csv",
                "file_name": "products-part-1.csv",
                "batch_metadata": {
                    "batch_id": "batch_123",
                    "batch_part": 1,
                    "batch_total_parts": 3,
                    "batch_total_items": 300
                },
            }
        }
    }


class SyncProductsMessage(BaseModel):
    """Downstream message asking an indexer to refresh entity codes."""

    entity_codes: List[str] = Field(..., min_length=1)
    priority: Literal["low", "normal", "high"] = "high"
    channel: str = Field(default="search", min_length=1)
    source_id: Optional[str] = None
    job_id: Optional[str] = None
    batch_id: Optional[str] = None
