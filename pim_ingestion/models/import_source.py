"""Pydantic models for import source configuration."""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from typing_extensions import Self


OverwriteLevel = Literal["automatic", "manual"]
AuthType = Literal["none", "bearer", "api_key", "basic"]
SourceType = Literal["file", "api"]
ImportStatusLabel = Literal["success", "partial", "failed"]


class FieldMapping(BaseModel):
    """One entry of a source's field-mapping table.

    Maps an external column/key onto an internal dotted path, optionally
    passing the value through a named transform first.
    """

    source_field: str = Field(
        ...,
        min_length=1,
        description="Column header or API key in the external record"
    )
    pim_field: str = Field(
        ...,
        min_length=1,
        description="Internal field path, e.g. 'brand.name' or 'images.0.url'"
    )
    transform: Optional[str] = Field(
        default=None,
        description="Name of a registered transform (parse_number, parse_int, trim, ...)"
    )

    @field_validator('pim_field')
    @classmethod
    def validate_pim_field(cls, v: str) -> str:
        """Validate pim_field is a usable path."""
        v = v.strip()
        if not v or v.startswith('.') or v.endswith('.'):
            raise ValueError(f"Invalid pim_field path: '{v}'")
        return v


class BatchLimits(BaseModel):
    """Row-count guardrails for a single import job."""

    max_batch_size: int = Field(default=10000, ge=1)
    warn_batch_size: int = Field(default=5000, ge=1)
    chunk_size: int = Field(default=100, ge=1)


class ApiConfig(BaseModel):
    """Descriptor of a remote API feed."""

    endpoint: str = Field(..., min_length=1)
    method: Literal["GET", "POST"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    params: Dict[str, str] = Field(default_factory=dict)
    auth_type: AuthType = "none"
    auth_token: Optional[str] = Field(
        default=None,
        description="Bearer token, API key, or 'user:password' for basic auth"
    )

    @model_validator(mode='after')
    def validate_auth_token(self) -> Self:
        """Authenticated feeds need a token."""
        if self.auth_type != "none" and not self.auth_token:
            raise ValueError(f"auth_token is required for auth_type '{self.auth_type}'")
        return self


class SourceStats(BaseModel):
    """Running statistics maintained by the import worker."""

    total_imports: int = 0
    total_products: int = 0
    last_import_at: Optional[datetime] = None
    last_import_status: Optional[ImportStatusLabel] = None


class ImportSourceConfig(BaseModel):
    """Import source as consumed by the pipeline.

    The record is owned by the catalog administration surface; the
    ingestion worker only reads it (and bumps ``stats``).
    """

    source_id: str = Field(..., min_length=1, max_length=255)
    source_name: str = Field(default="", max_length=255)
    source_type: SourceType = "file"
    field_mapping: List[FieldMapping] = Field(default_factory=list)
    auto_publish_enabled: bool = False
    min_score_threshold: int = Field(default=80, ge=0, le=100)
    required_fields: List[str] = Field(default_factory=list)
    overwrite_level: OverwriteLevel = "automatic"
    limits: BatchLimits = Field(default_factory=BatchLimits)
    default_language: Optional[str] = None
    api_config: Optional[ApiConfig] = None
    stats: SourceStats = Field(default_factory=SourceStats)

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "example": {
                "source_id": "supplier-feed-1",
                "source_name": "Supplier CSV feed",
                "source_type": "file",
                "field_mapping": [
                    {"source_field": "Code", "pim_field": "entity_code"},
                    {"source_field": "Title", "pim_field": "name"},
                    {"source_field": "Price", "pim_field": "price", "transform": "parse_number"},
                    {"source_field": "Brand", "pim_field": "brand.name"},
                    {"source_field": "Image1", "pim_field": "images[0].url"},
                ],
                "auto_publish_enabled": True,
                "min_score_threshold": 80,
                "required_fields": ["name", "images.url"],
                "overwrite_level": "manual",
                "limits": {"max_batch_size": 10000, "warn_batch_size": 5000, "chunk_size": 100},
            }
        },
    }

    def mapping_for(self, pim_field: str) -> Optional[FieldMapping]:
        """Return the mapping entry writing to ``pim_field``, if any."""
        for mapping in self.field_mapping:
            if mapping.pim_field == pim_field:
                return mapping
        return None
