"""Pydantic models for product versions and per-row pipeline results."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


ProductStatus = Literal["draft", "published", "archived"]


class MappedRow(BaseModel):
    """One external record after field mapping and normalization."""

    row_number: int = Field(..., ge=1, description="1-based position in the job's row set")
    entity_code: str = Field(default="", description="Empty when no code could be resolved")
    normalized_data: Dict[str, Any] = Field(default_factory=dict)
    raw_record: Dict[str, Any] = Field(default_factory=dict)


class ConflictEntry(BaseModel):
    """Audit record of an import value rejected in favour of a manual edit."""

    field: str
    manual_value: Any = None
    api_value: Any = None
    detected_at: datetime


class ConflictResult(BaseModel):
    """Outcome of conflict detection for one row."""

    has_conflicts: bool = False
    conflict_data: List[ConflictEntry] = Field(default_factory=list)
    merged_data: Dict[str, Any] = Field(default_factory=dict)
    should_skip_fields: List[str] = Field(default_factory=list)


class AutoPublishDecision(BaseModel):
    """Result of one auto-publish rule, or of the whole rule chain."""

    eligible: bool
    reason: str


class ScoreBreakdownEntry(BaseModel):
    """Contribution of one scored field to the completeness score."""

    current: int
    max: int
    percentage: float


class ProductVersionSnapshot(BaseModel):
    """Read-only view of a stored product version.

    This is what the conflict detector, lock merger and version writer see
    of the previous current version.
    """

    entity_code: str
    version: int = Field(..., ge=1)
    is_current: bool = True
    is_current_published: bool = False
    status: ProductStatus = "draft"
    data: Dict[str, Any] = Field(default_factory=dict)
    completeness_score: int = 0
    critical_issues: List[str] = Field(default_factory=list)
    auto_publish_eligible: bool = False
    auto_publish_reason: Optional[str] = None
    manually_edited: bool = False
    manually_edited_fields: List[str] = Field(default_factory=list)
    locked_fields: List[str] = Field(default_factory=list)
    last_manual_update_at: Optional[datetime] = None
    has_conflict: bool = False
    conflict_data: List[Dict[str, Any]] = Field(default_factory=list)
    source: Dict[str, Any] = Field(default_factory=dict)
    published_at: Optional[datetime] = None
    analytics: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class NewProductVersion(BaseModel):
    """Everything the version writer needs to append a version."""

    entity_code: str = Field(..., min_length=1)
    data: Dict[str, Any]
    completeness_score: int = Field(..., ge=0, le=100)
    critical_issues: List[str] = Field(default_factory=list)
    auto_publish: AutoPublishDecision
    conflict: Optional[ConflictResult] = None
    source: Dict[str, Any] = Field(default_factory=dict)


class VersionWriteResult(BaseModel):
    """Summary of an appended version."""

    entity_code: str
    version: int
    previous_version: Optional[int] = None
    status: ProductStatus
    is_current_published: bool
    attempts: int = 1
