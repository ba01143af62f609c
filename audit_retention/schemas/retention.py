"""Retention policy value object and result records for retention operations."""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Archive this many days before the retention cutoff, but never sooner than MIN_ARCHIVE_DAYS.
ARCHIVE_LEAD_DAYS = 30
MIN_ARCHIVE_DAYS = 30


class RetentionPolicy(BaseModel):
    """Immutable snapshot of the retention policy, loaded once per run."""

    model_config = {"frozen": True}

    policies: Dict[str, int] = Field(default_factory=dict)
    default_days: int = 365

    @field_validator("policies")
    @classmethod
    def _days_at_least_one(cls, value: Dict[str, int]) -> Dict[str, int]:
        for event_type, days in value.items():
            if days < 1:
                raise ValueError(f"Retention for {event_type} must be at least 1 day")
        return value

    def days_for(self, event_type: str) -> int:
        return self.policies.get(event_type, self.default_days)

    def archive_days_for(self, event_type: str) -> int:
        retention_days = self.days_for(event_type)
        return min(retention_days, max(MIN_ARCHIVE_DAYS, retention_days - ARCHIVE_LEAD_DAYS))


class PolicyValidation(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class TypeCleanupInfo(BaseModel):
    count: int
    retention_days: int
    cutoff_date: datetime
    oldest_record: Optional[datetime] = None


class CleanupPreview(BaseModel):
    total_to_delete: int = 0
    by_event_type: Dict[str, TypeCleanupInfo] = Field(default_factory=dict)

    @property
    def needs_cleanup(self) -> List[str]:
        return [event_type for event_type, info in self.by_event_type.items() if info.count > 0]


class TypeArchiveInfo(BaseModel):
    count: int
    archive_days: int
    archive_cutoff: datetime


class ArchivePreview(BaseModel):
    total_to_archive: int = 0
    by_event_type: Dict[str, TypeArchiveInfo] = Field(default_factory=dict)


class StorageStatistics(BaseModel):
    total_records: int = 0
    records_by_type: Dict[str, int] = Field(default_factory=dict)
    records_by_age: Dict[str, int] = Field(default_factory=dict)
    estimated_storage_mb: float = 0.0
    oldest_record: Optional[datetime] = None
    newest_record: Optional[datetime] = None


class TypeRetentionStatus(BaseModel):
    total_records: int
    expired_records: int
    archive_ready: int
    retention_days: int
    cutoff_date: datetime
    archive_date: datetime


class RetentionStatus(BaseModel):
    total_records: int = 0
    estimated_storage_mb: float = 0.0
    by_event_type: Dict[str, TypeRetentionStatus] = Field(default_factory=dict)
    cleanup_needed: bool = False
    archive_needed: bool = False
    recommendations: List[str] = Field(default_factory=list)


class PolicyOptimization(BaseModel):
    event_type: str
    current_days: int
    recommended_days: int
    change: Literal["reduce", "increase"]
    days_difference: int
    record_count: int
    estimated_savings_mb: float
    reason: str


class OptimizationReport(BaseModel):
    optimizations: List[PolicyOptimization] = Field(default_factory=list)
    current_policies: Dict[str, int] = Field(default_factory=dict)
    recommended_policies: Dict[str, int] = Field(default_factory=dict)
    estimated_savings_mb: float = 0.0


class ArchiveFileInfo(BaseModel):
    filename: str
    event_type: str
    period: str
    size_bytes: int
    size_mb: float
    modified_at: datetime


class ArchiveResult(BaseModel):
    total_archived: int = 0
    archived_by_type: Dict[str, int] = Field(default_factory=dict)
    archive_files: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class RestoreResult(BaseModel):
    filename: str
    total_restored: int = 0
    restored_by_type: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)


class CleanupResult(BaseModel):
    total_deleted: int = 0
    deleted_by_type: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None


class CleanupCriteria(BaseModel):
    event_type: Optional[str] = None
    user_id: Optional[int] = None
    before_date: Optional[datetime] = None
    after_date: Optional[datetime] = None
    ip_address: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(value is not None for value in self.model_dump().values())


# Request bodies for the admin API


class PolicyUpdateRequest(BaseModel):
    days: int = Field(..., ge=1)


class ArchiveRequest(BaseModel):
    event_type: Optional[str] = None
    days: Optional[int] = Field(None, ge=1)


class RestoreRequest(BaseModel):
    filename: str = Field(..., min_length=1)


class CleanupRequest(BaseModel):
    event_type: Optional[str] = None
    days: Optional[int] = Field(None, ge=1)
    archive_first: bool = False
