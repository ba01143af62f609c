"""Pydantic schemas for API validation and service results"""

from audit_retention.schemas.audit import AuditLogResponse
from audit_retention.schemas.response import ErrorResponse
from audit_retention.schemas.retention import (
    RetentionPolicy,
    PolicyValidation,
    CleanupPreview,
    TypeCleanupInfo,
    ArchivePreview,
    StorageStatistics,
    RetentionStatus,
    OptimizationReport,
    PolicyOptimization,
    ArchiveFileInfo,
    ArchiveResult,
    RestoreResult,
    CleanupResult,
    CleanupCriteria,
)

__all__ = [
    "AuditLogResponse",
    "ErrorResponse",
    "RetentionPolicy", "PolicyValidation",
    "CleanupPreview", "TypeCleanupInfo", "ArchivePreview",
    "StorageStatistics", "RetentionStatus",
    "OptimizationReport", "PolicyOptimization",
    "ArchiveFileInfo", "ArchiveResult", "RestoreResult",
    "CleanupResult", "CleanupCriteria",
]
