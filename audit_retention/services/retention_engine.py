"""Read-only retention analysis over audit log timestamps and the retention policy."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from audit_retention.config import settings
from audit_retention.core.clock import Clock, utcnow
from audit_retention.models.audit import AuditLog
from audit_retention.schemas.retention import (
    ArchivePreview,
    CleanupPreview,
    OptimizationReport,
    PolicyOptimization,
    RetentionPolicy,
    RetentionStatus,
    StorageStatistics,
    TypeArchiveInfo,
    TypeCleanupInfo,
    TypeRetentionStatus,
)

logger = logging.getLogger(__name__)

AGE_RANGES = {
    "last_24h": 1,
    "last_7d": 7,
    "last_30d": 30,
    "last_90d": 90,
    "last_365d": 365,
}

HIGH_VOLUME_THRESHOLD = 100_000
LOW_VOLUME_THRESHOLD = 1_000
# Rough MB freed per record-day of retention removed
SAVINGS_MB_FACTOR = 0.001

BASE_RETENTION_BY_TYPE = {
    "financial_transaction": 2555,
    "security_event": 365,
    "authentication": 180,
    "authorization": 365,
    "model_deleted": 365,
}
DEFAULT_BASE_RETENTION = 90


class RetentionEngine:
    """Computes what is expired or archive-ready. Never mutates data."""

    def __init__(
        self,
        db: Session,
        policy: RetentionPolicy,
        clock: Clock = utcnow,
        avg_record_size_bytes: Optional[int] = None,
    ) -> None:
        self.db = db
        self.policy = policy
        self.clock = clock
        self.avg_record_size_bytes = avg_record_size_bytes or settings.AUDIT_AVG_RECORD_SIZE_BYTES

    def now(self) -> datetime:
        return self.clock()

    def cutoff_for(self, event_type: str) -> datetime:
        return self.now() - timedelta(days=self.policy.days_for(event_type))

    def archive_cutoff_for(self, event_type: str, days: Optional[int] = None) -> datetime:
        archive_days = days if days is not None else self.policy.archive_days_for(event_type)
        return self.now() - timedelta(days=archive_days)

    def event_types(self) -> List[str]:
        """Policy types first, then any other type found in the live table."""
        present = [row[0] for row in self.db.query(AuditLog.event_type).distinct().all()]
        ordered = list(self.policy.policies)
        ordered.extend(sorted(t for t in present if t not in self.policy.policies))
        return ordered

    def _type_query(self, event_type: str):
        return self.db.query(AuditLog).filter(AuditLog.event_type == event_type)

    def count_older_than(self, event_type: str, cutoff: datetime) -> int:
        return self._type_query(event_type).filter(AuditLog.created_at < cutoff).count()

    def preview_cleanup(self) -> CleanupPreview:
        preview = CleanupPreview()
        for event_type in self.event_types():
            cutoff = self.cutoff_for(event_type)
            expired = self._type_query(event_type).filter(AuditLog.created_at < cutoff)
            count = expired.count()
            oldest = expired.order_by(AuditLog.created_at.asc()).first() if count else None

            preview.by_event_type[event_type] = TypeCleanupInfo(
                count=count,
                retention_days=self.policy.days_for(event_type),
                cutoff_date=cutoff,
                oldest_record=oldest.created_at if oldest else None,
            )
            preview.total_to_delete += count
        return preview

    def preview_archival(self, days: Optional[int] = None) -> ArchivePreview:
        preview = ArchivePreview()
        for event_type in self.event_types():
            cutoff = self.archive_cutoff_for(event_type, days)
            count = self.count_older_than(event_type, cutoff)
            preview.by_event_type[event_type] = TypeArchiveInfo(
                count=count,
                archive_days=days if days is not None else self.policy.archive_days_for(event_type),
                archive_cutoff=cutoff,
            )
            preview.total_to_archive += count
        return preview

    def select_archivable(self, event_type: str, days: Optional[int] = None) -> List[AuditLog]:
        cutoff = self.archive_cutoff_for(event_type, days)
        return (
            self._type_query(event_type)
            .filter(AuditLog.created_at < cutoff)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
            .all()
        )

    def records_by_type(self) -> Dict[str, int]:
        rows = (
            self.db.query(AuditLog.event_type, func.count(AuditLog.id))
            .group_by(AuditLog.event_type)
            .all()
        )
        return {event_type: count for event_type, count in rows}

    def estimate_storage_mb(self, record_count: int) -> float:
        return round(record_count * self.avg_record_size_bytes / 1024 / 1024, 2)

    def get_storage_statistics(self) -> StorageStatistics:
        now = self.now()
        total = self.db.query(AuditLog).count()

        stats = StorageStatistics(
            total_records=total,
            records_by_type=self.records_by_type(),
            estimated_storage_mb=self.estimate_storage_mb(total),
        )
        for label, days in AGE_RANGES.items():
            stats.records_by_age[label] = (
                self.db.query(AuditLog)
                .filter(AuditLog.created_at >= now - timedelta(days=days))
                .count()
            )

        oldest = self.db.query(AuditLog).order_by(AuditLog.created_at.asc()).first()
        newest = self.db.query(AuditLog).order_by(AuditLog.created_at.desc()).first()
        stats.oldest_record = oldest.created_at if oldest else None
        stats.newest_record = newest.created_at if newest else None
        return stats

    def get_retention_status(self) -> RetentionStatus:
        stats = self.get_storage_statistics()
        status = RetentionStatus(
            total_records=stats.total_records,
            estimated_storage_mb=stats.estimated_storage_mb,
        )

        for event_type in self.event_types():
            cutoff = self.cutoff_for(event_type)
            archive_date = self.archive_cutoff_for(event_type)
            query = self._type_query(event_type)

            expired = query.filter(AuditLog.created_at < cutoff).count()
            archive_ready = (
                query.filter(AuditLog.created_at < archive_date)
                .filter(AuditLog.created_at >= cutoff)
                .count()
            )
            status.by_event_type[event_type] = TypeRetentionStatus(
                total_records=stats.records_by_type.get(event_type, 0),
                expired_records=expired,
                archive_ready=archive_ready,
                retention_days=self.policy.days_for(event_type),
                cutoff_date=cutoff,
                archive_date=archive_date,
            )
            status.cleanup_needed = status.cleanup_needed or expired > 0
            status.archive_needed = status.archive_needed or archive_ready > 0

        if status.cleanup_needed:
            status.recommendations.append("Run audit-retention cleanup to remove expired logs")
        if status.archive_needed:
            status.recommendations.append("Run audit-retention archive to archive old logs before cleanup")
        if stats.estimated_storage_mb > 500:
            status.recommendations.append("Consider reducing retention periods for high-volume event types")
        return status

    def optimize_retention_policies(self) -> OptimizationReport:
        """Advisory only; nothing is applied here."""
        records_by_type = self.records_by_type()
        report = OptimizationReport(current_policies=dict(self.policy.policies))

        for event_type, current_days in self.policy.policies.items():
            record_count = records_by_type.get(event_type, 0)
            recommended = self.calculate_optimal_retention(event_type, record_count, current_days)
            report.recommended_policies[event_type] = recommended

            if recommended == current_days:
                continue

            days_diff = current_days - recommended
            savings = max(0.0, record_count * days_diff / current_days * SAVINGS_MB_FACTOR)
            report.optimizations.append(
                PolicyOptimization(
                    event_type=event_type,
                    current_days=current_days,
                    recommended_days=recommended,
                    change="reduce" if days_diff > 0 else "increase",
                    days_difference=abs(days_diff),
                    record_count=record_count,
                    estimated_savings_mb=round(savings, 2),
                    reason=self.optimization_reason(record_count, current_days, recommended),
                )
            )
            report.estimated_savings_mb += savings

        report.estimated_savings_mb = round(report.estimated_savings_mb, 2)
        return report

    @staticmethod
    def calculate_optimal_retention(event_type: str, record_count: int, current_days: int) -> int:
        base = BASE_RETENTION_BY_TYPE.get(event_type, DEFAULT_BASE_RETENTION)
        if record_count > HIGH_VOLUME_THRESHOLD:
            return max(base, min(current_days, base + 30))
        if record_count < LOW_VOLUME_THRESHOLD:
            return min(365, max(current_days, base))
        return base

    @staticmethod
    def optimization_reason(record_count: int, current_days: int, recommended_days: int) -> str:
        if recommended_days < current_days:
            if record_count > HIGH_VOLUME_THRESHOLD:
                return "High volume event type - reducing retention to manage storage"
            return "Retention period longer than necessary for event type"
        if record_count < LOW_VOLUME_THRESHOLD:
            return "Low volume event type - can afford longer retention for better audit trail"
        return "Compliance or security requirements suggest longer retention"
