"""Destructive cleanup of expired audit logs. No archival happens here."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from audit_retention.core.clock import Clock, utcnow
from audit_retention.core.exceptions import ValidationError
from audit_retention.core.metrics import DELETED_RECORDS
from audit_retention.models.audit import AuditLog
from audit_retention.schemas.retention import CleanupCriteria, CleanupResult, RetentionPolicy
from audit_retention.services.retention_engine import RetentionEngine

logger = logging.getLogger(__name__)


def _require_days(days: int) -> None:
    if days < 1:
        raise ValidationError("Retention days must be at least 1", details={"days": days})


class CleanupEngine:
    """Deletes records strictly older than a cutoff."""

    def __init__(
        self,
        db: Session,
        policy: RetentionPolicy,
        engine: RetentionEngine,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.policy = policy
        self.engine = engine
        self.clock = clock

    def _cutoff(self, days: int) -> datetime:
        return self.clock() - timedelta(days=days)

    def cleanup_event_type(self, event_type: str, retention_days: int) -> int:
        _require_days(retention_days)
        deleted = (
            self.db.query(AuditLog)
            .filter(AuditLog.event_type == event_type)
            .filter(AuditLog.created_at < self._cutoff(retention_days))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        DELETED_RECORDS.labels(event_type).inc(deleted)
        return deleted

    def cleanup_older_than(self, days: int) -> int:
        """Global override: one cutoff for every event type, policy ignored."""
        _require_days(days)
        deleted = (
            self.db.query(AuditLog)
            .filter(AuditLog.created_at < self._cutoff(days))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        DELETED_RECORDS.labels("*").inc(deleted)
        logger.info("Deleted %d audit records older than %d days", deleted, days)
        return deleted

    def cleanup_by_criteria(self, criteria: CleanupCriteria) -> int:
        if criteria.is_empty():
            raise ValidationError("At least one cleanup criterion is required")

        query = self.db.query(AuditLog)
        if criteria.event_type is not None:
            query = query.filter(AuditLog.event_type == criteria.event_type)
        if criteria.user_id is not None:
            query = query.filter(AuditLog.user_id == criteria.user_id)
        if criteria.before_date is not None:
            query = query.filter(AuditLog.created_at < criteria.before_date)
        if criteria.after_date is not None:
            query = query.filter(AuditLog.created_at > criteria.after_date)
        if criteria.ip_address is not None:
            query = query.filter(AuditLog.ip_address == criteria.ip_address)

        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        DELETED_RECORDS.labels(criteria.event_type or "*").inc(deleted)
        return deleted

    def run_automated_cleanup(self) -> CleanupResult:
        """Apply each event type's own retention; one type failing does not stop the rest."""
        result = CleanupResult(started_at=self.clock())

        try:
            event_types = self.engine.event_types()
        except Exception as exc:
            self.db.rollback()
            result.errors.append(f"General cleanup failure: {exc}")
            logger.exception("Audit retention cleanup failed before processing event types")
            return result

        for event_type in event_types:
            retention_days = self.policy.days_for(event_type)
            try:
                deleted = self.cleanup_event_type(event_type, retention_days)
            except Exception as exc:
                self.db.rollback()
                error = f"Failed to cleanup {event_type}: {exc}"
                result.errors.append(error)
                logger.exception(error)
                continue

            result.deleted_by_type[event_type] = deleted
            result.total_deleted += deleted
            logger.info(
                "Audit cleanup completed for %s: retention_days=%d deleted=%d",
                event_type,
                retention_days,
                deleted,
            )

        result.completed_at = self.clock()
        logger.info(
            "Audit retention cleanup completed: total_deleted=%d errors=%d",
            result.total_deleted,
            len(result.errors),
        )
        return result
