"""Retention service - wires policy, engines and archive storage for one run."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from audit_retention.config import settings
from audit_retention.core.clock import Clock, utcnow
from audit_retention.core.exceptions import ValidationError
from audit_retention.schemas.retention import (
    ArchiveFileInfo,
    ArchivePreview,
    ArchiveResult,
    CleanupCriteria,
    CleanupPreview,
    CleanupResult,
    OptimizationReport,
    PolicyValidation,
    RestoreResult,
    RetentionPolicy,
    RetentionStatus,
    StorageStatistics,
)
from audit_retention.services.archival_orchestrator import ArchivalOrchestrator
from audit_retention.services.archive_writer import ArchiveWriter
from audit_retention.services.cleanup_engine import CleanupEngine
from audit_retention.services.retention_engine import RetentionEngine
from audit_retention.services.retention_policy_store import RetentionPolicyStore

logger = logging.getLogger(__name__)


class RetentionService:
    """
    Entry point used by the CLI, the admin API and the worker.

    The retention policy is read once when the service is built; call
    ``reload_policy`` after changing it to see the new values.
    """

    def __init__(
        self,
        db: Session,
        archive_dir: Optional[str] = None,
        clock: Clock = utcnow,
        batch_size: Optional[int] = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.batch_size = batch_size or settings.AUDIT_BATCH_SIZE
        self.store = RetentionPolicyStore(db)
        self.writer = ArchiveWriter(archive_dir, batch_size=self.batch_size)
        self.reload_policy()

    def reload_policy(self) -> RetentionPolicy:
        self.policy = self.store.load()
        self._wire()
        return self.policy

    def _wire(self) -> None:
        self.engine = RetentionEngine(self.db, self.policy, clock=self.clock)
        self.orchestrator = ArchivalOrchestrator(self.db, self.engine, self.writer, batch_size=self.batch_size)
        self.cleanup = CleanupEngine(self.db, self.policy, self.engine, clock=self.clock)

    @contextmanager
    def pinned_clock(self) -> Iterator[datetime]:
        """Evaluate every cutoff inside the block against one reading of the clock."""
        now = self.clock()
        clock = self.clock
        self.clock = lambda: now
        self._wire()
        try:
            yield now
        finally:
            self.clock = clock
            self._wire()

    # Policies

    def policies(self) -> Dict[str, int]:
        return dict(self.policy.policies)

    def set_policy(self, event_type: str, days: int) -> PolicyValidation:
        """Validate the updated map, persist it, and return any warnings."""
        if days < 1:
            raise ValidationError("Retention days must be at least 1", details={"event_type": event_type})
        updated = self.store.all()
        updated[event_type] = days
        validation = self.store.validate_policy(updated)
        if not validation.valid:
            raise ValidationError("Invalid retention policy", details={"errors": validation.errors})

        self.store.set(event_type, days)
        self.reload_policy()
        return validation

    def apply_optimized_policies(self, recommended: Dict[str, int]) -> Dict[str, int]:
        self.store.replace(recommended)
        self.reload_policy()
        logger.info("Applied optimized retention policies: %s", recommended)
        return self.policies()

    # Read-only analysis

    def preview_cleanup(self) -> CleanupPreview:
        return self.engine.preview_cleanup()

    def preview_archival(self, days: Optional[int] = None) -> ArchivePreview:
        return self.engine.preview_archival(days)

    def storage_statistics(self) -> StorageStatistics:
        return self.engine.get_storage_statistics()

    def retention_status(self) -> RetentionStatus:
        return self.engine.get_retention_status()

    def optimize_retention_policies(self) -> OptimizationReport:
        return self.engine.optimize_retention_policies()

    # Archival

    def archive_old_logs(self, days: Optional[int] = None) -> ArchiveResult:
        if days is not None and days < 1:
            raise ValidationError("Archive days must be at least 1", details={"days": days})
        return self.orchestrator.archive_old_logs(days)

    def archive_by_event_type(self, event_type: str, days: Optional[int] = None) -> ArchiveResult:
        if days is not None and days < 1:
            raise ValidationError("Archive days must be at least 1", details={"days": days})
        return self.orchestrator.archive_by_event_type(event_type, days)

    def list_archive_files(self) -> List[ArchiveFileInfo]:
        return self.writer.list_archive_files()

    def restore_from_archive(self, filename: str) -> RestoreResult:
        return self.writer.restore_from_archive(self.db, filename)

    # Cleanup

    def cleanup_event_type(self, event_type: str, retention_days: Optional[int] = None) -> int:
        days = retention_days if retention_days is not None else self.policy.days_for(event_type)
        return self.cleanup.cleanup_event_type(event_type, days)

    def cleanup_older_than(self, days: int) -> int:
        return self.cleanup.cleanup_older_than(days)

    def cleanup_by_criteria(self, criteria: CleanupCriteria) -> int:
        return self.cleanup.cleanup_by_criteria(criteria)

    def run_automated_cleanup(self) -> CleanupResult:
        return self.cleanup.run_automated_cleanup()

    def cleanup_expired(self, event_type: Optional[str] = None, days: Optional[int] = None) -> CleanupResult:
        """
        Delete expired records for one event type, by a global age, or by policy.

        ``event_type`` wins over ``days``; with neither, each event type's own
        retention applies.
        """
        if not event_type and not days:
            return self.run_automated_cleanup()

        started = self.clock()
        if event_type:
            deleted = self.cleanup_event_type(event_type, days)
            deleted_by_type = {event_type: deleted}
        else:
            deleted = self.cleanup_older_than(days)
            deleted_by_type = {}
        return CleanupResult(
            total_deleted=deleted,
            deleted_by_type=deleted_by_type,
            started_at=started,
            completed_at=self.clock(),
        )

    def archive_then_cleanup(
        self,
        event_type: Optional[str] = None,
        days: Optional[int] = None,
    ) -> Tuple[ArchiveResult, Optional[CleanupResult]]:
        """
        Archive, then delete what has expired, both against the same ``now``.

        The archive threshold never exceeds the retention period, so every row
        the cleanup step deletes was matched by the archival step first. The
        cleanup step is skipped when archival reported any error.
        """
        with self.pinned_clock():
            if event_type:
                archive = self.archive_by_event_type(event_type, days)
            else:
                archive = self.archive_old_logs(days)
            if archive.errors:
                logger.warning("Skipping cleanup: archival reported %d errors", len(archive.errors))
                return archive, None
            return archive, self.cleanup_expired(event_type, days)
