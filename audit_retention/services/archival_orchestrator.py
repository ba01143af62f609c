"""Archive-then-delete runs across event types."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_retention.config import settings
from audit_retention.core.exceptions import ArchiveError
from audit_retention.core.metrics import ARCHIVE_ERRORS, ARCHIVED_RECORDS
from audit_retention.models.audit import AuditLog
from audit_retention.schemas.retention import ArchiveResult
from audit_retention.services.archive_writer import ArchiveWriter, _chunks
from audit_retention.services.retention_engine import RetentionEngine

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_event_type_locks: Dict[str, threading.Lock] = {}


def _lock_for(event_type: str) -> threading.Lock:
    with _locks_guard:
        lock = _event_type_locks.get(event_type)
        if lock is None:
            lock = threading.Lock()
            _event_type_locks[event_type] = lock
        return lock


class ArchivalOrchestrator:
    """
    Runs select -> archive -> delete -> aggregate for each event type.

    Rows are deleted by the primary keys that were written to the archive,
    never by re-running the time filter, so rows inserted after selection
    survive. A failed archive write leaves its rows in the live table.
    """

    def __init__(
        self,
        db: Session,
        engine: RetentionEngine,
        writer: ArchiveWriter,
        batch_size: Optional[int] = None,
    ) -> None:
        self.db = db
        self.engine = engine
        self.writer = writer
        self.batch_size = batch_size or settings.AUDIT_BATCH_SIZE

    def archive_old_logs(self, days: Optional[int] = None) -> ArchiveResult:
        """Archive every event type, by policy threshold or the ``days`` override."""
        result = ArchiveResult()
        try:
            event_types = self.engine.event_types()
        except SQLAlchemyError as exc:
            self.db.rollback()
            result.errors.append(f"Archive operation failed: {exc}")
            logger.exception("Audit log archival failed before processing event types")
            return result

        for event_type in event_types:
            self._archive_event_type(event_type, days, result)

        if result.total_archived:
            logger.info(
                "Audit logs archived: total=%d by_type=%s files=%d",
                result.total_archived,
                result.archived_by_type,
                len(result.archive_files),
            )
        return result

    def archive_by_event_type(self, event_type: str, days: Optional[int] = None) -> ArchiveResult:
        result = ArchiveResult()
        self._archive_event_type(event_type, days, result)
        logger.info("Audit logs archived for event type %s: %d", event_type, result.total_archived)
        return result

    def _archive_event_type(self, event_type: str, days: Optional[int], result: ArchiveResult) -> None:
        with _lock_for(event_type):
            try:
                records = self.engine.select_archivable(event_type, days)
            except SQLAlchemyError as exc:
                self.db.rollback()
                result.errors.append(f"{event_type}: failed to select records for archival: {exc}")
                logger.exception("Selecting %s records for archival failed", event_type)
                return

            if not records:
                return

            for period, batch in self._group_by_period(records).items():
                try:
                    info = self.writer.write(event_type, period, batch)
                except ArchiveError as exc:
                    ARCHIVE_ERRORS.labels(event_type).inc()
                    result.errors.append(f"{event_type} {period}: {exc.message}")
                    logger.error("Archive write failed for %s %s: %s", event_type, period, exc.message)
                    continue

                ids = [record.id for record in batch]
                try:
                    self._delete_records(batch)
                except SQLAlchemyError as exc:
                    self.db.rollback()
                    result.errors.append(
                        f"{event_type} {period}: archived to {info.filename} but deletion failed: {exc}"
                    )
                    logger.exception("Deleting archived %s records for %s failed", event_type, period)
                    continue

                result.archive_files.append(info.filename)
                result.archived_by_type[event_type] = result.archived_by_type.get(event_type, 0) + len(ids)
                result.total_archived += len(ids)
                ARCHIVED_RECORDS.labels(event_type).inc(len(ids))

    @staticmethod
    def _group_by_period(records: List[AuditLog]) -> "OrderedDict[str, List[AuditLog]]":
        grouped: "OrderedDict[str, List[AuditLog]]" = OrderedDict()
        for record in records:
            grouped.setdefault(ArchiveWriter.period_for(record.created_at), []).append(record)
        return grouped

    def _delete_records(self, records: List[AuditLog]) -> None:
        ids = [record.id for record in records]
        for chunk in _chunks(ids, self.batch_size):
            self.db.query(AuditLog).filter(AuditLog.id.in_(chunk)).delete(synchronize_session=False)
        self.db.commit()
        # Deleted rows leave the identity map; a restore may re-insert their ids.
        for record in records:
            self.db.expunge(record)
