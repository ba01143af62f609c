"""CSV archive files for audit logs: write, list, read back and restore."""

from __future__ import annotations

import csv
import logging
import os
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_retention.config import settings
from audit_retention.core.exceptions import (
    ArchiveError,
    ArchiveNotFoundError,
    InvalidArchiveError,
)
from audit_retention.core.metrics import RESTORED_RECORDS
from audit_retention.models.audit import AuditLog
from audit_retention.schemas.retention import ArchiveFileInfo, RestoreResult

logger = logging.getLogger(__name__)

ARCHIVE_COLUMNS = [
    "id",
    "event_type",
    "action",
    "user_id",
    "created_at",
    "auditable_type",
    "auditable_id",
    "old_values",
    "new_values",
    "url",
    "ip_address",
    "user_agent",
    "additional_data",
]

_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9_.\-]+$")
_PERIOD = re.compile(r"^\d{4}-\d{2}$")


def _chunks(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ArchiveWriter:
    """Writes one CSV per event type and month under the archive directory."""

    def __init__(self, archive_dir: Optional[str] = None, batch_size: Optional[int] = None) -> None:
        self.archive_dir = Path(archive_dir or settings.get_archive_dir())
        self.batch_size = batch_size or settings.AUDIT_BATCH_SIZE

    @staticmethod
    def period_for(created_at: datetime) -> str:
        return created_at.strftime("%Y-%m")

    def path_for(self, event_type: str, period: str) -> Path:
        for component in (event_type, period):
            if not _SAFE_COMPONENT.match(component) or component in (".", ".."):
                raise ArchiveError(
                    f"Unsafe archive path component: {component!r}",
                    details={"event_type": event_type, "period": period},
                )
        return self.archive_dir / event_type / f"{period}.csv"

    @staticmethod
    def _row(record: AuditLog) -> List[Any]:
        # NULL is written as an empty field and read back as None.
        return [
            record.id,
            record.event_type,
            record.action,
            "" if record.user_id is None else record.user_id,
            record.created_at.isoformat(sep=" "),
            record.auditable_type or "",
            record.auditable_id or "",
            record.old_values_json or "",
            record.new_values_json or "",
            record.url or "",
            record.ip_address or "",
            record.user_agent or "",
            record.additional_data_json or "",
        ]

    @staticmethod
    def _archived_ids(handle, target: Path) -> Set[str]:
        reader = csv.DictReader(handle)
        if reader.fieldnames != ARCHIVE_COLUMNS:
            raise ArchiveError(
                f"Existing archive {target.name} has an unexpected header; refusing to append",
                details={"path": str(target)},
            )
        return {row["id"] for row in reader}

    def write(self, event_type: str, period: str, records: List[AuditLog]) -> ArchiveFileInfo:
        """
        Durably write records to {event_type}/{period}.csv.

        An existing file for the same period keeps its rows; records whose id
        it already holds are skipped, the rest are appended, and the whole
        file is replaced atomically.

        Raises:
            ArchiveError: On any I/O failure, or when the existing file has an
                unexpected header. Nothing is retried here.
        """
        target = self.path_for(event_type, period)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            try:
                with os.fdopen(fd, "w", newline="", encoding="utf-8") as handle:
                    writer = csv.writer(handle)
                    archived_ids: Set[str] = set()
                    if target.exists():
                        with target.open("r", newline="", encoding="utf-8") as existing:
                            archived_ids = self._archived_ids(existing, target)
                            existing.seek(0)
                            shutil.copyfileobj(existing, handle)
                    else:
                        writer.writerow(ARCHIVE_COLUMNS)
                    fresh = [record for record in records if str(record.id) not in archived_ids]
                    for record in fresh:
                        writer.writerow(self._row(record))
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise ArchiveError(
                f"Failed to write archive {event_type}/{period}: {exc}",
                details={"event_type": event_type, "period": period},
            ) from exc

        if len(fresh) < len(records):
            logger.warning(
                "Skipped %d %s records already present in %s",
                len(records) - len(fresh),
                event_type,
                target,
            )
        logger.info("Archived %d %s records to %s", len(fresh), event_type, target)
        return self.describe(target)

    def describe(self, path: Path) -> ArchiveFileInfo:
        stat = path.stat()
        period = path.stem if _PERIOD.match(path.stem) else "unknown"
        return ArchiveFileInfo(
            filename=path.relative_to(self.archive_dir).as_posix(),
            event_type=path.parent.name,
            period=period,
            size_bytes=stat.st_size,
            size_mb=round(stat.st_size / 1024 / 1024, 2),
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).replace(tzinfo=None),
        )

    def list_archive_files(self) -> List[ArchiveFileInfo]:
        if not self.archive_dir.is_dir():
            return []
        files = [self.describe(path) for path in self.archive_dir.glob("*/*.csv") if path.is_file()]
        return sorted(files, key=lambda info: info.filename)

    @staticmethod
    def total_size_mb(files: List[ArchiveFileInfo]) -> float:
        return round(sum(info.size_mb for info in files), 2)

    def _resolve(self, filename: str) -> Path:
        root = self.archive_dir.resolve()
        path = (self.archive_dir / filename).resolve()
        if root != path and root not in path.parents:
            raise ArchiveNotFoundError(filename)
        if not path.is_file():
            raise ArchiveNotFoundError(filename)
        return path

    def read_records(self, filename: str) -> List[Dict[str, Any]]:
        """Parse an archive back into column dicts for AuditLog."""
        path = self._resolve(filename)
        try:
            with path.open("r", newline="", encoding="utf-8") as handle:
                reader = csv.DictReader(handle)
                if reader.fieldnames != ARCHIVE_COLUMNS:
                    raise InvalidArchiveError(filename, "unexpected header")
                rows = list(reader)
        except OSError as exc:
            raise ArchiveError(f"Failed to read archive {filename}: {exc}") from exc

        records = []
        for line_no, row in enumerate(rows, start=2):
            try:
                records.append(
                    {
                        "id": int(row["id"]),
                        "event_type": row["event_type"],
                        "action": row["action"],
                        "user_id": int(row["user_id"]) if row["user_id"] else None,
                        "created_at": datetime.fromisoformat(row["created_at"]),
                        "auditable_type": row["auditable_type"] or None,
                        "auditable_id": row["auditable_id"] or None,
                        "old_values_json": row["old_values"] or None,
                        "new_values_json": row["new_values"] or None,
                        "url": row["url"] or None,
                        "ip_address": row["ip_address"] or None,
                        "user_agent": row["user_agent"] or None,
                        "additional_data_json": row["additional_data"] or None,
                    }
                )
            except (TypeError, ValueError) as exc:
                raise InvalidArchiveError(filename, f"line {line_no}: {exc}") from exc
        return records

    def restore_from_archive(self, db: Session, filename: str) -> RestoreResult:
        """
        Re-insert archived rows into the live table.

        Rows are not de-duplicated. A row whose primary key already exists
        fails on its own and is reported in ``errors``.

        Raises:
            ArchiveNotFoundError: If the archive file does not exist.
            InvalidArchiveError: If the file cannot be parsed.
        """
        rows = self.read_records(filename)
        result = RestoreResult(filename=filename)

        for batch in _chunks(rows, self.batch_size):
            try:
                db.add_all([AuditLog(**row) for row in batch])
                db.commit()
                restored = batch
            except SQLAlchemyError:
                db.rollback()
                restored = []
                for row in batch:
                    try:
                        db.add(AuditLog(**row))
                        db.commit()
                        restored.append(row)
                    except SQLAlchemyError as exc:
                        db.rollback()
                        result.errors.append(f"Record {row['id']} could not be restored: {exc.__class__.__name__}")
                        logger.warning("Failed to restore audit record %s from %s: %s", row["id"], filename, exc)

            for row in restored:
                event_type = row["event_type"]
                result.restored_by_type[event_type] = result.restored_by_type.get(event_type, 0) + 1
            result.total_restored += len(restored)

        for event_type, count in result.restored_by_type.items():
            RESTORED_RECORDS.labels(event_type).inc(count)

        logger.info(
            "Restored %d audit records from %s (%d errors)",
            result.total_restored,
            filename,
            len(result.errors),
        )
        return result
