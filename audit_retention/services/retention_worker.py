"""Background worker that runs archival and cleanup on an interval."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from audit_retention.config import settings
from audit_retention.core.database import SessionLocal
from audit_retention.services.retention_service import RetentionService

logger = logging.getLogger(__name__)


class RetentionWorker:
    """Runs policy-driven archival, then cleanup, one run at a time."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[float] = None,
        archive_dir: Optional[str] = None,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.RETENTION_WORKER_INTERVAL_SECONDS
        self.archive_dir = archive_dir
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._run_count: int = 0
        self._last_result: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="retention-worker", daemon=True)
        self._thread.start()
        logger.info("Retention worker started (interval=%ss)", self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Retention worker stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "run_count": self._run_count,
            "last_result": self._last_result,
        }

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as exc:
                logger.exception("Retention run failed: %s", exc)
            self._heartbeat = time.time()
            self._stop_event.wait(max(1.0, self.interval_seconds))

    def run_once(self) -> Dict[str, Any]:
        """Archive by policy; clean up only when archival reported no errors."""
        with self._lock:
            db = self.session_factory()
            try:
                service = RetentionService(db, archive_dir=self.archive_dir)
                archive, cleanup = service.archive_then_cleanup()
            finally:
                db.close()

            result = {
                "archive": archive.model_dump(mode="json"),
                "cleanup": cleanup.model_dump(mode="json") if cleanup else None,
            }
            self._run_count += 1
            self._last_result = result
            return result


retention_worker = RetentionWorker()
