"""Engine, session factory and schema checks for the audit log store"""

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator, List, Optional
from audit_retention.config import settings
import logging

logger = logging.getLogger(__name__)

# Tables the retention pipeline reads and writes.
REQUIRED_TABLES = ("audit_logs", "audit_settings")


def build_engine(url: str) -> Engine:
    """SQLite gets a thread-shareable connection; anything else a bounded pool."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=settings.DEBUG)
    return create_engine(
        url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


engine = build_engine(settings.get_database_url())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Import models after Base is defined so metadata is populated.
from audit_retention import models  # noqa: E402,F401


def get_db() -> Generator[Session, None, None]:
    """
    Request-scoped session for the admin API

    Yields:
        Session: Database session, closed when the request ends
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_connection(bind: Optional[Engine] = None) -> Optional[str]:
    """Run a trivial query; return the error text, or None when the store answers."""
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return str(exc)
    return None


def missing_tables(bind: Optional[Engine] = None) -> List[str]:
    with (bind or engine).connect() as conn:
        present = set(inspect(conn).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in present]


def init_db() -> None:
    """
    Make sure the audit log store is usable before archival or cleanup runs.

    DB_INIT_MODE:
      - migrate: the Alembic migration must have created the audit tables
      - create_all: create the audit tables if missing (local SQLite)
      - off: skip the check
    """
    mode = settings.DB_INIT_MODE.lower().strip()
    if mode == "off":
        logger.info("Audit store check skipped (DB_INIT_MODE=off)")
        return

    if mode == "create_all":
        Base.metadata.create_all(bind=engine)
        logger.info("Audit tables ensured with create_all")
        return

    if mode == "migrate":
        missing = missing_tables()
        if missing and settings.DB_REQUIRE_HEAD:
            raise RuntimeError(
                f"Audit tables missing: {', '.join(missing)}. Run `alembic upgrade head` first."
            )
        if missing:
            logger.warning("Audit tables missing: %s", ", ".join(missing))
        else:
            logger.info("Audit tables present")
        return

    raise RuntimeError(f"Unknown DB_INIT_MODE: {settings.DB_INIT_MODE}")
