from datetime import timedelta

import pytest
from rich.console import Console
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typer.testing import CliRunner

from audit_retention import cli
from audit_retention.config import settings
from audit_retention.core.clock import utcnow
from audit_retention.core.database import Base
from audit_retention.core.exceptions import ArchiveError
from audit_retention.models.audit import AuditLog
from audit_retention.services.archive_writer import ArchiveWriter
from audit_retention.services.retention_policy_store import RetentionPolicyStore

runner = CliRunner()


@pytest.fixture
def session_factory(tmp_path, monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    monkeypatch.setattr(cli, "SessionLocal", factory)
    monkeypatch.setattr(cli, "configure_logging", lambda stream=True: None)
    monkeypatch.setattr(cli, "console", Console(width=200))
    monkeypatch.setattr(settings, "AUDIT_ARCHIVE_DIR", str(tmp_path / "archives"))
    return factory


def _seed(factory, event_type, *ages_in_days):
    db = factory()
    try:
        now = utcnow()
        for age in ages_in_days:
            db.add(AuditLog(event_type=event_type, action="event", created_at=now - timedelta(days=age)))
        db.commit()
    finally:
        db.close()


def _count(factory, event_type=None):
    db = factory()
    try:
        query = db.query(AuditLog)
        if event_type:
            query = query.filter(AuditLog.event_type == event_type)
        return query.count()
    finally:
        db.close()


@pytest.mark.parametrize(
    "days, expected",
    [
        (400, "1.1 years"),
        (365, "1 year"),
        (730, "2 years"),
        (60, "2 months"),
        (30, "1 month"),
        (14, "2 weeks"),
        (10, "1.4 weeks"),
        (3, "3 days"),
        (1, "1 day"),
    ],
)
def test_format_retention_period(days, expected):
    assert cli.format_retention_period(days) == expected


def test_set_policy_then_show_policies(session_factory):
    result = runner.invoke(cli.app, ["retention", "--set-policy", "security:400", "--force"])
    assert result.exit_code == 0, result.output
    assert "Retention policy updated for security" in result.output

    result = runner.invoke(cli.app, ["retention", "--show-policies"])
    assert result.exit_code == 0, result.output
    security_line = next(line for line in result.output.splitlines() if " security " in line)
    assert "400" in security_line
    assert "1.1 years" in security_line


@pytest.mark.parametrize("value", ["security", "security:0", "security:abc", ":30"])
def test_set_policy_rejects_bad_values(session_factory, value):
    result = runner.invoke(cli.app, ["retention", "--set-policy", value, "--force"])

    assert result.exit_code == 1
    db = session_factory()
    try:
        assert RetentionPolicyStore(db)._row() is None
    finally:
        db.close()


def test_set_policy_prints_warnings(session_factory):
    result = runner.invoke(cli.app, ["retention", "--set-policy", "security_event:30", "--force"])

    assert result.exit_code == 0, result.output
    assert "Policy warnings" in result.output


def test_declined_confirmation_exits_one(session_factory):
    result = runner.invoke(cli.app, ["retention", "--set-policy", "authentication:90"], input="n\n")

    assert result.exit_code == 1
    assert "cancelled" in result.output
    db = session_factory()
    try:
        assert RetentionPolicyStore(db).get("authentication") == 365
    finally:
        db.close()


def test_status_is_the_default(session_factory):
    _seed(session_factory, "authentication", 400, 5)

    result = runner.invoke(cli.app, ["retention"])

    assert result.exit_code == 0, result.output
    assert "Total Records: 2" in result.output
    assert "Cleanup needed" in result.output


def test_archive_then_list(session_factory):
    _seed(session_factory, "security", 45, 40, 5)

    result = runner.invoke(cli.app, ["archive", "--list"])
    assert result.exit_code == 0
    assert "No archive files found." in result.output

    result = runner.invoke(cli.app, ["archive", "--days", "30", "--force"])
    assert result.exit_code == 0, result.output
    assert "Archived 2 audit log entries" in result.output
    assert _count(session_factory, "security") == 1

    result = runner.invoke(cli.app, ["archive", "--list"])
    assert result.exit_code == 0
    assert "security/" in result.output
    assert "Total archive size:" in result.output


def test_archive_preview_changes_nothing(session_factory):
    _seed(session_factory, "security", 45, 5)

    result = runner.invoke(cli.app, ["archive", "--preview", "--days", "30"])

    assert result.exit_code == 0, result.output
    assert "Total to archive: 1" in result.output
    assert _count(session_factory) == 2


def test_restore_missing_archive_exits_one(session_factory):
    result = runner.invoke(cli.app, ["archive", "--restore", "security/2020-01.csv", "--force"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_conflicting_archive_flags(session_factory):
    result = runner.invoke(cli.app, ["archive", "--list", "--preview"])

    assert result.exit_code == 1
    assert "cannot be combined" in result.output


def test_cleanup_uses_policies(session_factory):
    _seed(session_factory, "authentication", 400, 100)
    runner.invoke(cli.app, ["retention", "--set-policy", "authentication:90", "--force"])

    result = runner.invoke(cli.app, ["cleanup", "--force"])

    assert result.exit_code == 0, result.output
    assert "Deleted 2 audit log entries" in result.output
    assert _count(session_factory, "authentication") == 0


def test_cleanup_archive_first_aborts_on_archive_error(session_factory, monkeypatch):
    _seed(session_factory, "authentication", 400)

    def broken_write(self, event_type, period, records):
        raise ArchiveError("permission denied")

    monkeypatch.setattr(ArchiveWriter, "write", broken_write)

    result = runner.invoke(cli.app, ["cleanup", "--archive", "--force"])

    assert result.exit_code == 1
    assert "cleanup aborted" in result.output
    assert _count(session_factory) == 1


def test_cleanup_preview(session_factory):
    _seed(session_factory, "authentication", 400, 5)

    result = runner.invoke(cli.app, ["cleanup", "--preview"])

    assert result.exit_code == 0, result.output
    assert "Total to delete: 1" in result.output
    assert _count(session_factory) == 2
