import csv
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from audit_retention.core.database import Base
from audit_retention.core.exceptions import ArchiveError, ArchiveNotFoundError, InvalidArchiveError
from audit_retention.models.audit import AuditLog
from audit_retention.services.archive_writer import ARCHIVE_COLUMNS, ArchiveWriter


def _make_session():
    engine = create_engine("sqlite:///:memory:")
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


def _log(id, created_at, **kwargs):
    values = {
        "id": id,
        "event_type": "security",
        "action": "password_reset",
        "created_at": created_at,
        "additional_data_json": '{"attempts": 3}',
    }
    values.update(kwargs)
    return AuditLog(**values)


def _read(path):
    with open(path, newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


def test_write_creates_month_file_with_header(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    records = [
        _log(1, datetime(2026, 3, 2, 8, 0, 0), user_id=7, ip_address="10.0.0.1"),
        _log(2, datetime(2026, 3, 9, 9, 30, 0), auditable_type="Package", auditable_id="42"),
    ]

    info = writer.write("security", "2026-03", records)

    assert info.filename == "security/2026-03.csv"
    assert info.event_type == "security"
    assert info.period == "2026-03"
    rows = _read(tmp_path / "security" / "2026-03.csv")
    assert rows[0] == ARCHIVE_COLUMNS
    first, second = (dict(zip(ARCHIVE_COLUMNS, row)) for row in rows[1:])
    assert [first[name] for name in ("id", "event_type", "action", "user_id", "created_at")] == [
        "1", "security", "password_reset", "7", "2026-03-02 08:00:00",
    ]
    assert first["ip_address"] == "10.0.0.1"
    assert (second["auditable_type"], second["auditable_id"]) == ("Package", "42")


def test_write_appends_to_existing_period(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2))])
    writer.write("security", "2026-03", [_log(2, datetime(2026, 3, 20))])

    rows = _read(tmp_path / "security" / "2026-03.csv")

    assert rows[0] == ARCHIVE_COLUMNS
    assert [row[0] for row in rows[1:]] == ["1", "2"]
    assert list((tmp_path / "security").iterdir()) == [tmp_path / "security" / "2026-03.csv"]


def test_write_skips_ids_already_in_the_file(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2))])
    writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2)), _log(2, datetime(2026, 3, 20))])

    rows = _read(tmp_path / "security" / "2026-03.csv")

    assert [row[0] for row in rows[1:]] == ["1", "2"]


def test_write_refuses_to_append_to_a_foreign_file(tmp_path):
    (tmp_path / "security").mkdir()
    target = tmp_path / "security" / "2026-03.csv"
    target.write_text("foo,bar\n1,2\n")
    writer = ArchiveWriter(str(tmp_path))

    with pytest.raises(ArchiveError):
        writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2))])
    assert target.read_text() == "foo,bar\n1,2\n"
    assert [path.name for path in (tmp_path / "security").iterdir()] == ["2026-03.csv"]


def test_write_rejects_unsafe_event_type(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    with pytest.raises(ArchiveError):
        writer.write("../escape", "2026-03", [_log(1, datetime(2026, 3, 2))])


def test_write_wraps_io_errors(tmp_path):
    blocker = tmp_path / "security"
    blocker.write_text("not a directory")
    writer = ArchiveWriter(str(tmp_path))

    with pytest.raises(ArchiveError):
        writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2))])


def test_list_archive_files(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2))])
    writer.write("authentication", "2026-01", [_log(2, datetime(2026, 1, 2), event_type="authentication")])

    files = writer.list_archive_files()

    assert [info.filename for info in files] == ["authentication/2026-01.csv", "security/2026-03.csv"]
    assert all(info.size_bytes > 0 for info in files)
    assert ArchiveWriter.total_size_mb(files) >= 0


def test_list_archive_files_without_directory(tmp_path):
    writer = ArchiveWriter(str(tmp_path / "missing"))
    assert writer.list_archive_files() == []


def test_read_records_parses_values(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    writer.write("security", "2026-03", [_log(5, datetime(2026, 3, 2, 8, 15, 30), user_id=None)])

    records = writer.read_records("security/2026-03.csv")

    assert records == [
        {
            "id": 5,
            "event_type": "security",
            "action": "password_reset",
            "user_id": None,
            "created_at": datetime(2026, 3, 2, 8, 15, 30),
            "auditable_type": None,
            "auditable_id": None,
            "old_values_json": None,
            "new_values_json": None,
            "url": None,
            "ip_address": None,
            "user_agent": None,
            "additional_data_json": '{"attempts": 3}',
        }
    ]


def test_change_diff_and_request_fields_survive_the_round_trip(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    writer.write(
        "security",
        "2026-03",
        [
            _log(
                6,
                datetime(2026, 3, 2),
                old_values_json='{"role": "member"}',
                new_values_json='{"role": "admin"}',
                url="https://example.test/users/6",
                user_agent="Mozilla/5.0, \"quoted\"",
                additional_data_json=None,
            )
        ],
    )

    [record] = writer.read_records("security/2026-03.csv")
    log = AuditLog(**record)

    assert log.old_values == {"role": "member"}
    assert log.new_values == {"role": "admin"}
    assert log.url == "https://example.test/users/6"
    assert log.user_agent == 'Mozilla/5.0, "quoted"'
    assert log.additional_data_json is None


def test_read_records_missing_file(tmp_path):
    writer = ArchiveWriter(str(tmp_path))
    with pytest.raises(ArchiveNotFoundError):
        writer.read_records("security/2020-01.csv")


def test_read_records_refuses_paths_outside_archive_dir(tmp_path):
    archive_dir = tmp_path / "archives"
    archive_dir.mkdir()
    (tmp_path / "secret.csv").write_text("id\n1\n")
    writer = ArchiveWriter(str(archive_dir))

    with pytest.raises(ArchiveNotFoundError):
        writer.read_records("../secret.csv")


def test_read_records_invalid_header(tmp_path):
    (tmp_path / "security").mkdir()
    (tmp_path / "security" / "2026-03.csv").write_text("foo,bar\n1,2\n")
    writer = ArchiveWriter(str(tmp_path))

    with pytest.raises(InvalidArchiveError):
        writer.read_records("security/2026-03.csv")


def test_restore_inserts_rows_and_reports_duplicates(tmp_path):
    db = _make_session()
    try:
        writer = ArchiveWriter(str(tmp_path), batch_size=10)
        writer.write("security", "2026-03", [_log(1, datetime(2026, 3, 2)), _log(2, datetime(2026, 3, 3))])
        db.add(_log(2, datetime(2026, 3, 3)))
        db.commit()
        db.expunge_all()

        result = writer.restore_from_archive(db, "security/2026-03.csv")

        assert result.total_restored == 1
        assert result.restored_by_type == {"security": 1}
        assert len(result.errors) == 1
        assert "Record 2" in result.errors[0]
        assert db.query(AuditLog).count() == 2
    finally:
        db.close()
