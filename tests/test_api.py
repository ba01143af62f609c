from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from audit_retention.api.deps import get_retention_service
from audit_retention.core.clock import utcnow
from audit_retention.core.database import Base, get_db
from audit_retention.main import app
from audit_retention.models.audit import AuditLog
from audit_retention.services.retention_service import RetentionService


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def client(session_factory, tmp_path):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_service():
        db = session_factory()
        try:
            yield RetentionService(db, archive_dir=str(tmp_path / "archives"))
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_retention_service] = override_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _seed(factory, event_type, *ages_in_days):
    db = factory()
    try:
        now = utcnow()
        for age in ages_in_days:
            db.add(AuditLog(event_type=event_type, action="event", created_at=now - timedelta(days=age)))
        db.commit()
    finally:
        db.close()


def _system_events(factory):
    db = factory()
    try:
        return [log.action for log in db.query(AuditLog).filter(AuditLog.event_type == "system_event").all()]
    finally:
        db.close()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_metrics_endpoint(client):
    client.get("/")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "audit_retention_http_requests_total" in response.text


def test_update_policy(client, session_factory):
    response = client.put("/api/v1/retention/policies/security", json={"days": 400})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["policies"]["security"] == 400
    assert _system_events(session_factory) == ["retention_policy_updated"]

    response = client.get("/api/v1/retention/policies")
    assert response.json()["policies"]["security"] == 400


def test_update_policy_rejects_zero_days(client, session_factory):
    response = client.put("/api/v1/retention/policies/security", json={"days": 0})

    assert response.status_code == 422
    assert response.json()["success"] is False
    assert _system_events(session_factory) == []


def test_update_policy_returns_warnings(client):
    response = client.put("/api/v1/retention/policies/financial_transaction", json={"days": 365})

    assert response.status_code == 200
    assert any("Financial transaction" in warning for warning in response.json()["warnings"])


def test_status_and_previews(client, session_factory):
    _seed(session_factory, "authentication", 400, 350, 5)

    status = client.get("/api/v1/retention/status").json()
    assert status["by_event_type"]["authentication"]["expired_records"] == 1
    assert status["by_event_type"]["authentication"]["archive_ready"] == 1

    preview = client.get("/api/v1/retention/preview").json()
    assert preview["total_to_delete"] == 1

    archive_preview = client.get("/api/v1/retention/archive-preview", params={"days": 30}).json()
    assert archive_preview["total_to_archive"] == 2

    stats = client.get("/api/v1/retention/statistics").json()
    assert stats["total_records"] == 3


def test_archive_list_and_restore(client, session_factory):
    _seed(session_factory, "security", 45, 40, 5)

    archived = client.post("/api/v1/retention/archive", json={"event_type": "security", "days": 30}).json()
    assert archived["total_archived"] == 2
    assert archived["errors"] == []

    listing = client.get("/api/v1/retention/archives").json()
    filenames = [info["filename"] for info in listing["files"]]
    assert filenames == sorted(archived["archive_files"])

    restored_total = 0
    for filename in archived["archive_files"]:
        response = client.post("/api/v1/retention/archives/restore", json={"filename": filename})
        assert response.status_code == 200
        restored_total += response.json()["total_restored"]
    assert restored_total == 2


def test_restore_missing_archive_is_404(client):
    response = client.post("/api/v1/retention/archives/restore", json={"filename": "security/2020-01.csv"})

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_cleanup_with_archive_first(client, session_factory):
    _seed(session_factory, "authentication", 400, 5)

    response = client.post("/api/v1/retention/cleanup", json={"archive_first": True})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["archive"]["total_archived"] == 1
    assert body["cleanup"]["total_deleted"] == 0
    assert "audit_logs_cleaned_up" in _system_events(session_factory)


def test_cleanup_event_type_with_days(client, session_factory):
    _seed(session_factory, "authentication", 40, 5)

    response = client.post("/api/v1/retention/cleanup", json={"event_type": "authentication", "days": 30})

    assert response.json()["cleanup"]["deleted_by_type"] == {"authentication": 1}


def test_list_audit_logs(client, session_factory):
    _seed(session_factory, "authentication", 3, 1)
    _seed(session_factory, "security", 2)

    response = client.get("/api/v1/audit-logs", params={"event_type": "authentication"})

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 2
    assert rows[0]["created_at"] > rows[1]["created_at"]
    assert all(row["event_type"] == "authentication" for row in rows)


def test_policy_change_is_recorded_with_its_diff(client, session_factory):
    client.put(
        "/api/v1/retention/policies/security_event",
        json={"days": 1200},
        headers={"User-Agent": "retention-admin/1.0"},
    )

    rows = client.get("/api/v1/audit-logs", params={"action": "retention_policy_updated"}).json()

    assert len(rows) == 1
    assert rows[0]["old_values"] == {"days": 1095}
    assert rows[0]["new_values"] == {"days": 1200}
    assert rows[0]["url"].endswith("/api/v1/retention/policies/security_event")
    assert rows[0]["user_agent"] == "retention-admin/1.0"
