import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from audit_retention.core.database import Base
from audit_retention.core.exceptions import ValidationError
from audit_retention.schemas.retention import RetentionPolicy
from audit_retention.services.retention_policy_store import (
    DEFAULT_RETENTION_POLICY,
    RetentionPolicyStore,
)


def _make_session():
    engine = create_engine("sqlite:///:memory:")
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


def test_defaults_used_when_nothing_stored():
    db = _make_session()
    try:
        store = RetentionPolicyStore(db, default_days=365)
        assert store.all() == DEFAULT_RETENTION_POLICY
        assert store.get("financial_transaction") == 2555
        assert store.get("never_configured") == 365
    finally:
        db.close()


def test_set_persists_and_keeps_other_types():
    db = _make_session()
    try:
        store = RetentionPolicyStore(db)
        store.set("security", 400)

        reloaded = RetentionPolicyStore(db)
        assert reloaded.get("security") == 400
        assert reloaded.get("authentication") == DEFAULT_RETENTION_POLICY["authentication"]
        assert reloaded.load().days_for("security") == 400
    finally:
        db.close()


@pytest.mark.parametrize("days", [0, -5])
def test_set_rejects_days_below_one_without_writing(days):
    db = _make_session()
    try:
        store = RetentionPolicyStore(db)
        with pytest.raises(ValidationError):
            store.set("authentication", days)
        assert store._row() is None
    finally:
        db.close()


def test_replace_rejects_invalid_policy():
    db = _make_session()
    try:
        store = RetentionPolicyStore(db)
        with pytest.raises(ValidationError) as excinfo:
            store.replace({"authentication": 180, "system_event": 0})
        assert excinfo.value.status_code == 422
        assert "system_event" in excinfo.value.details["errors"][0]
        assert store._row() is None
    finally:
        db.close()


def test_seed_defaults_only_once():
    db = _make_session()
    try:
        store = RetentionPolicyStore(db)
        assert store.seed_defaults() is True
        store.set("authentication", 90)
        assert store.seed_defaults() is False
        assert store.get("authentication") == 90
    finally:
        db.close()


def test_validate_policy_errors_and_warnings():
    validation = RetentionPolicyStore.validate_policy(
        {
            "authentication": 0,
            "model_created": "thirty",
            "business_action": 4000,
            "financial_transaction": 365,
            "security_event": 30,
        }
    )

    assert validation.valid is False
    assert len(validation.errors) == 2
    assert any("authentication" in error for error in validation.errors)
    assert any("model_created" in error for error in validation.errors)
    assert any("business_action" in warning for warning in validation.warnings)
    assert any("Financial transaction" in warning for warning in validation.warnings)
    assert any("Security event" in warning for warning in validation.warnings)


def test_validate_default_policy_is_clean():
    validation = RetentionPolicyStore.validate_policy(DEFAULT_RETENTION_POLICY)
    assert validation.valid is True
    assert validation.errors == []
    assert validation.warnings == []


def test_archive_threshold_is_clamped():
    policy = RetentionPolicy(policies={"long": 365, "short": 45, "tiny": 10})
    assert policy.archive_days_for("long") == 335
    assert policy.archive_days_for("short") == 30
    assert policy.archive_days_for("tiny") == 10


def test_policy_rejects_days_below_one():
    with pytest.raises(ValueError):
        RetentionPolicy(policies={"authentication": 0})
