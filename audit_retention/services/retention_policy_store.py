"""Retention policy persistence backed by the audit_settings table."""

from __future__ import annotations

import json
import logging
from typing import Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_retention.config import settings
from audit_retention.core.exceptions import DatabaseError, ValidationError
from audit_retention.models.setting import AuditSetting
from audit_retention.schemas.retention import PolicyValidation, RetentionPolicy

logger = logging.getLogger(__name__)

RETENTION_POLICY_KEY = "retention_policy"

DEFAULT_RETENTION_POLICY: Dict[str, int] = {
    "authentication": 365,
    "authorization": 365,
    "model_created": 180,
    "model_updated": 180,
    "model_deleted": 365,
    "business_action": 1095,
    "financial_transaction": 2555,
    "system_event": 365,
    "security_event": 1095,
}

MAX_RECOMMENDED_DAYS = 3650
FINANCIAL_COMPLIANCE_DAYS = 2555
SECURITY_MINIMUM_DAYS = 90


class RetentionPolicyStore:
    """Read and write the per-event-type retention policy."""

    def __init__(self, db: Session, default_days: Optional[int] = None) -> None:
        self.db = db
        self.default_days = default_days or settings.AUDIT_DEFAULT_RETENTION_DAYS

    def _row(self) -> Optional[AuditSetting]:
        return (
            self.db.query(AuditSetting)
            .filter(AuditSetting.setting_key == RETENTION_POLICY_KEY)
            .first()
        )

    def _stored(self) -> Dict[str, int]:
        row = self._row()
        if row is None:
            return {}
        try:
            raw = json.loads(row.setting_value_json)
        except ValueError:
            logger.error("Stored retention policy is not valid JSON; using defaults")
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): int(v) for k, v in raw.items()}

    def all(self) -> Dict[str, int]:
        """Stored policy merged over the defaults."""
        policies = dict(DEFAULT_RETENTION_POLICY)
        policies.update(self._stored())
        return policies

    def get(self, event_type: str) -> int:
        return self.all().get(event_type, self.default_days)

    def load(self) -> RetentionPolicy:
        return RetentionPolicy(policies=self.all(), default_days=self.default_days)

    def set(self, event_type: str, days: int) -> None:
        if not event_type or not event_type.strip():
            raise ValidationError("Event type is required")
        if days < 1:
            raise ValidationError(
                "Retention days must be at least 1",
                details={"event_type": event_type, "days": days},
            )
        policies = self.all()
        policies[event_type.strip()] = days
        self._persist(policies)
        logger.info("Retention policy for %s set to %s days", event_type, days)

    def replace(self, policies: Mapping[str, int]) -> None:
        validation = self.validate_policy(policies)
        if not validation.valid:
            raise ValidationError("Invalid retention policy", details={"errors": validation.errors})
        self._persist({k: int(v) for k, v in policies.items()})
        logger.info("Retention policy replaced: %s", dict(policies))

    def seed_defaults(self) -> bool:
        """Store the default policy if nothing is stored yet."""
        if self._row() is not None:
            return False
        self._persist(dict(DEFAULT_RETENTION_POLICY))
        return True

    def _persist(self, policies: Dict[str, int]) -> None:
        row = self._row()
        payload = json.dumps(policies, sort_keys=True)
        if row is None:
            row = AuditSetting(setting_key=RETENTION_POLICY_KEY, setting_value_json=payload)
            self.db.add(row)
        else:
            row.setting_value_json = payload
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to save retention policy: %s", exc)
            raise DatabaseError("Failed to save retention policy") from exc

    @staticmethod
    def validate_policy(policy: Mapping[str, object]) -> PolicyValidation:
        errors = []
        warnings = []

        for event_type, days in policy.items():
            if isinstance(days, bool) or not isinstance(days, int) or days < 1:
                errors.append(f"Invalid retention period for {event_type}: must be at least 1 day")
                continue
            if days > MAX_RECOMMENDED_DAYS:
                warnings.append(f"Very long retention period for {event_type}: {days} days")
            if event_type == "financial_transaction" and days < FINANCIAL_COMPLIANCE_DAYS:
                warnings.append(
                    "Financial transaction retention is less than 7 years - may not meet compliance requirements"
                )
            if event_type == "security_event" and days < SECURITY_MINIMUM_DAYS:
                warnings.append(
                    "Security event retention is less than 90 days - consider longer retention for security analysis"
                )

        return PolicyValidation(valid=not errors, errors=errors, warnings=warnings)
