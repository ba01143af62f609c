"""Audit service for recording audit events."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from audit_retention.core.clock import utcnow
from audit_retention.models.audit import AuditLog


def _dump(values: Optional[Dict[str, Any]]) -> Optional[str]:
    if values is None:
        return None
    return json.dumps(values, ensure_ascii=False, default=str)


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        event_type: str,
        action: str,
        user_id: Optional[int] = None,
        auditable_type: Optional[str] = None,
        auditable_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        additional_data: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> AuditLog:
        event = AuditLog(
            user_id=user_id,
            event_type=event_type,
            action=action,
            auditable_type=auditable_type,
            auditable_id=auditable_id,
            old_values_json=_dump(old_values),
            new_values_json=_dump(new_values),
            url=url,
            ip_address=ip_address,
            user_agent=user_agent,
            additional_data_json=_dump(additional_data),
            created_at=created_at or utcnow(),
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event


audit_service = AuditService()
