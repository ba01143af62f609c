"""Audit log routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from audit_retention.core.database import get_db
from audit_retention.models.audit import AuditLog
from audit_retention.schemas.audit import AuditLogResponse

router = APIRouter()


@router.get("", response_model=List[AuditLogResponse])
def list_audit_logs(
    limit: int = 100,
    event_type: Optional[str] = None,
    action: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List recent audit trail entries."""
    query = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        query = query.filter(AuditLog.event_type == event_type)
    if action:
        query = query.filter(AuditLog.action == action)
    logs = query.limit(max(1, min(limit, 500))).all()
    return [
        AuditLogResponse(
            id=log.id,
            user_id=log.user_id,
            event_type=log.event_type,
            action=log.action,
            auditable_type=log.auditable_type,
            auditable_id=log.auditable_id,
            old_values=log.old_values,
            new_values=log.new_values,
            url=log.url,
            ip_address=log.ip_address,
            user_agent=log.user_agent,
            additional_data=log.additional_data,
            created_at=log.created_at,
        )
        for log in logs
    ]
