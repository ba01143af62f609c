"""Audit log model."""

import json
from typing import Any, Dict, Optional

from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from audit_retention.core.clock import utcnow
from audit_retention.core.database import Base


def _load_json(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return {"raw": raw}


class AuditLog(Base):
    """Immutable audit facts; removed only by archival and cleanup."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    action = Column(String(64), nullable=False, index=True)
    auditable_type = Column(String(128), nullable=True)
    auditable_id = Column(String(64), nullable=True)
    old_values_json = Column(Text, nullable=True)
    new_values_json = Column(Text, nullable=True)
    url = Column(String(2048), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    additional_data_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_audit_logs_created_at", "created_at"),
        Index("idx_audit_logs_event_type_created_at", "event_type", "created_at"),
    )

    @property
    def old_values(self) -> Optional[Dict[str, Any]]:
        return _load_json(self.old_values_json)

    @property
    def new_values(self) -> Optional[Dict[str, Any]]:
        return _load_json(self.new_values_json)

    @property
    def additional_data(self) -> dict:
        return _load_json(self.additional_data_json) or {}

    def __repr__(self):
        return f"<AuditLog(id={self.id}, event_type='{self.event_type}', action='{self.action}')>"
