"""Audit log response schemas."""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: int
    user_id: Optional[int]
    event_type: str
    action: str
    auditable_type: Optional[str]
    auditable_id: Optional[str]
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    url: Optional[str] = None
    ip_address: Optional[str]
    user_agent: Optional[str] = None
    additional_data: Dict[str, Any] = {}
    created_at: Optional[datetime]
