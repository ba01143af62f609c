"""Keyed audit settings (retention policy lives here)."""

from sqlalchemy import Column, Integer, String, DateTime, Text

from audit_retention.core.clock import utcnow
from audit_retention.core.database import Base


class AuditSetting(Base):
    """JSON-valued setting addressed by a unique key."""

    __tablename__ = "audit_settings"

    id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String(100), unique=True, nullable=False, index=True)
    setting_value_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<AuditSetting(key='{self.setting_key}')>"
