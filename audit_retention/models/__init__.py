"""Database models"""

from audit_retention.models.audit import AuditLog
from audit_retention.models.setting import AuditSetting

__all__ = ["AuditLog", "AuditSetting"]
