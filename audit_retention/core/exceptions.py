"""Custom exception classes for the retention service"""

from typing import Optional, Dict, Any


class AuditRetentionError(Exception):
    """Base exception for all retention and archival errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Validation Errors
class ValidationError(AuditRetentionError):
    """Validation error - rejected before any mutation"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# Resource Errors
class ResourceNotFoundError(AuditRetentionError):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ArchiveNotFoundError(ResourceNotFoundError):
    """Archive file does not exist"""
    def __init__(self, filename: str):
        super().__init__(f"Archive file '{filename}'")
        self.details = {"filename": filename}


# Archive Errors
class ArchiveError(AuditRetentionError):
    """Archive file could not be written or read"""
    def __init__(self, message: str = "Archive operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details)


class InvalidArchiveError(AuditRetentionError):
    """Archive file exists but its contents are not a valid archive"""
    def __init__(self, filename: str, reason: str):
        super().__init__(
            f"Invalid archive file format: {filename} ({reason})",
            status_code=422,
            details={"filename": filename},
        )


# System Errors
class DatabaseError(AuditRetentionError):
    """Database operation failed"""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)
