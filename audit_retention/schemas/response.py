"""Generic API response schemas"""

from pydantic import BaseModel, Field
from typing import Optional, Any

from audit_retention.core.clock import utcnow


class ErrorResponse(BaseModel):
    """Generic API error response"""
    success: bool = False
    error: str
    details: Optional[Any] = None
    path: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())
