"""API dependencies"""

from fastapi import Depends
from sqlalchemy.orm import Session

from audit_retention.core.database import get_db
from audit_retention.services.retention_service import RetentionService


def get_retention_service(db: Session = Depends(get_db)) -> RetentionService:
    """
    Build a retention service for the request's database session

    Args:
        db: Database session

    Returns:
        Retention service with the policy loaded once for this request
    """
    return RetentionService(db)
