"""Retention routes - policies, archival, cleanup and reporting"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse
from pathlib import Path
from typing import Any, Dict, Optional

from audit_retention.api.deps import get_retention_service
from audit_retention.schemas.retention import (
    ArchivePreview,
    ArchiveRequest,
    ArchiveResult,
    CleanupPreview,
    CleanupRequest,
    OptimizationReport,
    PolicyUpdateRequest,
    RestoreRequest,
    RestoreResult,
    RetentionStatus,
    StorageStatistics,
)
from audit_retention.services.audit_service import audit_service
from audit_retention.services.export_service import export_service
from audit_retention.services.retention_service import RetentionService

router = APIRouter()


def _record(
    service: RetentionService,
    request: Request,
    action: str,
    data: Dict[str, Any],
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> None:
    audit_service.log_event(
        service.db,
        event_type="system_event",
        action=action,
        auditable_type="audit_retention",
        old_values=old_values,
        new_values=new_values,
        url=str(request.url),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        additional_data=data,
    )


@router.get("/status", response_model=RetentionStatus)
def retention_status(service: RetentionService = Depends(get_retention_service)):
    """Per event type totals, expired and archive-ready counts"""
    return service.retention_status()


@router.get("/preview", response_model=CleanupPreview)
def cleanup_preview(service: RetentionService = Depends(get_retention_service)):
    """Records that automated cleanup would delete right now"""
    return service.preview_cleanup()


@router.get("/archive-preview", response_model=ArchivePreview)
def archive_preview(
    days: Optional[int] = Query(None, ge=1),
    service: RetentionService = Depends(get_retention_service),
):
    return service.preview_archival(days)


@router.get("/statistics", response_model=StorageStatistics)
def storage_statistics(service: RetentionService = Depends(get_retention_service)):
    return service.storage_statistics()


@router.get("/optimizations", response_model=OptimizationReport)
def optimizations(service: RetentionService = Depends(get_retention_service)):
    """Advisory policy recommendations; nothing is changed"""
    return service.optimize_retention_policies()


@router.post("/optimizations/apply")
def apply_optimizations(
    request: Request,
    service: RetentionService = Depends(get_retention_service),
):
    """Apply the currently recommended policies"""
    report = service.optimize_retention_policies()
    if not report.optimizations:
        return {"success": True, "applied": 0, "policies": service.policies()}

    previous = service.policies()
    policies = service.apply_optimized_policies(report.recommended_policies)
    _record(
        service,
        request,
        "retention_policies_optimized",
        {"changes": {opt.event_type: opt.recommended_days for opt in report.optimizations}},
        old_values=previous,
        new_values=policies,
    )
    return {"success": True, "applied": len(report.optimizations), "policies": policies}


@router.get("/policies")
def get_policies(service: RetentionService = Depends(get_retention_service)):
    return {"policies": service.policies(), "default_days": service.policy.default_days}


@router.put("/policies/{event_type}")
def update_policy(
    event_type: str,
    payload: PolicyUpdateRequest,
    request: Request,
    service: RetentionService = Depends(get_retention_service),
):
    """
    Set the retention period for one event type

    Args:
        event_type: Event type to update
        payload: New retention period in days

    Returns:
        Validation warnings and the updated policy map
    """
    previous_days = service.policies().get(event_type)
    validation = service.set_policy(event_type, payload.days)
    _record(
        service,
        request,
        "retention_policy_updated",
        {"event_type": event_type, "days": payload.days},
        old_values={"days": previous_days},
        new_values={"days": payload.days},
    )
    return {
        "success": True,
        "warnings": validation.warnings,
        "policies": service.policies(),
    }


@router.get("/archives")
def list_archives(service: RetentionService = Depends(get_retention_service)):
    files = service.list_archive_files()
    return {
        "files": [info.model_dump(mode="json") for info in files],
        "total_size_mb": service.writer.total_size_mb(files),
    }


@router.post("/archive", response_model=ArchiveResult)
def run_archive(
    payload: ArchiveRequest,
    request: Request,
    service: RetentionService = Depends(get_retention_service),
):
    """Archive old records for one event type, or for all of them"""
    if payload.event_type:
        result = service.archive_by_event_type(payload.event_type, payload.days)
    else:
        result = service.archive_old_logs(payload.days)
    _record(
        service,
        request,
        "audit_logs_archived",
        {
            "event_type": payload.event_type,
            "days": payload.days,
            "total_archived": result.total_archived,
            "error_count": len(result.errors),
        },
    )
    return result


@router.post("/archives/restore", response_model=RestoreResult)
def restore_archive(
    payload: RestoreRequest,
    request: Request,
    service: RetentionService = Depends(get_retention_service),
):
    result = service.restore_from_archive(payload.filename)
    _record(
        service,
        request,
        "audit_logs_restored",
        {"filename": payload.filename, "total_restored": result.total_restored},
    )
    return result


@router.post("/cleanup")
def run_cleanup(
    payload: CleanupRequest,
    request: Request,
    service: RetentionService = Depends(get_retention_service),
):
    """
    Delete expired records

    With ``archive_first`` the matching records are archived before deletion,
    and deletion is skipped if archival reported any error.
    """
    archive: Optional[ArchiveResult] = None
    if payload.archive_first:
        archive, cleanup = service.archive_then_cleanup(payload.event_type, payload.days)
        if cleanup is None:
            return {"success": False, "archive": archive, "cleanup": None}
    else:
        cleanup = service.cleanup_expired(payload.event_type, payload.days)

    _record(
        service,
        request,
        "audit_logs_cleaned_up",
        {
            "event_type": payload.event_type,
            "days": payload.days,
            "archive_first": payload.archive_first,
            "total_deleted": cleanup.total_deleted,
        },
    )
    return {"success": not cleanup.errors, "archive": archive, "cleanup": cleanup}


@router.get("/report")
def export_report(service: RetentionService = Depends(get_retention_service)):
    """Download the Excel retention report"""
    filepath = export_service.generate_retention_report(service)
    return FileResponse(
        path=filepath,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=Path(filepath).name,
    )
