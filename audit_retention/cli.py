"""
Audit Retention CLI
===================

Operator commands for the audit log retention pipeline.

Commands:
    audit-retention archive     - Archive old audit logs, list or restore archives
    audit-retention cleanup     - Delete expired audit logs, optionally archiving first
    audit-retention retention   - Inspect, optimize and update retention policies
    audit-retention report      - Write the Excel retention report

Example:
    $ audit-retention archive --preview
    $ audit-retention archive --event-type security_event --force
    $ audit-retention retention --set-policy authentication:180
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from audit_retention.config import settings
from audit_retention.core.database import SessionLocal
from audit_retention.core.exceptions import AuditRetentionError, ValidationError
from audit_retention.core.logging import configure_logging
from audit_retention.schemas.retention import ArchiveResult
from audit_retention.services.archive_writer import ArchiveWriter
from audit_retention.services.export_service import export_service
from audit_retention.services.retention_service import RetentionService

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="audit-retention",
    help="Audit log retention, archival and cleanup",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main():
    """Audit log retention, archival and cleanup."""
    configure_logging(stream=False)


@contextmanager
def open_service() -> Iterator[RetentionService]:
    """Open a session and a retention service bound to it."""
    db = SessionLocal()
    try:
        yield RetentionService(db, archive_dir=settings.get_archive_dir())
    finally:
        db.close()


def format_retention_period(days: int) -> str:
    """Human readable retention period, e.g. 400 -> '1.1 years'."""
    for threshold, length, unit in ((365, 365, "year"), (30, 30, "month"), (7, 7, "week")):
        if days >= threshold:
            amount = round(days / length, 1)
            return f"1 {unit}" if amount == 1 else f"{amount:g} {unit}s"
    return "1 day" if days == 1 else f"{days} days"


def _error(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")


def _print_errors(title: str, errors: List[str]) -> None:
    console.print(f"[red]{title}[/red]")
    for error in errors:
        console.print(f"  - {escape(error)}")


def _confirm(prompt: str, force: bool) -> bool:
    if force or typer.confirm(prompt):
        return True
    console.print("[yellow]Operation cancelled.[/yellow]")
    return False


def _run(action) -> int:
    """Run a command body and map failures to exit code 1."""
    try:
        with open_service() as service:
            return action(service)
    except AuditRetentionError as exc:
        _error(exc.message)
    except SQLAlchemyError as exc:
        logger.exception("Database error in CLI command")
        _error(f"Database error: {exc}")
    return 1


def _print_archive_result(result: ArchiveResult) -> int:
    if result.errors:
        _print_errors("Archive completed with errors:", result.errors)

    console.print(f"[green]✓[/green] Archived {result.total_archived:,} audit log entries")
    if result.archived_by_type:
        table = Table(title="Archived by event type")
        table.add_column("Event Type", style="cyan")
        table.add_column("Records", justify="right")
        for event_type, count in result.archived_by_type.items():
            table.add_row(event_type, f"{count:,}")
        console.print(table)
    if result.archive_files:
        console.print("\n[bold]Archive files:[/bold]")
        for filename in result.archive_files:
            console.print(f"  - {filename}")
    return 1 if result.errors else 0


def _archive(service: RetentionService, event_type: Optional[str], days: Optional[int], force: bool) -> Optional[ArchiveResult]:
    if event_type:
        prompt = f"Archive old {event_type} audit logs?"
    elif days:
        prompt = f"Archive ALL audit logs older than {days} days?"
    else:
        prompt = "Archive audit logs for all event types using retention policies?"
    if not _confirm(prompt, force):
        return None
    if event_type:
        return service.archive_by_event_type(event_type, days)
    return service.archive_old_logs(days)


def _require_days(days: Optional[int]) -> None:
    if days is not None and days < 1:
        raise ValidationError("--days must be at least 1")


# archive


@app.command()
def archive(
    event_type: Optional[str] = typer.Option(None, "--event-type", help="Archive only this event type"),
    days: Optional[int] = typer.Option(None, "--days", help="Archive records older than this many days"),
    list_files: bool = typer.Option(False, "--list", help="List archive files"),
    restore: Optional[str] = typer.Option(None, "--restore", help="Restore records from an archive file"),
    preview: bool = typer.Option(False, "--preview", help="Show what would be archived"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompts"),
):
    """
    Archive old audit logs to CSV files, list archives, or restore one.

    Example:
        audit-retention archive --days 90 --force
    """
    if sum([list_files, restore is not None, preview]) > 1:
        _error("--list, --restore and --preview cannot be combined")
        raise typer.Exit(1)

    def action(service: RetentionService) -> int:
        _require_days(days)
        if list_files:
            return _list_archives(service)
        if restore is not None:
            return _restore(service, restore, force)
        if preview:
            return _archive_preview(service, days)

        result = _archive(service, event_type, days, force)
        if result is None:
            return 1
        return _print_archive_result(result)

    raise typer.Exit(_run(action))


def _list_archives(service: RetentionService) -> int:
    files = service.list_archive_files()
    if not files:
        console.print("No archive files found.")
        return 0

    table = Table(title="Archive Files")
    table.add_column("Filename", style="cyan")
    table.add_column("Event Type")
    table.add_column("Period")
    table.add_column("Size (MB)", justify="right")
    table.add_column("Modified")
    for info in files:
        table.add_row(
            info.filename,
            info.event_type,
            info.period,
            f"{info.size_mb:.2f}",
            info.modified_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    console.print(f"Total archive size: {ArchiveWriter.total_size_mb(files)} MB")
    return 0


def _restore(service: RetentionService, filename: str, force: bool) -> int:
    if not _confirm(f"Restore audit logs from {filename}? This may create duplicate entries.", force):
        return 1

    result = service.restore_from_archive(filename)
    if result.errors:
        _print_errors("Restore completed with errors:", result.errors)
        return 1

    console.print(f"[green]✓[/green] Restored {result.total_restored:,} audit log entries from {filename}")
    for event_type, count in result.restored_by_type.items():
        console.print(f"  - {event_type}: {count:,} entries")
    return 0


def _archive_preview(service: RetentionService, days: Optional[int]) -> int:
    preview = service.preview_archival(days)
    stats = service.storage_statistics()

    console.print(f"Total records: {stats.total_records:,}")
    console.print(f"Estimated storage: {stats.estimated_storage_mb} MB")

    table = Table(title="Archive Preview")
    table.add_column("Event Type", style="cyan")
    table.add_column("To Archive", justify="right")
    table.add_column("Archive After (days)", justify="right")
    table.add_column("Cutoff")
    for event_type, info in preview.by_event_type.items():
        table.add_row(
            event_type,
            f"{info.count:,}",
            str(info.archive_days),
            info.archive_cutoff.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    console.print(f"Total to archive: {preview.total_to_archive:,}")
    console.print("\n[dim]Run without --preview to perform the archival.[/dim]")
    return 0


# cleanup


@app.command()
def cleanup(
    preview: bool = typer.Option(False, "--preview", help="Show what would be deleted"),
    event_type: Optional[str] = typer.Option(None, "--event-type", help="Clean up only this event type"),
    days: Optional[int] = typer.Option(None, "--days", help="Override retention with this many days"),
    archive_first: bool = typer.Option(False, "--archive", help="Archive matching records before deleting"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompts"),
):
    """
    Delete audit logs past their retention period.

    Example:
        audit-retention cleanup --archive --force
    """
    if preview and archive_first:
        _error("--preview and --archive cannot be combined")
        raise typer.Exit(1)

    def action(service: RetentionService) -> int:
        _require_days(days)
        if preview:
            return _cleanup_preview(service)

        if event_type:
            retention_days = days or service.policy.days_for(event_type)
            prompt = f"Delete {event_type} audit logs older than {retention_days} days?"
        elif days:
            prompt = f"Delete ALL audit logs older than {days} days?"
        else:
            prompt = "Delete audit logs past their retention period for all event types?"
        if archive_first:
            prompt = prompt.replace("Delete", "Archive and delete", 1)
        else:
            prompt += " This cannot be undone."
        if not _confirm(prompt, force):
            return 1

        if archive_first:
            archived, result = service.archive_then_cleanup(event_type, days)
            _print_archive_result(archived)
            if result is None:
                _error("Archival reported errors; cleanup aborted")
                return 1
        else:
            result = service.cleanup_expired(event_type, days)

        if event_type:
            console.print(f"[green]✓[/green] Deleted {result.total_deleted:,} {event_type} audit log entries")
            return 0
        if days:
            console.print(f"[green]✓[/green] Deleted {result.total_deleted:,} audit log entries older than {days} days")
            return 0

        if result.errors:
            _print_errors("Cleanup completed with errors:", result.errors)
        console.print(f"[green]✓[/green] Deleted {result.total_deleted:,} audit log entries")
        for name, count in result.deleted_by_type.items():
            if count:
                console.print(f"  - {name}: {count:,}")
        return 1 if result.errors else 0

    raise typer.Exit(_run(action))


def _cleanup_preview(service: RetentionService) -> int:
    preview = service.preview_cleanup()

    table = Table(title="Cleanup Preview")
    table.add_column("Event Type", style="cyan")
    table.add_column("To Delete", justify="right")
    table.add_column("Retention", justify="right")
    table.add_column("Cutoff")
    table.add_column("Oldest Record")
    for event_type, info in preview.by_event_type.items():
        table.add_row(
            event_type,
            f"{info.count:,}",
            f"{info.retention_days} days",
            info.cutoff_date.strftime("%Y-%m-%d %H:%M:%S"),
            info.oldest_record.strftime("%Y-%m-%d %H:%M:%S") if info.oldest_record else "-",
        )
    console.print(table)
    console.print(f"Total to delete: {preview.total_to_delete:,}")
    return 0


# retention


@app.command()
def retention(
    status: bool = typer.Option(False, "--status", help="Show retention status"),
    optimize: bool = typer.Option(False, "--optimize", help="Show policy optimization recommendations"),
    apply_optimizations: bool = typer.Option(False, "--apply-optimizations", help="Apply recommended policies"),
    set_policy: Optional[str] = typer.Option(None, "--set-policy", help="Set a policy as event_type:days"),
    show_policies: bool = typer.Option(False, "--show-policies", help="Show current retention policies"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompts"),
):
    """
    Inspect and manage retention policies. Shows status by default.

    Example:
        audit-retention retention --set-policy security_event:400 --force
    """
    if set_policy is not None:
        event_type, sep, days_text = set_policy.partition(":")
        if not sep or not event_type.strip():
            _error("Invalid policy format. Use: event_type:days (e.g., authentication:180)")
            raise typer.Exit(1)
        try:
            days = int(days_text)
        except ValueError:
            days = 0
        if days < 1:
            _error("Retention days must be at least 1")
            raise typer.Exit(1)

    def action(service: RetentionService) -> int:
        if show_policies:
            return _show_policies(service)
        if optimize:
            return _show_optimizations(service)
        if apply_optimizations:
            return _apply_optimizations(service, force)
        if set_policy is not None:
            return _set_policy(service, event_type.strip(), days, force)
        return _show_status(service)

    raise typer.Exit(_run(action))


def _show_policies(service: RetentionService) -> int:
    table = Table(title="Current Retention Policies")
    table.add_column("Event Type", style="cyan")
    table.add_column("Retention (Days)", justify="right")
    table.add_column("Retention Period")
    for event_type, days in service.policies().items():
        table.add_row(event_type, str(days), format_retention_period(days))
    console.print(table)
    return 0


def _show_status(service: RetentionService) -> int:
    status = service.retention_status()

    console.print(f"Total Records: {status.total_records:,}")
    console.print(f"Storage Usage: {status.estimated_storage_mb} MB")
    if status.cleanup_needed:
        console.print("[yellow]Cleanup needed - some logs have exceeded retention periods[/yellow]")
    if status.archive_needed:
        console.print("[yellow]Archive recommended - some logs are ready for archival[/yellow]")
    if not status.cleanup_needed and not status.archive_needed:
        console.print("[green]✓[/green] All logs are within retention policies")

    table = Table(title="Retention Status")
    table.add_column("Event Type", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Expired", justify="right")
    table.add_column("Archive Ready", justify="right")
    table.add_column("Retention")
    table.add_column("Status")
    for event_type, info in status.by_event_type.items():
        if info.expired_records:
            state = "[red]expired[/red]"
        elif info.archive_ready:
            state = "[yellow]archive[/yellow]"
        else:
            state = "[green]ok[/green]"
        table.add_row(
            event_type,
            f"{info.total_records:,}",
            f"{info.expired_records:,}",
            f"{info.archive_ready:,}",
            f"{info.retention_days} days",
            state,
        )
    console.print(table)

    if status.recommendations:
        console.print("\n[bold]Recommendations:[/bold]")
        for recommendation in status.recommendations:
            console.print(f"  • {recommendation}")
    return 0


def _show_optimizations(service: RetentionService) -> int:
    report = service.optimize_retention_policies()
    if not report.optimizations:
        console.print("[green]✓[/green] Current retention policies are already optimized")
        return 0

    console.print(f"Potential storage savings: {report.estimated_savings_mb} MB")
    table = Table(title="Retention Policy Optimization")
    table.add_column("Event Type", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Recommended", justify="right")
    table.add_column("Change")
    table.add_column("Records", justify="right")
    table.add_column("Reason")
    for opt in report.optimizations:
        arrow = f"-{opt.days_difference}d" if opt.change == "reduce" else f"+{opt.days_difference}d"
        table.add_row(
            opt.event_type,
            f"{opt.current_days}d",
            f"{opt.recommended_days}d",
            arrow,
            f"{opt.record_count:,}",
            opt.reason,
        )
    console.print(table)
    console.print("\n[dim]Run with --apply-optimizations to apply these recommendations.[/dim]")
    return 0


def _apply_optimizations(service: RetentionService, force: bool) -> int:
    report = service.optimize_retention_policies()
    if not report.optimizations:
        console.print("No optimizations needed - current policies are already optimal")
        return 0

    console.print(f"This will update retention policies for {len(report.optimizations)} event types.")
    console.print(f"Estimated storage savings: {report.estimated_savings_mb} MB")
    if not _confirm("Apply these optimizations?", force):
        return 1

    service.apply_optimized_policies(report.recommended_policies)
    console.print("[green]✓[/green] Retention policies optimized")
    for opt in report.optimizations:
        verb = "reduced" if opt.change == "reduce" else "increased"
        console.print(f"  • {opt.event_type}: {verb} from {opt.current_days} to {opt.recommended_days} days")
    return 0


def _set_policy(service: RetentionService, event_type: str, days: int, force: bool) -> int:
    console.print(f"Setting retention policy for {event_type}: {days} days ({format_retention_period(days)})")
    if not _confirm(f"Update retention policy for {event_type} to {days} days?", force):
        return 1

    try:
        validation = service.set_policy(event_type, days)
    except ValidationError as exc:
        _print_errors("Invalid retention policy:", exc.details.get("errors") or [exc.message])
        return 1

    if validation.warnings:
        console.print("[yellow]Policy warnings:[/yellow]")
        for warning in validation.warnings:
            console.print(f"  - {escape(warning)}")
    console.print(f"[green]✓[/green] Retention policy updated for {event_type}")
    return 0


# report


@app.command()
def report(
    output_dir: Optional[str] = typer.Option(None, "--output-dir", help="Directory for the report file"),
):
    """Write the Excel retention report."""

    def action(service: RetentionService) -> int:
        path = export_service.generate_retention_report(service, exports_dir=output_dir)
        console.print(f"[green]✓[/green] Retention report written to {path}")
        return 0

    raise typer.Exit(_run(action))


if __name__ == "__main__":
    app()
