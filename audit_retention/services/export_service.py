"""Excel export service - retention reports"""

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill
from openpyxl.worksheet.worksheet import Worksheet
from pathlib import Path
from typing import List, Optional

from audit_retention.config import settings
from audit_retention.core.clock import utcnow
from audit_retention.schemas.retention import ArchiveFileInfo, RetentionStatus
from audit_retention.services.archive_writer import ArchiveWriter
from audit_retention.services.retention_service import RetentionService
import logging

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF")


class ExportService:
    """Service for generating retention reports"""

    @staticmethod
    def generate_retention_report(service: RetentionService, exports_dir: Optional[str] = None) -> str:
        """
        Generate a retention report workbook

        Args:
            service: Retention service bound to an open session
            exports_dir: Override for the exports directory

        Returns:
            Path to generated Excel file
        """
        wb = Workbook()
        wb.remove(wb.active)

        status = service.retention_status()
        archives = service.list_archive_files()

        ExportService._create_status_sheet(wb, status)
        ExportService._create_policies_sheet(wb, service.policies(), status)
        ExportService._create_archives_sheet(wb, archives)

        target_dir = Path(exports_dir or settings.get_exports_dir()) / "retention"
        target_dir.mkdir(parents=True, exist_ok=True)

        filename = f"retention_{utcnow().strftime('%Y%m%d_%H%M%S')}.xlsx"
        filepath = target_dir / filename

        wb.save(filepath)
        logger.info(f"Generated retention report: {filepath}")

        return str(filepath)

    @staticmethod
    def _style_header(ws: Worksheet, row: int = 1):
        for cell in ws[row]:
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.alignment = Alignment(horizontal="center", vertical="center")

    @staticmethod
    def _autosize(ws: Worksheet):
        for column in ws.columns:
            column_letter = column[0].column_letter
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

    @staticmethod
    def _create_status_sheet(wb: Workbook, status: RetentionStatus):
        """Create retention status sheet"""
        ws = wb.create_sheet("Retention Status")
        ws.append([
            "Event Type", "Total Records", "Expired", "Archive Ready",
            "Retention Days", "Cutoff Date", "Archive Date",
        ])
        ExportService._style_header(ws)

        for event_type, info in status.by_event_type.items():
            ws.append([
                event_type,
                info.total_records,
                info.expired_records,
                info.archive_ready,
                info.retention_days,
                info.cutoff_date.strftime("%Y-%m-%d %H:%M:%S"),
                info.archive_date.strftime("%Y-%m-%d %H:%M:%S"),
            ])

        ws.append([])
        ws.append(["Total Records", status.total_records])
        ws.append(["Estimated Storage (MB)", status.estimated_storage_mb])
        if status.recommendations:
            ws.append([])
            ws.append(["Recommendations"])
            ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
            for recommendation in status.recommendations:
                ws.append([recommendation])

        ExportService._autosize(ws)

    @staticmethod
    def _create_policies_sheet(wb: Workbook, policies: dict, status: RetentionStatus):
        """Create policies sheet"""
        ws = wb.create_sheet("Policies")
        ws.append(["Event Type", "Retention Days", "Current Records"])
        ExportService._style_header(ws)

        for event_type, days in sorted(policies.items()):
            info = status.by_event_type.get(event_type)
            ws.append([event_type, days, info.total_records if info else 0])

        ExportService._autosize(ws)

    @staticmethod
    def _create_archives_sheet(wb: Workbook, archives: List[ArchiveFileInfo]):
        """Create archive files sheet"""
        ws = wb.create_sheet("Archives")
        ws.append(["Filename", "Event Type", "Period", "Size (MB)", "Modified"])
        ExportService._style_header(ws)

        for info in archives:
            ws.append([
                info.filename,
                info.event_type,
                info.period,
                info.size_mb,
                info.modified_at.strftime("%Y-%m-%d %H:%M:%S"),
            ])

        ws.append([])
        ws.append(["Total Size (MB)", ArchiveWriter.total_size_mb(archives)])
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True)

        ExportService._autosize(ws)


# Singleton instance
export_service = ExportService()
