"""
Excel report generator for sync runs.
Creates a workbook with a per-account summary and a log of every insert.
"""

from pathlib import Path
from typing import Any
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..models.transaction import InsertStatus, RunSummary, SyncResult
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
OK_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
PENDING_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
FAILED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

STATUS_FILLS = {
    InsertStatus.INSERTED: OK_FILL,
    InsertStatus.EXISTING: OK_FILL,
    InsertStatus.PENDING: PENDING_FILL,
    InsertStatus.FAILED: FAILED_FILL,
}

SUMMARY_HEADERS = [
    "Bank",
    "Account",
    "Ledger Asset",
    "Movements Fetched",
    "Inserted",
    "Already Existing",
    "Pending (Dry Run)",
    "Failed",
    "Balance Before",
    "Balance After",
    "Currency",
    "Balance Updated",
    "Status",
    "Error",
]

INSERT_LOG_HEADERS = [
    "Bank",
    "Account",
    "Movement ID",
    "Date",
    "Amount",
    "Currency",
    "Payee",
    "Status",
    "Ledger ID",
    "Reason",
]


class ExcelReportGenerator:
    """Generates Excel reports for sync runs."""

    def generate_report(self, summary: RunSummary, output_path: Path) -> Path:
        """
        Write the run summary to a workbook.

        Args:
            summary: Aggregated run results
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        self._create_summary_sheet(wb, summary)
        self._create_insert_log_sheet(wb, summary.results)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Could not write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(self, wb: Workbook, summary: RunSummary) -> None:
        """Create the summary sheet with run details and one row per account."""
        ws = wb.create_sheet("Summary")

        ws["A1"] = "Bank Sync Summary" + (" (Dry Run)" if summary.dry_run else "")
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        run_info = [
            ("Window Start:", summary.window.start.strftime("%Y-%m-%d %H:%M:%S %Z")),
            ("Window End:", summary.window.resolved_end.strftime("%Y-%m-%d %H:%M:%S %Z")),
            ("Started:", summary.started_at.strftime("%Y-%m-%d %H:%M:%S %Z")),
            ("Processing Time:", f"{summary.processing_time_seconds:.2f}s"),
            ("Movements Fetched:", summary.total_fetched),
            ("Transactions Inserted:", summary.total_inserted),
        ]
        for i, (label, value) in enumerate(run_info, start=3):
            ws[f"A{i}"] = label
            ws[f"A{i}"].font = Font(bold=True)
            ws[f"B{i}"] = value

        header_row = len(run_info) + 4
        self._write_header(ws, header_row, SUMMARY_HEADERS)

        for row_num, result in enumerate(summary.results, start=header_row + 1):
            row_data = self._summary_row(result)
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if col == SUMMARY_HEADERS.index("Status") + 1:
                    cell.fill = OK_FILL if result.succeeded else FAILED_FILL

        self._auto_fit_columns(ws)

    @staticmethod
    def _summary_row(result: SyncResult) -> list[Any]:
        balance = result.balance_after
        return [
            result.pair.bank_name,
            result.pair.account_name,
            result.pair.asset_id,
            result.movements_fetched,
            result.inserted_count,
            result.existing_count,
            result.pending_count,
            result.failed_count,
            float(result.balance_before) if result.balance_before is not None else "",
            float(balance.amount) if balance else "",
            balance.currency if balance else "",
            "Yes" if result.balance_updated else "No",
            "OK" if result.succeeded else "FAILED",
            result.error_message or "",
        ]

    def _create_insert_log_sheet(self, wb: Workbook, results: list[SyncResult]) -> None:
        """Create the sheet listing every attempted insert."""
        ws = wb.create_sheet("Insert Log")
        self._write_header(ws, 1, INSERT_LOG_HEADERS)

        row_num = 2
        for result in results:
            for outcome in result.outcomes:
                movement = outcome.movement
                row_data = [
                    result.pair.bank_name,
                    result.pair.account_name,
                    movement.id,
                    movement.posted_date,
                    float(movement.amount),
                    movement.currency,
                    movement.payee or movement.description,
                    outcome.status.value,
                    outcome.ledger_id or "",
                    outcome.reason or "",
                ]
                for col, value in enumerate(row_data, start=1):
                    cell = ws.cell(row=row_num, column=col, value=value)
                    cell.border = THIN_BORDER
                    cell.fill = STATUS_FILLS[outcome.status]
                row_num += 1

        ws.freeze_panes = "A2"
        self._auto_fit_columns(ws)

    @staticmethod
    def _write_header(ws: Worksheet, row: int, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        widths: dict[str, int] = {}
        for row in ws.iter_rows():
            for cell in row:
                if cell.value is None or not hasattr(cell, "column_letter"):
                    continue
                letter = cell.column_letter
                widths[letter] = max(widths.get(letter, 0), len(str(cell.value)))

        for letter, length in widths.items():
            ws.column_dimensions[letter].width = min(length + 2, 50)
