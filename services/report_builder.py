# services/report_builder.py
from __future__ import annotations
import io
from typing import List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from schemas import SubstationReport

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADERS: List[str] = [
    "ТП",
    "Зарегистрировано",
    "Не зарегистрировано",
    "Установлено за месяц",
    "Зарегистрировано за месяц",
    "Установлено за год",
    "Зарегистрировано за год",
]


def _format_sheet(ws) -> None:
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="E6E6FA", end_color="E6E6FA", fill_type="solid")
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")

    for column_cells in ws.columns:
        length = max(len(str(cell.value or "")) for cell in column_cells)
        ws.column_dimensions[get_column_letter(column_cells[0].column)].width = min(length + 2, 50)

    ws.freeze_panes = "A2"


def build_report_xlsx(report: SubstationReport) -> bytes:
    """One sheet, one row per substation, totals in the last row."""
    wb = Workbook()
    ws = wb.active
    ws.title = f"{report.balance_group.value} {report.date.isoformat()}"[:31]
    ws.append(HEADERS)

    for row in report.rows:
        ws.append([
            row.name,
            row.registered_count,
            row.unregistered_count,
            row.monthly_installation.total_installed,
            row.monthly_installation.registered_count,
            row.yearly_installation.total_installed,
            row.yearly_installation.registered_count,
        ])

    if report.rows:
        last = ws.max_row
        ws.append(["Итого"] + [
            f"=SUM({get_column_letter(col)}2:{get_column_letter(col)}{last})"
            for col in range(2, len(HEADERS) + 1)
        ])
        for cell in ws[ws.max_row]:
            cell.font = Font(bold=True)

    _format_sheet(ws)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
