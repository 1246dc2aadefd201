# routers/reports.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Response

from models import BalanceGroup
from schemas import SubstationReport
from services.report_builder import XLSX_MEDIA_TYPE, build_report_xlsx
from services.summary import substation_report

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/substations", response_model=SubstationReport)
async def report_by_substation(
    response: Response,
    balance_group: BalanceGroup = Query(...),
    on: Optional[date] = Query(None, alias="date"),
):
    """
    Per-substation registered/unregistered counts as of the date, with meters
    installed during that month and year.
    """
    report = await substation_report(balance_group, on or date.today())
    response.headers["X-Total-Count"] = str(len(report.rows))
    return report


@router.get("/substations.xlsx")
async def report_by_substation_xlsx(
    balance_group: BalanceGroup = Query(...),
    on: Optional[date] = Query(None, alias="date"),
):
    report = await substation_report(balance_group, on or date.today())
    filename = f"substations_{report.date.isoformat()}.xlsx"
    return Response(
        content=build_report_xlsx(report),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
