# routers/technical_meters.py
from fastapi import APIRouter, Depends

from deps import get_current_active_user
from schemas import TechnicalMetersCreate, TechnicalMetersRead
from services.accumulation import add_technical_meters, set_technical_meters
from services.summary import technical_meters_totals

router = APIRouter(tags=["technical-meters"])


@router.post("/substations/{substation_id}/technical-meters", response_model=TechnicalMetersRead, status_code=201)
async def post_technical_meters(
    substation_id: int,
    payload: TechnicalMetersCreate,
    user=Depends(get_current_active_user),
):
    row = await add_technical_meters(substation_id, payload.quantity, payload.under_voltage)
    return TechnicalMetersRead.model_validate(row)


@router.put("/substations/{substation_id}/technical-meters", response_model=TechnicalMetersRead)
async def put_technical_meters(
    substation_id: int,
    payload: TechnicalMetersCreate,
    user=Depends(get_current_active_user),
):
    row, _ = await set_technical_meters(substation_id, payload.quantity, payload.under_voltage)
    return TechnicalMetersRead.model_validate(row)


@router.get("/technical-meters/totals", response_model=TechnicalMetersRead)
async def get_totals():
    return await technical_meters_totals()
