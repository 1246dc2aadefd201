# routers/substations.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from api_utils import RAListParams, parse_sort, paginate_and_respond, respond_item
from deps import get_current_active_user, get_current_admin_user
from models import BalanceGroup
from schemas import (
    ActionLogRead,
    GroupInstallations,
    SubstationCreate,
    SubstationRead,
    SubstationSummary,
    SubstationUpdate,
)
from services import substations, summary

router = APIRouter(prefix="/substations", tags=["substations"])

ALLOWED_SORTS = {"id", "name", "created_at", "updated_at"}


def _filtered(params: RAListParams):
    text = params.filters.get("q") or params.filters.get("name")
    ids = params.filters.get("id")
    if ids is not None:
        # React-Admin getMany sends a list of ids
        ids = [int(i) for i in (ids if isinstance(ids, list) else [ids]) if str(i).isdigit()]
    return substations.substations_matching(str(text) if text else None, ids)


@router.get("", response_model=list[SubstationRead])
async def list_substations(params: RAListParams = Depends()):
    order = parse_sort(params.sort, ALLOWED_SORTS)
    return await paginate_and_respond(
        _filtered(params), "substations", params.skip, params.limit, order, lambda m: SubstationRead.model_validate(m)
    )


@router.get("/{substation_id}", response_model=SubstationRead)
async def get_substation(substation_id: int):
    obj = await substations.get_substation(substation_id)
    return respond_item(obj, lambda m: SubstationRead.model_validate(m))


@router.post("", response_model=SubstationRead, status_code=201)
async def create_substation(payload: SubstationCreate, user=Depends(get_current_active_user)):
    obj = await substations.create_substation(payload.name)
    return respond_item(obj, lambda m: SubstationRead.model_validate(m), status_code=201)


@router.put("/{substation_id}", response_model=SubstationRead)
async def rename_substation(substation_id: int, payload: SubstationUpdate, user=Depends(get_current_active_user)):
    obj = await substations.rename_substation(substation_id, payload.name)
    return respond_item(obj, lambda m: SubstationRead.model_validate(m))


@router.delete("/{substation_id}", status_code=204)
async def delete_substation(substation_id: int, user=Depends(get_current_admin_user)):
    await substations.delete_substation(substation_id)
    return Response(status_code=204)


@router.get("/{substation_id}/summary", response_model=SubstationSummary)
async def get_summary(
    substation_id: int,
    residential_date: Optional[date] = Query(None),
    legal_date: Optional[date] = Query(None),
    general_metering_date: Optional[date] = Query(None),
):
    """Dashboard counts; each cut-off date defaults to today."""
    today = date.today()
    return await summary.get_substation_summary(
        substation_id,
        residential_date=residential_date or today,
        legal_date=legal_date or today,
        general_metering_date=general_metering_date or today,
    )


@router.get("/{substation_id}/installations", response_model=GroupInstallations)
async def get_installations(
    substation_id: int,
    balance_group: BalanceGroup = Query(...),
    on: Optional[date] = Query(None, alias="date"),
):
    await substations.get_substation(substation_id)
    return await summary.installations_at(substation_id, balance_group, on or date.today())


@router.get("/{substation_id}/logs", response_model=List[ActionLogRead])
async def get_logs(substation_id: int, limit: int = Query(8, ge=1, le=100)):
    return await summary.recent_action_logs(substation_id, limit=limit)
