# routers/billing_meters.py
from datetime import date

from fastapi import APIRouter, Depends

from deps import get_current_active_user
from schemas import BillingMetersCorrection, BillingMetersCreate, RegistrationCreate
from services.accumulation import (
    CorrectionEvent,
    InstallationEvent,
    RegistrationEvent,
    correct_billing_meters,
    record_installation,
    record_registration,
)
from services.validation import ensure_not_future

router = APIRouter(prefix="/substations/{substation_id}", tags=["billing-meters"])


@router.post("/billing-meters", status_code=201)
async def add_billing_meters(
    substation_id: int,
    payload: BillingMetersCreate,
    user=Depends(get_current_active_user),
):
    ensure_not_future(payload.date)
    applied = await record_installation(
        InstallationEvent(
            substation_id=substation_id,
            balance_group=payload.balance_group,
            date=payload.date,
            total_installed=payload.total_installed,
            registered_count=payload.registered_count,
        )
    )
    return {"status": "ok", "applied": applied}


@router.put("/billing-meters")
async def correct_meters(
    substation_id: int,
    payload: BillingMetersCorrection,
    user=Depends(get_current_active_user),
):
    """Set the running totals of a group as of the date (today by default)."""
    on = payload.date or date.today()
    ensure_not_future(on)
    changed = await correct_billing_meters(
        CorrectionEvent(
            substation_id=substation_id,
            balance_group=payload.balance_group,
            date=on,
            total_installed=payload.total_installed,
            registered_count=payload.registered_count,
        )
    )
    return {"status": "ok" if changed else "unchanged", "changed": changed}


@router.post("/registrations", status_code=201)
async def add_registrations(
    substation_id: int,
    payload: RegistrationCreate,
    user=Depends(get_current_active_user),
):
    ensure_not_future(payload.date)
    applied = await record_registration(
        RegistrationEvent(
            substation_id=substation_id,
            balance_group=payload.balance_group,
            date=payload.date,
            registered_count=payload.registered_count,
        )
    )
    return {"status": "ok", "applied": applied}
