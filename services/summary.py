from __future__ import annotations
import asyncio
from datetime import date, timedelta
from typing import Dict, List

from models import (
    LEGAL_GROUPS,
    ODPU_GROUPS,
    BalanceGroup,
    MeterActionLog,
    TechnicalMeters,
    TransformerSubstation,
)
from schemas import (
    ActionLogRead,
    GroupInstallations,
    InstallationStats,
    MeterCount,
    PeriodInstallations,
    SubstationReport,
    SubstationReportRow,
    SubstationSummary,
    TechnicalMetersRead,
)
from services.cache import REPORT, SUBSTATION, summary_cache
from services.errors import NotFound
from services.meter_stores import MONTHLY, REGISTERED, UNREGISTERED, YEARLY, Amounts, CumulativeStore, Scope


async def _get_substation(substation_id: int) -> TransformerSubstation:
    obj = await TransformerSubstation.get_or_none(id=substation_id)
    if not obj:
        raise NotFound("Substation", substation_id)
    return obj


async def count_at_date(substation_id: int, balance_group: BalanceGroup, target_date: date) -> MeterCount:
    """Registered/unregistered totals as of `target_date`; missing records count as zero."""
    scope = Scope(substation_id, BalanceGroup(balance_group))
    registered, unregistered = await asyncio.gather(
        REGISTERED.value_at(scope, target_date),
        UNREGISTERED.value_at(scope, target_date),
    )
    return MeterCount(
        registered_count=registered["registered_meter_count"],
        unregistered_count=unregistered["unregistered_meter_count"],
    )


async def technical_meters_for(substation_id: int) -> TechnicalMetersRead:
    row = await TechnicalMeters.get_or_none(substation_id=substation_id)
    if not row:
        return TechnicalMetersRead()
    return TechnicalMetersRead.model_validate(row)


async def _load_summary(
    substation: TransformerSubstation,
    residential_date: date,
    legal_date: date,
    general_metering_date: date,
) -> SubstationSummary:
    dates: Dict[BalanceGroup, date] = {BalanceGroup.RESIDENTIAL: residential_date}
    dates.update({g: legal_date for g in LEGAL_GROUPS})
    dates.update({g: general_metering_date for g in ODPU_GROUPS})

    groups = list(dates)
    *counts, technical = await asyncio.gather(
        *(count_at_date(substation.id, g, dates[g]) for g in groups),
        technical_meters_for(substation.id),
    )
    return SubstationSummary(
        substation_id=substation.id,
        name=substation.name,
        residential_date=residential_date,
        legal_date=legal_date,
        general_metering_date=general_metering_date,
        groups=dict(zip(groups, counts)),
        technical_meters=technical,
    )


async def get_substation_summary(
    substation_id: int,
    residential_date: date,
    legal_date: date,
    general_metering_date: date,
) -> SubstationSummary:
    """
    Dashboard snapshot: point-in-time counts for all five balance groups
    (each group family with its own cut-off date) plus technical meter stats.
    """
    substation = await _get_substation(substation_id)
    key = (SUBSTATION, substation_id, "summary", residential_date, legal_date, general_metering_date)
    return await summary_cache.get_or_load(
        key, lambda: _load_summary(substation, residential_date, legal_date, general_metering_date)
    )


# ---------- month / year installations ----------

def _stats(values: Amounts) -> InstallationStats:
    return InstallationStats(
        total_installed=values.get("total_installed", 0),
        registered_count=values.get("registered_count", 0),
    )


async def _period(store: CumulativeStore, scope: Scope, target_date: date, prior_end: date, label: str) -> PeriodInstallations:
    current, prior = await asyncio.gather(
        store.value_at(scope, target_date),
        store.value_at(scope, prior_end),
    )
    return PeriodInstallations(
        period=label,
        cumulative=_stats(current),
        installed_in_period=_stats({k: current[k] - prior[k] for k in current}),
    )


def _month_before(target_date: date) -> date:
    return target_date.replace(day=1) - timedelta(days=1)


def _year_before(target_date: date) -> date:
    return date(target_date.year - 1, 12, 31)


async def installations_at(substation_id: int, balance_group: BalanceGroup, target_date: date) -> GroupInstallations:
    scope = Scope(substation_id, BalanceGroup(balance_group))
    monthly, yearly = await asyncio.gather(
        _period(MONTHLY, scope, target_date, _month_before(target_date), f"{target_date.year}-{target_date.month:02d}"),
        _period(YEARLY, scope, target_date, _year_before(target_date), str(target_date.year)),
    )
    return GroupInstallations(balance_group=scope.balance_group, date=target_date, monthly=monthly, yearly=yearly)


# ---------- cross-substation report ----------

async def _report_row(substation: TransformerSubstation, balance_group: BalanceGroup, target_date: date) -> SubstationReportRow:
    counts, installations = await asyncio.gather(
        count_at_date(substation.id, balance_group, target_date),
        installations_at(substation.id, balance_group, target_date),
    )
    return SubstationReportRow(
        id=substation.id,
        name=substation.name,
        registered_count=counts.registered_count,
        unregistered_count=counts.unregistered_count,
        yearly_installation=installations.yearly.installed_in_period,
        monthly_installation=installations.monthly.installed_in_period,
    )


async def _load_report(balance_group: BalanceGroup, target_date: date) -> SubstationReport:
    substations = await TransformerSubstation.all().order_by("name")
    rows = await asyncio.gather(*(_report_row(s, balance_group, target_date) for s in substations))
    return SubstationReport(balance_group=balance_group, date=target_date, rows=list(rows))


async def substation_report(balance_group: BalanceGroup, target_date: date) -> SubstationReport:
    """Every substation's counts for one balance group as of `target_date`."""
    group = BalanceGroup(balance_group)
    return await summary_cache.get_or_load(
        (REPORT, group, target_date), lambda: _load_report(group, target_date)
    )


# ---------- misc reads ----------

async def recent_action_logs(substation_id: int, limit: int = 8) -> List[ActionLogRead]:
    await _get_substation(substation_id)
    rows = await MeterActionLog.filter(substation_id=substation_id).order_by("-created_at", "-id").limit(limit)
    return [ActionLogRead.model_validate(r) for r in rows]


async def technical_meters_totals() -> TechnicalMetersRead:
    rows = await TechnicalMeters.all().values("quantity", "under_voltage")
    return TechnicalMetersRead(
        quantity=sum(r["quantity"] or 0 for r in rows),
        under_voltage=sum(r["under_voltage"] or 0 for r in rows),
    )
