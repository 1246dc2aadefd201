from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, Tuple

from tortoise.backends.base.client import BaseDBAsyncClient
from tortoise.transactions import in_transaction

from models import BalanceGroup, MeterActionLog, TechnicalMeters, TransformerSubstation
from services.cache import summary_cache
from services.errors import NotFound, RegisteredExceedsTotal
from services.meter_stores import (
    INSTALLATION_STORES,
    REGISTERED,
    UNREGISTERED,
    Amounts,
    CumulativeStore,
    Deltas,
    Scope,
)
from services.validation import (
    validate_installation,
    validate_registration,
    validate_technical_meters,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallationEvent:
    substation_id: int
    balance_group: BalanceGroup
    date: date
    total_installed: int
    registered_count: int

    @property
    def scope(self) -> Scope:
        return Scope(self.substation_id, BalanceGroup(self.balance_group))

    @property
    def deltas(self) -> Deltas:
        return Deltas(self.total_installed, self.registered_count)


@dataclass(frozen=True)
class RegistrationEvent:
    """Already installed meters entered into the billing system."""
    substation_id: int
    balance_group: BalanceGroup
    date: date
    registered_count: int

    @property
    def scope(self) -> Scope:
        return Scope(self.substation_id, BalanceGroup(self.balance_group))

    @property
    def deltas(self) -> Deltas:
        # moves meters from unregistered to registered, the installed total stays
        return Deltas(total_installed=0, registered_count=self.registered_count)


@dataclass(frozen=True)
class CorrectionEvent:
    """Corrected cumulative counts for a group as of `date`."""
    substation_id: int
    balance_group: BalanceGroup
    date: date
    total_installed: int
    registered_count: int

    @property
    def scope(self) -> Scope:
        return Scope(self.substation_id, BalanceGroup(self.balance_group))


def _log_time(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%d.%m.%Y, %H:%M:%S")


def _group(event) -> str:
    return BalanceGroup(event.balance_group).value


# ---------- generic find-or-create-with-baseline, then propagate ----------

async def accumulate(
    conn: BaseDBAsyncClient,
    store: CumulativeStore,
    scope: Scope,
    on: date,
    amounts: Amounts,
) -> bool:
    """
    Apply one event to one store inside the caller's transaction:
      1. derive the store key for `on`
      2. look up the record for that exact key
      3. found -> add the amounts
      4. missing -> baseline (nearest earlier record, or zero) + amounts
      5. push the amounts into every later record
    Returns False when the store skips zero events.
    """
    if store.skip_when_zero and not any(amounts.values()):
        return False

    key = store.derive_key(on)
    row = await store.find_by_key(conn, scope, key)
    if row is not None:
        await store.increment(conn, row, amounts, on)
    else:
        baseline = await store.baseline_before(conn, scope, key)
        await store.create_from(conn, scope, key, baseline, amounts, on)

    propagated = await store.increment_future_after(conn, scope, key, amounts)
    if propagated:
        logger.debug(f"{store.table}: propagated {amounts} to {propagated} later records")
    return True


async def _refuse_decreases(
    conn: BaseDBAsyncClient,
    scope: Scope,
    on: date,
    deltas: Deltas,
    stores: Iterable[CumulativeStore],
) -> None:
    """
    Registrations and corrections take meters away from some running total.
    Reject them up front when a later record could not absorb that, so the
    caller gets a validation error instead of a failed propagation.
    """
    if min(deltas.total_installed, deltas.registered_count, deltas.unregistered) >= 0:
        return
    for store in stores:
        amounts = store.project(deltas)
        refused = await store.refused_later(conn, scope, store.derive_key(on), amounts)
        if refused:
            raise RegisteredExceedsTotal(
                f"Change on {on.isoformat()} conflicts with {len(refused)} later record(s) "
                f"in {store.table}: registered count would exceed total installed"
            )


async def _apply(
    conn: BaseDBAsyncClient,
    scope: Scope,
    on: date,
    deltas: Deltas,
    stores: Iterable[CumulativeStore],
) -> Dict[str, bool]:
    stores = tuple(stores)
    await _refuse_decreases(conn, scope, on, deltas, stores)
    applied = {}
    for store in stores:
        applied[store.table] = await accumulate(conn, store, scope, on, store.project(deltas))
    return applied


async def _ensure_substation(conn: BaseDBAsyncClient, substation_id: int) -> None:
    exists = await TransformerSubstation.filter(id=substation_id).using_db(conn).exists()
    if not exists:
        raise NotFound("Substation", substation_id)


async def _after_commit(substation_id: int, message: str) -> None:
    # audit is best-effort: the meter data is already committed
    try:
        await MeterActionLog.create(substation_id=substation_id, message=message)
    except Exception as e:
        logger.warning(f"[action-log] substation {substation_id}: {e}")
    summary_cache.invalidate(substation_id)


# ---------- installations ----------

async def apply_installation(
    conn: BaseDBAsyncClient,
    event: InstallationEvent,
    stores: Iterable[CumulativeStore] = INSTALLATION_STORES,
) -> Dict[str, bool]:
    """Run an installation event through every store on a transactional executor."""
    validate_installation(event.total_installed, event.registered_count)
    await _ensure_substation(conn, event.substation_id)
    return await _apply(conn, event.scope, event.date, event.deltas, stores)


async def record_installation(event: InstallationEvent) -> Dict[str, bool]:
    """
    Record new meters for a substation/balance group at `event.date`.
    All stores are updated in one transaction; any error rolls everything back.
    """
    validate_installation(event.total_installed, event.registered_count)

    async with in_transaction() as conn:
        applied = await apply_installation(conn, event)

    logger.info(
        f"installation recorded: substation={event.substation_id} group={_group(event)} "
        f"date={event.date} total={event.total_installed} registered={event.registered_count}"
    )
    await _after_commit(
        event.substation_id,
        f"Добавлено: {event.total_installed} {event.registered_count} {_group(event)} {_log_time()}",
    )
    return applied


# ---------- registration of installed meters ----------

async def apply_registration(conn: BaseDBAsyncClient, event: RegistrationEvent) -> bool:
    """
    Registered +N, unregistered -N from `event.date` on, in every store.
    Raises RegisteredExceedsTotal when fewer than N unregistered meters are
    installed at that date or at any later record.
    """
    validate_registration(event.registered_count)
    if event.registered_count == 0:
        return False
    await _ensure_substation(conn, event.substation_id)
    await _apply(conn, event.scope, event.date, event.deltas, INSTALLATION_STORES)
    return True


async def record_registration(event: RegistrationEvent) -> bool:
    """Registration-only event. Nothing is written when the count is zero."""
    validate_registration(event.registered_count)
    if event.registered_count == 0:
        return False

    async with in_transaction() as conn:
        applied = await apply_registration(conn, event)

    logger.info(
        f"registration recorded: substation={event.substation_id} group={_group(event)} "
        f"date={event.date} registered={event.registered_count}"
    )
    await _after_commit(
        event.substation_id,
        f"Зарегистрировано: {event.registered_count} {_group(event)} {_log_time()}",
    )
    return applied


# ---------- corrections ----------

async def apply_correction(conn: BaseDBAsyncClient, event: CorrectionEvent) -> Deltas:
    """
    Bring the cumulative counts at `event.date` to the given values. The
    difference is applied like any other event, so month/year records and
    every later record move with it. Returns the applied difference.
    """
    validate_installation(event.total_installed, event.registered_count)
    await _ensure_substation(conn, event.substation_id)

    scope = event.scope
    registered = (await REGISTERED.value_at(scope, event.date, conn))["registered_meter_count"]
    unregistered = (await UNREGISTERED.value_at(scope, event.date, conn))["unregistered_meter_count"]
    deltas = Deltas(
        total_installed=event.total_installed - (registered + unregistered),
        registered_count=event.registered_count - registered,
    )
    if deltas.total_installed or deltas.registered_count:
        await _apply(conn, scope, event.date, deltas, INSTALLATION_STORES)
    return deltas


async def correct_billing_meters(event: CorrectionEvent) -> bool:
    """Overwrite the counts as of a date; False (and no writes) when nothing changes."""
    validate_installation(event.total_installed, event.registered_count)

    async with in_transaction() as conn:
        deltas = await apply_correction(conn, event)
    if not (deltas.total_installed or deltas.registered_count):
        return False

    logger.info(
        f"billing meters corrected: substation={event.substation_id} group={_group(event)} "
        f"date={event.date} total={event.total_installed} ({deltas.total_installed:+}) "
        f"registered={event.registered_count} ({deltas.registered_count:+})"
    )
    await _after_commit(
        event.substation_id,
        f"Изменено: {event.total_installed} {event.registered_count} {_group(event)} {_log_time()}",
    )
    return True


# ---------- technical meters ----------

async def _technical_row(conn: BaseDBAsyncClient, substation_id: int):
    await _ensure_substation(conn, substation_id)
    return await (
        TechnicalMeters.filter(substation_id=substation_id)
        .using_db(conn)
        .select_for_update()
        .first()
    )


async def add_technical_meters(substation_id: int, quantity: int, under_voltage: int) -> TechnicalMeters:
    """Add to the substation's technical meter stats, creating the row on first use."""
    validate_technical_meters(quantity, under_voltage)

    async with in_transaction() as conn:
        row = await _technical_row(conn, substation_id)
        if row:
            row.quantity += quantity
            row.under_voltage += under_voltage
            validate_technical_meters(row.quantity, row.under_voltage)
            await row.save(using_db=conn)
        else:
            row = await TechnicalMeters.create(
                using_db=conn,
                substation_id=substation_id,
                quantity=quantity,
                under_voltage=under_voltage,
            )

    logger.info(f"technical meters: substation={substation_id} +{quantity} (+{under_voltage} under voltage)")
    await _after_commit(substation_id, f"Техучеты: {quantity} {under_voltage} {_log_time()}")
    return row


async def set_technical_meters(substation_id: int, quantity: int, under_voltage: int) -> Tuple[TechnicalMeters, bool]:
    """Overwrite the technical meter stats. Returns (row, changed); unchanged values write nothing."""
    validate_technical_meters(quantity, under_voltage)

    async with in_transaction() as conn:
        row = await _technical_row(conn, substation_id)
        if row and (row.quantity, row.under_voltage) == (quantity, under_voltage):
            return row, False
        if row:
            row.quantity = quantity
            row.under_voltage = under_voltage
            await row.save(using_db=conn)
        else:
            row = await TechnicalMeters.create(
                using_db=conn,
                substation_id=substation_id,
                quantity=quantity,
                under_voltage=under_voltage,
            )

    logger.info(f"technical meters set: substation={substation_id} quantity={quantity} under_voltage={under_voltage}")
    await _after_commit(substation_id, f"Техучеты изменены: {quantity} {under_voltage} {_log_time()}")
    return row, True
