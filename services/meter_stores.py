"""
Cumulative meter stores.

Every store keeps running totals per (substation, balance group) ordered by a
key derived from the event date: the exact date for point stores, (year, month)
for the monthly store and the year for the yearly store. The generic
accumulate-with-baseline logic in services.accumulation only talks to the
`CumulativeStore` interface below.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from tortoise.backends.base.client import BaseDBAsyncClient
from tortoise.expressions import F, Q
from tortoise.models import Model

from models import (
    BalanceGroup,
    MonthlyMeterInstallation,
    RegisteredMeters,
    UnregisteredMeters,
    YearlyMeterInstallation,
)
from services.errors import InvalidCount, PropagationIncomplete, RegisteredExceedsTotal

UTC = timezone.utc

Key = Dict[str, Any]
Amounts = Dict[str, int]


@dataclass(frozen=True)
class Deltas:
    """What a single event adds to the running totals."""
    total_installed: int = 0
    registered_count: int = 0

    @property
    def unregistered(self) -> int:
        return self.total_installed - self.registered_count


@dataclass(frozen=True)
class Scope:
    substation_id: int
    balance_group: BalanceGroup


def _add(a: Amounts, b: Amounts) -> Amounts:
    return {k: a.get(k, 0) + b.get(k, 0) for k in set(a) | set(b)}


class CumulativeStore:
    model: type[Model]
    columns: tuple[str, ...] = ()
    # descending order used to pick the nearest earlier record
    latest_first: tuple[str, ...] = ()
    skip_when_zero: bool = False

    @property
    def table(self) -> str:
        return self.model._meta.db_table

    # ---------- key handling (overridden per granularity) ----------
    def derive_key(self, on: date) -> Key:
        raise NotImplementedError

    def later_than(self, key: Key) -> Q:
        raise NotImplementedError

    def earlier_than(self, key: Key) -> Q:
        raise NotImplementedError

    def at_or_before(self, key: Key) -> Q:
        return Q(self.earlier_than(key), Q(**key), join_type="OR")

    # ---------- value handling ----------
    def project(self, deltas: Deltas) -> Amounts:
        """The part of an event this store accumulates."""
        raise NotImplementedError

    def read(self, row: Optional[Model]) -> Amounts:
        if row is None:
            return {c: 0 for c in self.columns}
        return {c: getattr(row, c) for c in self.columns}

    def check(self, values: Amounts) -> None:
        pass

    def fits(self, row: Model, amounts: Amounts) -> bool:
        return True

    def extra_on_write(self, row: Optional[Model], on: date) -> Dict[str, Any]:
        return {}

    # ---------- queries ----------
    def _scoped(self, scope: Scope, conn: Optional[BaseDBAsyncClient] = None):
        qs = self.model.filter(
            substation_id=scope.substation_id,
            balance_group=scope.balance_group,
        )
        return qs.using_db(conn) if conn is not None else qs

    async def find_by_key(self, conn, scope: Scope, key: Key) -> Optional[Model]:
        return await self._scoped(scope, conn).filter(**key).first()

    async def baseline_before(self, conn, scope: Scope, key: Key) -> Amounts:
        row = await (
            self._scoped(scope, conn)
            .filter(self.earlier_than(key))
            .order_by(*self.latest_first)
            .first()
        )
        return self.read(row)

    async def value_at(self, scope: Scope, on: date, conn=None) -> Amounts:
        """Cumulative values of the latest record at or before `on` (zeros if none)."""
        row = await (
            self._scoped(scope, conn)
            .filter(self.at_or_before(self.derive_key(on)))
            .order_by(*self.latest_first)
            .first()
        )
        return self.read(row)

    # ---------- writes ----------
    async def create_from(self, conn, scope: Scope, key: Key, baseline: Amounts, amounts: Amounts, on: date) -> Model:
        values = _add(baseline, amounts)
        self.check(values)
        return await self.model.create(
            using_db=conn,
            substation_id=scope.substation_id,
            balance_group=scope.balance_group,
            **key,
            **values,
            **self.extra_on_write(None, on),
        )

    async def increment(self, conn, row: Model, amounts: Amounts, on: date) -> Model:
        values = _add(self.read(row), amounts)
        self.check(values)
        for k, v in {**values, **self.extra_on_write(row, on)}.items():
            setattr(row, k, v)
        await row.save(using_db=conn)
        return row

    async def refused_later(self, conn, scope: Scope, key: Key, amounts: Amounts) -> list[Model]:
        """Later records that could not take `amounts` (used before writing decreases)."""
        future = await self._scoped(scope, conn).filter(self.later_than(key))
        return [r for r in future if not self.fits(r, amounts)]

    async def increment_future_after(self, conn, scope: Scope, key: Key, amounts: Amounts) -> int:
        """
        Add `amounts` to every record later than `key`.
        Raises PropagationIncomplete if fewer rows were updated than found.
        """
        future = await self._scoped(scope, conn).filter(self.later_than(key)).select_for_update()
        if not future:
            return 0

        eligible = [r.id for r in future if self.fits(r, amounts)]
        updated = 0
        if eligible:
            changes: Dict[str, Any] = {c: F(c) + amounts.get(c, 0) for c in self.columns}
            changes["updated_at"] = datetime.now(tz=UTC)
            updated = await self.model.filter(id__in=eligible).using_db(conn).update(**changes)

        if updated != len(future):
            raise PropagationIncomplete(self.table, expected=len(future), updated=updated)
        return updated


# ---------- point stores ----------
class _PointStore(CumulativeStore):
    latest_first = ("-date",)
    skip_when_zero = True

    def derive_key(self, on: date) -> Key:
        return {"date": on}

    def later_than(self, key: Key) -> Q:
        return Q(date__gt=key["date"])

    def earlier_than(self, key: Key) -> Q:
        return Q(date__lt=key["date"])

    def at_or_before(self, key: Key) -> Q:
        return Q(date__lte=key["date"])

    # counts can go down on registrations and corrections, never below zero
    def check(self, values: Amounts) -> None:
        for column, value in values.items():
            if value < 0:
                raise self.shortfall(column, value)

    def fits(self, row: Model, amounts: Amounts) -> bool:
        return all(getattr(row, c) + amounts.get(c, 0) >= 0 for c in self.columns)

    def shortfall(self, column: str, value: int) -> Exception:
        raise NotImplementedError


class RegisteredPointStore(_PointStore):
    model = RegisteredMeters
    columns = ("registered_meter_count",)

    def project(self, deltas: Deltas) -> Amounts:
        return {"registered_meter_count": deltas.registered_count}

    def shortfall(self, column: str, value: int) -> Exception:
        return InvalidCount(f"{self.table}: registered count would become {value}", field="registered_count")


class UnregisteredPointStore(_PointStore):
    model = UnregisteredMeters
    columns = ("unregistered_meter_count",)

    def project(self, deltas: Deltas) -> Amounts:
        return {"unregistered_meter_count": deltas.unregistered}

    def shortfall(self, column: str, value: int) -> Exception:
        return RegisteredExceedsTotal(
            f"Not enough installed unregistered meters: the count would become {value}"
        )


# ---------- period stores (total + registered) ----------
class _PeriodStore(CumulativeStore):
    columns = ("total_installed", "registered_count")

    def project(self, deltas: Deltas) -> Amounts:
        return {"total_installed": deltas.total_installed, "registered_count": deltas.registered_count}

    def check(self, values: Amounts) -> None:
        if values["registered_count"] < 0:
            raise InvalidCount(
                f"{self.table}: registered count would become {values['registered_count']}",
                field="registered_count",
            )
        if values["registered_count"] > values["total_installed"]:
            raise RegisteredExceedsTotal(
                f"{self.table}: registered count ({values['registered_count']}) "
                f"cannot exceed total installed ({values['total_installed']})"
            )

    def fits(self, row: Model, amounts: Amounts) -> bool:
        registered = row.registered_count + amounts.get("registered_count", 0)
        return 0 <= registered <= row.total_installed + amounts.get("total_installed", 0)

    def extra_on_write(self, row: Optional[Model], on: date) -> Dict[str, Any]:
        if row is None or row.date is None or row.date < on:
            return {"date": on}
        return {}


class MonthlyStore(_PeriodStore):
    model = MonthlyMeterInstallation
    latest_first = ("-year", "-month")

    def derive_key(self, on: date) -> Key:
        return {"year": on.year, "month": on.month}

    def later_than(self, key: Key) -> Q:
        return Q(Q(year__gt=key["year"]), Q(year=key["year"], month__gt=key["month"]), join_type="OR")

    def earlier_than(self, key: Key) -> Q:
        return Q(Q(year__lt=key["year"]), Q(year=key["year"], month__lt=key["month"]), join_type="OR")


class YearlyStore(_PeriodStore):
    model = YearlyMeterInstallation
    latest_first = ("-year",)

    def derive_key(self, on: date) -> Key:
        return {"year": on.year}

    def later_than(self, key: Key) -> Q:
        return Q(year__gt=key["year"])

    def earlier_than(self, key: Key) -> Q:
        return Q(year__lt=key["year"])


REGISTERED = RegisteredPointStore()
UNREGISTERED = UnregisteredPointStore()
MONTHLY = MonthlyStore()
YEARLY = YearlyStore()

INSTALLATION_STORES: tuple[CumulativeStore, ...] = (REGISTERED, UNREGISTERED, MONTHLY, YEARLY)
