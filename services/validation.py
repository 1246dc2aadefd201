from __future__ import annotations
from datetime import date

from services.errors import (
    FutureDate,
    InvalidCount,
    InvalidSubstationName,
    RegisteredExceedsTotal,
    UnderVoltageExceedsQuantity,
)

NAME_MIN_LEN = 3
NAME_MAX_LEN = 15


def _non_negative(value: int, field: str) -> None:
    if value < 0:
        raise InvalidCount(f"'{field}' must be a non-negative integer, got {value}", field=field)


def validate_installation(total_installed: int, registered_count: int) -> None:
    """
    Check an installation event before anything is written.
    Raises InvalidCount / RegisteredExceedsTotal. Pure function.
    """
    _non_negative(total_installed, "total_installed")
    _non_negative(registered_count, "registered_count")
    if registered_count > total_installed:
        raise RegisteredExceedsTotal(
            f"Registered count ({registered_count}) cannot exceed total installed ({total_installed})"
        )


def validate_registration(registered_count: int) -> None:
    _non_negative(registered_count, "registered_count")


def validate_technical_meters(quantity: int, under_voltage: int) -> None:
    _non_negative(quantity, "quantity")
    _non_negative(under_voltage, "under_voltage")
    if under_voltage > quantity:
        raise UnderVoltageExceedsQuantity(
            f"Meters under voltage ({under_voltage}) cannot exceed quantity ({quantity})"
        )


def validate_substation_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not NAME_MIN_LEN <= len(cleaned) <= NAME_MAX_LEN:
        raise InvalidSubstationName(
            f"Substation name must be {NAME_MIN_LEN}-{NAME_MAX_LEN} characters long"
        )
    return cleaned


def ensure_not_future(on: date, today: date | None = None) -> None:
    today = today or date.today()
    if on > today:
        raise FutureDate(f"Date {on.isoformat()} is in the future")
