from __future__ import annotations


class MeterAccountingError(Exception):
    """Base class for domain errors raised by the services layer."""


class ValidationError(MeterAccountingError):
    field: str | None = None

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        if field is not None:
            self.field = field


class InvalidCount(ValidationError):
    pass


class RegisteredExceedsTotal(ValidationError):
    field = "registered_count"


class UnderVoltageExceedsQuantity(ValidationError):
    field = "under_voltage"


class InvalidSubstationName(ValidationError):
    field = "name"


class FutureDate(ValidationError):
    field = "date"


class SubstationNameTaken(MeterAccountingError):
    def __init__(self, name: str):
        super().__init__(f"Substation '{name}' already exists")
        self.name = name


class NotFound(MeterAccountingError):
    def __init__(self, what: str, ident):
        super().__init__(f"{what} {ident} not found")
        self.what = what
        self.ident = ident


class PropagationIncomplete(MeterAccountingError):
    """A batch update of later records touched fewer rows than it found."""

    def __init__(self, table: str, expected: int, updated: int):
        super().__init__(
            f"Failed to update {expected - updated} of {expected} records in {table}. "
            "Update would violate registered_count <= total_installed or rows changed concurrently."
        )
        self.table = table
        self.expected = expected
        self.updated = updated
