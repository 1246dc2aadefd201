from enum import Enum
import uuid

from tortoise import fields, models


class BalanceGroup(str, Enum):
    """Balance groups as stored in the existing database (values must not change)."""
    RESIDENTIAL = "Быт"
    LEGAL_SIMS = "ЮР Sims"
    LEGAL_P2 = "ЮР П2"
    ODPU_SIMS = "ОДПУ Sims"
    ODPU_P2 = "ОДПУ П2"


LEGAL_GROUPS = (BalanceGroup.LEGAL_SIMS, BalanceGroup.LEGAL_P2)
ODPU_GROUPS = (BalanceGroup.ODPU_SIMS, BalanceGroup.ODPU_P2)


# -------- Users --------
class User(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    username = fields.CharField(max_length=50, unique=True, index=True)
    email = fields.CharField(max_length=100, unique=True, index=True)
    hashed_password = fields.CharField(max_length=128)
    disabled = fields.BooleanField(default=False)
    is_admin = fields.BooleanField(default=False)

    class Meta:
        table = "users"

    def __str__(self) -> str:
        return f"{self.username} ({self.email})"


# -------- Substations --------
class TransformerSubstation(models.Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=15, unique=True, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True, index=True)

    class Meta:
        table = "transformer_substations"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


def _substation_fk(related_name: str):
    return fields.ForeignKeyField(
        "models.TransformerSubstation",
        related_name=related_name,
        on_delete=fields.CASCADE,
        source_field="transformer_substation_id",
        index=True,
    )


# -------- Point-in-time cumulative counts --------
class RegisteredMeters(models.Model):
    """Registered meters as of `date` (cumulative, not a delta)."""
    id = fields.IntField(pk=True)
    registered_meter_count = fields.IntField(default=0)
    balance_group = fields.CharEnumField(BalanceGroup, max_length=16, index=True)
    date = fields.DateField(index=True)
    substation = _substation_fk("registered_meters")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "registered_meters"
        unique_together = ("substation_id", "balance_group", "date")


class UnregisteredMeters(models.Model):
    """Installed but not yet registered meters as of `date` (cumulative)."""
    id = fields.IntField(pk=True)
    unregistered_meter_count = fields.IntField(default=0)
    balance_group = fields.CharEnumField(BalanceGroup, max_length=16, index=True)
    date = fields.DateField(index=True)
    substation = _substation_fk("unregistered_meters")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "unregistered_meters"
        unique_together = ("substation_id", "balance_group", "date")


# -------- Period aggregates --------
class MonthlyMeterInstallation(models.Model):
    id = fields.IntField(pk=True)
    total_installed = fields.IntField(default=0)
    registered_count = fields.IntField(default=0)
    balance_group = fields.CharEnumField(BalanceGroup, max_length=16, index=True)
    year = fields.IntField(index=True)
    month = fields.IntField(index=True)
    date = fields.DateField()  # last event applied within the month
    substation = _substation_fk("monthly_installations")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "monthly_meter_installations"
        unique_together = ("substation_id", "balance_group", "year", "month")

    def __str__(self) -> str:
        return f"{self.year}-{self.month:02d} {self.balance_group}: {self.registered_count}/{self.total_installed}"


class YearlyMeterInstallation(models.Model):
    id = fields.IntField(pk=True)
    total_installed = fields.IntField(default=0)
    registered_count = fields.IntField(default=0)
    balance_group = fields.CharEnumField(BalanceGroup, max_length=16, index=True)
    year = fields.IntField(index=True)
    date = fields.DateField()  # last event applied within the year
    substation = _substation_fk("yearly_installations")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "yearly_meter_installations"
        unique_together = ("substation_id", "balance_group", "year")

    def __str__(self) -> str:
        return f"{self.year} {self.balance_group}: {self.registered_count}/{self.total_installed}"


# -------- Technical meters & audit --------
class TechnicalMeters(models.Model):
    id = fields.IntField(pk=True)
    quantity = fields.IntField(default=0)
    under_voltage = fields.IntField(default=0)
    substation = fields.OneToOneField(
        "models.TransformerSubstation",
        related_name="technical_meters",
        on_delete=fields.CASCADE,
        source_field="transformer_substation_id",
    )
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "technical_meters"


class MeterActionLog(models.Model):
    id = fields.IntField(pk=True)
    message = fields.CharField(max_length=255)
    substation = _substation_fk("action_logs")
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "meter_action_logs"

    def __str__(self) -> str:
        return self.message
