import datetime as dt
import uuid
from datetime import datetime, date
from typing import Optional, Dict, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field

from models import BalanceGroup


# =========================
# Auth
# =========================
class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserRead(BaseModel):
    id: uuid.UUID
    username: str
    email: EmailStr
    disabled: bool
    is_admin: bool
    model_config = ConfigDict(from_attributes=True)


# =========================
# Substations
# =========================
class SubstationCreate(BaseModel):
    name: str = Field(min_length=3, max_length=15)


class SubstationUpdate(BaseModel):
    name: str = Field(min_length=3, max_length=15)


class SubstationRead(BaseModel):
    id: int
    name: str
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# =========================
# Meter events
# =========================
class BillingMetersCreate(BaseModel):
    """New meters for one balance group on one date."""
    total_installed: int
    registered_count: int
    balance_group: BalanceGroup
    date: date


class BillingMetersCorrection(BaseModel):
    """Corrected running totals for a group; `date` defaults to today."""
    total_installed: int
    registered_count: int
    balance_group: BalanceGroup
    date: Optional[dt.date] = None


class RegistrationCreate(BaseModel):
    registered_count: int
    balance_group: BalanceGroup
    date: date


class TechnicalMetersCreate(BaseModel):
    quantity: int
    under_voltage: int


class TechnicalMetersRead(BaseModel):
    quantity: int = 0
    under_voltage: int = 0
    model_config = ConfigDict(from_attributes=True)


# =========================
# Summaries & reports
# =========================
class MeterCount(BaseModel):
    registered_count: int = 0
    unregistered_count: int = 0

    @property
    def total_installed(self) -> int:
        return self.registered_count + self.unregistered_count


class InstallationStats(BaseModel):
    total_installed: int = 0
    registered_count: int = 0


class PeriodInstallations(BaseModel):
    """Cumulative totals at the end of a period plus what was added within it."""
    period: str
    cumulative: InstallationStats
    installed_in_period: InstallationStats


class GroupInstallations(BaseModel):
    balance_group: BalanceGroup
    date: date
    monthly: PeriodInstallations
    yearly: PeriodInstallations


class SubstationSummary(BaseModel):
    substation_id: int
    name: str
    residential_date: date
    legal_date: date
    general_metering_date: date
    groups: Dict[BalanceGroup, MeterCount]
    technical_meters: TechnicalMetersRead


class SubstationReportRow(BaseModel):
    id: int
    name: str
    registered_count: int = 0
    unregistered_count: int = 0
    yearly_installation: InstallationStats
    monthly_installation: InstallationStats


class ActionLogRead(BaseModel):
    id: int
    message: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ValidationErrorRead(BaseModel):
    detail: str
    field: Optional[str] = None


class SubstationReport(BaseModel):
    balance_group: BalanceGroup
    date: date
    rows: List[SubstationReportRow]
