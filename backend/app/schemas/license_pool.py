from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.license_pool import LicenseType
from .common import PaginatedResponse


class LicensePoolBase(BaseModel):
    software_product_id: int = Field(..., ge=1)
    license_name: str = Field(..., min_length=1, max_length=160)
    license_type: LicenseType
    total_licenses: int = Field(..., gt=0)
    expiration_date: Optional[date] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class LicensePoolCreate(LicensePoolBase):
    @model_validator(mode="after")
    def _check_dates(self) -> "LicensePoolCreate":
        if (
            self.expiration_date is not None
            and self.purchase_date is not None
            and self.expiration_date < self.purchase_date
        ):
            raise ValueError("expiration_date must be after purchase_date")
        return self


class LicensePoolUpdate(BaseModel):
    software_product_id: Optional[int] = Field(default=None, ge=1)
    license_name: Optional[str] = Field(default=None, min_length=1, max_length=160)
    license_type: Optional[LicenseType] = None
    total_licenses: Optional[int] = Field(default=None, gt=0)
    expiration_date: Optional[date] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class LicensePoolRead(LicensePoolBase):
    id: int
    allocated_count: int
    available_licenses: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LicensePoolListResponse(PaginatedResponse[LicensePoolRead]):
    pass


UtilizationBand = Literal["healthy", "warning", "critical", "full"]


class LicenseUtilizationItem(BaseModel):
    license_id: int
    license_name: str
    software_product_id: int
    total_licenses: int
    allocated_count: int
    available_licenses: int
    held_by_deleted_assets: int
    utilization_percent: int
    status: UtilizationBand


class LicenseUtilizationReport(BaseModel):
    items: list[LicenseUtilizationItem]


AlertKind = Literal["license", "warranty", "eol", "eos"]


class ExpirationAlert(BaseModel):
    kind: AlertKind
    entity_id: str
    label: str
    expires_on: date
    days_remaining: int
    expired: bool


class ExpirationAlertsResponse(BaseModel):
    items: list[ExpirationAlert]
    total: int


class PoolCounterMismatch(BaseModel):
    license_id: int
    recorded: int
    actual: int


class LedgerConsistencyReport(BaseModel):
    counter_mismatches: list[PoolCounterMismatch]
    assigned_components: list[str]
    invalid_parent_links: list[str]
    oversubscribed_pools: list[int]
    repaired: bool = False


class LicenseAllocationRequest(BaseModel):
    installation_id: str
