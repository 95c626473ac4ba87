from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..models.catalog import SoftwareType


class SoftwareInstallationCreate(BaseModel):
    """Installation request.

    ``software_type`` is not accepted: it is always taken from the product.
    """

    software_product_id: int = Field(..., ge=1)
    license_id: Optional[int] = Field(default=None, ge=1)
    installation_date: Optional[date] = None
    notes: Optional[str] = None


class SoftwareInstallationUpdate(BaseModel):
    software_product_id: Optional[int] = Field(default=None, ge=1)
    license_id: Optional[int] = Field(
        default=None, ge=1, description="Send null explicitly to drop the license"
    )
    installation_date: Optional[date] = None
    notes: Optional[str] = None


LicenseStatus = Literal["Active", "Expiring Soon", "Expired", "Perpetual", "Unlicensed"]


class SoftwareInstallationRead(BaseModel):
    id: str
    asset_id: str
    software_product_id: int
    software_name: str
    software_type: SoftwareType
    license_id: Optional[int] = None
    license_name: Optional[str] = None
    seat_held: bool
    installation_date: Optional[date] = None
    notes: Optional[str] = None
    license_expiration_date: Optional[date] = None
    license_status: LicenseStatus
    days_until_expiration: Optional[int] = None
    allocated_licenses: Optional[int] = None
    total_licenses: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class SoftwareInstallationListResponse(BaseModel):
    items: list[SoftwareInstallationRead]
    total: int
