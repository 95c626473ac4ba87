from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.asset import AssetImportance, AssetStatus, AssetType, ConditionStatus
from ..models.asset_history import AssetHistoryAction
from .common import PaginatedResponse


class _AssetDates(BaseModel):
    warranty_start_date: Optional[date] = None
    warranty_end_date: Optional[date] = None
    eol_date: Optional[date] = Field(default=None, description="End of life")
    eos_date: Optional[date] = Field(default=None, description="End of support")

    @model_validator(mode="after")
    def _check_warranty_window(self):
        if (
            self.warranty_start_date is not None
            and self.warranty_end_date is not None
            and self.warranty_end_date < self.warranty_start_date
        ):
            raise ValueError("warranty_end_date must not precede warranty_start_date")
        return self


class AssetCreate(_AssetDates):
    serial_number: str = Field(..., min_length=1, max_length=120)
    product_id: int = Field(..., ge=1)
    asset_type: AssetType = AssetType.STANDALONE
    parent_asset_id: Optional[str] = Field(
        default=None, description="Standalone asset a component is installed into"
    )
    assigned_to: Optional[int] = Field(default=None, ge=1, description="User holding the asset")
    location_id: Optional[int] = Field(default=None, ge=1)
    status: Optional[AssetStatus] = Field(
        default=None, description="Defaults to available, or assigned when an assignee is given"
    )
    importance: AssetImportance = AssetImportance.MEDIUM
    condition_status: ConditionStatus = ConditionStatus.GOOD
    vendor_id: Optional[int] = Field(default=None, ge=1)
    invoice_number: Optional[str] = Field(default=None, max_length=80)
    purchase_cost: Optional[Decimal] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    installation_notes: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("serial_number")
    @classmethod
    def _strip_serial(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("serial_number must not be blank")
        return stripped


class AssetUpdate(BaseModel):
    serial_number: Optional[str] = Field(default=None, min_length=1, max_length=120)
    product_id: Optional[int] = Field(default=None, ge=1)
    asset_type: Optional[AssetType] = None
    parent_asset_id: Optional[str] = None
    location_id: Optional[int] = Field(default=None, ge=1)
    status: Optional[AssetStatus] = None
    importance: Optional[AssetImportance] = None
    condition_status: Optional[ConditionStatus] = None
    warranty_start_date: Optional[date] = None
    warranty_end_date: Optional[date] = None
    eol_date: Optional[date] = None
    eos_date: Optional[date] = None
    vendor_id: Optional[int] = Field(default=None, ge=1)
    invoice_number: Optional[str] = Field(default=None, max_length=80)
    purchase_cost: Optional[Decimal] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    installation_notes: Optional[str] = None
    notes: Optional[str] = None


class AssetAssign(BaseModel):
    user_id: int = Field(..., ge=1)
    status: AssetStatus = Field(
        default=AssetStatus.ASSIGNED, description="Either assigned or in_use"
    )
    location_id: Optional[int] = Field(
        default=None, ge=1, description="Overrides the location inherited from the user"
    )

    @field_validator("status")
    @classmethod
    def _check_assignment_status(cls, value: AssetStatus) -> AssetStatus:
        if value not in (AssetStatus.ASSIGNED, AssetStatus.IN_USE):
            raise ValueError("status must be assigned or in_use")
        return value


class AssetStatusChange(BaseModel):
    status: AssetStatus
    note: Optional[str] = None


class ComponentInstall(BaseModel):
    component_id: str
    installation_notes: Optional[str] = None


class AssetRead(BaseModel):
    id: str
    asset_tag: str
    serial_number: str
    product_id: int
    asset_type: AssetType
    parent_asset_id: Optional[str] = None
    assigned_to: Optional[int] = None
    location_id: Optional[int] = None
    status: AssetStatus
    importance: AssetImportance
    condition_status: ConditionStatus
    warranty_start_date: Optional[date] = None
    warranty_end_date: Optional[date] = None
    eol_date: Optional[date] = None
    eos_date: Optional[date] = None
    vendor_id: Optional[int] = None
    invoice_number: Optional[str] = None
    purchase_cost: Optional[Decimal] = None
    purchase_date: Optional[date] = None
    installation_notes: Optional[str] = None
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssetListResponse(PaginatedResponse[AssetRead]):
    pass


class AssetFilter(BaseModel):
    """Listing filters shared by ``GET /assets`` and bulk label selection."""

    status: Optional[AssetStatus] = None
    asset_type: Optional[AssetType] = None
    product_id: Optional[int] = None
    location_id: Optional[int] = None
    assigned_to: Optional[int] = None
    search: Optional[str] = None


class AssetDropdownItem(BaseModel):
    id: str
    asset_tag: str
    serial_number: str
    asset_type: AssetType

    model_config = ConfigDict(from_attributes=True)


class AssetHierarchyNode(BaseModel):
    id: str
    asset_tag: str
    serial_number: str
    asset_type: AssetType
    status: AssetStatus
    parent_asset_id: Optional[str] = None
    level: int
    installation_status: Literal["root", "installed"]
    installation_notes: Optional[str] = None


class AssetHierarchyResponse(BaseModel):
    items: list[AssetHierarchyNode]


class AssetHistoryRead(BaseModel):
    id: str
    asset_id: str
    asset_tag: str
    action: AssetHistoryAction
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    changes: Optional[dict[str, Any]] = None
    actor_id: Optional[str] = None
    source: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssetHistoryListResponse(PaginatedResponse[AssetHistoryRead]):
    pass


class AssetBulkCreate(BaseModel):
    items: list[AssetCreate] = Field(..., min_length=1, max_length=2000)


class BulkItemResult(BaseModel):
    index: int
    status: Literal["created", "failed"]
    asset_id: Optional[str] = None
    asset_tag: Optional[str] = None
    error: Optional[dict[str, Any]] = None


class AssetBulkCreateResult(BaseModel):
    created: int
    failed: int
    items: list[BulkItemResult]
