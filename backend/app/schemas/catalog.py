from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.catalog import ProductCategory, SoftwareType
from .common import PaginatedResponse


class VendorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    contact_email: Optional[str] = Field(default=None, max_length=160)


class VendorRead(VendorCreate):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    address: Optional[str] = None


class LocationRead(LocationCreate):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=160)
    email: str = Field(..., min_length=3, max_length=160)
    location_id: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class UserRead(UserCreate):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    category: ProductCategory
    software_type: Optional[SoftwareType] = Field(
        default=None, description="Required for software products, forbidden otherwise"
    )
    vendor_id: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_software_type(self) -> "ProductCreate":
        if self.category == ProductCategory.SOFTWARE and self.software_type is None:
            raise ValueError("software_type is required for software products")
        if self.category != ProductCategory.SOFTWARE and self.software_type is not None:
            raise ValueError("software_type only applies to software products")
        return self


class ProductRead(BaseModel):
    id: int
    name: str
    category: ProductCategory
    software_type: Optional[SoftwareType] = None
    vendor_id: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductListResponse(PaginatedResponse[ProductRead]):
    pass


class UserListResponse(PaginatedResponse[UserRead]):
    pass
