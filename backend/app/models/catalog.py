"""Reference data shared by the allocation engine: products, vendors, locations and users."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base


class ProductCategory(str, enum.Enum):
    """Top-level product family."""

    HARDWARE = "hardware"
    SOFTWARE = "software"


class SoftwareType(str, enum.Enum):
    """Kind of software a software-category product represents."""

    OPERATING_SYSTEM = "operating_system"
    APPLICATION = "application"
    UTILITY = "utility"
    DRIVER = "driver"


PRODUCT_CATEGORY_ENUM = SAEnum(
    ProductCategory,
    name="product_category_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

SOFTWARE_TYPE_ENUM = SAEnum(
    SoftwareType,
    name="software_type_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class Vendor(Base):
    """Supplier an asset was purchased from."""

    __tablename__ = "vendors"

    id = Column("vendor_id", Integer, primary_key=True, autoincrement=True)
    name = Column(String(160), nullable=False, unique=True)
    contact_email = Column(String(160), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Location(Base):
    """Physical place where assets and users reside."""

    __tablename__ = "locations"

    id = Column("location_id", Integer, primary_key=True, autoincrement=True)
    name = Column(String(160), nullable=False, unique=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    users = relationship("User", back_populates="location")


class User(Base):
    """Person assets can be assigned to."""

    __tablename__ = "users"

    id = Column("user_id", Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(160), nullable=False)
    email = Column(String(160), nullable=False, unique=True)
    location_id = Column(
        Integer,
        ForeignKey("locations.location_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    location = relationship("Location", back_populates="users")


class Product(Base):
    """Catalog entry for hardware models and software titles."""

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_products_name_category"),
        CheckConstraint(
            "(category = 'software' AND software_type IS NOT NULL) OR "
            "(category <> 'software' AND software_type IS NULL)",
            name="ck_products_software_type_consistency",
        ),
    )

    id = Column("product_id", Integer, primary_key=True, autoincrement=True)
    name = Column(String(160), nullable=False)
    category = Column(PRODUCT_CATEGORY_ENUM, nullable=False)
    software_type = Column(SOFTWARE_TYPE_ENUM, nullable=True)
    vendor_id = Column(
        Integer,
        ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    vendor = relationship("Vendor")
    license_pools = relationship("LicensePool", back_populates="software_product")
