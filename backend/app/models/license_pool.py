"""Models for software license pools and the installations that consume them."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_guid
from .catalog import SOFTWARE_TYPE_ENUM


class LicenseType(str, enum.Enum):
    """Licensing model of a pool."""

    PER_USER = "per_user"
    PER_DEVICE = "per_device"
    CONCURRENT = "concurrent"
    SITE = "site"
    VOLUME = "volume"


class LicensePool(Base):
    """A finite grant of licenses for a single software product.

    ``allocated_count`` is the number of installations currently holding a seat.
    It only changes through conditional updates issued by the license ledger and
    the database refuses any value outside ``0..total_licenses``.
    """

    __tablename__ = "license_pools"
    __table_args__ = (
        CheckConstraint("total_licenses > 0", name="ck_license_pools_total_positive"),
        CheckConstraint(
            "allocated_count >= 0 AND allocated_count <= total_licenses",
            name="ck_license_pools_no_oversubscription",
        ),
        CheckConstraint(
            "purchase_cost IS NULL OR purchase_cost >= 0",
            name="ck_license_pools_purchase_cost_non_negative",
        ),
    )

    id = Column("license_id", Integer, primary_key=True, autoincrement=True)
    software_product_id = Column(
        Integer,
        ForeignKey("products.product_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    license_name = Column(String(160), nullable=False)
    license_type = Column(
        SAEnum(
            LicenseType,
            name="license_type_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    total_licenses = Column(Integer, nullable=False)
    allocated_count = Column(Integer, nullable=False, default=0)
    expiration_date = Column(Date, nullable=True)
    purchase_date = Column(Date, nullable=True)
    purchase_cost = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    software_product = relationship("Product", back_populates="license_pools")
    installations = relationship("SoftwareInstallation", back_populates="license_pool")

    @property
    def available_licenses(self) -> int:
        return max((self.total_licenses or 0) - (self.allocated_count or 0), 0)


class SoftwareInstallation(Base):
    """Links an asset to an installed software product and, optionally, a seat."""

    __tablename__ = "software_installations"
    __table_args__ = (
        CheckConstraint(
            "license_id IS NOT NULL OR NOT seat_held",
            name="ck_software_installations_seat_requires_license",
        ),
    )

    id = Column("installation_id", GUID(), primary_key=True, default=new_guid)
    asset_id = Column(
        GUID(),
        ForeignKey("assets.asset_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    software_product_id = Column(
        Integer,
        ForeignKey("products.product_id", ondelete="RESTRICT"),
        nullable=False,
    )
    software_type = Column(SOFTWARE_TYPE_ENUM, nullable=False)
    license_id = Column(
        Integer,
        ForeignKey("license_pools.license_id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    seat_held = Column(Boolean, nullable=False, default=False)
    installation_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    asset = relationship("Asset", back_populates="software_installations")
    software_product = relationship("Product")
    license_pool = relationship("LicensePool", back_populates="installations")


Index(
    "software_installations_license_seat_idx",
    SoftwareInstallation.license_id,
    SoftwareInstallation.seat_held,
)
