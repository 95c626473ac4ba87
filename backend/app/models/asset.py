"""Models for physical and virtual assets and their structural relationships."""

from __future__ import annotations

import enum

from sqlalchemy import (
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


class AssetType(str, enum.Enum):
    """Structural role of an asset."""

    STANDALONE = "standalone"
    COMPONENT = "component"


class AssetStatus(str, enum.Enum):
    """Operational status of an asset."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    IN_USE = "in_use"
    UNDER_REPAIR = "under_repair"
    MAINTENANCE = "maintenance"
    DISPOSED = "disposed"
    IN_TRANSIT = "in_transit"
    LOST = "lost"
    DAMAGED = "damaged"


class AssetImportance(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConditionStatus(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


def _enum_column_type(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
    )


ASSET_TYPE_ENUM = _enum_column_type(AssetType, "asset_type_enum")
ASSET_STATUS_ENUM = _enum_column_type(AssetStatus, "asset_status_enum")
ASSET_IMPORTANCE_ENUM = _enum_column_type(AssetImportance, "asset_importance_enum")
CONDITION_STATUS_ENUM = _enum_column_type(ConditionStatus, "condition_status_enum")


class Asset(Base):
    """Represents a tracked asset, either standalone equipment or a component."""

    __tablename__ = "assets"
    __table_args__ = (
        CheckConstraint(
            "asset_type <> 'component' OR assigned_to IS NULL",
            name="ck_assets_component_unassigned",
        ),
        CheckConstraint(
            "parent_asset_id IS NULL OR asset_type = 'component'",
            name="ck_assets_parent_requires_component",
        ),
        CheckConstraint(
            "parent_asset_id IS NULL OR parent_asset_id <> asset_id",
            name="ck_assets_not_own_parent",
        ),
        CheckConstraint(
            "purchase_cost IS NULL OR purchase_cost >= 0",
            name="ck_assets_purchase_cost_non_negative",
        ),
    )

    id = Column("asset_id", GUID(), primary_key=True, default=new_guid)
    asset_tag = Column(String(40), nullable=False, unique=True)
    serial_number = Column(String(120), nullable=False)
    product_id = Column(
        Integer,
        ForeignKey("products.product_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    asset_type = Column(ASSET_TYPE_ENUM, nullable=False, default=AssetType.STANDALONE)
    parent_asset_id = Column(
        GUID(),
        ForeignKey("assets.asset_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_to = Column(
        Integer,
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    location_id = Column(
        Integer,
        ForeignKey("locations.location_id", ondelete="SET NULL"),
        nullable=True,
    )
    status = Column(ASSET_STATUS_ENUM, nullable=False, default=AssetStatus.AVAILABLE)
    importance = Column(ASSET_IMPORTANCE_ENUM, nullable=False, default=AssetImportance.MEDIUM)
    condition_status = Column(CONDITION_STATUS_ENUM, nullable=False, default=ConditionStatus.GOOD)
    warranty_start_date = Column(Date, nullable=True)
    warranty_end_date = Column(Date, nullable=True)
    eol_date = Column(Date, nullable=True)
    eos_date = Column(Date, nullable=True)
    vendor_id = Column(
        Integer,
        ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
        nullable=True,
    )
    invoice_number = Column(String(80), nullable=True)
    purchase_cost = Column(Numeric(12, 2), nullable=True)
    purchase_date = Column(Date, nullable=True)
    installation_notes = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    product = relationship("Product")
    vendor = relationship("Vendor")
    location = relationship("Location")
    assignee = relationship("User")
    parent = relationship("Asset", remote_side=[id], back_populates="components")
    components = relationship("Asset", back_populates="parent")
    software_installations = relationship(
        "SoftwareInstallation",
        back_populates="asset",
        cascade="all, delete-orphan",
    )


class AssetTagSequence(Base):
    """Monotonic counter backing asset tag generation for a tag prefix."""

    __tablename__ = "asset_tag_sequences"

    prefix = Column(String(16), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)


Index("assets_status_deleted_idx", Asset.status, Asset.deleted_at)
Index("assets_type_deleted_idx", Asset.asset_type, Asset.deleted_at)
