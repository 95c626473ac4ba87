"""Expose SQLAlchemy models for convenient imports."""

from .asset import (
    Asset,
    AssetImportance,
    AssetStatus,
    AssetTagSequence,
    AssetType,
    ConditionStatus,
)
from .asset_history import AssetHistory, AssetHistoryAction
from .catalog import Location, Product, ProductCategory, SoftwareType, User, Vendor
from .license_pool import LicensePool, LicenseType, SoftwareInstallation

__all__ = [
    "Asset",
    "AssetImportance",
    "AssetStatus",
    "AssetTagSequence",
    "AssetType",
    "ConditionStatus",
    "AssetHistory",
    "AssetHistoryAction",
    "Location",
    "Product",
    "ProductCategory",
    "SoftwareType",
    "User",
    "Vendor",
    "LicensePool",
    "LicenseType",
    "SoftwareInstallation",
]
