"""Expose Pydantic schemas for convenient imports."""

from .asset import (
    AssetAssign,
    AssetBulkCreate,
    AssetBulkCreateResult,
    AssetCreate,
    AssetDropdownItem,
    AssetFilter,
    AssetHierarchyNode,
    AssetHierarchyResponse,
    AssetHistoryListResponse,
    AssetHistoryRead,
    AssetListResponse,
    AssetRead,
    AssetStatusChange,
    AssetUpdate,
    BulkItemResult,
    ComponentInstall,
)
from .catalog import (
    LocationCreate,
    LocationRead,
    ProductCreate,
    ProductListResponse,
    ProductRead,
    UserCreate,
    UserListResponse,
    UserRead,
    VendorCreate,
    VendorRead,
)
from .common import PaginatedResponse
from .label import LabelBatchRequest, LabelBatchResult, LabelItemResult
from .license_pool import (
    ExpirationAlert,
    ExpirationAlertsResponse,
    LedgerConsistencyReport,
    LicenseAllocationRequest,
    LicensePoolCreate,
    LicensePoolListResponse,
    LicensePoolRead,
    LicensePoolUpdate,
    LicenseUtilizationItem,
    LicenseUtilizationReport,
    PoolCounterMismatch,
)
from .software_installation import (
    SoftwareInstallationCreate,
    SoftwareInstallationListResponse,
    SoftwareInstallationRead,
    SoftwareInstallationUpdate,
)

__all__ = [
    "AssetAssign",
    "AssetBulkCreate",
    "AssetBulkCreateResult",
    "AssetCreate",
    "AssetDropdownItem",
    "AssetFilter",
    "AssetHierarchyNode",
    "AssetHierarchyResponse",
    "AssetHistoryListResponse",
    "AssetHistoryRead",
    "AssetListResponse",
    "AssetRead",
    "AssetStatusChange",
    "AssetUpdate",
    "BulkItemResult",
    "ComponentInstall",
    "LocationCreate",
    "LocationRead",
    "ProductCreate",
    "ProductListResponse",
    "ProductRead",
    "UserCreate",
    "UserListResponse",
    "UserRead",
    "VendorCreate",
    "VendorRead",
    "PaginatedResponse",
    "LabelBatchRequest",
    "LabelBatchResult",
    "LabelItemResult",
    "ExpirationAlert",
    "ExpirationAlertsResponse",
    "LedgerConsistencyReport",
    "LicenseAllocationRequest",
    "LicensePoolCreate",
    "LicensePoolListResponse",
    "LicensePoolRead",
    "LicensePoolUpdate",
    "LicenseUtilizationItem",
    "LicenseUtilizationReport",
    "PoolCounterMismatch",
    "SoftwareInstallationCreate",
    "SoftwareInstallationListResponse",
    "SoftwareInstallationRead",
    "SoftwareInstallationUpdate",
]
