"""Service layer encapsulating business logic for API routers."""

from .assets import AssetService
from .catalog import CatalogService
from .data_consistency import DataConsistencyService
from .errors import AssetEngineError
from .license_pools import LicensePoolService
from .license_retention import (
    run_retention_cycle,
    start_license_retention_scheduler,
    stop_license_retention_scheduler,
)
from .lifecycle import LABEL_BATCH_LIMIT, LifecycleService
from .software_installations import SoftwareInstallationService

__all__ = [
    "AssetService",
    "CatalogService",
    "DataConsistencyService",
    "AssetEngineError",
    "LicensePoolService",
    "run_retention_cycle",
    "start_license_retention_scheduler",
    "stop_license_retention_scheduler",
    "LABEL_BATCH_LIMIT",
    "LifecycleService",
    "SoftwareInstallationService",
]
