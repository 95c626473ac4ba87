"""Routers package."""

from .assets import router as assets_router
from .catalog import router as catalog_router
from .license_pools import router as license_pools_router
from .software_installations import router as software_installations_router

__all__ = [
    "assets_router",
    "catalog_router",
    "license_pools_router",
    "software_installations_router",
]
