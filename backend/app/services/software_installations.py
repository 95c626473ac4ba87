"""Software installations recorded against assets, each optionally holding a license seat."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db_types import new_guid
from .assets import AssetService
from .catalog import CatalogService
from .errors import AssetDeleted, NotFound, ValidationFailed
from .license_pools import LicensePoolService
from .locks import ASSET_LOCKS, POOL_LOCKS

LOGGER = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 30


def license_status(
    pool: Optional[models.LicensePool], today: Optional[date] = None
) -> tuple[str, Optional[int]]:
    """Return the display status of a license and the days left before it expires."""

    if pool is None:
        return "Unlicensed", None
    if pool.expiration_date is None:
        return "Perpetual", None
    remaining = (pool.expiration_date - (today or date.today())).days
    if remaining < 0:
        return "Expired", remaining
    if remaining <= EXPIRING_SOON_DAYS:
        return "Expiring Soon", remaining
    return "Active", remaining


class SoftwareInstallationService:
    """Add, edit and remove installations.

    Every write follows the same order: the asset must exist and be live, the
    product must be an active software product, the license pool (when given)
    must match the product and cover the installation date, and only then is a
    seat taken and the row persisted, all in a single commit.
    """

    @staticmethod
    def describe(
        installation: models.SoftwareInstallation, today: Optional[date] = None
    ) -> schemas.SoftwareInstallationRead:
        pool = installation.license_pool
        status, remaining = license_status(pool, today)
        return schemas.SoftwareInstallationRead(
            id=installation.id,
            asset_id=installation.asset_id,
            software_product_id=installation.software_product_id,
            software_name=installation.software_product.name,
            software_type=installation.software_type,
            license_id=installation.license_id,
            license_name=pool.license_name if pool is not None else None,
            seat_held=installation.seat_held,
            installation_date=installation.installation_date,
            notes=installation.notes,
            license_expiration_date=pool.expiration_date if pool is not None else None,
            license_status=status,
            days_until_expiration=remaining,
            allocated_licenses=pool.allocated_count if pool is not None else None,
            total_licenses=pool.total_licenses if pool is not None else None,
            created_at=installation.created_at,
            updated_at=installation.updated_at,
        )

    @staticmethod
    def get_installation(db: Session, installation_id: Any) -> models.SoftwareInstallation:
        installation = db.get(
            models.SoftwareInstallation, str(installation_id), populate_existing=True
        )
        if installation is None:
            raise NotFound(
                "Software installation not found.",
                field="installation_id",
                installation_id=str(installation_id),
            )
        return installation

    @staticmethod
    def list_for_asset(
        db: Session, asset_id: Any, *, include_deleted: bool = False
    ) -> list[models.SoftwareInstallation]:
        asset = AssetService.load_asset(db, asset_id, include_deleted=include_deleted)
        return (
            db.query(models.SoftwareInstallation)
            .filter(models.SoftwareInstallation.asset_id == asset.id)
            .order_by(
                models.SoftwareInstallation.installation_date,
                models.SoftwareInstallation.created_at,
            )
            .all()
        )

    @staticmethod
    def add_installation(
        db: Session,
        asset_id: Any,
        data: schemas.SoftwareInstallationCreate,
    ) -> models.SoftwareInstallation:
        key = AssetService.coerce_id(asset_id)
        with ASSET_LOCKS.hold(key), POOL_LOCKS.hold_many([data.license_id]):
            try:
                asset = AssetService.load_asset(db, key, for_update=True)
                product = CatalogService.resolve_software_product(db, data.software_product_id)
                installation = models.SoftwareInstallation(
                    id=new_guid(),
                    asset_id=asset.id,
                    software_product_id=product.id,
                    software_type=product.software_type,
                    installation_date=data.installation_date,
                    notes=data.notes,
                    seat_held=False,
                )
                if data.license_id is not None:
                    pool = LicensePoolService.require_pool(db, data.license_id)
                    LicensePoolService.check_terms(
                        pool,
                        software_product_id=product.id,
                        installation_date=data.installation_date,
                    )
                    LicensePoolService.take_seat(db, pool.id, installation)
                db.add(installation)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationFailed("Could not record the installation.") from exc
            except Exception:
                db.rollback()
                raise
        db.refresh(installation)
        LOGGER.info(
            "Installed product %s on asset %s (license %s)",
            installation.software_product_id,
            installation.asset_id,
            installation.license_id,
        )
        return installation

    @staticmethod
    def update_installation(
        db: Session,
        installation_id: Any,
        data: schemas.SoftwareInstallationUpdate,
    ) -> models.SoftwareInstallation:
        """Edit an installation, moving its seat when the pool changes.

        The seat the installation already holds is not counted against it, so
        keeping the same pool never needs free capacity.
        """

        update_data = data.model_dump(exclude_unset=True)
        if "software_product_id" in update_data and update_data["software_product_id"] is None:
            raise ValidationFailed("software_product_id cannot be null.", field="software_product_id")

        current = SoftwareInstallationService.get_installation(db, installation_id)
        asset_key = current.asset_id
        pool_keys = [current.license_id, update_data.get("license_id")]
        with ASSET_LOCKS.hold(asset_key), POOL_LOCKS.hold_many(pool_keys):
            try:
                installation = SoftwareInstallationService.get_installation(db, installation_id)
                if installation.license_id not in pool_keys:
                    raise ValidationFailed(
                        "Installation changed concurrently; retry the request.",
                        field="license_id",
                        installation_id=installation.id,
                    )
                AssetService.load_asset(db, installation.asset_id, for_update=True)

                product_id = update_data.get("software_product_id", installation.software_product_id)
                product = CatalogService.resolve_software_product(db, product_id)
                license_id = update_data.get("license_id", installation.license_id)
                installation_date = update_data.get(
                    "installation_date", installation.installation_date
                )

                if license_id is None:
                    held = installation.license_id
                    if held is not None:
                        LicensePoolService.return_seat(db, held, installation)
                    installation.license_id = None
                else:
                    pool = LicensePoolService.require_pool(db, license_id)
                    LicensePoolService.check_terms(
                        pool,
                        software_product_id=product.id,
                        installation_date=installation_date,
                    )
                    LicensePoolService.move_seat(db, pool.id, installation)

                installation.software_product_id = product.id
                installation.software_type = product.software_type
                installation.installation_date = installation_date
                if "notes" in update_data:
                    installation.notes = update_data["notes"]
                db.add(installation)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationFailed("Could not update the installation.") from exc
            except Exception:
                db.rollback()
                raise
        db.refresh(installation)
        return installation

    @staticmethod
    def remove_installation(db: Session, installation_id: Any) -> None:
        current = SoftwareInstallationService.get_installation(db, installation_id)
        held_pool_id = current.license_id
        with ASSET_LOCKS.hold(current.asset_id), POOL_LOCKS.hold_many([held_pool_id]):
            try:
                installation = SoftwareInstallationService.get_installation(db, installation_id)
                if installation.license_id != held_pool_id:
                    raise ValidationFailed(
                        "Installation changed concurrently; retry the request.",
                        field="license_id",
                        installation_id=installation.id,
                    )
                asset = db.get(models.Asset, installation.asset_id)
                if asset is not None and asset.deleted_at is not None:
                    raise AssetDeleted(
                        "Installations of a deleted asset are kept until it is restored or purged.",
                        field="asset_id",
                        asset_id=asset.id,
                    )
                if installation.license_id is not None:
                    LicensePoolService.return_seat(db, installation.license_id, installation)
                db.delete(installation)
                db.commit()
            except Exception:
                db.rollback()
                raise
        LOGGER.info("Removed installation %s", installation_id)
