"""License pool ledger: capacity accounting for software license pools."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from .catalog import CatalogService
from .errors import (
    AssetDeleted,
    DateAfterExpiration,
    NotFound,
    PoolExhausted,
    PoolMismatch,
    ValidationFailed,
)
from .locks import POOL_LOCKS

LOGGER = logging.getLogger(__name__)

WARNING_UTILIZATION_PERCENT = 75
CRITICAL_UTILIZATION_PERCENT = 90
DEFAULT_ALERT_WINDOW_DAYS = 30


def utilization_band(allocated: int, total: int) -> str:
    percent = round(allocated * 100 / total) if total > 0 else 0
    if percent >= 100:
        return "full"
    if percent >= CRITICAL_UTILIZATION_PERCENT:
        return "critical"
    if percent >= WARNING_UTILIZATION_PERCENT:
        return "warning"
    return "healthy"


class LicensePoolService:
    """Operations over license pools and the seats installations hold in them.

    ``take_seat`` and ``return_seat`` run inside the caller's transaction and
    expect the caller to hold ``POOL_LOCKS`` for the pool until it commits.
    ``allocate`` and ``release`` are the self-contained, committing variants.
    """

    # -- seat primitives -------------------------------------------------

    @staticmethod
    def check_terms(
        pool: models.LicensePool,
        *,
        software_product_id: int,
        installation_date: Optional[date],
    ) -> None:
        if pool.software_product_id != software_product_id:
            raise PoolMismatch(
                "License pool belongs to a different software product.",
                field="license_id",
                invariant="license_terms",
                license_id=pool.id,
                pool_product_id=pool.software_product_id,
                software_product_id=software_product_id,
            )
        if (
            installation_date is not None
            and pool.expiration_date is not None
            and installation_date > pool.expiration_date
        ):
            raise DateAfterExpiration(
                "Installation date falls after the license expiration date.",
                field="installation_date",
                invariant="license_terms",
                license_id=pool.id,
                installation_date=installation_date.isoformat(),
                expiration_date=pool.expiration_date.isoformat(),
            )

    @staticmethod
    def _counts(db: Session, pool_id: int) -> tuple[int, int]:
        row = db.execute(
            select(
                models.LicensePool.total_licenses, models.LicensePool.allocated_count
            ).where(models.LicensePool.id == pool_id)
        ).one_or_none()
        if row is None:
            raise NotFound("License pool not found.", field="license_id", license_id=pool_id)
        return int(row[0]), int(row[1])

    @staticmethod
    def take_seat(
        db: Session, pool_id: int, installation: models.SoftwareInstallation
    ) -> None:
        """Bind ``installation`` to a seat of ``pool_id``; a no-op when it already holds one."""

        if installation.seat_held and installation.license_id == pool_id:
            return
        LicensePoolService._increment(db, pool_id)
        installation.license_id = pool_id
        installation.seat_held = True

    @staticmethod
    def return_seat(
        db: Session,
        pool_id: int,
        installation: models.SoftwareInstallation,
        *,
        keep_reference: bool = False,
    ) -> bool:
        """Give back the seat ``installation`` holds in ``pool_id``. Idempotent.

        The installation stops referencing the pool unless ``keep_reference``
        is set, which only the retention job does so a restore can ask the same
        pool again.
        """

        if not installation.seat_held or installation.license_id != pool_id:
            return False
        LicensePoolService._decrement(db, pool_id)
        installation.seat_held = False
        if not keep_reference:
            installation.license_id = None
        return True

    @staticmethod
    def _increment(db: Session, pool_id: int) -> None:
        # Check and bump happen in one statement; the pool row is the single point of mutation.
        result = db.execute(
            update(models.LicensePool)
            .where(
                models.LicensePool.id == pool_id,
                models.LicensePool.allocated_count < models.LicensePool.total_licenses,
            )
            .values(allocated_count=models.LicensePool.allocated_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            total, allocated = LicensePoolService._counts(db, pool_id)
            raise PoolExhausted(
                "No licenses available in the selected pool.",
                field="license_id",
                invariant="pool_capacity",
                license_id=pool_id,
                total_licenses=total,
                allocated_count=allocated,
            )

    @staticmethod
    def _decrement(db: Session, pool_id: int) -> None:
        db.execute(
            update(models.LicensePool)
            .where(models.LicensePool.id == pool_id, models.LicensePool.allocated_count > 0)
            .values(allocated_count=models.LicensePool.allocated_count - 1)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def move_seat(
        db: Session, pool_id: int, installation: models.SoftwareInstallation
    ) -> None:
        """Point ``installation`` at ``pool_id``, taking the new seat before giving back the old one.

        The caller holds ``POOL_LOCKS`` for both pools. If the new pool is full
        nothing is changed and the old seat stays held.
        """

        if installation.seat_held and installation.license_id == pool_id:
            return
        held_pool_id = installation.license_id if installation.seat_held else None
        LicensePoolService._increment(db, pool_id)
        if held_pool_id is not None:
            LicensePoolService._decrement(db, held_pool_id)
        installation.license_id = pool_id
        installation.seat_held = True

    @staticmethod
    def _load_installation(db: Session, installation_id: str) -> models.SoftwareInstallation:
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
    def allocate(db: Session, pool_id: int, installation_id: str) -> models.SoftwareInstallation:
        """Bind an existing installation to ``pool_id`` and commit.

        Moving from another pool takes the new seat before the old one is given
        back, all in one transaction: if the new pool is full or does not match,
        the previously held seat is left untouched.
        """

        installation = LicensePoolService._load_installation(db, installation_id)
        previous_pool_id = installation.license_id if installation.seat_held else None
        with POOL_LOCKS.hold_many([pool_id, previous_pool_id]):
            try:
                db.refresh(installation)
                if installation.asset is not None and installation.asset.deleted_at is not None:
                    raise AssetDeleted(
                        "Asset is deleted; its installations cannot take seats.",
                        field="asset_id",
                        asset_id=installation.asset_id,
                    )
                pool = LicensePoolService.require_pool(db, pool_id)
                LicensePoolService.check_terms(
                    pool,
                    software_product_id=installation.software_product_id,
                    installation_date=installation.installation_date,
                )
                if installation.seat_held and installation.license_id == pool_id:
                    db.rollback()
                    return installation
                if installation.seat_held and installation.license_id != previous_pool_id:
                    raise ValidationFailed(
                        "Installation changed pools concurrently; retry the request.",
                        field="license_id",
                        installation_id=installation.id,
                    )
                LicensePoolService.move_seat(db, pool_id, installation)
                db.add(installation)
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(installation)
        LOGGER.info("Installation %s now holds a seat in pool %s", installation.id, pool_id)
        return installation

    @staticmethod
    def release(db: Session, pool_id: int, installation_id: str) -> None:
        """Give back the seat an installation holds in ``pool_id`` and commit. Idempotent."""

        with POOL_LOCKS.hold(pool_id):
            try:
                installation = LicensePoolService._load_installation(db, installation_id)
                if LicensePoolService.return_seat(db, pool_id, installation):
                    db.add(installation)
                    db.commit()
                    LOGGER.info(
                        "Installation %s released its seat in pool %s", installation.id, pool_id
                    )
            except Exception:
                db.rollback()
                raise

    @staticmethod
    def available_count(db: Session, pool_id: int) -> int:
        total, allocated = LicensePoolService._counts(db, pool_id)
        return max(total - allocated, 0)

    # -- pool management -------------------------------------------------

    @staticmethod
    def get_pool(db: Session, pool_id: int) -> Optional[models.LicensePool]:
        return db.get(models.LicensePool, pool_id)

    @staticmethod
    def require_pool(db: Session, pool_id: int) -> models.LicensePool:
        pool = db.get(models.LicensePool, pool_id, populate_existing=True, with_for_update=True)
        if pool is None:
            raise NotFound("License pool not found.", field="license_id", license_id=pool_id)
        return pool

    @staticmethod
    def list_pools(
        db: Session,
        *,
        product_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.LicensePool], int]:
        query = db.query(models.LicensePool)
        if product_id is not None:
            query = query.filter(models.LicensePool.software_product_id == product_id)
        total = query.count()
        items = (
            query.order_by(models.LicensePool.license_name, models.LicensePool.id)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def list_for_product(
        db: Session,
        product_id: int,
        *,
        include_license_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[models.LicensePool]:
        """Pools an installation of ``product_id`` may pick.

        Full or expired pools are hidden, except ``include_license_id`` which an
        edited installation already holds and must keep seeing.
        """

        today = today or date.today()
        pools = (
            db.query(models.LicensePool)
            .filter(models.LicensePool.software_product_id == product_id)
            .order_by(models.LicensePool.license_name, models.LicensePool.id)
            .all()
        )
        selectable = []
        for pool in pools:
            if include_license_id is not None and pool.id == include_license_id:
                selectable.append(pool)
                continue
            if pool.available_licenses <= 0:
                continue
            if pool.expiration_date is not None and pool.expiration_date < today:
                continue
            selectable.append(pool)
        return selectable

    @staticmethod
    def create_pool(db: Session, data: schemas.LicensePoolCreate) -> models.LicensePool:
        CatalogService.resolve_software_product(db, data.software_product_id)
        payload = data.model_dump()
        payload["license_name"] = payload["license_name"].strip()
        pool = models.LicensePool(**payload, allocated_count=0)
        db.add(pool)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValidationFailed("Could not create the license pool.") from exc
        db.refresh(pool)
        LOGGER.info(
            "Created license pool %s (%s seats) for product %s",
            pool.id,
            pool.total_licenses,
            pool.software_product_id,
        )
        return pool

    @staticmethod
    def update_pool(
        db: Session, pool_id: int, data: schemas.LicensePoolUpdate
    ) -> models.LicensePool:
        update_data = data.model_dump(exclude_unset=True)
        for required in ("software_product_id", "license_name", "license_type", "total_licenses"):
            if required in update_data and update_data[required] is None:
                raise ValidationFailed(f"{required} cannot be null.", field=required)

        with POOL_LOCKS.hold(pool_id):
            try:
                pool = LicensePoolService.require_pool(db, pool_id)
                referencing = db.query(models.SoftwareInstallation).filter(
                    models.SoftwareInstallation.license_id == pool.id
                )

                new_product_id = update_data.get("software_product_id", pool.software_product_id)
                if new_product_id != pool.software_product_id:
                    if referencing.count():
                        raise PoolMismatch(
                            "Cannot change the product of a pool with installations.",
                            field="software_product_id",
                            invariant="license_terms",
                            license_id=pool.id,
                        )
                    CatalogService.resolve_software_product(db, new_product_id)

                if "expiration_date" in update_data and update_data["expiration_date"] is not None:
                    latest_install = (
                        db.query(func.max(models.SoftwareInstallation.installation_date))
                        .filter(models.SoftwareInstallation.license_id == pool.id)
                        .scalar()
                    )
                    if latest_install is not None and latest_install > update_data["expiration_date"]:
                        raise DateAfterExpiration(
                            "Existing installations are dated after the new expiration date.",
                            field="expiration_date",
                            invariant="license_terms",
                            license_id=pool.id,
                            latest_installation_date=latest_install.isoformat(),
                        )

                purchase_date = update_data.get("purchase_date", pool.purchase_date)
                expiration_date = update_data.get("expiration_date", pool.expiration_date)
                if purchase_date and expiration_date and expiration_date < purchase_date:
                    raise ValidationFailed(
                        "expiration_date must be after purchase_date.", field="expiration_date"
                    )

                new_total = update_data.pop("total_licenses", None)
                if new_total is not None and new_total != pool.total_licenses:
                    result = db.execute(
                        update(models.LicensePool)
                        .where(
                            models.LicensePool.id == pool.id,
                            models.LicensePool.allocated_count <= new_total,
                        )
                        .values(total_licenses=new_total)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise ValidationFailed(
                            "total_licenses cannot drop below the seats already allocated.",
                            field="total_licenses",
                            invariant="pool_capacity",
                            license_id=pool.id,
                            allocated_count=LicensePoolService._counts(db, pool.id)[1],
                        )

                if "license_name" in update_data:
                    update_data["license_name"] = update_data["license_name"].strip()
                for key, value in update_data.items():
                    setattr(pool, key, value)
                db.add(pool)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValidationFailed("Could not update the license pool.") from exc
            except Exception:
                db.rollback()
                raise
        db.refresh(pool)
        return pool

    @staticmethod
    def delete_pool(db: Session, pool_id: int) -> None:
        with POOL_LOCKS.hold(pool_id):
            pool = LicensePoolService.require_pool(db, pool_id)
            in_use = (
                db.query(func.count(models.SoftwareInstallation.id))
                .filter(models.SoftwareInstallation.license_id == pool.id)
                .scalar()
            )
            if in_use:
                db.rollback()
                raise ValidationFailed(
                    "Cannot delete a license pool referenced by installations.",
                    field="license_id",
                    license_id=pool.id,
                    installations=int(in_use),
                )
            db.delete(pool)
            db.commit()
        LOGGER.info("Deleted license pool %s", pool_id)

    # -- reporting -------------------------------------------------------

    @staticmethod
    def utilization_report(db: Session) -> schemas.LicenseUtilizationReport:
        held_by_deleted = dict(
            db.query(
                models.SoftwareInstallation.license_id,
                func.count(models.SoftwareInstallation.id),
            )
            .join(models.Asset, models.Asset.id == models.SoftwareInstallation.asset_id)
            .filter(
                models.SoftwareInstallation.seat_held.is_(True),
                models.Asset.deleted_at.isnot(None),
            )
            .group_by(models.SoftwareInstallation.license_id)
            .all()
        )
        items = []
        for pool in db.query(models.LicensePool).order_by(models.LicensePool.id).all():
            total = pool.total_licenses
            allocated = pool.allocated_count
            items.append(
                schemas.LicenseUtilizationItem(
                    license_id=pool.id,
                    license_name=pool.license_name,
                    software_product_id=pool.software_product_id,
                    total_licenses=total,
                    allocated_count=allocated,
                    available_licenses=pool.available_licenses,
                    held_by_deleted_assets=int(held_by_deleted.get(pool.id, 0)),
                    utilization_percent=round(allocated * 100 / total) if total else 0,
                    status=utilization_band(allocated, total),
                )
            )
        return schemas.LicenseUtilizationReport(items=items)

    @staticmethod
    def expiration_alerts(
        db: Session,
        *,
        days: int = DEFAULT_ALERT_WINDOW_DAYS,
        kind: str = "all",
        today: Optional[date] = None,
    ) -> schemas.ExpirationAlertsResponse:
        """Pools and live assets whose license, warranty, EOL or EOS date falls within ``days``."""

        today = today or date.today()
        horizon = today + timedelta(days=max(days, 0))
        alerts: list[schemas.ExpirationAlert] = []

        def _alert(alert_kind: str, entity_id, label: str, expires_on: date) -> None:
            remaining = (expires_on - today).days
            alerts.append(
                schemas.ExpirationAlert(
                    kind=alert_kind,
                    entity_id=str(entity_id),
                    label=label,
                    expires_on=expires_on,
                    days_remaining=remaining,
                    expired=remaining < 0,
                )
            )

        if kind in ("all", "license"):
            pools = (
                db.query(models.LicensePool)
                .filter(
                    models.LicensePool.expiration_date.isnot(None),
                    models.LicensePool.expiration_date <= horizon,
                )
                .all()
            )
            for pool in pools:
                _alert("license", pool.id, pool.license_name, pool.expiration_date)

        asset_columns = {
            "warranty": models.Asset.warranty_end_date,
            "eol": models.Asset.eol_date,
            "eos": models.Asset.eos_date,
        }
        for alert_kind, column in asset_columns.items():
            if kind not in ("all", alert_kind):
                continue
            assets = (
                db.query(models.Asset)
                .filter(
                    models.Asset.deleted_at.is_(None),
                    column.isnot(None),
                    column <= horizon,
                )
                .all()
            )
            for asset in assets:
                _alert(alert_kind, asset.id, asset.asset_tag, getattr(asset, column.key))

        alerts.sort(key=lambda alert: (alert.expires_on, alert.kind, alert.label))
        return schemas.ExpirationAlertsResponse(items=alerts, total=len(alerts))
