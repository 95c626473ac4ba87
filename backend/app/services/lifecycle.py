"""Soft delete, restore, purge and bulk label generation for assets."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from .. import models, schemas
from .assets import AssetService
from .errors import (
    AlreadyDeleted,
    AssetEngineError,
    ConcurrentChange,
    DateAfterExpiration,
    NotDeleted,
    ParentNoLongerValid,
    PoolExhausted,
    PoolMismatch,
    RestoreConflict,
    TooManyAssets,
)
from .license_pools import LicensePoolService
from .locks import ASSET_LOCKS, POOL_LOCKS

LOGGER = logging.getLogger(__name__)

LABEL_BATCH_LIMIT = 2000

LabelRenderer = Callable[[models.Asset], dict[str, Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def render_label(asset: models.Asset) -> dict[str, Any]:
    """Payload handed to the label printer for one asset."""

    return {
        "asset_tag": asset.asset_tag,
        "serial_number": asset.serial_number,
        "product_name": asset.product.name if asset.product is not None else None,
        "location": asset.location.name if asset.location is not None else None,
        "barcode": asset.asset_tag,
    }


class LifecycleService:
    """Retirement and recovery of assets.

    Soft delete leaves installations and the seats they hold untouched so a
    restore finds the asset exactly as it was. Seats are only given back by
    ``purge`` or by the retention job once the configured grace period ends.
    """

    @staticmethod
    def _seat_pool_ids(db: Session, asset_id: str) -> list[int]:
        rows = (
            db.query(models.SoftwareInstallation.license_id)
            .filter(
                models.SoftwareInstallation.asset_id == asset_id,
                models.SoftwareInstallation.license_id.isnot(None),
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def _installations(db: Session, asset_id: str) -> list[models.SoftwareInstallation]:
        return (
            db.query(models.SoftwareInstallation)
            .populate_existing()
            .filter(models.SoftwareInstallation.asset_id == asset_id)
            .all()
        )

    @staticmethod
    def soft_delete(
        db: Session,
        asset_id: Any,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        key = AssetService.coerce_id(asset_id)
        component_ids = [component.id for component in AssetService.live_components(db, key)]
        with ASSET_LOCKS.hold_many([key, *component_ids]):
            try:
                asset = AssetService.load_asset(db, key, include_deleted=True, for_update=True)
                if asset.deleted_at is not None:
                    raise AlreadyDeleted("Asset is already deleted.", field="asset_id", asset_id=key)
                components = AssetService.live_components(db, asset.id)
                if {component.id for component in components} != set(component_ids):
                    raise ConcurrentChange(
                        "Components changed while deleting; retry the request.",
                        field="asset_id",
                        asset_id=key,
                    )
                asset.deleted_at = utcnow()
                detached = []
                # Live components may not point at a deleted parent.
                for component in components:
                    component.parent_asset_id = None
                    component.installation_notes = None
                    detached.append(component.id)
                    AssetService.record_history(
                        db,
                        component,
                        models.AssetHistoryAction.REMOVE_COMPONENT,
                        previous_status=component.status.value,
                        changes={"parent_asset_id": [asset.id, None]},
                        note="Parent asset deleted",
                        actor_id=actor_id,
                        source=source,
                    )
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.SOFT_DELETE,
                    previous_status=asset.status.value,
                    changes={"detached_components": detached} if detached else None,
                    actor_id=actor_id,
                    source=source,
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(asset)
        LOGGER.info("Soft-deleted asset %s", asset.asset_tag)
        return asset

    @staticmethod
    def restore(
        db: Session,
        asset_id: Any,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        """Bring a deleted asset back after re-checking everything that may have changed.

        Seats the retention job released while the asset was deleted are taken
        again; if a pool has no room left the restore fails with
        :class:`RestoreConflict` and the asset stays deleted.
        """

        key = AssetService.coerce_id(asset_id)
        current = AssetService.load_asset(db, key, include_deleted=True)
        parent_key = current.parent_asset_id
        pool_ids = LifecycleService._seat_pool_ids(db, key)
        with ASSET_LOCKS.hold_many([key, parent_key]), POOL_LOCKS.hold_many(pool_ids):
            try:
                asset = AssetService.load_asset(db, key, include_deleted=True, for_update=True)
                if asset.deleted_at is None:
                    raise NotDeleted("Asset is not deleted.", field="asset_id", asset_id=key)
                if asset.parent_asset_id != parent_key:
                    raise RestoreConflict(
                        "Asset changed while restoring; retry the request.",
                        field="parent_asset_id",
                        asset_id=key,
                    )
                LifecycleService._check_structure(db, asset)
                reacquired = LifecycleService._check_seats(db, asset, pool_ids)

                asset.deleted_at = None
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.RESTORE,
                    previous_status=asset.status.value,
                    changes={"reacquired_seats": reacquired} if reacquired else None,
                    actor_id=actor_id,
                    source=source,
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(asset)
        LOGGER.info("Restored asset %s", asset.asset_tag)
        return asset

    @staticmethod
    def _check_structure(db: Session, asset: models.Asset) -> None:
        if asset.asset_type == models.AssetType.COMPONENT and asset.assigned_to is not None:
            raise RestoreConflict(
                "A component cannot be restored while assigned.",
                field="assigned_to",
                invariant="component_unassigned",
                asset_id=asset.id,
            )
        if asset.parent_asset_id is None:
            return
        parent = db.get(models.Asset, asset.parent_asset_id, populate_existing=True)
        if (
            parent is None
            or parent.deleted_at is not None
            or parent.asset_type != models.AssetType.STANDALONE
        ):
            raise ParentNoLongerValid(
                "The parent asset was deleted or is no longer standalone.",
                field="parent_asset_id",
                invariant="parent_standalone",
                asset_id=asset.id,
                parent_asset_id=asset.parent_asset_id,
            )

    @staticmethod
    def _check_seats(db: Session, asset: models.Asset, locked_pool_ids: list[int]) -> list[str]:
        reacquired: list[str] = []
        for installation in LifecycleService._installations(db, asset.id):
            if installation.license_id is None:
                continue
            if installation.license_id not in locked_pool_ids:
                raise RestoreConflict(
                    "Installations changed while restoring; retry the request.",
                    field="license_id",
                    installation_id=installation.id,
                )
            pool = LicensePoolService.require_pool(db, installation.license_id)
            try:
                LicensePoolService.check_terms(
                    pool,
                    software_product_id=installation.software_product_id,
                    installation_date=installation.installation_date,
                )
                # Only retention leaves a pool reference without a seat.
                if not installation.seat_held:
                    LicensePoolService.take_seat(db, pool.id, installation)
                    reacquired.append(installation.id)
            except (PoolExhausted, PoolMismatch, DateAfterExpiration) as exc:
                raise RestoreConflict(
                    f"Installation {installation.id} can no longer hold its license: {exc.message}",
                    field="license_id",
                    invariant=exc.invariant,
                    installation_id=installation.id,
                    license_id=pool.id,
                    reason=exc.code,
                ) from exc
        return reacquired

    @staticmethod
    def list_deleted(
        db: Session, *, skip: int = 0, limit: int = 100
    ) -> Tuple[Iterable[models.Asset], int]:
        query = db.query(models.Asset).filter(models.Asset.deleted_at.isnot(None))
        total = query.count()
        items = (
            query.order_by(models.Asset.deleted_at.desc(), models.Asset.asset_tag)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def purge(
        db: Session,
        asset_id: Any,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        """Permanently remove a deleted asset, giving back every seat it still holds.

        The tag counter is not touched, so the purged tag is never issued again.
        """

        key = AssetService.coerce_id(asset_id)
        AssetService.load_asset(db, key, include_deleted=True)
        pool_ids = LifecycleService._seat_pool_ids(db, key)
        with ASSET_LOCKS.hold(key), POOL_LOCKS.hold_many(pool_ids):
            try:
                asset = AssetService.load_asset(db, key, include_deleted=True, for_update=True)
                if asset.deleted_at is None:
                    raise NotDeleted(
                        "Only deleted assets can be purged.", field="asset_id", asset_id=key
                    )
                released = []
                for installation in LifecycleService._installations(db, asset.id):
                    if installation.license_id is None:
                        continue
                    if installation.license_id not in pool_ids:
                        raise RestoreConflict(
                            "Installations changed while purging; retry the request.",
                            field="license_id",
                            installation_id=installation.id,
                        )
                    pool_id = installation.license_id
                    if LicensePoolService.return_seat(db, pool_id, installation):
                        released.append(pool_id)
                for component in db.query(models.Asset).filter(
                    models.Asset.parent_asset_id == asset.id
                ):
                    component.parent_asset_id = None
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.PURGE,
                    previous_status=asset.status.value,
                    changes={"released_pools": released} if released else None,
                    actor_id=actor_id,
                    source=source,
                )
                db.delete(asset)
                db.commit()
            except Exception:
                db.rollback()
                raise
        LOGGER.info("Purged asset %s", key)

    @staticmethod
    def release_retained_seats(db: Session, *, deleted_before: datetime) -> int:
        """Give back seats held by assets deleted before ``deleted_before``.

        Each asset is handled in its own transaction. The installations keep
        their ``license_id`` so a later restore knows which pool to ask again.
        """

        candidates = [
            row[0]
            for row in db.query(models.Asset.id)
            .join(
                models.SoftwareInstallation,
                models.SoftwareInstallation.asset_id == models.Asset.id,
            )
            .filter(
                models.Asset.deleted_at.isnot(None),
                models.Asset.deleted_at < deleted_before,
                models.SoftwareInstallation.seat_held.is_(True),
            )
            .distinct()
            .all()
        ]
        released_total = 0
        for asset_key in candidates:
            pool_ids = LifecycleService._seat_pool_ids(db, asset_key)
            with ASSET_LOCKS.hold(asset_key), POOL_LOCKS.hold_many(pool_ids):
                try:
                    asset = db.get(models.Asset, asset_key, populate_existing=True)
                    if asset is None or asset.deleted_at is None:
                        db.rollback()
                        continue
                    released = []
                    for installation in LifecycleService._installations(db, asset.id):
                        if installation.license_id in pool_ids and LicensePoolService.return_seat(
                            db, installation.license_id, installation, keep_reference=True
                        ):
                            released.append(installation.id)
                    if not released:
                        db.rollback()
                        continue
                    AssetService.record_history(
                        db,
                        asset,
                        models.AssetHistoryAction.SEAT_RELEASE,
                        previous_status=asset.status.value,
                        changes={"released_installations": released},
                        source="retention",
                    )
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
            released_total += len(released)
            LOGGER.info("Released %s retained seats of deleted asset %s", len(released), asset_key)
        return released_total

    # -- labels ----------------------------------------------------------

    @staticmethod
    def resolve_label_selection(
        db: Session, request: schemas.LabelBatchRequest
    ) -> list[str]:
        """Turn a label request into asset ids, rejecting oversize selections up front."""

        if request.select_all:
            query = AssetService.filtered_query(db, request.filters)
            # The cap applies to the rows actually read, not to an earlier count.
            selected = [
                row[0]
                for row in query.with_entities(models.Asset.id)
                .order_by(models.Asset.asset_tag)
                .limit(LABEL_BATCH_LIMIT + 1)
            ]
            if len(selected) > LABEL_BATCH_LIMIT:
                raise TooManyAssets(
                    f"Label batches are limited to {LABEL_BATCH_LIMIT} assets.",
                    field="select_all",
                    requested=query.count(),
                    limit=LABEL_BATCH_LIMIT,
                )
            return selected

        asset_ids = request.asset_ids or []
        if len(asset_ids) > LABEL_BATCH_LIMIT:
            raise TooManyAssets(
                f"Label batches are limited to {LABEL_BATCH_LIMIT} assets.",
                field="asset_ids",
                requested=len(asset_ids),
                limit=LABEL_BATCH_LIMIT,
            )
        return list(dict.fromkeys(asset_ids))

    @staticmethod
    def generate_labels(
        db: Session,
        request: schemas.LabelBatchRequest,
        *,
        renderer: Optional[LabelRenderer] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> schemas.LabelBatchResult:
        """Render one label per selected asset.

        Items are independent: a missing asset or a renderer failure is reported
        for that item only. Setting ``cancel_event`` stops the batch before the
        next item; labels already rendered are kept in the result.
        """

        asset_ids = LifecycleService.resolve_label_selection(db, request)
        render = renderer or render_label
        results: list[schemas.LabelItemResult] = []
        for position, asset_id in enumerate(asset_ids):
            if cancel_event is not None and cancel_event.is_set():
                results.extend(
                    schemas.LabelItemResult(asset_id=str(pending), status="cancelled")
                    for pending in asset_ids[position:]
                )
                LOGGER.info("Label batch cancelled after %s of %s assets", position, len(asset_ids))
                break
            try:
                asset = AssetService.load_asset(db, asset_id)
            except AssetEngineError as exc:
                results.append(
                    schemas.LabelItemResult(
                        asset_id=str(asset_id), status="not_found", error=exc.detail
                    )
                )
                continue
            try:
                label = render(asset)
            except Exception as exc:
                LOGGER.warning("Label rendering failed for asset %s: %s", asset.id, exc)
                results.append(
                    schemas.LabelItemResult(
                        asset_id=asset.id,
                        status="failed",
                        error={"code": "render_failed", "message": str(exc)},
                    )
                )
                continue
            results.append(
                schemas.LabelItemResult(asset_id=asset.id, status="generated", label=label)
            )

        generated = sum(1 for item in results if item.status == "generated")
        cancelled = sum(1 for item in results if item.status == "cancelled")
        return schemas.LabelBatchResult(
            requested=len(asset_ids),
            generated=generated,
            failed=len(results) - generated - cancelled,
            cancelled=cancelled,
            items=results,
        )
