from __future__ import annotations

import threading
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.orm import Query

from backend.app import models, schemas
from backend.app.services import (
    LABEL_BATCH_LIMIT,
    AssetService,
    LicensePoolService,
    LifecycleService,
    SoftwareInstallationService,
)
from backend.app.services.errors import (
    AlreadyDeleted,
    ConcurrentChange,
    NotDeleted,
    ParentNoLongerValid,
    RestoreConflict,
    TooManyAssets,
)
from backend.app.services.lifecycle import utcnow

SNAPSHOT_COLUMNS = (
    "asset_tag",
    "serial_number",
    "product_id",
    "asset_type",
    "parent_asset_id",
    "assigned_to",
    "location_id",
    "status",
    "importance",
    "condition_status",
    "notes",
)


def _snapshot(asset: models.Asset) -> dict:
    return {column: getattr(asset, column) for column in SNAPSHOT_COLUMNS}


def _install(db_session, asset, product_id, license_id=None):
    return SoftwareInstallationService.add_installation(
        db_session,
        asset.id,
        schemas.SoftwareInstallationCreate(software_product_id=product_id, license_id=license_id),
    )


def _allocated(db_session, pool_id) -> int:
    db_session.expire_all()
    return db_session.get(models.LicensePool, pool_id).allocated_count


def test_delete_then_restore_leaves_asset_and_seats_unchanged(
    db_session, catalog, make_asset, make_pool
):
    pool = make_pool(total=2)
    asset = make_asset(assigned_to=catalog["alice_id"], notes="Finance laptop")
    installation = _install(db_session, asset, catalog["office_id"], license_id=pool.id)
    before = _snapshot(asset)

    deleted = LifecycleService.soft_delete(db_session, asset.id)
    assert deleted.deleted_at is not None
    assert _allocated(db_session, pool.id) == 1

    restored = LifecycleService.restore(db_session, asset.id)

    assert restored.deleted_at is None
    assert _snapshot(restored) == before
    db_session.expire_all()
    kept = db_session.get(models.SoftwareInstallation, installation.id)
    assert (kept.license_id, kept.seat_held) == (pool.id, True)
    assert _allocated(db_session, pool.id) == 1


def test_restore_leaves_a_seat_released_before_deletion_alone(
    db_session, catalog, make_asset, make_pool
):
    pool = make_pool(total=2)
    asset = make_asset()
    installation = _install(db_session, asset, catalog["office_id"], license_id=pool.id)
    LicensePoolService.release(db_session, pool.id, installation.id)
    before = _allocated(db_session, pool.id)

    LifecycleService.soft_delete(db_session, asset.id)
    LifecycleService.restore(db_session, asset.id)

    assert _allocated(db_session, pool.id) == before == 0
    db_session.expire_all()
    kept = db_session.get(models.SoftwareInstallation, installation.id)
    assert (kept.license_id, kept.seat_held) == (None, False)


def test_delete_twice_and_restore_live_asset_are_rejected(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(NotDeleted):
        LifecycleService.restore(db_session, asset.id)
    LifecycleService.soft_delete(db_session, asset.id)
    with pytest.raises(AlreadyDeleted):
        LifecycleService.soft_delete(db_session, asset.id)


def test_deleting_parent_detaches_live_components(db_session, catalog, make_asset):
    parent = make_asset()
    component = make_asset(
        product_id=catalog["ram_id"], asset_type="component", parent_asset_id=parent.id
    )

    LifecycleService.soft_delete(db_session, parent.id)

    db_session.expire_all()
    detached = db_session.get(models.Asset, component.id)
    assert detached.parent_asset_id is None
    assert detached.deleted_at is None
    items, _ = AssetService.list_history(db_session, component.id)
    assert models.AssetHistoryAction.REMOVE_COMPONENT in {item.action for item in items}


def test_delete_rejects_components_installed_after_the_first_read(
    db_session, catalog, make_asset, monkeypatch
):
    parent = make_asset()
    component = make_asset(
        product_id=catalog["ram_id"], asset_type="component", parent_asset_id=parent.id
    )
    real_live_components = AssetService.live_components
    reads = []

    def _stale_first_read(db, parent_id):
        reads.append(parent_id)
        if len(reads) == 1:
            return []
        return real_live_components(db, parent_id)

    monkeypatch.setattr(AssetService, "live_components", staticmethod(_stale_first_read))

    with pytest.raises(ConcurrentChange):
        LifecycleService.soft_delete(db_session, parent.id)

    db_session.expire_all()
    assert db_session.get(models.Asset, parent.id).deleted_at is None
    assert db_session.get(models.Asset, component.id).parent_asset_id == parent.id

    LifecycleService.soft_delete(db_session, parent.id)
    db_session.expire_all()
    assert db_session.get(models.Asset, component.id).parent_asset_id is None


def test_restore_fails_when_parent_was_deleted(db_session, catalog, make_asset):
    parent = make_asset()
    component = make_asset(
        product_id=catalog["ram_id"], asset_type="component", parent_asset_id=parent.id
    )
    LifecycleService.soft_delete(db_session, component.id)
    LifecycleService.soft_delete(db_session, parent.id)

    with pytest.raises(ParentNoLongerValid) as excinfo:
        LifecycleService.restore(db_session, component.id)

    assert excinfo.value.detail["invariant"] == "parent_standalone"
    db_session.expire_all()
    assert db_session.get(models.Asset, component.id).deleted_at is not None


def test_restore_conflicts_when_released_seat_was_taken(
    db_session, catalog, make_asset, make_pool
):
    pool = make_pool(total=1)
    asset = make_asset()
    _install(db_session, asset, catalog["office_id"], license_id=pool.id)
    LifecycleService.soft_delete(db_session, asset.id)

    released = LifecycleService.release_retained_seats(
        db_session, deleted_before=utcnow() + timedelta(minutes=1)
    )
    assert released == 1
    assert _allocated(db_session, pool.id) == 0

    _install(db_session, make_asset(), catalog["office_id"], license_id=pool.id)

    with pytest.raises(RestoreConflict) as excinfo:
        LifecycleService.restore(db_session, asset.id)

    assert excinfo.value.detail["reason"] == "pool_exhausted"
    assert excinfo.value.detail["invariant"] == "pool_capacity"
    db_session.expire_all()
    assert db_session.get(models.Asset, asset.id).deleted_at is not None
    assert _allocated(db_session, pool.id) == 1


def test_restore_reacquires_released_seats(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=1)
    asset = make_asset()
    installation = _install(db_session, asset, catalog["office_id"], license_id=pool.id)
    LifecycleService.soft_delete(db_session, asset.id)
    LifecycleService.release_retained_seats(
        db_session, deleted_before=utcnow() + timedelta(minutes=1)
    )

    LifecycleService.restore(db_session, asset.id)

    db_session.expire_all()
    assert db_session.get(models.SoftwareInstallation, installation.id).seat_held is True
    assert _allocated(db_session, pool.id) == 1
    items, _ = AssetService.list_history(db_session, asset.id)
    restore_entry = next(item for item in items if item.action == models.AssetHistoryAction.RESTORE)
    assert restore_entry.changes == {"reacquired_seats": [installation.id]}


def test_retention_skips_recently_deleted_assets(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=1)
    asset = make_asset()
    _install(db_session, asset, catalog["office_id"], license_id=pool.id)
    LifecycleService.soft_delete(db_session, asset.id)

    released = LifecycleService.release_retained_seats(
        db_session, deleted_before=utcnow() - timedelta(days=30)
    )

    assert released == 0
    assert _allocated(db_session, pool.id) == 1


def test_purge_releases_seats_and_keeps_history(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=1)
    asset = make_asset()
    _install(db_session, asset, catalog["office_id"], license_id=pool.id)

    with pytest.raises(NotDeleted):
        LifecycleService.purge(db_session, asset.id)
    LifecycleService.soft_delete(db_session, asset.id)
    LifecycleService.purge(db_session, asset.id)

    assert _allocated(db_session, pool.id) == 0
    assert db_session.get(models.Asset, asset.id) is None
    assert db_session.query(models.SoftwareInstallation).count() == 0
    actions = [
        entry.action
        for entry in db_session.query(models.AssetHistory).filter(
            models.AssetHistory.asset_id == asset.id
        )
    ]
    assert models.AssetHistoryAction.PURGE in actions


def test_label_batch_over_limit_is_rejected_before_rendering(db_session, make_asset):
    rendered = []
    asset_ids = [str(uuid.uuid4()) for _ in range(LABEL_BATCH_LIMIT + 1)]

    with pytest.raises(TooManyAssets) as excinfo:
        LifecycleService.generate_labels(
            db_session,
            schemas.LabelBatchRequest(asset_ids=asset_ids),
            renderer=lambda asset: rendered.append(asset) or {},
        )

    assert rendered == []
    assert excinfo.value.detail["limit"] == LABEL_BATCH_LIMIT
    assert excinfo.value.detail["requested"] == LABEL_BATCH_LIMIT + 1


def test_label_select_all_over_limit_is_rejected(db_session, make_asset, monkeypatch):
    monkeypatch.setattr("backend.app.services.lifecycle.LABEL_BATCH_LIMIT", 2)
    for _ in range(3):
        make_asset()

    with pytest.raises(TooManyAssets):
        LifecycleService.generate_labels(db_session, schemas.LabelBatchRequest(select_all=True))


def test_label_select_all_cap_applies_to_the_rows_read(db_session, make_asset, monkeypatch):
    monkeypatch.setattr("backend.app.services.lifecycle.LABEL_BATCH_LIMIT", 2)
    assets = [make_asset() for _ in range(2)]
    request = schemas.LabelBatchRequest(select_all=True)

    assert LifecycleService.resolve_label_selection(db_session, request) == [
        asset.id for asset in assets
    ]

    # A count taken before the last insert would still say two.
    monkeypatch.setattr(Query, "count", lambda self: 2)
    make_asset()

    with pytest.raises(TooManyAssets):
        LifecycleService.resolve_label_selection(db_session, request)


def test_label_items_are_independent(db_session, catalog, make_asset):
    good = make_asset(location_id=catalog["hq_id"])
    broken = make_asset(serial_number="BROKEN")
    gone = make_asset()
    LifecycleService.soft_delete(db_session, gone.id)
    missing = str(uuid.uuid4())

    def renderer(asset):
        if asset.serial_number == "BROKEN":
            raise RuntimeError("printer jam")
        return {"asset_tag": asset.asset_tag}

    result = LifecycleService.generate_labels(
        db_session,
        schemas.LabelBatchRequest(asset_ids=[good.id, broken.id, gone.id, missing, good.id]),
        renderer=renderer,
    )

    assert result.requested == 4
    assert [item.status for item in result.items] == [
        "generated",
        "failed",
        "not_found",
        "not_found",
    ]
    assert result.generated == 1
    assert result.failed == 3
    assert result.items[0].label == {"asset_tag": good.asset_tag}
    assert result.items[2].error["code"] == "asset_deleted"


def test_default_label_payload(db_session, catalog, make_asset):
    asset = make_asset(location_id=catalog["hq_id"])

    result = LifecycleService.generate_labels(
        db_session, schemas.LabelBatchRequest(asset_ids=[asset.id])
    )

    assert result.items[0].label == {
        "asset_tag": asset.asset_tag,
        "serial_number": asset.serial_number,
        "product_name": "Dell Latitude",
        "location": "HQ",
        "barcode": asset.asset_tag,
    }


def test_label_batch_can_be_cancelled(db_session, make_asset):
    assets = [make_asset() for _ in range(4)]
    cancel = threading.Event()
    rendered = []

    def renderer(asset):
        rendered.append(asset.id)
        if len(rendered) == 2:
            cancel.set()
        return {"asset_tag": asset.asset_tag}

    result = LifecycleService.generate_labels(
        db_session,
        schemas.LabelBatchRequest(asset_ids=[asset.id for asset in assets]),
        renderer=renderer,
        cancel_event=cancel,
    )

    assert result.generated == 2
    assert result.cancelled == 2
    assert [item.status for item in result.items] == [
        "generated",
        "generated",
        "cancelled",
        "cancelled",
    ]
