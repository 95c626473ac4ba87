from __future__ import annotations

from datetime import date, timedelta

import pytest

from backend.app import models, schemas
from backend.app.services import LicensePoolService, LifecycleService, SoftwareInstallationService
from backend.app.services.errors import (
    AssetDeleted,
    DateAfterExpiration,
    ExpiredBeforeInstallDate,
    PoolExhausted,
    PoolMismatch,
    ValidationFailed,
)
from backend.app.services.license_pools import utilization_band


def _install(db_session, asset, product_id, license_id=None, **extra):
    return SoftwareInstallationService.add_installation(
        db_session,
        asset.id,
        schemas.SoftwareInstallationCreate(
            software_product_id=product_id, license_id=license_id, **extra
        ),
    )


def _pool(db_session, pool_id) -> models.LicensePool:
    db_session.expire_all()
    return db_session.get(models.LicensePool, pool_id)


def test_allocate_and_release_keep_counter_in_step(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=2)
    installation = _install(db_session, make_asset(), catalog["office_id"])
    assert installation.seat_held is False

    allocated = LicensePoolService.allocate(db_session, pool.id, installation.id)
    assert allocated.license_id == pool.id
    assert allocated.seat_held is True
    assert _pool(db_session, pool.id).allocated_count == 1

    LicensePoolService.allocate(db_session, pool.id, installation.id)
    assert _pool(db_session, pool.id).allocated_count == 1

    LicensePoolService.release(db_session, pool.id, installation.id)
    LicensePoolService.release(db_session, pool.id, installation.id)
    assert _pool(db_session, pool.id).allocated_count == 0
    assert LicensePoolService.available_count(db_session, pool.id) == 2


def test_released_installation_stops_referencing_the_pool(
    db_session, catalog, make_asset, make_pool
):
    pool = make_pool(total=1)
    first = _install(db_session, make_asset(), catalog["office_id"], license_id=pool.id)

    LicensePoolService.release(db_session, pool.id, first.id)
    second = _install(db_session, make_asset(), catalog["office_id"], license_id=pool.id)

    db_session.expire_all()
    released = db_session.get(models.SoftwareInstallation, first.id)
    assert (released.license_id, released.seat_held) == (None, False)
    view = SoftwareInstallationService.describe(released)
    assert view.license_name is None
    assert view.license_status == "Unlicensed"
    referencing = (
        db_session.query(models.SoftwareInstallation)
        .filter(models.SoftwareInstallation.license_id == pool.id)
        .all()
    )
    assert [row.id for row in referencing] == [second.id]
    assert _pool(db_session, pool.id).allocated_count == 1

    edited = SoftwareInstallationService.update_installation(
        db_session, first.id, schemas.SoftwareInstallationUpdate(notes="Reimaged")
    )
    assert (edited.notes, edited.license_id) == ("Reimaged", None)


def test_full_pool_rejects_allocation(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=1)
    _install(db_session, make_asset(), catalog["office_id"], license_id=pool.id)
    second = _install(db_session, make_asset(), catalog["office_id"])

    with pytest.raises(PoolExhausted) as excinfo:
        LicensePoolService.allocate(db_session, pool.id, second.id)

    assert excinfo.value.detail["invariant"] == "pool_capacity"
    assert excinfo.value.detail["total_licenses"] == 1
    assert _pool(db_session, pool.id).allocated_count == 1
    db_session.expire_all()
    assert db_session.get(models.SoftwareInstallation, second.id).seat_held is False


def test_allocation_checks_product_and_dates(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=5, expiration_date=date(2026, 12, 31))
    antivirus = _install(db_session, make_asset(), catalog["antivirus_id"])
    late = _install(
        db_session, make_asset(), catalog["office_id"], installation_date=date(2027, 1, 5)
    )

    with pytest.raises(PoolMismatch):
        LicensePoolService.allocate(db_session, pool.id, antivirus.id)
    with pytest.raises(ExpiredBeforeInstallDate):
        LicensePoolService.allocate(db_session, pool.id, late.id)

    assert _pool(db_session, pool.id).allocated_count == 0


def test_moving_to_a_full_pool_keeps_the_old_seat(db_session, catalog, make_asset, make_pool):
    roomy = make_pool(total=3, license_name="Roomy")
    full = make_pool(total=1, license_name="Full")
    _install(db_session, make_asset(), catalog["office_id"], license_id=full.id)
    mover = _install(db_session, make_asset(), catalog["office_id"], license_id=roomy.id)

    with pytest.raises(PoolExhausted):
        LicensePoolService.allocate(db_session, full.id, mover.id)

    assert _pool(db_session, roomy.id).allocated_count == 1
    assert _pool(db_session, full.id).allocated_count == 1
    assert db_session.get(models.SoftwareInstallation, mover.id).license_id == roomy.id


def test_moving_between_pools_transfers_the_seat(db_session, catalog, make_asset, make_pool):
    first = make_pool(total=2, license_name="First")
    second = make_pool(total=2, license_name="Second")
    installation = _install(db_session, make_asset(), catalog["office_id"], license_id=first.id)

    LicensePoolService.allocate(db_session, second.id, installation.id)

    assert _pool(db_session, first.id).allocated_count == 0
    assert _pool(db_session, second.id).allocated_count == 1


def test_deleted_asset_cannot_take_a_seat(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=2)
    asset = make_asset()
    installation = _install(db_session, asset, catalog["office_id"])
    LifecycleService.soft_delete(db_session, asset.id)

    with pytest.raises(AssetDeleted):
        LicensePoolService.allocate(db_session, pool.id, installation.id)


def test_create_pool_requires_software_product(db_session, catalog, make_pool):
    with pytest.raises(ValidationFailed):
        make_pool(software_product_id=catalog["laptop_id"])


def test_update_pool_guards_capacity_and_terms(db_session, catalog, make_asset, make_pool):
    pool = make_pool(total=3)
    _install(
        db_session,
        make_asset(),
        catalog["office_id"],
        license_id=pool.id,
        installation_date=date(2026, 6, 1),
    )
    _install(db_session, make_asset(), catalog["office_id"], license_id=pool.id)

    with pytest.raises(ValidationFailed) as excinfo:
        LicensePoolService.update_pool(db_session, pool.id, schemas.LicensePoolUpdate(total_licenses=1))
    assert excinfo.value.detail["allocated_count"] == 2

    with pytest.raises(DateAfterExpiration):
        LicensePoolService.update_pool(
            db_session, pool.id, schemas.LicensePoolUpdate(expiration_date=date(2026, 5, 1))
        )
    with pytest.raises(PoolMismatch):
        LicensePoolService.update_pool(
            db_session,
            pool.id,
            schemas.LicensePoolUpdate(software_product_id=catalog["antivirus_id"]),
        )

    updated = LicensePoolService.update_pool(
        db_session, pool.id, schemas.LicensePoolUpdate(total_licenses=2, license_name=" Renamed ")
    )
    assert updated.total_licenses == 2
    assert updated.license_name == "Renamed"
    assert updated.available_licenses == 0


def test_delete_pool_in_use_is_rejected(db_session, catalog, make_asset, make_pool):
    used = make_pool(total=1, license_name="Used")
    unused = make_pool(total=1, license_name="Unused")
    _install(db_session, make_asset(), catalog["office_id"], license_id=used.id)

    with pytest.raises(ValidationFailed):
        LicensePoolService.delete_pool(db_session, used.id)
    LicensePoolService.delete_pool(db_session, unused.id)

    assert LicensePoolService.get_pool(db_session, unused.id) is None


def test_pools_for_product_hide_full_and_expired(db_session, catalog, make_asset, make_pool, today):
    open_pool = make_pool(total=2, license_name="Open")
    full = make_pool(total=1, license_name="Full")
    make_pool(total=5, license_name="Expired", expiration_date=today - timedelta(days=1))
    _install(db_session, make_asset(), catalog["office_id"], license_id=full.id)

    visible = LicensePoolService.list_for_product(db_session, catalog["office_id"], today=today)
    assert [pool.id for pool in visible] == [open_pool.id]

    editing = LicensePoolService.list_for_product(
        db_session, catalog["office_id"], include_license_id=full.id, today=today
    )
    assert {pool.id for pool in editing} == {open_pool.id, full.id}


@pytest.mark.parametrize(
    "allocated, total, band",
    [(0, 10, "healthy"), (74, 100, "healthy"), (75, 100, "warning"), (9, 10, "critical"), (10, 10, "full")],
)
def test_utilization_band(allocated, total, band):
    assert utilization_band(allocated, total) == band


def test_utilization_report_counts_seats_of_deleted_assets(
    db_session, catalog, make_asset, make_pool
):
    pool = make_pool(total=4)
    kept = make_asset()
    deleted = make_asset()
    _install(db_session, kept, catalog["office_id"], license_id=pool.id)
    _install(db_session, deleted, catalog["office_id"], license_id=pool.id)
    LifecycleService.soft_delete(db_session, deleted.id)

    report = LicensePoolService.utilization_report(db_session)

    item = next(entry for entry in report.items if entry.license_id == pool.id)
    assert item.allocated_count == 2
    assert item.available_licenses == 2
    assert item.held_by_deleted_assets == 1
    assert item.utilization_percent == 50
    assert item.status == "healthy"


def test_expiration_alerts_cover_licenses_and_asset_dates(
    db_session, catalog, make_asset, make_pool, today
):
    pool = make_pool(total=1, license_name="Soon", expiration_date=today + timedelta(days=10))
    make_pool(total=1, license_name="Later", expiration_date=today + timedelta(days=200))
    asset = make_asset(warranty_end_date=today - timedelta(days=3))
    gone = make_asset(eol_date=today + timedelta(days=5))
    LifecycleService.soft_delete(db_session, gone.id)

    alerts = LicensePoolService.expiration_alerts(db_session, days=30, today=today)

    assert [(alert.kind, alert.entity_id) for alert in alerts.items] == [
        ("warranty", asset.id),
        ("license", str(pool.id)),
    ]
    assert alerts.items[0].expired is True
    assert alerts.items[1].days_remaining == 10

    only_licenses = LicensePoolService.expiration_alerts(
        db_session, days=30, kind="license", today=today
    )
    assert only_licenses.total == 1
