from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update

from backend.app import models, schemas
from backend.app.services import LifecycleService, SoftwareInstallationService
from backend.app.services import license_retention
from backend.app.services.lifecycle import utcnow


def _deleted_with_seat(db_session, catalog, make_asset, make_pool, *, days_ago: int):
    pool = make_pool(total=1, license_name=f"Retained {days_ago}")
    asset = make_asset()
    SoftwareInstallationService.add_installation(
        db_session,
        asset.id,
        schemas.SoftwareInstallationCreate(software_product_id=catalog["office_id"], license_id=pool.id),
    )
    LifecycleService.soft_delete(db_session, asset.id)
    db_session.execute(
        update(models.Asset)
        .where(models.Asset.id == asset.id)
        .values(deleted_at=utcnow() - timedelta(days=days_ago))
    )
    db_session.commit()
    return asset, pool


def _allocated(db_session, pool_id) -> int:
    db_session.expire_all()
    return db_session.get(models.LicensePool, pool_id).allocated_count


def test_cycle_is_a_no_op_without_retention_period(
    monkeypatch, session_factory, db_session, catalog, make_asset, make_pool
):
    monkeypatch.delenv(license_retention.RETENTION_DAYS_ENV, raising=False)
    _, pool = _deleted_with_seat(db_session, catalog, make_asset, make_pool, days_ago=400)

    assert license_retention.run_retention_cycle(session_factory) == 0
    assert _allocated(db_session, pool.id) == 1


def test_cycle_releases_only_seats_past_retention(
    monkeypatch, session_factory, db_session, catalog, make_asset, make_pool
):
    monkeypatch.setenv(license_retention.RETENTION_DAYS_ENV, "30")
    old_asset, old_pool = _deleted_with_seat(
        db_session, catalog, make_asset, make_pool, days_ago=45
    )
    _, recent_pool = _deleted_with_seat(db_session, catalog, make_asset, make_pool, days_ago=5)

    released = license_retention.run_retention_cycle(session_factory)

    assert released == 1
    assert _allocated(db_session, old_pool.id) == 0
    assert _allocated(db_session, recent_pool.id) == 1
    installation = (
        db_session.query(models.SoftwareInstallation)
        .filter(models.SoftwareInstallation.asset_id == old_asset.id)
        .one()
    )
    assert installation.license_id == old_pool.id
    assert installation.seat_held is False
    items, _ = LifecycleService.list_deleted(db_session)
    assert {item.id for item in items} >= {old_asset.id}

    assert license_retention.run_retention_cycle(session_factory) == 0


@pytest.mark.parametrize(
    "raw, expected",
    [(None, None), ("", None), ("abc", None), ("-3", None), ("0", 0), ("90", 90)],
)
def test_retention_days_parsing(monkeypatch, raw, expected):
    if raw is None:
        monkeypatch.delenv(license_retention.RETENTION_DAYS_ENV, raising=False)
    else:
        monkeypatch.setenv(license_retention.RETENTION_DAYS_ENV, raw)

    assert license_retention.get_retention_days() == expected


@pytest.mark.parametrize(
    "raw, minutes",
    [(None, 60), ("15", 15), ("0", 60), ("soon", 60)],
)
def test_retention_interval_parsing(monkeypatch, raw, minutes):
    if raw is None:
        monkeypatch.delenv(license_retention.RETENTION_INTERVAL_ENV, raising=False)
    else:
        monkeypatch.setenv(license_retention.RETENTION_INTERVAL_ENV, raw)

    assert license_retention._resolve_interval() == timedelta(minutes=minutes)


def test_scheduler_does_not_start_without_retention_period(monkeypatch):
    monkeypatch.delenv(license_retention.RETENTION_DAYS_ENV, raising=False)

    assert license_retention.start_license_retention_scheduler() is False
    license_retention.stop_license_retention_scheduler()
