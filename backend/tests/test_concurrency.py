from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend.app import models, schemas
from backend.app.services import (
    AssetService,
    CatalogService,
    LicensePoolService,
    SoftwareInstallationService,
)
from backend.app.services.errors import PoolExhausted

WORKERS = 6


@pytest.fixture
def seeded(file_session_factory):
    session = file_session_factory()
    try:
        laptop = CatalogService.create_product(
            session, schemas.ProductCreate(name="Dell Latitude", category="hardware")
        )
        office = CatalogService.create_product(
            session,
            schemas.ProductCreate(name="Office Suite", category="software", software_type="application"),
        )
        assets = [
            AssetService.create_asset(
                session,
                schemas.AssetCreate(serial_number=f"RACE-{index}", product_id=laptop.id),
            ).id
            for index in range(WORKERS)
        ]
        return {"laptop_id": laptop.id, "office_id": office.id, "asset_ids": assets}
    finally:
        session.close()


def _create_pool(session_factory, product_id: int, total: int) -> int:
    session = session_factory()
    try:
        return LicensePoolService.create_pool(
            session,
            schemas.LicensePoolCreate(
                software_product_id=product_id,
                license_name=f"Race pool {total}",
                license_type="concurrent",
                total_licenses=total,
            ),
        ).id
    finally:
        session.close()


def _race(session_factory, jobs):
    def _run(job):
        session = session_factory()
        try:
            return "ok", job(session)
        except PoolExhausted as exc:
            return "exhausted", exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
        return list(executor.map(_run, jobs))


def _pool_state(session_factory, pool_id: int) -> tuple[int, int, int]:
    session = session_factory()
    try:
        pool = session.get(models.LicensePool, pool_id)
        holders = (
            session.query(models.SoftwareInstallation)
            .filter(
                models.SoftwareInstallation.license_id == pool_id,
                models.SoftwareInstallation.seat_held.is_(True),
            )
            .count()
        )
        return pool.total_licenses, pool.allocated_count, holders
    finally:
        session.close()


def test_racing_installations_never_oversubscribe_a_pool(file_session_factory, seeded):
    pool_id = _create_pool(file_session_factory, seeded["office_id"], total=2)

    def _job(asset_id):
        return lambda session: SoftwareInstallationService.add_installation(
            session,
            asset_id,
            schemas.SoftwareInstallationCreate(
                software_product_id=seeded["office_id"], license_id=pool_id
            ),
        ).id

    outcomes = _race(file_session_factory, [_job(asset_id) for asset_id in seeded["asset_ids"]])

    succeeded = [value for status, value in outcomes if status == "ok"]
    assert len(succeeded) == 2
    assert sum(1 for status, _ in outcomes if status == "exhausted") == WORKERS - 2
    total, allocated, holders = _pool_state(file_session_factory, pool_id)
    assert allocated == holders == total == 2

    session = file_session_factory()
    try:
        assert session.query(models.SoftwareInstallation).count() == 2
    finally:
        session.close()


def test_racing_allocations_for_the_last_seat(file_session_factory, seeded):
    pool_id = _create_pool(file_session_factory, seeded["office_id"], total=1)
    session = file_session_factory()
    try:
        installation_ids = [
            SoftwareInstallationService.add_installation(
                session,
                asset_id,
                schemas.SoftwareInstallationCreate(software_product_id=seeded["office_id"]),
            ).id
            for asset_id in seeded["asset_ids"]
        ]
    finally:
        session.close()

    outcomes = _race(
        file_session_factory,
        [
            (lambda session, key=key: LicensePoolService.allocate(session, pool_id, key).id)
            for key in installation_ids
        ],
    )

    assert [status for status, _ in outcomes].count("ok") == 1
    total, allocated, holders = _pool_state(file_session_factory, pool_id)
    assert (total, allocated, holders) == (1, 1, 1)


def test_concurrent_creation_issues_distinct_tags(file_session_factory, seeded):
    def _job(index):
        return lambda session: AssetService.create_asset(
            session,
            schemas.AssetCreate(serial_number=f"PAR-{index}", product_id=seeded["laptop_id"]),
        ).asset_tag

    outcomes = _race(file_session_factory, [_job(index) for index in range(WORKERS)])

    tags = [value for _, value in outcomes]
    assert len(set(tags)) == WORKERS
    assert all(tag.startswith("DELL-") for tag in tags)


def test_two_installations_race_for_a_single_seat(file_session_factory, seeded):
    pool_id = _create_pool(file_session_factory, seeded["office_id"], total=1)
    first, second = seeded["asset_ids"][:2]

    outcomes = _race(
        file_session_factory,
        [
            (
                lambda session, key=key: SoftwareInstallationService.add_installation(
                    session,
                    key,
                    schemas.SoftwareInstallationCreate(
                        software_product_id=seeded["office_id"], license_id=pool_id
                    ),
                ).id
            )
            for key in (first, second)
        ],
    )

    assert sorted(status for status, _ in outcomes) == ["exhausted", "ok"]
    assert _pool_state(file_session_factory, pool_id) == (1, 1, 1)
