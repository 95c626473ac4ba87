from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["ENABLE_STARTUP_MIGRATIONS"] = "0"
os.environ["ENABLE_LICENSE_RETENTION"] = "0"

from backend.app import models, schemas  # noqa: E402
from backend.app.database import Base, create_app_engine, get_db  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.services import AssetService, CatalogService, LicensePoolService  # noqa: E402
from backend.app.services.scheduler_monitor import SchedulerMonitor  # noqa: E402


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    test_engine = create_app_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Sessions over a SQLite file so worker threads get their own connections."""

    url = f"sqlite:///{(tmp_path / 'concurrency.db').as_posix()}"
    file_engine = create_app_engine(url)
    Base.metadata.create_all(bind=file_engine)
    try:
        yield sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
    finally:
        file_engine.dispose()


@pytest.fixture
def client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def _reset_scheduler_monitor() -> Generator[None, None, None]:
    SchedulerMonitor.reset()
    yield
    SchedulerMonitor.reset()


def _seed_catalog(db: Session) -> dict:
    vendor = CatalogService.create_vendor(db, schemas.VendorCreate(name="Acme Supplies"))
    hq = CatalogService.create_location(db, schemas.LocationCreate(name="HQ"))
    branch = CatalogService.create_location(db, schemas.LocationCreate(name="Branch"))
    alice = CatalogService.create_user(
        db,
        schemas.UserCreate(full_name="Alice Doe", email="alice@example.com", location_id=hq.id),
    )
    bob = CatalogService.create_user(
        db, schemas.UserCreate(full_name="Bob Roe", email="bob@example.com")
    )
    laptop = CatalogService.create_product(
        db,
        schemas.ProductCreate(name="Dell Latitude", category="hardware", vendor_id=vendor.id),
    )
    ram = CatalogService.create_product(
        db, schemas.ProductCreate(name="Kingston RAM", category="hardware")
    )
    office = CatalogService.create_product(
        db,
        schemas.ProductCreate(name="Office Suite", category="software", software_type="application"),
    )
    antivirus = CatalogService.create_product(
        db,
        schemas.ProductCreate(name="Shield AV", category="software", software_type="utility"),
    )
    return {
        "vendor_id": vendor.id,
        "hq_id": hq.id,
        "branch_id": branch.id,
        "alice_id": alice.id,
        "bob_id": bob.id,
        "laptop_id": laptop.id,
        "ram_id": ram.id,
        "office_id": office.id,
        "antivirus_id": antivirus.id,
    }


@pytest.fixture
def catalog(db_session: Session) -> dict:
    return _seed_catalog(db_session)


@pytest.fixture
def make_asset(db_session: Session, catalog: dict) -> Callable[..., models.Asset]:
    counter = {"value": 0}

    def _make(**overrides) -> models.Asset:
        counter["value"] += 1
        payload = {
            "serial_number": f"SN-{counter['value']:04d}",
            "product_id": catalog["laptop_id"],
        }
        payload.update(overrides)
        return AssetService.create_asset(db_session, schemas.AssetCreate(**payload))

    return _make


@pytest.fixture
def make_pool(db_session: Session, catalog: dict) -> Callable[..., models.LicensePool]:
    def _make(total: int = 2, **overrides) -> models.LicensePool:
        payload = {
            "software_product_id": catalog["office_id"],
            "license_name": f"Office {total} seats",
            "license_type": "per_device",
            "total_licenses": total,
        }
        payload.update(overrides)
        return LicensePoolService.create_pool(db_session, schemas.LicensePoolCreate(**payload))

    return _make


@pytest.fixture
def today() -> date:
    return date(2026, 10, 18)
