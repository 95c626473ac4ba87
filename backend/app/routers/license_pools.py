"""Router exposing license pools, their seats and their reports."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import DataConsistencyService, LicensePoolService, SoftwareInstallationService
from ..services.errors import AssetEngineError
from ..services.license_pools import DEFAULT_ALERT_WINDOW_DAYS
from .common import engine_error

router = APIRouter()


@router.get("", response_model=schemas.LicensePoolListResponse)
def list_pools(
    db: Session = Depends(get_db),
    product_id: Optional[int] = Query(None, ge=1, description="Filter by software product"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.LicensePoolListResponse:
    items, total = LicensePoolService.list_pools(
        db, product_id=product_id, skip=skip, limit=limit
    )
    return schemas.LicensePoolListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("", response_model=schemas.LicensePoolRead, status_code=status.HTTP_201_CREATED)
def create_pool(
    payload: schemas.LicensePoolCreate, db: Session = Depends(get_db)
) -> schemas.LicensePoolRead:
    try:
        return LicensePoolService.create_pool(db, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/utilization", response_model=schemas.LicenseUtilizationReport)
def utilization(db: Session = Depends(get_db)) -> schemas.LicenseUtilizationReport:
    return LicensePoolService.utilization_report(db)


@router.get("/expiration-alerts", response_model=schemas.ExpirationAlertsResponse)
def expiration_alerts(
    db: Session = Depends(get_db),
    days: int = Query(DEFAULT_ALERT_WINDOW_DAYS, ge=0, le=3650),
    kind: Literal["all", "license", "warranty", "eol", "eos"] = Query("all"),
    today: Optional[date] = Query(None, description="Reference date, defaults to today"),
) -> schemas.ExpirationAlertsResponse:
    return LicensePoolService.expiration_alerts(db, days=days, kind=kind, today=today)


@router.get("/consistency", response_model=schemas.LedgerConsistencyReport)
def consistency_report(db: Session = Depends(get_db)) -> schemas.LedgerConsistencyReport:
    return DataConsistencyService.ledger_report(db)


@router.post("/consistency/repair", response_model=schemas.LedgerConsistencyReport)
def repair_counters(db: Session = Depends(get_db)) -> schemas.LedgerConsistencyReport:
    return DataConsistencyService.repair_counters(db)


@router.get("/for-product/{product_id}", response_model=List[schemas.LicensePoolRead])
def pools_for_product(
    product_id: int,
    db: Session = Depends(get_db),
    include_license_id: Optional[int] = Query(
        None, ge=1, description="Pool already held by the installation being edited"
    ),
) -> List[schemas.LicensePoolRead]:
    return LicensePoolService.list_for_product(
        db, product_id, include_license_id=include_license_id
    )


@router.get("/{pool_id}", response_model=schemas.LicensePoolRead)
def get_pool(pool_id: int, db: Session = Depends(get_db)) -> schemas.LicensePoolRead:
    pool = LicensePoolService.get_pool(db, pool_id)
    if pool is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="License pool not found")
    return pool


@router.patch("/{pool_id}", response_model=schemas.LicensePoolRead)
def update_pool(
    pool_id: int,
    payload: schemas.LicensePoolUpdate,
    db: Session = Depends(get_db),
) -> schemas.LicensePoolRead:
    try:
        return LicensePoolService.update_pool(db, pool_id, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.delete("/{pool_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_pool(pool_id: int, db: Session = Depends(get_db)) -> Response:
    try:
        LicensePoolService.delete_pool(db, pool_id)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{pool_id}/allocations", response_model=schemas.SoftwareInstallationRead)
def allocate_seat(
    pool_id: int,
    payload: schemas.LicenseAllocationRequest,
    db: Session = Depends(get_db),
) -> schemas.SoftwareInstallationRead:
    try:
        installation = LicensePoolService.allocate(db, pool_id, payload.installation_id)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return SoftwareInstallationService.describe(installation)


@router.delete("/{pool_id}/allocations/{installation_id}", status_code=status.HTTP_204_NO_CONTENT)
def release_seat(pool_id: int, installation_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        LicensePoolService.release(db, pool_id, installation_id)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
