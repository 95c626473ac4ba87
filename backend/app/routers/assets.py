"""Router exposing asset records, their hierarchy and their lifecycle."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..models.asset import AssetStatus, AssetType
from ..services import AssetService, LifecycleService, SoftwareInstallationService
from ..services.errors import AssetEngineError
from .common import API_SOURCE, engine_error, request_actor

router = APIRouter()


@router.get("", response_model=schemas.AssetListResponse)
def list_assets(
    db: Session = Depends(get_db),
    status_filter: Optional[AssetStatus] = Query(None, alias="status"),
    asset_type: Optional[AssetType] = Query(None),
    product_id: Optional[int] = Query(None, ge=1),
    location_id: Optional[int] = Query(None, ge=1),
    assigned_to: Optional[int] = Query(None, ge=1),
    search: Optional[str] = Query(None, description="Match tag, serial, invoice or notes"),
    include_deleted: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.AssetListResponse:
    filters = schemas.AssetFilter(
        status=status_filter,
        asset_type=asset_type,
        product_id=product_id,
        location_id=location_id,
        assigned_to=assigned_to,
        search=search,
    )
    items, total = AssetService.list_assets(
        db, filters, include_deleted=include_deleted, skip=skip, limit=limit
    )
    return schemas.AssetListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("", response_model=schemas.AssetRead, status_code=status.HTTP_201_CREATED)
def create_asset(
    payload: schemas.AssetCreate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.create_asset(db, payload, actor_id=actor_id, source=API_SOURCE)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.post("/bulk", response_model=schemas.AssetBulkCreateResult)
def bulk_create_assets(
    payload: schemas.AssetBulkCreate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetBulkCreateResult:
    return AssetService.bulk_create(db, payload, actor_id=actor_id, source=API_SOURCE)


@router.get("/deleted", response_model=schemas.AssetListResponse)
def list_deleted_assets(
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.AssetListResponse:
    items, total = LifecycleService.list_deleted(db, skip=skip, limit=limit)
    return schemas.AssetListResponse(items=items, total=total, limit=limit, skip=skip)


@router.get("/dropdown", response_model=List[schemas.AssetDropdownItem])
def parent_candidates(
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None),
    exclude_id: Optional[str] = Query(None, description="Asset being edited"),
    limit: int = Query(50, ge=1, le=200),
) -> List[schemas.AssetDropdownItem]:
    return AssetService.parent_candidates(db, search=search, exclude_id=exclude_id, limit=limit)


@router.post("/labels:bulk", response_model=schemas.LabelBatchResult)
def generate_labels(
    payload: schemas.LabelBatchRequest, db: Session = Depends(get_db)
) -> schemas.LabelBatchResult:
    try:
        return LifecycleService.generate_labels(db, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/{asset_id}", response_model=schemas.AssetRead)
def get_asset(
    asset_id: str,
    db: Session = Depends(get_db),
    include_deleted: bool = Query(False),
) -> schemas.AssetRead:
    try:
        return AssetService.get_asset(db, asset_id, include_deleted=include_deleted)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.patch("/{asset_id}", response_model=schemas.AssetRead)
def update_asset(
    asset_id: str,
    payload: schemas.AssetUpdate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.update_asset(
            db, asset_id, payload, actor_id=actor_id, source=API_SOURCE
        )
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
def soft_delete_asset(
    asset_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> Response:
    try:
        LifecycleService.soft_delete(db, asset_id, actor_id=actor_id, source=API_SOURCE)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{asset_id}/restore", response_model=schemas.AssetRead)
def restore_asset(
    asset_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return LifecycleService.restore(db, asset_id, actor_id=actor_id, source=API_SOURCE)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.delete("/{asset_id}/purge", status_code=status.HTTP_204_NO_CONTENT)
def purge_asset(
    asset_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> Response:
    try:
        LifecycleService.purge(db, asset_id, actor_id=actor_id, source=API_SOURCE)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{asset_id}/assign", response_model=schemas.AssetRead)
def assign_asset(
    asset_id: str,
    payload: schemas.AssetAssign,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.assign(db, asset_id, payload, actor_id=actor_id, source=API_SOURCE)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.post("/{asset_id}/unassign", response_model=schemas.AssetRead)
def unassign_asset(
    asset_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.unassign(db, asset_id, actor_id=actor_id, source=API_SOURCE)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.patch("/{asset_id}/status", response_model=schemas.AssetRead)
def change_asset_status(
    asset_id: str,
    payload: schemas.AssetStatusChange,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.change_status(
            db, asset_id, payload, actor_id=actor_id, source=API_SOURCE
        )
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/{asset_id}/hierarchy", response_model=schemas.AssetHierarchyResponse)
def asset_hierarchy(asset_id: str, db: Session = Depends(get_db)) -> schemas.AssetHierarchyResponse:
    try:
        return AssetService.hierarchy(db, asset_id)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/{asset_id}/history", response_model=schemas.AssetHistoryListResponse)
def asset_history(
    asset_id: str,
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.AssetHistoryListResponse:
    try:
        items, total = AssetService.list_history(db, asset_id, skip=skip, limit=limit)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return schemas.AssetHistoryListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post(
    "/{asset_id}/components",
    response_model=schemas.AssetRead,
    status_code=status.HTTP_201_CREATED,
)
def install_component(
    asset_id: str,
    payload: schemas.ComponentInstall,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.install_component(
            db, asset_id, payload, actor_id=actor_id, source=API_SOURCE
        )
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.delete("/{asset_id}/components/{component_id}", response_model=schemas.AssetRead)
def remove_component(
    asset_id: str,
    component_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(request_actor),
) -> schemas.AssetRead:
    try:
        return AssetService.remove_component(
            db, asset_id, component_id, actor_id=actor_id, source=API_SOURCE
        )
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get(
    "/{asset_id}/software-installations",
    response_model=schemas.SoftwareInstallationListResponse,
)
def list_asset_installations(
    asset_id: str,
    db: Session = Depends(get_db),
    include_deleted: bool = Query(False),
) -> schemas.SoftwareInstallationListResponse:
    try:
        installations = SoftwareInstallationService.list_for_asset(
            db, asset_id, include_deleted=include_deleted
        )
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    items = [SoftwareInstallationService.describe(item) for item in installations]
    return schemas.SoftwareInstallationListResponse(items=items, total=len(items))


@router.post(
    "/{asset_id}/software-installations",
    response_model=schemas.SoftwareInstallationRead,
    status_code=status.HTTP_201_CREATED,
)
def add_installation(
    asset_id: str,
    payload: schemas.SoftwareInstallationCreate,
    db: Session = Depends(get_db),
) -> schemas.SoftwareInstallationRead:
    try:
        installation = SoftwareInstallationService.add_installation(db, asset_id, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return SoftwareInstallationService.describe(installation)
