"""Router exposing edits to individual software installations."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import SoftwareInstallationService
from ..services.errors import AssetEngineError
from .common import engine_error

router = APIRouter()


@router.get("/{installation_id}", response_model=schemas.SoftwareInstallationRead)
def get_installation(
    installation_id: str, db: Session = Depends(get_db)
) -> schemas.SoftwareInstallationRead:
    try:
        installation = SoftwareInstallationService.get_installation(db, installation_id)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return SoftwareInstallationService.describe(installation)


@router.patch("/{installation_id}", response_model=schemas.SoftwareInstallationRead)
def update_installation(
    installation_id: str,
    payload: schemas.SoftwareInstallationUpdate,
    db: Session = Depends(get_db),
) -> schemas.SoftwareInstallationRead:
    try:
        installation = SoftwareInstallationService.update_installation(
            db, installation_id, payload
        )
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return SoftwareInstallationService.describe(installation)


@router.delete("/{installation_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_installation(installation_id: str, db: Session = Depends(get_db)) -> Response:
    try:
        SoftwareInstallationService.remove_installation(db, installation_id)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
