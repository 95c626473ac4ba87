"""Router exposing catalog reference data."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..models.catalog import ProductCategory
from ..services import CatalogService
from ..services.errors import AssetEngineError
from .common import engine_error

router = APIRouter()


@router.get("/vendors", response_model=List[schemas.VendorRead])
def list_vendors(db: Session = Depends(get_db)) -> List[schemas.VendorRead]:
    return CatalogService.list_vendors(db)


@router.post("/vendors", response_model=schemas.VendorRead, status_code=status.HTTP_201_CREATED)
def create_vendor(payload: schemas.VendorCreate, db: Session = Depends(get_db)) -> schemas.VendorRead:
    try:
        return CatalogService.create_vendor(db, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/locations", response_model=List[schemas.LocationRead])
def list_locations(db: Session = Depends(get_db)) -> List[schemas.LocationRead]:
    return CatalogService.list_locations(db)


@router.post(
    "/locations", response_model=schemas.LocationRead, status_code=status.HTTP_201_CREATED
)
def create_location(
    payload: schemas.LocationCreate, db: Session = Depends(get_db)
) -> schemas.LocationRead:
    try:
        return CatalogService.create_location(db, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/users", response_model=schemas.UserListResponse)
def list_users(
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None, description="Match name or email"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.UserListResponse:
    items, total = CatalogService.list_users(db, search=search, skip=skip, limit=limit)
    return schemas.UserListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("/users", response_model=schemas.UserRead, status_code=status.HTTP_201_CREATED)
def create_user(payload: schemas.UserCreate, db: Session = Depends(get_db)) -> schemas.UserRead:
    try:
        return CatalogService.create_user(db, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/users/{user_id}", response_model=schemas.UserRead)
def get_user(user_id: int, db: Session = Depends(get_db)) -> schemas.UserRead:
    user = CatalogService.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/products", response_model=schemas.ProductListResponse)
def list_products(
    db: Session = Depends(get_db),
    category: Optional[ProductCategory] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(None, description="Match product name"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.ProductListResponse:
    items, total = CatalogService.list_products(
        db, category=category, search=search, skip=skip, limit=limit
    )
    return schemas.ProductListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("/products", response_model=schemas.ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: schemas.ProductCreate, db: Session = Depends(get_db)
) -> schemas.ProductRead:
    try:
        return CatalogService.create_product(db, payload)
    except AssetEngineError as exc:
        raise engine_error(exc) from exc


@router.get("/products/{product_id}", response_model=schemas.ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)) -> schemas.ProductRead:
    product = CatalogService.get_product(db, product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product
