"""Read-mostly reference data consumed by every other service."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from .errors import NotFound, ValidationFailed


class CatalogService:
    """CRUD for products, vendors, locations and users plus resolution helpers.

    Resolution helpers are plain reads without locks. An entity that went
    missing or inactive since the caller last looked is reported as a business
    error so a stale catalog never stalls the allocation path.
    """

    @staticmethod
    def _commit(db: Session, entity, message: str):
        db.add(entity)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValidationFailed(message) from exc
        db.refresh(entity)
        return entity

    @staticmethod
    def create_vendor(db: Session, data: schemas.VendorCreate) -> models.Vendor:
        payload = data.model_dump()
        payload["name"] = payload["name"].strip()
        return CatalogService._commit(
            db, models.Vendor(**payload), "A vendor with that name already exists."
        )

    @staticmethod
    def list_vendors(db: Session) -> list[models.Vendor]:
        return db.query(models.Vendor).order_by(models.Vendor.name).all()

    @staticmethod
    def create_location(db: Session, data: schemas.LocationCreate) -> models.Location:
        payload = data.model_dump()
        payload["name"] = payload["name"].strip()
        return CatalogService._commit(
            db, models.Location(**payload), "A location with that name already exists."
        )

    @staticmethod
    def list_locations(db: Session) -> list[models.Location]:
        return db.query(models.Location).order_by(models.Location.name).all()

    @staticmethod
    def create_user(db: Session, data: schemas.UserCreate) -> models.User:
        payload = data.model_dump()
        payload["email"] = payload["email"].strip().lower()
        if payload.get("location_id") is not None:
            CatalogService.resolve_location(db, payload["location_id"])
        return CatalogService._commit(
            db, models.User(**payload), "A user with that email already exists."
        )

    @staticmethod
    def list_users(
        db: Session,
        *,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.User], int]:
        query = db.query(models.User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                func.lower(models.User.full_name).like(pattern)
                | func.lower(models.User.email).like(pattern)
            )
        total = query.count()
        items = (
            query.order_by(models.User.full_name)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def create_product(db: Session, data: schemas.ProductCreate) -> models.Product:
        payload = data.model_dump()
        payload["name"] = payload["name"].strip()
        if payload.get("vendor_id") is not None:
            CatalogService.resolve_vendor(db, payload["vendor_id"])
        return CatalogService._commit(
            db,
            models.Product(**payload),
            "A product with that name already exists in the category.",
        )

    @staticmethod
    def list_products(
        db: Session,
        *,
        category: Optional[models.ProductCategory] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.Product], int]:
        query = db.query(models.Product)
        if category is not None:
            query = query.filter(models.Product.category == category)
        if search:
            query = query.filter(
                func.lower(models.Product.name).like(f"%{search.strip().lower()}%")
            )
        total = query.count()
        items = (
            query.order_by(models.Product.name)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def resolve_product(db: Session, product_id: int) -> models.Product:
        product = db.get(models.Product, product_id)
        if product is None:
            raise NotFound("Product not found.", field="product_id", product_id=product_id)
        if not product.is_active:
            raise ValidationFailed(
                "Product is inactive.", field="product_id", product_id=product_id
            )
        return product

    @staticmethod
    def resolve_software_product(db: Session, product_id: int) -> models.Product:
        product = CatalogService.resolve_product(db, product_id)
        if product.category != models.ProductCategory.SOFTWARE or product.software_type is None:
            raise ValidationFailed(
                "Product is not a software product.",
                field="software_product_id",
                product_id=product_id,
            )
        return product

    @staticmethod
    def resolve_user(db: Session, user_id: int) -> models.User:
        user = db.get(models.User, user_id)
        if user is None:
            raise NotFound("User not found.", field="user_id", user_id=user_id)
        if not user.is_active:
            raise ValidationFailed("User is inactive.", field="user_id", user_id=user_id)
        return user

    @staticmethod
    def resolve_location(db: Session, location_id: int) -> models.Location:
        location = db.get(models.Location, location_id)
        if location is None:
            raise NotFound(
                "Location not found.", field="location_id", location_id=location_id
            )
        return location

    @staticmethod
    def resolve_vendor(db: Session, vendor_id: int) -> models.Vendor:
        vendor = db.get(models.Vendor, vendor_id)
        if vendor is None:
            raise NotFound("Vendor not found.", field="vendor_id", vendor_id=vendor_id)
        return vendor

    @staticmethod
    def get_product(db: Session, product_id: int) -> Optional[models.Product]:
        return db.get(models.Product, product_id)

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[models.User]:
        return db.get(models.User, user_id)
