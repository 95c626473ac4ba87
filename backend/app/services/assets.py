"""Asset hierarchy store: records, parent/child links and assignment state."""

from __future__ import annotations

import enum
import logging
import os
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db_types import new_guid
from . import status_machine
from .asset_tags import next_asset_tag, tag_prefix
from .catalog import CatalogService
from .errors import (
    AlreadyAssigned,
    AssetDeleted,
    AssetEngineError,
    ComponentCannotBeAssigned,
    NotFound,
    StructuralViolation,
    ValidationFailed,
)
from .locks import ASSET_LOCKS, TAG_PREFIX_LOCKS

LOGGER = logging.getLogger(__name__)

UNASSIGN_LOCATION_POLICY_ENV = "ASSET_UNASSIGN_LOCATION_POLICY"
UNASSIGN_RETAIN_LOCATION = "retain"
UNASSIGN_CLEAR_LOCATION = "clear"

_NON_NULLABLE_FIELDS = (
    "serial_number",
    "product_id",
    "asset_type",
    "status",
    "importance",
    "condition_status",
)


def unassign_location_policy() -> str:
    raw = os.getenv(UNASSIGN_LOCATION_POLICY_ENV)
    if raw is None or not raw.strip():
        return UNASSIGN_RETAIN_LOCATION
    policy = raw.strip().lower()
    if policy not in (UNASSIGN_RETAIN_LOCATION, UNASSIGN_CLEAR_LOCATION):
        LOGGER.warning(
            "Ignoring %s=%r; expected %r or %r",
            UNASSIGN_LOCATION_POLICY_ENV,
            raw,
            UNASSIGN_RETAIN_LOCATION,
            UNASSIGN_CLEAR_LOCATION,
        )
        return UNASSIGN_RETAIN_LOCATION
    return policy


def json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class AssetService:
    """Operations on assets.

    Every mutation takes ``ASSET_LOCKS`` for the assets it touches, re-reads
    them inside the lock, validates, and commits once. Any failure rolls the
    session back so nothing from a rejected request is persisted.
    """

    # -- loading helpers -------------------------------------------------

    @staticmethod
    def coerce_id(value: Any, *, field: str = "asset_id") -> str:
        try:
            return str(uuid.UUID(str(value)))
        except (TypeError, ValueError) as exc:
            raise NotFound("Asset not found.", field=field, asset_id=str(value)) from exc

    @staticmethod
    def load_asset(
        db: Session,
        asset_id: Any,
        *,
        include_deleted: bool = False,
        for_update: bool = False,
        field: str = "asset_id",
    ) -> models.Asset:
        key = AssetService.coerce_id(asset_id, field=field)
        options: dict[str, Any] = {"populate_existing": True}
        if for_update:
            options["with_for_update"] = True
        asset = db.get(models.Asset, key, **options)
        if asset is None:
            raise NotFound("Asset not found.", field=field, asset_id=key)
        if asset.deleted_at is not None and not include_deleted:
            raise AssetDeleted("Asset is deleted.", field=field, asset_id=key)
        return asset

    @staticmethod
    def get_asset(db: Session, asset_id: Any, *, include_deleted: bool = False) -> models.Asset:
        return AssetService.load_asset(db, asset_id, include_deleted=include_deleted)

    @staticmethod
    def record_history(
        db: Session,
        asset: models.Asset,
        action: models.AssetHistoryAction,
        *,
        previous_status: Optional[str] = None,
        changes: Optional[dict[str, Any]] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        status = asset.status.value if asset.status is not None else None
        entry = models.AssetHistory(
            asset_id=asset.id,
            asset_tag=asset.asset_tag,
            action=action,
            previous_status=previous_status,
            new_status=status,
            changes=changes or None,
            note=note,
            actor_id=actor_id,
            source=source,
        )
        db.add(entry)

    @staticmethod
    def validate_parent(
        db: Session, parent_id: Any, *, child_id: Optional[str] = None
    ) -> models.Asset:
        """Return the live standalone asset a component may be installed into."""

        key = AssetService.coerce_id(parent_id, field="parent_asset_id")
        if child_id is not None and key == child_id:
            raise StructuralViolation(
                "An asset cannot be its own parent.",
                field="parent_asset_id",
                invariant="parent_standalone",
                parent_asset_id=key,
            )
        parent = db.get(models.Asset, key, populate_existing=True, with_for_update=True)
        if parent is None:
            raise StructuralViolation(
                "Parent asset does not exist.",
                field="parent_asset_id",
                invariant="parent_standalone",
                parent_asset_id=key,
            )
        if parent.deleted_at is not None:
            raise StructuralViolation(
                "Parent asset is deleted.",
                field="parent_asset_id",
                invariant="parent_standalone",
                parent_asset_id=key,
            )
        if parent.asset_type != models.AssetType.STANDALONE:
            raise StructuralViolation(
                "Parent asset must be a standalone asset.",
                field="parent_asset_id",
                invariant="parent_standalone",
                parent_asset_id=key,
                parent_asset_type=parent.asset_type.value,
            )
        return parent

    @staticmethod
    def live_components(db: Session, asset_id: str) -> list[models.Asset]:
        return (
            db.query(models.Asset)
            .filter(
                models.Asset.parent_asset_id == asset_id,
                models.Asset.deleted_at.is_(None),
            )
            .order_by(models.Asset.asset_tag)
            .all()
        )

    @staticmethod
    def apply_status(asset: models.Asset, target: models.AssetStatus) -> None:
        """Move ``asset`` to ``target`` and apply the side effects of entering it."""

        status_machine.ensure_transition(asset.status, target)
        if status_machine.requires_assignee(target) and asset.assigned_to is None:
            raise ValidationFailed(
                f"An asset must be assigned to a user to be {target.value}; use assign.",
                field="status",
                requested_status=target.value,
            )
        if status_machine.clears_assignment(target):
            asset.assigned_to = None
        asset.status = target

    @staticmethod
    def _commit(db: Session, asset: models.Asset, message: str) -> models.Asset:
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValidationFailed(message) from exc
        db.refresh(asset)
        return asset

    # -- create / update -------------------------------------------------

    @staticmethod
    def create_asset(
        db: Session,
        data: schemas.AssetCreate,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        payload = data.model_dump()
        asset_type = payload["asset_type"]
        assigned_to = payload.get("assigned_to")
        status = payload.pop("status")

        if asset_type == models.AssetType.COMPONENT and assigned_to is not None:
            raise ComponentCannotBeAssigned(
                "Components cannot be assigned to a user.",
                field="assigned_to",
                invariant="component_unassigned",
            )
        if payload.get("parent_asset_id") is not None and asset_type != models.AssetType.COMPONENT:
            raise StructuralViolation(
                "Only components can be installed into a parent asset.",
                field="parent_asset_id",
                invariant="parent_standalone",
            )
        if status is None:
            status = models.AssetStatus.ASSIGNED if assigned_to is not None else models.AssetStatus.AVAILABLE
        if assigned_to is not None and not status_machine.requires_assignee(status):
            raise ValidationFailed(
                "An assigned asset must be created as assigned or in_use.",
                field="status",
                requested_status=status.value,
            )
        if status_machine.requires_assignee(status) and assigned_to is None:
            raise ValidationFailed(
                f"An asset created as {status.value} needs assigned_to.",
                field="assigned_to",
            )

        product = CatalogService.resolve_product(db, payload["product_id"])
        if assigned_to is not None:
            user = CatalogService.resolve_user(db, assigned_to)
            if payload.get("location_id") is None:
                payload["location_id"] = user.location_id
        if payload.get("location_id") is not None:
            CatalogService.resolve_location(db, payload["location_id"])
        if payload.get("vendor_id") is not None:
            CatalogService.resolve_vendor(db, payload["vendor_id"])

        parent_id = payload.pop("parent_asset_id", None)
        if parent_id is not None:
            parent_id = AssetService.coerce_id(parent_id, field="parent_asset_id")
        prefix = tag_prefix(product.name)
        with ASSET_LOCKS.hold_many([parent_id]), TAG_PREFIX_LOCKS.hold(prefix):
            try:
                if parent_id is not None:
                    parent_id = AssetService.validate_parent(db, parent_id).id
                asset = models.Asset(
                    id=new_guid(),
                    asset_tag=next_asset_tag(db, product),
                    parent_asset_id=parent_id,
                    status=status,
                    **payload,
                )
                db.add(asset)
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.CREATE,
                    actor_id=actor_id,
                    source=source,
                )
                AssetService._commit(db, asset, "Could not create the asset.")
            except Exception:
                db.rollback()
                raise
        LOGGER.info("Created asset %s (%s)", asset.asset_tag, asset.id)
        return asset

    @staticmethod
    def update_asset(
        db: Session,
        asset_id: Any,
        data: schemas.AssetUpdate,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        update_data = data.model_dump(exclude_unset=True)
        for field in _NON_NULLABLE_FIELDS:
            if field in update_data and update_data[field] is None:
                raise ValidationFailed(f"{field} cannot be null.", field=field)
        if "serial_number" in update_data:
            update_data["serial_number"] = update_data["serial_number"].strip()
            if not update_data["serial_number"]:
                raise ValidationFailed("serial_number must not be blank.", field="serial_number")

        key = AssetService.coerce_id(asset_id)
        new_parent = update_data.get("parent_asset_id")
        if new_parent is not None:
            new_parent = AssetService.coerce_id(new_parent, field="parent_asset_id")
            update_data["parent_asset_id"] = new_parent
        with ASSET_LOCKS.hold_many([key, new_parent]):
            try:
                asset = AssetService.load_asset(db, key, for_update=True)
                tracked = set(update_data) | {"parent_asset_id", "installation_notes", "assigned_to"}
                before = {column: getattr(asset, column) for column in tracked}
                previous_status = asset.status.value

                target_type = update_data.pop("asset_type", asset.asset_type)
                AssetService._apply_type_change(db, asset, target_type, update_data)

                if "product_id" in update_data:
                    CatalogService.resolve_product(db, update_data["product_id"])
                if update_data.get("location_id") is not None:
                    CatalogService.resolve_location(db, update_data["location_id"])
                if update_data.get("vendor_id") is not None:
                    CatalogService.resolve_vendor(db, update_data["vendor_id"])

                start = update_data.get("warranty_start_date", asset.warranty_start_date)
                end = update_data.get("warranty_end_date", asset.warranty_end_date)
                if start is not None and end is not None and end < start:
                    raise ValidationFailed(
                        "warranty_end_date must not precede warranty_start_date.",
                        field="warranty_end_date",
                    )

                target_status = update_data.pop("status", None)
                for column, value in update_data.items():
                    setattr(asset, column, value)
                if target_status is not None and target_status != asset.status:
                    AssetService.apply_status(asset, target_status)

                changes = {
                    column: [json_value(old), json_value(getattr(asset, column))]
                    for column, old in before.items()
                    if old != getattr(asset, column)
                }
                if changes or previous_status != asset.status.value:
                    action = (
                        models.AssetHistoryAction.STATUS_CHANGE
                        if "status" in changes and set(changes) <= {"status", "assigned_to"}
                        else models.AssetHistoryAction.UPDATE
                    )
                    AssetService.record_history(
                        db,
                        asset,
                        action,
                        previous_status=previous_status,
                        changes=changes,
                        actor_id=actor_id,
                        source=source,
                    )
                db.add(asset)
                AssetService._commit(db, asset, "Could not update the asset.")
            except Exception:
                db.rollback()
                raise
        return asset

    @staticmethod
    def _apply_type_change(
        db: Session,
        asset: models.Asset,
        target_type: models.AssetType,
        update_data: dict[str, Any],
    ) -> None:
        """Keep the component/standalone rules intact when an update touches structure."""

        if target_type == models.AssetType.STANDALONE:
            if update_data.get("parent_asset_id") is not None:
                raise StructuralViolation(
                    "Only components can be installed into a parent asset.",
                    field="parent_asset_id",
                    invariant="parent_standalone",
                )
            if asset.asset_type == models.AssetType.COMPONENT:
                # Promotion drops the stale installation link in the same commit.
                update_data.pop("installation_notes", None)
                asset.parent_asset_id = None
                asset.installation_notes = None
            update_data.pop("parent_asset_id", None)
            asset.asset_type = target_type
            return

        if asset.asset_type == models.AssetType.STANDALONE:
            if asset.assigned_to is not None:
                raise ComponentCannotBeAssigned(
                    "Unassign the asset before turning it into a component.",
                    field="asset_type",
                    invariant="component_unassigned",
                    assigned_to=asset.assigned_to,
                )
            installed = AssetService.live_components(db, asset.id)
            if installed:
                raise StructuralViolation(
                    "Remove the installed components before turning the asset into a component.",
                    field="asset_type",
                    invariant="parent_standalone",
                    component_ids=[component.id for component in installed],
                )
            target_status = update_data.get("status")
            if target_status is not None and status_machine.requires_assignee(target_status):
                raise ComponentCannotBeAssigned(
                    "Components cannot be assigned to a user.",
                    field="status",
                    invariant="component_unassigned",
                )
        asset.asset_type = target_type

        if "parent_asset_id" in update_data:
            parent_id = update_data.pop("parent_asset_id")
            if parent_id is None:
                asset.parent_asset_id = None
            else:
                asset.parent_asset_id = AssetService.validate_parent(
                    db, parent_id, child_id=asset.id
                ).id

    # -- assignment ------------------------------------------------------

    @staticmethod
    def assign(
        db: Session,
        asset_id: Any,
        data: schemas.AssetAssign,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        """Hand the asset to a user.

        The asset takes the user's location unless ``data.location_id`` is
        given. Re-assigning to the current holder only updates status and
        location; an asset held by someone else must be unassigned first.
        """

        key = AssetService.coerce_id(asset_id)
        with ASSET_LOCKS.hold(key):
            try:
                asset = AssetService.load_asset(db, key, for_update=True)
                if asset.asset_type == models.AssetType.COMPONENT:
                    raise ComponentCannotBeAssigned(
                        "Components cannot be assigned to a user.",
                        field="asset_type",
                        invariant="component_unassigned",
                        asset_id=asset.id,
                    )
                user = CatalogService.resolve_user(db, data.user_id)
                if asset.assigned_to is not None and asset.assigned_to != user.id:
                    raise AlreadyAssigned(
                        "Asset is already assigned to another user.",
                        field="user_id",
                        asset_id=asset.id,
                        assigned_to=asset.assigned_to,
                    )
                location_id = data.location_id
                if location_id is not None:
                    CatalogService.resolve_location(db, location_id)
                elif user.location_id is not None:
                    location_id = user.location_id
                else:
                    location_id = asset.location_id

                previous_status = asset.status.value
                status_machine.ensure_transition(asset.status, data.status)
                changes = {
                    "assigned_to": [asset.assigned_to, user.id],
                    "location_id": [asset.location_id, location_id],
                }
                asset.assigned_to = user.id
                asset.location_id = location_id
                asset.status = data.status
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.ASSIGN,
                    previous_status=previous_status,
                    changes=changes,
                    actor_id=actor_id,
                    source=source,
                )
                db.add(asset)
                AssetService._commit(db, asset, "Could not assign the asset.")
            except Exception:
                db.rollback()
                raise
        LOGGER.info("Assigned asset %s to user %s", asset.asset_tag, asset.assigned_to)
        return asset

    @staticmethod
    def unassign(
        db: Session,
        asset_id: Any,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        """Clear the assignee and make the asset available.

        Statuses with no way back to ``available`` are left as they are.
        """

        key = AssetService.coerce_id(asset_id)
        with ASSET_LOCKS.hold(key):
            try:
                asset = AssetService.load_asset(db, key, for_update=True)
                if asset.assigned_to is None and not status_machine.requires_assignee(asset.status):
                    db.rollback()
                    return asset
                previous_status = asset.status.value
                changes: dict[str, Any] = {"assigned_to": [asset.assigned_to, None]}
                asset.assigned_to = None
                if status_machine.can_transition(asset.status, models.AssetStatus.AVAILABLE):
                    asset.status = models.AssetStatus.AVAILABLE
                if unassign_location_policy() == UNASSIGN_CLEAR_LOCATION and asset.location_id is not None:
                    changes["location_id"] = [asset.location_id, None]
                    asset.location_id = None
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.UNASSIGN,
                    previous_status=previous_status,
                    changes=changes,
                    actor_id=actor_id,
                    source=source,
                )
                db.add(asset)
                AssetService._commit(db, asset, "Could not unassign the asset.")
            except Exception:
                db.rollback()
                raise
        return asset

    @staticmethod
    def change_status(
        db: Session,
        asset_id: Any,
        data: schemas.AssetStatusChange,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        key = AssetService.coerce_id(asset_id)
        with ASSET_LOCKS.hold(key):
            try:
                asset = AssetService.load_asset(db, key, for_update=True)
                if asset.status == data.status:
                    db.rollback()
                    return asset
                previous_status = asset.status.value
                previous_assignee = asset.assigned_to
                AssetService.apply_status(asset, data.status)
                changes: dict[str, Any] = {"status": [previous_status, data.status.value]}
                if previous_assignee != asset.assigned_to:
                    changes["assigned_to"] = [previous_assignee, None]
                AssetService.record_history(
                    db,
                    asset,
                    models.AssetHistoryAction.STATUS_CHANGE,
                    previous_status=previous_status,
                    changes=changes,
                    note=data.note,
                    actor_id=actor_id,
                    source=source,
                )
                db.add(asset)
                AssetService._commit(db, asset, "Could not change the asset status.")
            except Exception:
                db.rollback()
                raise
        LOGGER.info(
            "Asset %s moved from %s to %s", asset.asset_tag, previous_status, asset.status.value
        )
        return asset

    # -- hierarchy -------------------------------------------------------

    @staticmethod
    def install_component(
        db: Session,
        parent_id: Any,
        data: schemas.ComponentInstall,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        parent_key = AssetService.coerce_id(parent_id)
        component_key = AssetService.coerce_id(data.component_id, field="component_id")
        with ASSET_LOCKS.hold_many([parent_key, component_key]):
            try:
                parent = AssetService.load_asset(db, parent_key, for_update=True)
                parent = AssetService.validate_parent(db, parent.id, child_id=component_key)
                component = AssetService.load_asset(
                    db, component_key, for_update=True, field="component_id"
                )
                if component.asset_type != models.AssetType.COMPONENT:
                    raise StructuralViolation(
                        "Only components can be installed into a parent asset.",
                        field="component_id",
                        invariant="parent_standalone",
                        component_id=component.id,
                    )
                previous_parent = component.parent_asset_id
                component.parent_asset_id = parent.id
                if data.installation_notes is not None:
                    component.installation_notes = data.installation_notes
                AssetService.record_history(
                    db,
                    component,
                    models.AssetHistoryAction.INSTALL_COMPONENT,
                    previous_status=component.status.value,
                    changes={"parent_asset_id": [previous_parent, parent.id]},
                    actor_id=actor_id,
                    source=source,
                )
                AssetService.record_history(
                    db,
                    parent,
                    models.AssetHistoryAction.INSTALL_COMPONENT,
                    previous_status=parent.status.value,
                    changes={"component_id": component.id},
                    actor_id=actor_id,
                    source=source,
                )
                db.add(component)
                AssetService._commit(db, component, "Could not install the component.")
            except Exception:
                db.rollback()
                raise
        return component

    @staticmethod
    def remove_component(
        db: Session,
        parent_id: Any,
        component_id: Any,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> models.Asset:
        parent_key = AssetService.coerce_id(parent_id)
        component_key = AssetService.coerce_id(component_id, field="component_id")
        with ASSET_LOCKS.hold_many([parent_key, component_key]):
            try:
                parent = AssetService.load_asset(db, parent_key, for_update=True)
                component = AssetService.load_asset(
                    db, component_key, for_update=True, field="component_id"
                )
                if component.parent_asset_id != parent.id:
                    raise NotFound(
                        "Component is not installed in this asset.",
                        field="component_id",
                        asset_id=parent.id,
                        component_id=component.id,
                    )
                component.parent_asset_id = None
                component.installation_notes = None
                AssetService.record_history(
                    db,
                    component,
                    models.AssetHistoryAction.REMOVE_COMPONENT,
                    previous_status=component.status.value,
                    changes={"parent_asset_id": [parent.id, None]},
                    actor_id=actor_id,
                    source=source,
                )
                AssetService.record_history(
                    db,
                    parent,
                    models.AssetHistoryAction.REMOVE_COMPONENT,
                    previous_status=parent.status.value,
                    changes={"component_id": component.id},
                    actor_id=actor_id,
                    source=source,
                )
                db.add(component)
                AssetService._commit(db, component, "Could not remove the component.")
            except Exception:
                db.rollback()
                raise
        return component

    @staticmethod
    def hierarchy(db: Session, asset_id: Any) -> schemas.AssetHierarchyResponse:
        """The tree an asset belongs to: its root standalone asset and the components installed in it."""

        asset = AssetService.load_asset(db, asset_id)
        root = asset
        if asset.parent_asset_id is not None:
            parent = db.get(models.Asset, asset.parent_asset_id)
            if parent is not None and parent.deleted_at is None:
                root = parent

        def _node(item: models.Asset, level: int) -> schemas.AssetHierarchyNode:
            return schemas.AssetHierarchyNode(
                id=item.id,
                asset_tag=item.asset_tag,
                serial_number=item.serial_number,
                asset_type=item.asset_type,
                status=item.status,
                parent_asset_id=item.parent_asset_id,
                level=level,
                installation_status="root" if level == 0 else "installed",
                installation_notes=item.installation_notes,
            )

        nodes = [_node(root, 0)]
        nodes.extend(_node(component, 1) for component in AssetService.live_components(db, root.id))
        return schemas.AssetHierarchyResponse(items=nodes)

    # -- queries ---------------------------------------------------------

    @staticmethod
    def filtered_query(
        db: Session,
        filters: Optional[schemas.AssetFilter] = None,
        *,
        include_deleted: bool = False,
    ):
        query = db.query(models.Asset)
        if not include_deleted:
            query = query.filter(models.Asset.deleted_at.is_(None))
        if filters is None:
            return query
        if filters.status is not None:
            query = query.filter(models.Asset.status == filters.status)
        if filters.asset_type is not None:
            query = query.filter(models.Asset.asset_type == filters.asset_type)
        if filters.product_id is not None:
            query = query.filter(models.Asset.product_id == filters.product_id)
        if filters.location_id is not None:
            query = query.filter(models.Asset.location_id == filters.location_id)
        if filters.assigned_to is not None:
            query = query.filter(models.Asset.assigned_to == filters.assigned_to)
        if filters.search:
            normalized = f"%{filters.search.strip().lower()}%"
            query = query.filter(
                or_(
                    func.lower(models.Asset.asset_tag).like(normalized),
                    func.lower(models.Asset.serial_number).like(normalized),
                    func.lower(models.Asset.invoice_number).like(normalized),
                    func.lower(models.Asset.notes).like(normalized),
                )
            )
        return query

    @staticmethod
    def list_assets(
        db: Session,
        filters: Optional[schemas.AssetFilter] = None,
        *,
        include_deleted: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.Asset], int]:
        query = AssetService.filtered_query(db, filters, include_deleted=include_deleted)
        total = query.count()
        items = (
            query.order_by(models.Asset.asset_tag)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def parent_candidates(
        db: Session,
        *,
        search: Optional[str] = None,
        exclude_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[models.Asset]:
        """Live standalone assets a component may be installed into."""

        query = db.query(models.Asset).filter(
            models.Asset.deleted_at.is_(None),
            models.Asset.asset_type == models.AssetType.STANDALONE,
        )
        if exclude_id:
            query = query.filter(models.Asset.id != exclude_id)
        if search:
            normalized = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(
                    func.lower(models.Asset.asset_tag).like(normalized),
                    func.lower(models.Asset.serial_number).like(normalized),
                )
            )
        return query.order_by(models.Asset.asset_tag).limit(max(limit, 1)).all()

    @staticmethod
    def list_history(
        db: Session, asset_id: Any, *, skip: int = 0, limit: int = 100
    ) -> Tuple[Iterable[models.AssetHistory], int]:
        key = AssetService.coerce_id(asset_id)
        query = db.query(models.AssetHistory).filter(models.AssetHistory.asset_id == key)
        total = query.count()
        items = (
            query.order_by(models.AssetHistory.created_at.desc(), models.AssetHistory.id)
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    # -- bulk ------------------------------------------------------------

    @staticmethod
    def bulk_create(
        db: Session,
        data: schemas.AssetBulkCreate,
        *,
        actor_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> schemas.AssetBulkCreateResult:
        """Create each item in its own transaction and report a per-item outcome."""

        results: list[schemas.BulkItemResult] = []
        for index, item in enumerate(data.items):
            try:
                asset = AssetService.create_asset(db, item, actor_id=actor_id, source=source)
            except AssetEngineError as exc:
                results.append(
                    schemas.BulkItemResult(index=index, status="failed", error=exc.detail)
                )
                continue
            results.append(
                schemas.BulkItemResult(
                    index=index,
                    status="created",
                    asset_id=asset.id,
                    asset_tag=asset.asset_tag,
                )
            )
        created = sum(1 for result in results if result.status == "created")
        LOGGER.info("Bulk create finished: %s created, %s failed", created, len(results) - created)
        return schemas.AssetBulkCreateResult(
            created=created, failed=len(results) - created, items=results
        )
