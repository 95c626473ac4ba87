from __future__ import annotations

from datetime import date

import pytest

from backend.app import models, schemas
from backend.app.services import AssetService, LifecycleService
from backend.app.services.errors import (
    AlreadyAssigned,
    AssetDeleted,
    InvalidStatusTransition,
    NotFound,
    StructuralViolation,
    ValidationFailed,
)


def _history_actions(db_session, asset_id):
    items, _ = AssetService.list_history(db_session, asset_id)
    return [item.action for item in items]


def test_assign_and_unassign_round_trip(db_session, catalog, make_asset):
    asset = make_asset()
    assert asset.status == models.AssetStatus.AVAILABLE
    assert asset.asset_tag == "DELL-00001"

    assigned = AssetService.assign(
        db_session, asset.id, schemas.AssetAssign(user_id=catalog["alice_id"])
    )
    assert assigned.status == models.AssetStatus.ASSIGNED
    assert assigned.assigned_to == catalog["alice_id"]
    assert assigned.location_id == catalog["hq_id"]

    released = AssetService.unassign(db_session, asset.id)
    assert released.status == models.AssetStatus.AVAILABLE
    assert released.assigned_to is None
    assert released.location_id == catalog["hq_id"]

    actions = _history_actions(db_session, asset.id)
    assert models.AssetHistoryAction.ASSIGN in actions
    assert models.AssetHistoryAction.UNASSIGN in actions
    assert models.AssetHistoryAction.CREATE in actions


def test_unassign_clears_location_when_configured(db_session, catalog, make_asset, monkeypatch):
    monkeypatch.setenv("ASSET_UNASSIGN_LOCATION_POLICY", "clear")
    asset = make_asset()
    AssetService.assign(db_session, asset.id, schemas.AssetAssign(user_id=catalog["alice_id"]))

    released = AssetService.unassign(db_session, asset.id)

    assert released.location_id is None


def test_unassign_returns_a_repaired_asset_to_available(db_session, catalog, make_asset):
    asset = make_asset()
    AssetService.assign(db_session, asset.id, schemas.AssetAssign(user_id=catalog["alice_id"]))
    AssetService.change_status(
        db_session, asset.id, schemas.AssetStatusChange(status="under_repair")
    )

    released = AssetService.unassign(db_session, asset.id)

    assert released.assigned_to is None
    assert released.status == models.AssetStatus.AVAILABLE


def test_assign_prefers_explicit_location(db_session, catalog, make_asset):
    asset = make_asset()

    assigned = AssetService.assign(
        db_session,
        asset.id,
        schemas.AssetAssign(user_id=catalog["alice_id"], location_id=catalog["branch_id"]),
    )

    assert assigned.location_id == catalog["branch_id"]


def test_assign_keeps_location_when_user_has_none(db_session, catalog, make_asset):
    asset = make_asset(location_id=catalog["branch_id"])

    assigned = AssetService.assign(
        db_session, asset.id, schemas.AssetAssign(user_id=catalog["bob_id"], status="in_use")
    )

    assert assigned.status == models.AssetStatus.IN_USE
    assert assigned.location_id == catalog["branch_id"]


def test_assign_to_another_user_requires_unassign(db_session, catalog, make_asset):
    asset = make_asset()
    AssetService.assign(db_session, asset.id, schemas.AssetAssign(user_id=catalog["alice_id"]))

    with pytest.raises(AlreadyAssigned):
        AssetService.assign(db_session, asset.id, schemas.AssetAssign(user_id=catalog["bob_id"]))

    db_session.expire_all()
    assert db_session.get(models.Asset, asset.id).assigned_to == catalog["alice_id"]


def test_component_cannot_be_assigned(db_session, catalog, make_asset):
    component = make_asset(product_id=catalog["ram_id"], asset_type="component")

    with pytest.raises(StructuralViolation) as excinfo:
        AssetService.assign(
            db_session, component.id, schemas.AssetAssign(user_id=catalog["alice_id"])
        )

    assert excinfo.value.detail["invariant"] == "component_unassigned"
    db_session.expire_all()
    assert db_session.get(models.Asset, component.id).assigned_to is None


def test_create_component_with_assignee_is_rejected(db_session, catalog, make_asset):
    with pytest.raises(StructuralViolation):
        make_asset(asset_type="component", assigned_to=catalog["alice_id"])

    assert db_session.query(models.Asset).count() == 0


def test_create_with_assignee_defaults_to_assigned(db_session, catalog, make_asset):
    asset = make_asset(assigned_to=catalog["alice_id"])

    assert asset.status == models.AssetStatus.ASSIGNED
    assert asset.location_id == catalog["hq_id"]


def test_create_status_must_agree_with_assignee(db_session, catalog, make_asset):
    with pytest.raises(ValidationFailed):
        make_asset(status="in_use")
    with pytest.raises(ValidationFailed):
        make_asset(status="under_repair", assigned_to=catalog["alice_id"])


def test_create_rejects_unknown_references(db_session, catalog, make_asset):
    with pytest.raises(NotFound):
        make_asset(product_id=9999)
    with pytest.raises(NotFound):
        make_asset(location_id=9999)


def test_tags_follow_product_prefix(db_session, catalog, make_asset):
    first = make_asset()
    second = make_asset()
    ram = make_asset(product_id=catalog["ram_id"], asset_type="component")

    assert (first.asset_tag, second.asset_tag) == ("DELL-00001", "DELL-00002")
    assert ram.asset_tag == "KING-00001"


def test_tags_are_not_reused_after_purge(db_session, catalog, make_asset):
    first = make_asset()
    LifecycleService.soft_delete(db_session, first.id)
    LifecycleService.purge(db_session, first.id)

    replacement = make_asset()

    assert replacement.asset_tag == "DELL-00002"


@pytest.mark.slow
def test_ten_thousand_creations_never_repeat_a_tag(db_session, catalog, make_asset):
    issued = []
    for index in range(1, 10_001):
        asset = make_asset()
        issued.append(asset.asset_tag)
        if index % 50 == 0:
            LifecycleService.soft_delete(db_session, asset.id)
        if index % 200 == 0:
            LifecycleService.purge(db_session, asset.id)

    assert len(set(issued)) == len(issued) == 10_000
    assert issued == [f"DELL-{value:05d}" for value in range(1, 10_001)]
    db_session.expire_all()
    stored = [row[0] for row in db_session.query(models.Asset.asset_tag)]
    assert len(stored) == len(set(stored)) == 10_000 - 10_000 // 200


def test_install_and_remove_component(db_session, catalog, make_asset):
    parent = make_asset()
    component = make_asset(product_id=catalog["ram_id"], asset_type="component")

    installed = AssetService.install_component(
        db_session,
        parent.id,
        schemas.ComponentInstall(component_id=component.id, installation_notes="Slot 1"),
    )
    assert installed.parent_asset_id == parent.id

    tree = AssetService.hierarchy(db_session, component.id)
    assert [(node.id, node.level) for node in tree.items] == [(parent.id, 0), (component.id, 1)]
    assert tree.items[1].installation_notes == "Slot 1"

    removed = AssetService.remove_component(db_session, parent.id, component.id)
    assert removed.parent_asset_id is None
    assert removed.installation_notes is None


def test_component_cannot_be_installed_into_component(db_session, catalog, make_asset):
    host = make_asset(product_id=catalog["ram_id"], asset_type="component")
    component = make_asset(product_id=catalog["ram_id"], asset_type="component")

    with pytest.raises(StructuralViolation) as excinfo:
        AssetService.install_component(
            db_session, host.id, schemas.ComponentInstall(component_id=component.id)
        )

    assert excinfo.value.detail["invariant"] == "parent_standalone"


def test_standalone_cannot_be_installed(db_session, catalog, make_asset):
    parent = make_asset()
    other = make_asset()

    with pytest.raises(StructuralViolation):
        AssetService.install_component(
            db_session, parent.id, schemas.ComponentInstall(component_id=other.id)
        )


def test_deleted_asset_is_not_an_eligible_parent(db_session, catalog, make_asset):
    parent = make_asset()
    LifecycleService.soft_delete(db_session, parent.id)

    with pytest.raises(StructuralViolation) as excinfo:
        make_asset(
            product_id=catalog["ram_id"], asset_type="component", parent_asset_id=parent.id
        )

    assert excinfo.value.detail["invariant"] == "parent_standalone"
    candidates = AssetService.parent_candidates(db_session)
    assert parent.id not in {candidate.id for candidate in candidates}


def test_promoting_component_clears_parent_link(db_session, catalog, make_asset):
    parent = make_asset()
    component = make_asset(
        product_id=catalog["ram_id"],
        asset_type="component",
        parent_asset_id=parent.id,
        installation_notes="Bay 2",
    )

    promoted = AssetService.update_asset(
        db_session, component.id, schemas.AssetUpdate(asset_type="standalone")
    )

    assert promoted.asset_type == models.AssetType.STANDALONE
    assert promoted.parent_asset_id is None
    assert promoted.installation_notes is None


def test_demotion_rules(db_session, catalog, make_asset):
    assigned = make_asset(assigned_to=catalog["alice_id"])
    with pytest.raises(StructuralViolation):
        AssetService.update_asset(
            db_session, assigned.id, schemas.AssetUpdate(asset_type="component")
        )

    host = make_asset()
    make_asset(product_id=catalog["ram_id"], asset_type="component", parent_asset_id=host.id)
    with pytest.raises(StructuralViolation):
        AssetService.update_asset(db_session, host.id, schemas.AssetUpdate(asset_type="component"))

    plain = make_asset()
    target = make_asset()
    demoted = AssetService.update_asset(
        db_session,
        plain.id,
        schemas.AssetUpdate(asset_type="component", parent_asset_id=target.id),
    )
    assert demoted.asset_type == models.AssetType.COMPONENT
    assert demoted.parent_asset_id == target.id


def test_asset_cannot_be_its_own_parent(db_session, catalog, make_asset):
    component = make_asset(product_id=catalog["ram_id"], asset_type="component")

    with pytest.raises(StructuralViolation):
        AssetService.update_asset(
            db_session, component.id, schemas.AssetUpdate(parent_asset_id=component.id)
        )


def test_update_rejects_null_required_fields(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(ValidationFailed):
        AssetService.update_asset(db_session, asset.id, schemas.AssetUpdate(serial_number=None))


def test_update_records_changes(db_session, make_asset):
    asset = make_asset()

    AssetService.update_asset(
        db_session,
        asset.id,
        schemas.AssetUpdate(notes="Screen replaced", warranty_end_date=date(2027, 1, 1)),
        actor_id="tech-7",
    )

    items, _ = AssetService.list_history(db_session, asset.id)
    update = next(item for item in items if item.action == models.AssetHistoryAction.UPDATE)
    assert update.actor_id == "tech-7"
    assert update.changes["notes"] == [None, "Screen replaced"]
    assert update.changes["warranty_end_date"] == [None, "2027-01-01"]


def test_status_change_to_disposed_clears_assignee(db_session, catalog, make_asset):
    asset = make_asset(assigned_to=catalog["alice_id"])

    disposed = AssetService.change_status(
        db_session, asset.id, schemas.AssetStatusChange(status="disposed", note="Broken")
    )

    assert disposed.status == models.AssetStatus.DISPOSED
    assert disposed.assigned_to is None
    with pytest.raises(InvalidStatusTransition):
        AssetService.change_status(db_session, asset.id, schemas.AssetStatusChange(status="available"))


def test_status_change_to_assigned_needs_assign(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(ValidationFailed):
        AssetService.change_status(db_session, asset.id, schemas.AssetStatusChange(status="assigned"))


def test_deleted_asset_is_hidden_and_read_only(db_session, catalog, make_asset):
    live = make_asset()
    gone = make_asset()
    LifecycleService.soft_delete(db_session, gone.id)

    items, total = AssetService.list_assets(db_session)
    assert total == 1
    assert [item.id for item in items] == [live.id]

    _, total_with_deleted = AssetService.list_assets(db_session, include_deleted=True)
    assert total_with_deleted == 2

    with pytest.raises(AssetDeleted):
        AssetService.assign(db_session, gone.id, schemas.AssetAssign(user_id=catalog["alice_id"]))


def test_list_assets_filters(db_session, catalog, make_asset):
    make_asset(serial_number="ABC-1")
    make_asset(serial_number="XYZ-2", assigned_to=catalog["alice_id"])
    make_asset(product_id=catalog["ram_id"], asset_type="component")

    _, assigned_total = AssetService.list_assets(
        db_session, schemas.AssetFilter(status="assigned")
    )
    _, component_total = AssetService.list_assets(
        db_session, schemas.AssetFilter(asset_type="component")
    )
    found, search_total = AssetService.list_assets(db_session, schemas.AssetFilter(search="abc"))

    assert assigned_total == 1
    assert component_total == 1
    assert search_total == 1
    assert found[0].serial_number == "ABC-1"


def test_unknown_asset_id_is_not_found(db_session):
    with pytest.raises(NotFound):
        AssetService.get_asset(db_session, "not-a-uuid")


def test_bulk_create_reports_each_item(db_session, catalog):
    result = AssetService.bulk_create(
        db_session,
        schemas.AssetBulkCreate(
            items=[
                schemas.AssetCreate(serial_number="B-1", product_id=catalog["laptop_id"]),
                schemas.AssetCreate(
                    serial_number="B-2",
                    product_id=catalog["ram_id"],
                    asset_type="component",
                    assigned_to=catalog["alice_id"],
                ),
                schemas.AssetCreate(serial_number="B-3", product_id=9999),
            ]
        ),
    )

    assert (result.created, result.failed) == (1, 2)
    assert result.items[0].status == "created"
    assert result.items[1].error["code"] == "component_cannot_be_assigned"
    assert result.items[2].error["code"] == "not_found"
    assert db_session.query(models.Asset).count() == 1
