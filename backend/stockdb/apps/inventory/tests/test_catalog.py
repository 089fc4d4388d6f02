from __future__ import annotations

import pytest

from stockdb.apps.accounts import models as account_models
from stockdb.apps.inventory import catalog
from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory import schemas as inventory_schemas
from stockdb.apps.inventory import services as inventory_services
from stockdb.apps.inventory.errors import NotFoundError, ReadOnly, ScopeViolation, ValidationError


def _named(name):
    return inventory_schemas.NamedCreate(name=name)


def _product(category_id, unit_id, *, name="Latte", sku="lat-1", initial_stock=0, minimum=0):
    return inventory_schemas.ProductCreate.model_validate(
        {
            "name": name,
            "sku": sku,
            "categoryId": category_id,
            "unitId": unit_id,
            "initialStock": initial_stock,
            "minimumLowStock": minimum,
        }
    )


def _outlet(code, name="Kebayoran", address="Jl. Kebayoran 1"):
    return inventory_schemas.OutletWrite.model_validate({"name": name, "code": code, "address": address})


# ---------------------------------------------------------------------------
# Categories and units
# ---------------------------------------------------------------------------


def test_category_names_are_unique_ignoring_case(db_session, make_user, access_for, fast_retry):
    access = access_for(make_user())

    result = catalog.create_category(db_session, access, _named("  Pastry "), policy=fast_retry)
    assert result.message == "Category added."
    assert db_session.get(inventory_models.InventoryCategory, result.id).name == "Pastry"

    with pytest.raises(ValidationError):
        catalog.create_category(db_session, access, _named("PASTRY"), policy=fast_retry)


def test_rename_unit_checks_other_names(db_session, category_and_unit, make_user, access_for, fast_retry):
    _, pcs = category_and_unit
    access = access_for(make_user())
    box = catalog.create_unit(db_session, access, _named("box"), policy=fast_retry)

    with pytest.raises(ValidationError):
        catalog.update_unit(db_session, access, box.id, _named("PCS"), policy=fast_retry)

    renamed = catalog.update_unit(db_session, access, pcs.id, _named("Pcs"), policy=fast_retry)
    assert renamed.message == "Unit updated."
    assert db_session.get(inventory_models.InventoryUnit, pcs.id).name == "Pcs"


def test_category_in_use_cannot_be_deleted(db_session, category_and_unit, make_product, make_user, access_for, fast_retry):
    category, _ = category_and_unit
    make_product("Latte", "LAT-1")
    access = access_for(make_user())
    spare = catalog.create_category(db_session, access, _named("Spare"), policy=fast_retry)

    with pytest.raises(ValidationError):
        catalog.delete_category(db_session, access, category.id, policy=fast_retry)

    deleted = catalog.delete_category(db_session, access, spare.id, policy=fast_retry)
    assert deleted.message == "Category deleted."
    assert db_session.get(inventory_models.InventoryCategory, spare.id) is None

    with pytest.raises(NotFoundError):
        catalog.delete_unit(db_session, access, "missing", policy=fast_retry)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def test_create_product_with_initial_stock_logs_a_movement(
    db_session, category_and_unit, make_user, access_for, central_qty, fast_retry
):
    category, unit = category_and_unit
    access = access_for(make_user())

    result = catalog.create_product(
        db_session, access, _product(category.id, unit.id, initial_stock=12, minimum=3), policy=fast_retry
    )

    assert result.message == "Product added."
    product = db_session.get(inventory_models.Product, result.id)
    assert product.sku == "LAT-1"
    assert product.minimum_low_stock == 3
    assert central_qty(product.id) == 12
    (movement,) = db_session.query(inventory_models.InventoryMovement).all()
    assert movement.movement_type == inventory_models.MovementType.IN
    assert movement.delta == 12
    assert movement.balance_after == 12
    assert movement.note == "Initial product stock"
    assert movement.actor_user_id == access.actor_id


def test_create_product_without_stock_writes_no_movement(db_session, category_and_unit, make_user, access_for, fast_retry):
    category, unit = category_and_unit
    access = access_for(make_user())

    catalog.create_product(db_session, access, _product(category.id, unit.id), policy=fast_retry)

    assert db_session.query(inventory_models.InventoryMovement).count() == 0


def test_duplicate_sku_and_foreign_category_are_rejected(
    db_session, category_and_unit, make_product, make_user, access_for, fast_retry
):
    category, unit = category_and_unit
    make_product("Latte", "LAT-1")
    access = access_for(make_user())

    with pytest.raises(ValidationError):
        catalog.create_product(db_session, access, _product(category.id, unit.id, sku=" lat-1 "), policy=fast_retry)
    with pytest.raises(ValidationError):
        catalog.create_product(db_session, access, _product("other", unit.id, sku="NEW-1"), policy=fast_retry)


def test_update_product_keeps_stock(db_session, category_and_unit, make_product, make_user, access_for, central_qty, fast_retry):
    category, unit = category_and_unit
    product = make_product("Latte", "LAT-1", central_stock=7)
    access = access_for(make_user())
    payload = inventory_schemas.ProductUpdate.model_validate(
        {"name": "Iced Latte", "sku": "lat-2", "categoryId": category.id, "unitId": unit.id, "minimumLowStock": 4}
    )

    result = catalog.update_product(db_session, access, product.id, payload, policy=fast_retry)

    assert result.message == "Product updated."
    refreshed = db_session.get(inventory_models.Product, product.id)
    assert (refreshed.name, refreshed.sku, refreshed.minimum_low_stock) == ("Iced Latte", "LAT-2", 4)
    assert central_qty(product.id) == 7


def test_product_with_history_cannot_be_deleted(
    db_session, category_and_unit, make_product, make_user, access_for, fast_retry
):
    with_history = make_product("Latte", "LAT-1", central_stock=3)
    fresh = make_product("Mocha", "MOC-1")
    access = access_for(make_user())
    movement = inventory_schemas.MovementCreate.model_validate(
        {"productId": with_history.id, "qty": 1, "type": "out", "location": {"kind": "central"}}
    )
    inventory_services.create_movement(db_session, access, movement, policy=fast_retry)

    with pytest.raises(ValidationError):
        catalog.delete_product(db_session, access, with_history.id, policy=fast_retry)
    assert db_session.get(inventory_models.Product, with_history.id) is not None

    catalog.delete_product(db_session, access, fresh.id, policy=fast_retry)
    assert db_session.get(inventory_models.Product, fresh.id) is None


# ---------------------------------------------------------------------------
# Outlets
# ---------------------------------------------------------------------------


def test_outlet_code_is_upper_cased_and_unique(db_session, make_user, access_for, fast_retry):
    access = access_for(make_user())

    result = catalog.create_outlet(db_session, access, _outlet(" kbj "), policy=fast_retry)

    outlet = db_session.get(inventory_models.Outlet, result.id)
    assert outlet.code == "KBJ"
    assert outlet.label == "Kebayoran (KBJ)"
    with pytest.raises(ValidationError):
        catalog.create_outlet(db_session, access, _outlet("KBJ", name="Other"), policy=fast_retry)


def test_reserved_central_code_is_rejected(db_session, make_user, access_for, fast_retry):
    access = access_for(make_user())

    with pytest.raises(ValidationError) as excinfo:
        catalog.create_outlet(db_session, access, _outlet("pst"), policy=fast_retry)

    assert excinfo.value.details == {"code": "PST"}
    assert db_session.query(inventory_models.Outlet).count() == 0


def test_staff_creating_an_outlet_gets_access(db_session, tenant, make_user, access_for, fast_retry):
    user = make_user(role=account_models.MembershipRole.STAFF)
    access = access_for(user)

    result = catalog.create_outlet(db_session, access, _outlet("NEW"), policy=fast_retry)

    assert access_for(user).outlet_ids == frozenset({result.id})


def test_staff_cannot_edit_ungranted_outlet(db_session, make_outlet, make_user, access_for, fast_retry):
    outlet = make_outlet("KBJ")
    access = access_for(make_user(role=account_models.MembershipRole.STAFF))

    with pytest.raises(ScopeViolation):
        catalog.update_outlet(db_session, access, outlet.id, _outlet("KBJ", name="Renamed"), policy=fast_retry)


def test_outlet_with_stock_or_history_cannot_be_deleted(
    db_session, tenant, make_product, make_outlet, make_user, access_for, fast_retry
):
    product = make_product("Latte", "LAT-1")
    stocked = make_outlet("STK")
    logged = make_outlet("LOG")
    db_session.add(
        inventory_models.BranchStock(tenant_id=tenant.id, outlet_id=stocked.id, product_id=product.id, qty=2)
    )
    db_session.commit()
    access = access_for(make_user())
    movement = inventory_schemas.MovementCreate.model_validate(
        {"productId": product.id, "qty": 1, "type": "in", "location": {"kind": "outlet", "outletId": logged.id}}
    )
    inventory_services.create_movement(db_session, access, movement, policy=fast_retry)

    with pytest.raises(ValidationError):
        catalog.delete_outlet(db_session, access, stocked.id, policy=fast_retry)
    with pytest.raises(ValidationError):
        catalog.delete_outlet(db_session, access, logged.id, policy=fast_retry)


def test_empty_outlet_delete_removes_rows_and_grants(
    db_session, tenant, make_product, make_outlet, make_user, access_for, fast_retry
):
    product = make_product("Latte", "LAT-1")
    outlet = make_outlet("OLD")
    db_session.add(
        inventory_models.BranchStock(tenant_id=tenant.id, outlet_id=outlet.id, product_id=product.id, qty=0)
    )
    db_session.commit()
    staff = make_user(role=account_models.MembershipRole.STAFF, outlets=[outlet])
    access = access_for(make_user())

    result = catalog.delete_outlet(db_session, access, outlet.id, policy=fast_retry)

    assert result.message == "Outlet deleted."
    assert db_session.get(inventory_models.Outlet, outlet.id) is None
    assert db_session.query(inventory_models.BranchStock).count() == 0
    assert access_for(staff).outlet_ids == frozenset()


def test_catalog_writes_need_a_writable_subscription(db_session, tenant, make_user, access_for):
    db_session.query(account_models.Subscription).delete()
    db_session.commit()
    access = access_for(make_user())

    with pytest.raises(ReadOnly):
        catalog.create_category(db_session, access, _named("Pastry"))
    with pytest.raises(ReadOnly):
        catalog.create_outlet(db_session, access, _outlet("KBJ"))
