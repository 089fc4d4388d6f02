from __future__ import annotations

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory.errors import InsufficientStock, NotFoundError, ValidationError
from stockdb.apps.inventory.ledger import Location, StockLedger, lock_order


def test_location_keys_and_ids():
    central = Location.central()
    outlet = Location.outlet("0190-abc")

    assert central.key == "central"
    assert central.location_id == "central"
    assert outlet.key == "outlet:0190-abc"
    assert outlet.location_id == "0190-abc"


def test_lock_order_puts_central_first_then_outlets_by_id():
    ordered = lock_order(
        [Location.outlet("c"), Location.outlet("a"), Location.central(), Location.outlet("b"), Location.outlet("a")]
    )

    assert [loc.key for loc in ordered] == ["central", "outlet:a", "outlet:b", "outlet:c"]


def test_untouched_outlet_reads_zero_without_creating_a_row(db_session, tenant, make_product, make_outlet, branch_qty):
    product = make_product("Latte", "LAT-1", central_stock=5)
    outlet = make_outlet("KBJ")
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    assert ledger.get_balance(product.id, Location.outlet(outlet.id)) == 0
    assert ledger.get_balance(product.id, Location.central()) == 5
    assert branch_qty(outlet.id, product.id) is None


def test_lock_creates_missing_branch_row_with_zero(db_session, tenant, make_product, make_outlet, branch_qty):
    product = make_product("Latte", "LAT-1")
    outlet = make_outlet("KBJ")
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    assert ledger.lock(product.id, Location.outlet(outlet.id)) == 0
    assert ledger.holds(product.id, Location.outlet(outlet.id))
    assert branch_qty(outlet.id, product.id) == 0


def test_apply_delta_updates_central_and_outlet(db_session, tenant, make_product, make_outlet, branch_qty, central_qty):
    product = make_product("Latte", "LAT-1", central_stock=10)
    outlet = make_outlet("KBJ")
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    assert ledger.apply_delta(product.id, Location.central(), -4) == 6
    assert ledger.apply_delta(product.id, Location.outlet(outlet.id), 4) == 4
    db_session.commit()

    assert central_qty(product.id) == 6
    assert branch_qty(outlet.id, product.id) == 4


def test_apply_delta_below_zero_raises_and_changes_nothing(db_session, tenant, make_product):
    product = make_product("Latte", "LAT-1", central_stock=3)
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    with pytest.raises(InsufficientStock) as excinfo:
        ledger.apply_delta(product.id, Location.central(), -5)

    assert excinfo.value.available == 3
    assert excinfo.value.requested == 5
    assert excinfo.value.location_label == "Central"
    assert ledger.get_balance(product.id, Location.central()) == 3


def test_insufficient_stock_message_uses_outlet_label(db_session, tenant, make_product, make_outlet):
    product = make_product("Latte", "LAT-1")
    outlet = make_outlet("KBJ", name="Kebayoran")
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    with pytest.raises(InsufficientStock) as excinfo:
        ledger.apply_delta(product.id, Location.outlet(outlet.id), -1)

    assert excinfo.value.location_label == "Kebayoran (KBJ)"
    assert excinfo.value.kind == "insufficient_stock"


def test_held_lock_is_reused(db_session, tenant, make_product, monkeypatch):
    product = make_product("Latte", "LAT-1", central_stock=8)
    ledger = StockLedger(db_session, tenant_id=tenant.id)
    calls = []
    original = ledger._lock_product

    def counting(product_id):
        calls.append(product_id)
        return original(product_id)

    monkeypatch.setattr(ledger, "_lock_product", counting)

    ledger.lock(product.id, Location.central())
    ledger.apply_delta(product.id, Location.central(), -1)
    ledger.apply_delta(product.id, Location.central(), -1)

    assert calls == [product.id]
    assert ledger.get_balance(product.id, Location.central()) == 6


def test_lock_many_follows_global_order(db_session, tenant, make_product, make_outlet, monkeypatch):
    product = make_product("Latte", "LAT-1", central_stock=1)
    outlets = [make_outlet("AAA"), make_outlet("BBB"), make_outlet("CCC")]
    ledger = StockLedger(db_session, tenant_id=tenant.id)
    seen = []
    original = ledger.lock

    def recording(product_id, location):
        seen.append(location.key)
        return original(product_id, location)

    monkeypatch.setattr(ledger, "lock", recording)

    requested = [Location.outlet(o.id) for o in reversed(outlets)] + [Location.central()]
    balances = ledger.lock_many(product.id, requested)

    expected = ["central"] + [f"outlet:{oid}" for oid in sorted(o.id for o in outlets)]
    assert seen == expected
    assert balances[Location.central()] == 1


def test_set_balance_rejects_negative(db_session, tenant, make_product):
    product = make_product("Latte", "LAT-1", central_stock=2)
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    with pytest.raises(ValidationError):
        ledger.set_balance(product.id, Location.central(), -1)


def test_unknown_product_and_outlet(db_session, tenant, make_product):
    product = make_product("Latte", "LAT-1")
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    with pytest.raises(NotFoundError):
        ledger.lock("missing-product", Location.central())
    with pytest.raises(NotFoundError):
        ledger.lock(product.id, Location.outlet("missing-outlet"))


def test_ledger_is_tenant_scoped(db_session, tenant, make_product):
    product = make_product("Latte", "LAT-1", central_stock=4)
    ledger = StockLedger(db_session, tenant_id="another-tenant")

    with pytest.raises(NotFoundError):
        ledger.apply_delta(product.id, Location.central(), 1)


def test_database_rejects_negative_central_stock(db_session, make_product):
    product = make_product("Latte", "LAT-1")
    product.central_stock = -1

    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(inventory_models.Product, product.id).central_stock == 0


def test_row_locks_render_as_no_key_update_on_postgresql(db_session, tenant):
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    for query in (ledger._product_lock_query("p"), ledger._branch_stock_lock_query("p", "o")):
        sql = str(query.statement.compile(dialect=postgresql.dialect()))
        assert "FOR NO KEY UPDATE" in sql
        assert " FOR UPDATE" not in sql


def test_balance_cannot_grow_past_the_column_range(db_session, tenant, make_product):
    product = make_product("Latte", "LAT-1", central_stock=inventory_models.MAX_STOCK - 1)
    ledger = StockLedger(db_session, tenant_id=tenant.id)

    with pytest.raises(ValidationError):
        ledger.apply_delta(product.id, Location.central(), 2)
    with pytest.raises(ValidationError):
        ledger.set_balance(product.id, Location.central(), inventory_models.MAX_STOCK + 1)

    assert ledger.apply_delta(product.id, Location.central(), 1) == inventory_models.MAX_STOCK
