from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockdb.database import Base, get_db, get_read_db
from stockdb.main import app
from stockdb.security import create_access_token
from stockdb.apps.accounts import models as account_models


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_read_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth_headers(user):
    token = create_access_token(data={"sub": user.id})
    return {"Authorization": f"Bearer {token}"}


def test_health_endpoints(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").json()["status"] == "ok"


def test_stock_in_returns_created_with_camel_case_body(
    client, db_session, make_product, make_outlet, make_user, branch_qty
):
    product = make_product("Latte", "LAT-1")
    outlet = make_outlet("KBJ")
    user = make_user()
    db_session.commit()

    response = client.post(
        "/inventory/acme/movements",
        json={
            "productId": product.id,
            "qty": 4,
            "type": "in",
            "location": {"kind": "outlet", "outletId": outlet.id},
        },
        headers=_auth_headers(user),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    assert body["message"] == "Stock-in transaction saved."
    assert body["balanceAfter"] == 4
    assert body["movementId"]
    assert branch_qty(outlet.id, product.id) == 4


def test_insufficient_stock_is_a_conflict(client, make_product, make_user, central_qty):
    product = make_product("Latte", "LAT-1", central_stock=1)
    user = make_user()

    response = client.post(
        "/inventory/acme/movements",
        json={"productId": product.id, "qty": 5, "type": "out", "location": {"kind": "central"}},
        headers=_auth_headers(user),
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["kind"] == "insufficient_stock"
    assert error["details"] == {"available": 1, "requested": 5, "location": "Central"}
    assert central_qty(product.id) == 1


def test_transfer_and_opname_endpoints(client, make_product, make_outlet, make_user, central_qty, branch_qty):
    product = make_product("Latte", "LAT-1", central_stock=10)
    outlet = make_outlet("KBJ")
    headers = _auth_headers(make_user())

    transfer = client.post(
        "/inventory/acme/transfers",
        json={
            "productId": product.id,
            "source": {"kind": "central"},
            "destinations": [{"outletId": outlet.id, "qty": 3}],
        },
        headers=headers,
    )
    assert transfer.status_code == 201
    assert transfer.json()["totalQty"] == 3
    assert transfer.json()["sourceBalanceAfter"] == 7

    opname = client.post(
        "/inventory/acme/opname",
        json={"productId": product.id, "actualStock": 2, "location": {"kind": "outlet", "outletId": outlet.id}},
        headers=headers,
    )
    assert opname.status_code == 201
    assert opname.json()["delta"] == -1
    assert opname.json()["message"] == "Opname saved with stock adjustment."
    assert central_qty(product.id) == 7
    assert branch_qty(outlet.id, product.id) == 2


def test_duplicate_destination_returns_error_body(client, make_product, make_outlet, make_user):
    product = make_product("Latte", "LAT-1", central_stock=10)
    outlet = make_outlet("KBJ")

    response = client.post(
        "/inventory/acme/transfers",
        json={
            "productId": product.id,
            "source": {"kind": "central"},
            "destinations": [{"outletId": outlet.id, "qty": 1}, {"outletId": outlet.id, "qty": 1}],
        },
        headers=_auth_headers(make_user()),
    )

    assert response.status_code == 422
    assert response.json()["error"]["kind"] == "duplicate_destination"


def test_read_only_subscription_is_forbidden(client, db_session, make_product, make_user):
    product = make_product("Latte", "LAT-1")
    db_session.query(account_models.Subscription).delete()
    db_session.commit()

    response = client.post(
        "/inventory/acme/movements",
        json={"productId": product.id, "qty": 1, "type": "in", "location": {"kind": "central"}},
        headers=_auth_headers(make_user()),
    )

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "read_only"


def test_invalid_payload_is_rejected_by_schema(client, make_user):
    response = client.post(
        "/inventory/acme/movements",
        json={"productId": "p", "qty": 0, "type": "in", "location": {"kind": "central"}},
        headers=_auth_headers(make_user()),
    )

    assert response.status_code == 422


def test_missing_token_is_unauthorized(client, tenant):
    response = client.get("/inventory/acme/snapshot")

    assert response.status_code == 401


def test_other_tenant_is_forbidden(client, db_session, make_user):
    user = make_user()
    db_session.add(account_models.Tenant(slug="other", name="Other"))
    db_session.commit()

    response = client.get("/inventory/other/snapshot", headers=_auth_headers(user))

    assert response.status_code == 403


def test_snapshot_and_alerts(client, tenant, make_product, make_outlet, make_user):
    product = make_product("Latte", "LAT-1", central_stock=1, minimum_low_stock=3)
    outlet = make_outlet("KBJ", name="Kebayoran")
    headers = _auth_headers(make_user())
    client.post(
        "/inventory/acme/transfers",
        json={
            "productId": product.id,
            "source": {"kind": "central"},
            "destinations": [{"outletId": outlet.id, "qty": 1}],
        },
        headers=headers,
    )

    snapshot = client.get("/inventory/acme/snapshot", headers=headers)
    assert snapshot.status_code == 200
    body = snapshot.json()
    assert [p["stock"] for p in body["products"]] == [0]
    assert body["outletStocks"] == [{"outletId": outlet.id, "productId": product.id, "qty": 1}]
    assert {m["note"] for m in body["movements"]} == {"Transfer out", "Transfer in"}
    assert body["transfers"][0]["destinations"] == [{"outletId": outlet.id, "outletName": "Kebayoran", "qty": 1}]

    alerts = client.get("/inventory/acme/dashboard/alerts", params={"location": "all", "limit": 1}, headers=headers)
    assert alerts.status_code == 200
    payload = alerts.json()
    assert payload["lowStockCount"] == 2
    assert len(payload["lowStockPriorities"]) == 1
    assert payload["lowStockPriorities"][0]["locationKey"] == "central"

    bad = client.get("/inventory/acme/dashboard/alerts", params={"location": "nowhere"}, headers=headers)
    assert bad.status_code == 422
    assert bad.json()["error"]["kind"] == "validation_error"


def test_catalog_endpoints(client, make_user):
    headers = _auth_headers(make_user())

    created = client.post("/inventory/acme/categories", json={"name": "Pastry"}, headers=headers)
    assert created.status_code == 201
    assert created.json()["message"] == "Category added."

    outlet = client.post(
        "/inventory/acme/outlets",
        json={"name": "Kebayoran", "code": "PST", "address": "Jl. Kebayoran 1"},
        headers=headers,
    )
    assert outlet.status_code == 422
    assert outlet.json()["error"]["kind"] == "validation_error"

    removed = client.delete(f"/inventory/acme/categories/{created.json()['id']}", headers=headers)
    assert removed.status_code == 200
    assert removed.json()["message"] == "Category deleted."
