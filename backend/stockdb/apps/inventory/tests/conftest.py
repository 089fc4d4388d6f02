from __future__ import annotations

from typing import Iterable, Optional

import pytest

from stockdb.apps.accounts import models as account_models
from stockdb.apps.accounts import services as account_services
from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory.transactions import RetryPolicy


@pytest.fixture()
def fast_retry() -> RetryPolicy:
    return RetryPolicy(attempts=3, backoff_seconds=0, max_backoff_seconds=0)


@pytest.fixture()
def tenant(db_session):
    tenant = account_models.Tenant(slug="acme", name="Acme Coffee")
    db_session.add(tenant)
    db_session.flush()
    db_session.add(
        account_models.Subscription(
            tenant_id=tenant.id,
            status=account_models.SubscriptionStatus.ACTIVE,
        )
    )
    db_session.commit()
    return tenant


@pytest.fixture()
def category_and_unit(db_session, tenant):
    category = inventory_models.InventoryCategory(tenant_id=tenant.id, name="Beverages")
    unit = inventory_models.InventoryUnit(tenant_id=tenant.id, name="pcs")
    db_session.add_all([category, unit])
    db_session.commit()
    return category, unit


@pytest.fixture()
def make_user(db_session, tenant):
    counter = {"n": 0}

    def _make(
        role: account_models.MembershipRole = account_models.MembershipRole.OWNER,
        outlets: Iterable[inventory_models.Outlet] = (),
    ) -> account_models.User:
        counter["n"] += 1
        user = account_models.User(
            email=f"user{counter['n']}@acme.test",
            display_name=f"User {counter['n']}",
        )
        db_session.add(user)
        db_session.flush()
        membership = account_models.Membership(tenant_id=tenant.id, user_id=user.id, role=role)
        db_session.add(membership)
        db_session.flush()
        for outlet in outlets:
            account_services.grant_outlet_access(db_session, membership_id=membership.id, outlet_id=outlet.id)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_outlet(db_session, tenant):
    def _make(code: str, name: Optional[str] = None) -> inventory_models.Outlet:
        outlet = inventory_models.Outlet(
            tenant_id=tenant.id,
            name=name or f"Outlet {code}",
            code=code,
            address=f"{code} street 1",
        )
        db_session.add(outlet)
        db_session.commit()
        return outlet

    return _make


@pytest.fixture()
def make_product(db_session, tenant, category_and_unit):
    category, unit = category_and_unit

    def _make(name: str, sku: str, central_stock: int = 0, minimum_low_stock: int = 0) -> inventory_models.Product:
        product = inventory_models.Product(
            tenant_id=tenant.id,
            category_id=category.id,
            unit_id=unit.id,
            name=name,
            sku=sku,
            central_stock=central_stock,
            minimum_low_stock=minimum_low_stock,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture()
def access_for(db_session, tenant):
    """Resolve access after outlets exist; owners see the outlets present at resolve time."""

    def _resolve(user: account_models.User) -> account_services.TenantAccess:
        return account_services.resolve_tenant_access(db_session, user_id=user.id, tenant_slug=tenant.slug)

    return _resolve


@pytest.fixture()
def branch_qty(db_session):
    """Committed outlet balance, or None when no balance row exists yet."""

    def _qty(outlet_id: str, product_id: str) -> Optional[int]:
        row = (
            db_session.query(inventory_models.BranchStock.qty)
            .filter(
                inventory_models.BranchStock.outlet_id == outlet_id,
                inventory_models.BranchStock.product_id == product_id,
            )
            .first()
        )
        return None if row is None else int(row[0])

    return _qty


@pytest.fixture()
def central_qty(db_session):
    def _qty(product_id: str) -> int:
        row = (
            db_session.query(inventory_models.Product.central_stock)
            .filter(inventory_models.Product.id == product_id)
            .one()
        )
        return int(row[0])

    return _qty
