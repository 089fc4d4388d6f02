"""
Seed a demo tenant with an owner, an active subscription, a small catalog
and two outlets, then print a bearer token for the owner.

    DATABASE_URL=... python -m stockdb.scripts.seed_demo_tenant
"""

import os
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from stockdb.database import SessionLocal
from stockdb.security import create_access_token
from stockdb.apps.accounts import models as account_models
from stockdb.apps.accounts import services as account_services
from stockdb.apps.inventory import catalog, schemas
from stockdb.apps.inventory import models as inventory_models

TENANT_SLUG = os.getenv("STOCKDB_DEMO_TENANT_SLUG", "demo-store")
TENANT_NAME = os.getenv("STOCKDB_DEMO_TENANT_NAME", "Demo Store")
OWNER_EMAIL = os.getenv("STOCKDB_DEMO_OWNER_EMAIL", "owner@demo.local")

OUTLETS = [
    ("Kebayoran", "KBJ", "Jl. Kebayoran Baru 12"),
    ("Menteng", "MTG", "Jl. Menteng Raya 5"),
]

PRODUCTS = [
    ("Arabica Beans 1kg", "ARB-1KG", 40, 10),
    ("Oat Milk 1L", "OAT-1L", 24, 12),
    ("Paper Cup 12oz", "CUP-12", 500, 200),
]


def _get_or_create_tenant(db: Session) -> account_models.Tenant:
    tenant = db.query(account_models.Tenant).filter(account_models.Tenant.slug == TENANT_SLUG).first()
    if tenant:
        return tenant
    tenant = account_models.Tenant(slug=TENANT_SLUG, name=TENANT_NAME)
    db.add(tenant)
    db.flush()
    db.add(
        account_models.Subscription(
            tenant_id=tenant.id,
            status=account_models.SubscriptionStatus.ACTIVE,
            current_period_end=datetime.now(timezone.utc) + timedelta(days=30),
        )
    )
    return tenant


def _get_or_create_owner(db: Session, tenant: account_models.Tenant) -> account_models.User:
    user = db.query(account_models.User).filter(account_models.User.email == OWNER_EMAIL).first()
    if not user:
        user = account_models.User(email=OWNER_EMAIL, display_name="Demo Owner")
        db.add(user)
        db.flush()
    membership = (
        db.query(account_models.Membership)
        .filter(account_models.Membership.tenant_id == tenant.id, account_models.Membership.user_id == user.id)
        .first()
    )
    if not membership:
        db.add(
            account_models.Membership(
                tenant_id=tenant.id,
                user_id=user.id,
                role=account_models.MembershipRole.OWNER,
            )
        )
    return user


def main() -> None:
    db: Session = SessionLocal()
    try:
        tenant = _get_or_create_tenant(db)
        owner = _get_or_create_owner(db, tenant)
        db.commit()

        access = account_services.resolve_tenant_access(db, user_id=owner.id, tenant_slug=TENANT_SLUG)

        existing_codes = {
            code
            for (code,) in db.query(inventory_models.Outlet.code)
            .filter(inventory_models.Outlet.tenant_id == tenant.id)
            .all()
        }
        for name, code, address in OUTLETS:
            if code not in existing_codes:
                catalog.create_outlet(db, access, schemas.OutletWrite(name=name, code=code, address=address))

        category = (
            db.query(inventory_models.InventoryCategory)
            .filter(inventory_models.InventoryCategory.tenant_id == tenant.id)
            .first()
        )
        category_id = category.id if category else catalog.create_category(
            db, access, schemas.NamedCreate(name="Supplies")
        ).id
        unit = (
            db.query(inventory_models.InventoryUnit)
            .filter(inventory_models.InventoryUnit.tenant_id == tenant.id)
            .first()
        )
        unit_id = unit.id if unit else catalog.create_unit(db, access, schemas.NamedCreate(name="pcs")).id

        existing_skus = {
            sku
            for (sku,) in db.query(inventory_models.Product.sku)
            .filter(inventory_models.Product.tenant_id == tenant.id)
            .all()
        }
        for name, sku, initial_stock, minimum in PRODUCTS:
            if sku in existing_skus:
                continue
            catalog.create_product(
                db,
                access,
                schemas.ProductCreate(
                    name=name,
                    sku=sku,
                    category_id=category_id,
                    unit_id=unit_id,
                    initial_stock=initial_stock,
                    minimum_low_stock=minimum,
                ),
            )

        token = create_access_token(data={"sub": owner.id}, expires_delta=timedelta(days=7))
        print(f"[OK] Tenant '{TENANT_SLUG}' ready (id={tenant.id}).")
        print(f"  owner:  {OWNER_EMAIL} (id={owner.id})")
        print(f"  token:  {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
