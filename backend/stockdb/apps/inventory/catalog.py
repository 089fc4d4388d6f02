"""
Catalog management: categories, units, products and outlets.

Every write needs a writable subscription. Product creation hands a positive
initial stock to StockLedger so it is logged like any other inbound change.
"""

from __future__ import annotations

import logging
from typing import Optional, Type, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from stockdb.apps.accounts import models as account_models
from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.services import TenantAccess
from . import models, schemas
from .errors import NotFoundError, ScopeViolation, ValidationError
from .ledger import Location, StockLedger
from .recorder import MovementRecorder
from .services import require_writable
from .transactions import RetryPolicy, run_atomic

logger = logging.getLogger(__name__)

NamedModel = Union[Type[models.InventoryCategory], Type[models.InventoryUnit]]

_LABELS = {
    models.InventoryCategory: "Category",
    models.InventoryUnit: "Unit",
}


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _result(message: str, record_id: Optional[str] = None) -> schemas.CatalogWriteResult:
    return schemas.CatalogWriteResult(message=message, id=record_id)


# ---------------------------------------------------------------------------
# Categories and units
# ---------------------------------------------------------------------------


def _get_named(db: Session, model: NamedModel, *, tenant_id: str, record_id: str):
    record = db.query(model).filter(model.tenant_id == tenant_id, model.id == record_id).first()
    if record is None:
        raise NotFoundError(f"{_LABELS[model]} not found.", details={"id": record_id})
    return record


def _ensure_unique_name(db: Session, model: NamedModel, *, tenant_id: str, name: str, exclude_id: Optional[str] = None):
    query = db.query(model.id).filter(model.tenant_id == tenant_id, func.lower(model.name) == name.lower())
    if exclude_id:
        query = query.filter(model.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"{_LABELS[model]} already exists. Use another name.", details={"name": name})


def _clean_name(model: NamedModel, name: Optional[str]) -> str:
    cleaned = _clean(name)
    if not cleaned:
        raise ValidationError(f"{_LABELS[model]} name is required.")
    return cleaned


def _create_named(db, access, model: NamedModel, payload: schemas.NamedCreate, policy) -> schemas.CatalogWriteResult:
    require_writable(access, operation=f"create_{model.__tablename__}")
    name = _clean_name(model, payload.name)

    def work():
        _ensure_unique_name(db, model, tenant_id=access.tenant_id, name=name)
        record = model(tenant_id=access.tenant_id, name=name)
        db.add(record)
        db.flush()
        return record.id

    record_id = run_atomic(db, work, policy=policy, operation=f"create_{model.__tablename__}")
    return _result(f"{_LABELS[model]} added.", record_id)


def _rename_named(db, access, model: NamedModel, record_id: str, payload: schemas.NamedCreate, policy):
    require_writable(access, operation=f"update_{model.__tablename__}")
    name = _clean_name(model, payload.name)

    def work():
        record = _get_named(db, model, tenant_id=access.tenant_id, record_id=record_id)
        _ensure_unique_name(db, model, tenant_id=access.tenant_id, name=name, exclude_id=record.id)
        record.name = name
        db.flush()
        return record.id

    run_atomic(db, work, policy=policy, operation=f"update_{model.__tablename__}")
    return _result(f"{_LABELS[model]} updated.", record_id)


def _delete_named(db, access, model: NamedModel, record_id: str, policy):
    require_writable(access, operation=f"delete_{model.__tablename__}")
    product_column = models.Product.category_id if model is models.InventoryCategory else models.Product.unit_id

    def work():
        record = _get_named(db, model, tenant_id=access.tenant_id, record_id=record_id)
        in_use = (
            db.query(models.Product.id)
            .filter(models.Product.tenant_id == access.tenant_id, product_column == record.id)
            .first()
        )
        if in_use is not None:
            raise ValidationError(f"{_LABELS[model]} cannot be deleted while products use it.")
        db.delete(record)
        db.flush()

    run_atomic(db, work, policy=policy, operation=f"delete_{model.__tablename__}")
    return _result(f"{_LABELS[model]} deleted.", record_id)


def create_category(db: Session, access: TenantAccess, payload: schemas.NamedCreate, *, policy: Optional[RetryPolicy] = None):
    return _create_named(db, access, models.InventoryCategory, payload, policy)


def update_category(db: Session, access: TenantAccess, category_id: str, payload: schemas.NamedCreate, *, policy: Optional[RetryPolicy] = None):
    return _rename_named(db, access, models.InventoryCategory, category_id, payload, policy)


def delete_category(db: Session, access: TenantAccess, category_id: str, *, policy: Optional[RetryPolicy] = None):
    return _delete_named(db, access, models.InventoryCategory, category_id, policy)


def create_unit(db: Session, access: TenantAccess, payload: schemas.NamedCreate, *, policy: Optional[RetryPolicy] = None):
    return _create_named(db, access, models.InventoryUnit, payload, policy)


def update_unit(db: Session, access: TenantAccess, unit_id: str, payload: schemas.NamedCreate, *, policy: Optional[RetryPolicy] = None):
    return _rename_named(db, access, models.InventoryUnit, unit_id, payload, policy)


def delete_unit(db: Session, access: TenantAccess, unit_id: str, *, policy: Optional[RetryPolicy] = None):
    return _delete_named(db, access, models.InventoryUnit, unit_id, policy)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def _normalize_sku(sku: Optional[str]) -> str:
    return _clean(sku).upper()


def _check_product_fields(db: Session, *, tenant_id: str, name: str, sku: str, category_id: str, unit_id: str, exclude_id: Optional[str] = None):
    if not name or not sku:
        raise ValidationError("Product name and SKU are required.")
    category = (
        db.query(models.InventoryCategory.id)
        .filter(models.InventoryCategory.tenant_id == tenant_id, models.InventoryCategory.id == category_id)
        .first()
    )
    if category is None:
        raise ValidationError("Select a valid category.", details={"category_id": category_id})
    unit = (
        db.query(models.InventoryUnit.id)
        .filter(models.InventoryUnit.tenant_id == tenant_id, models.InventoryUnit.id == unit_id)
        .first()
    )
    if unit is None:
        raise ValidationError("Select a valid unit.", details={"unit_id": unit_id})
    query = db.query(models.Product.id).filter(models.Product.tenant_id == tenant_id, models.Product.sku == sku)
    if exclude_id:
        query = query.filter(models.Product.id != exclude_id)
    if query.first() is not None:
        raise ValidationError("SKU is already in use. Use another SKU.", details={"sku": sku})


def create_product(
    db: Session,
    access: TenantAccess,
    payload: schemas.ProductCreate,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.CatalogWriteResult:
    require_writable(access, operation="create_product")
    name = _clean(payload.name)
    sku = _normalize_sku(payload.sku)

    def work():
        _check_product_fields(
            db,
            tenant_id=access.tenant_id,
            name=name,
            sku=sku,
            category_id=payload.category_id,
            unit_id=payload.unit_id,
        )
        product = models.Product(
            tenant_id=access.tenant_id,
            category_id=payload.category_id,
            unit_id=payload.unit_id,
            name=name,
            sku=sku,
            central_stock=0,
            minimum_low_stock=payload.minimum_low_stock,
        )
        db.add(product)
        db.flush()

        if payload.initial_stock > 0:
            ledger = StockLedger(db, tenant_id=access.tenant_id)
            recorder = MovementRecorder(db, tenant_id=access.tenant_id, actor_id=access.actor_id)
            location = Location.central()
            balance_after = ledger.apply_delta(product.id, location, payload.initial_stock)
            recorder.append(
                operation="initial_stock",
                product_id=product.id,
                location=location,
                location_label=ledger.describe(location),
                delta=payload.initial_stock,
                balance_after=balance_after,
            )
        return product.id

    product_id = run_atomic(db, work, policy=policy, operation="create_product")
    logger.info(
        "Product created",
        extra={
            "tenant_id": access.tenant_id,
            "product_id": product_id,
            "sku": sku,
            "initial_stock": payload.initial_stock,
        },
    )
    return _result("Product added.", product_id)


def update_product(
    db: Session,
    access: TenantAccess,
    product_id: str,
    payload: schemas.ProductUpdate,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.CatalogWriteResult:
    require_writable(access, operation="update_product")
    name = _clean(payload.name)
    sku = _normalize_sku(payload.sku)

    def work():
        product = (
            db.query(models.Product)
            .filter(models.Product.tenant_id == access.tenant_id, models.Product.id == product_id)
            .first()
        )
        if product is None:
            raise NotFoundError("Product not found.", details={"product_id": product_id})
        _check_product_fields(
            db,
            tenant_id=access.tenant_id,
            name=name,
            sku=sku,
            category_id=payload.category_id,
            unit_id=payload.unit_id,
            exclude_id=product.id,
        )
        product.name = name
        product.sku = sku
        product.category_id = payload.category_id
        product.unit_id = payload.unit_id
        product.minimum_low_stock = payload.minimum_low_stock
        db.flush()

    run_atomic(db, work, policy=policy, operation="update_product")
    return _result("Product updated.", product_id)


def delete_product(
    db: Session,
    access: TenantAccess,
    product_id: str,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.CatalogWriteResult:
    require_writable(access, operation="delete_product")

    def work():
        product = (
            db.query(models.Product)
            .filter(models.Product.tenant_id == access.tenant_id, models.Product.id == product_id)
            .first()
        )
        if product is None:
            raise NotFoundError("Product not found.", details={"product_id": product_id})
        has_movements = (
            db.query(models.InventoryMovement.id)
            .filter(models.InventoryMovement.product_id == product.id)
            .first()
        )
        has_transfers = (
            db.query(models.InventoryTransfer.id)
            .filter(models.InventoryTransfer.product_id == product.id)
            .first()
        )
        if has_movements is not None or has_transfers is not None:
            raise ValidationError("Product cannot be deleted because it has stock history.")
        db.query(models.BranchStock).filter(models.BranchStock.product_id == product.id).delete(
            synchronize_session=False
        )
        db.delete(product)
        db.flush()

    run_atomic(db, work, policy=policy, operation="delete_product")
    logger.info("Product deleted", extra={"tenant_id": access.tenant_id, "product_id": product_id})
    return _result("Product deleted.", product_id)


# ---------------------------------------------------------------------------
# Outlets
# ---------------------------------------------------------------------------


def _clean_outlet(payload: schemas.OutletWrite):
    name = _clean(payload.name)
    code = _clean(payload.code).upper()
    address = _clean(payload.address)
    if not name or not code or not address:
        raise ValidationError("Outlet name, code and address are required.")
    if code == models.RESERVED_OUTLET_CODE:
        raise ValidationError(
            f"Outlet code {models.RESERVED_OUTLET_CODE} is reserved for central stock and cannot be used.",
            details={"code": code},
        )
    return name, code, address


def _ensure_unique_code(db: Session, *, tenant_id: str, code: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(models.Outlet.id).filter(models.Outlet.tenant_id == tenant_id, models.Outlet.code == code)
    if exclude_id:
        query = query.filter(models.Outlet.id != exclude_id)
    if query.first() is not None:
        raise ValidationError("Outlet code is already in use.", details={"code": code})


def _get_accessible_outlet(db: Session, access: TenantAccess, outlet_id: str) -> models.Outlet:
    outlet = (
        db.query(models.Outlet)
        .filter(models.Outlet.tenant_id == access.tenant_id, models.Outlet.id == outlet_id)
        .first()
    )
    if outlet is None:
        raise NotFoundError("Outlet not found.", details={"outlet_id": outlet_id})
    if access.restricted and not access.can_access_outlet(outlet_id):
        raise ScopeViolation("No access to this outlet.", details={"outlet_id": outlet_id})
    return outlet


def create_outlet(
    db: Session,
    access: TenantAccess,
    payload: schemas.OutletWrite,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.CatalogWriteResult:
    require_writable(access, operation="create_outlet")
    name, code, address = _clean_outlet(payload)

    def work():
        _ensure_unique_code(db, tenant_id=access.tenant_id, code=code)
        outlet = models.Outlet(
            tenant_id=access.tenant_id,
            name=name,
            code=code,
            address=address,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
        db.add(outlet)
        db.flush()
        if access.restricted and access.membership_id:
            account_services.grant_outlet_access(db, membership_id=access.membership_id, outlet_id=outlet.id)
        return outlet.id

    outlet_id = run_atomic(db, work, policy=policy, operation="create_outlet")
    logger.info(
        "Outlet created",
        extra={"tenant_id": access.tenant_id, "outlet_id": outlet_id, "code": code},
    )
    return _result("Outlet added.", outlet_id)


def update_outlet(
    db: Session,
    access: TenantAccess,
    outlet_id: str,
    payload: schemas.OutletWrite,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.CatalogWriteResult:
    require_writable(access, operation="update_outlet")
    name, code, address = _clean_outlet(payload)

    def work():
        outlet = _get_accessible_outlet(db, access, outlet_id)
        _ensure_unique_code(db, tenant_id=access.tenant_id, code=code, exclude_id=outlet.id)
        outlet.name = name
        outlet.code = code
        outlet.address = address
        outlet.latitude = payload.latitude
        outlet.longitude = payload.longitude
        db.flush()

    run_atomic(db, work, policy=policy, operation="update_outlet")
    return _result("Outlet updated.", outlet_id)


def delete_outlet(
    db: Session,
    access: TenantAccess,
    outlet_id: str,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.CatalogWriteResult:
    require_writable(access, operation="delete_outlet")

    def work():
        outlet = _get_accessible_outlet(db, access, outlet_id)
        in_movements = (
            db.query(models.InventoryMovement.id)
            .filter(models.InventoryMovement.tenant_id == access.tenant_id, models.InventoryMovement.outlet_id == outlet.id)
            .first()
        )
        if in_movements is not None:
            raise ValidationError("Outlet cannot be deleted because it appears in movement history.")
        in_transfers = (
            db.query(models.InventoryTransfer.id)
            .outerjoin(
                models.InventoryTransferDestination,
                models.InventoryTransferDestination.transfer_id == models.InventoryTransfer.id,
            )
            .filter(
                models.InventoryTransfer.tenant_id == access.tenant_id,
                or_(
                    models.InventoryTransfer.source_outlet_id == outlet.id,
                    models.InventoryTransferDestination.outlet_id == outlet.id,
                ),
            )
            .first()
        )
        if in_transfers is not None:
            raise ValidationError("Outlet cannot be deleted because it appears in transfer history.")
        holds_stock = (
            db.query(models.BranchStock.id)
            .filter(models.BranchStock.outlet_id == outlet.id, models.BranchStock.qty > 0)
            .first()
        )
        if holds_stock is not None:
            raise ValidationError("Outlet cannot be deleted while it still holds stock.")

        db.query(models.BranchStock).filter(models.BranchStock.outlet_id == outlet.id).delete(
            synchronize_session=False
        )
        db.query(account_models.MembershipOutletAccess).filter(
            account_models.MembershipOutletAccess.outlet_id == outlet.id
        ).delete(synchronize_session=False)
        db.delete(outlet)
        db.flush()

    run_atomic(db, work, policy=policy, operation="delete_outlet")
    logger.info("Outlet deleted", extra={"tenant_id": access.tenant_id, "outlet_id": outlet_id})
    return _result("Outlet deleted.", outlet_id)
