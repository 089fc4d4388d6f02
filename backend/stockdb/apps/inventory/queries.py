from __future__ import annotations

from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from stockdb.apps.accounts.services import TenantAccess
from . import models, schemas


def visible_outlets(db: Session, access: TenantAccess) -> List[models.Outlet]:
    if not access.outlet_ids:
        return []
    return (
        db.query(models.Outlet)
        .filter(
            models.Outlet.tenant_id == access.tenant_id,
            models.Outlet.id.in_(access.outlet_ids),
        )
        .order_by(models.Outlet.name.asc())
        .all()
    )


def _product_read(product: models.Product) -> schemas.ProductRead:
    return schemas.ProductRead(
        id=product.id,
        name=product.name,
        sku=product.sku,
        stock=int(product.central_stock),
        minimum_low_stock=int(product.minimum_low_stock),
        category_id=product.category_id,
        unit_id=product.unit_id,
    )


def _outlet_read(outlet: models.Outlet) -> schemas.OutletRead:
    return schemas.OutletRead(
        id=outlet.id,
        name=outlet.name,
        code=outlet.code,
        address=outlet.address,
        latitude=outlet.latitude if outlet.latitude is not None else 0,
        longitude=outlet.longitude if outlet.longitude is not None else 0,
    )


def _movement_read(movement: models.InventoryMovement) -> schemas.MovementRead:
    return schemas.MovementRead(
        id=movement.id,
        product_id=movement.product_id,
        product_name=movement.product.name,
        qty=movement.qty,
        type=movement.movement_type,
        note=movement.note,
        delta=movement.delta,
        balance_after=movement.balance_after,
        location_kind=movement.location_kind,
        location_id=movement.location_id,
        location_label=movement.location_label,
        counted_stock=movement.counted_stock,
        created_at=movement.created_at,
    )


def inventory_snapshot(db: Session, access: TenantAccess) -> schemas.InventorySnapshot:
    """
    Everything the inventory screen needs in one read.

    Staff see central plus their granted outlets: outlet stocks and movements
    are filtered to those, transfer destinations are trimmed to them, and a
    transfer disappears when neither its source nor any destination is
    visible. Movements and transfers are newest first.
    """
    tenant_id = access.tenant_id
    outlets = visible_outlets(db, access)
    outlet_ids = [outlet.id for outlet in outlets]
    outlet_names = {outlet.id: outlet.name for outlet in outlets}

    categories = (
        db.query(models.InventoryCategory)
        .filter(models.InventoryCategory.tenant_id == tenant_id)
        .order_by(models.InventoryCategory.name.asc())
        .all()
    )
    units = (
        db.query(models.InventoryUnit)
        .filter(models.InventoryUnit.tenant_id == tenant_id)
        .order_by(models.InventoryUnit.name.asc())
        .all()
    )
    products = (
        db.query(models.Product)
        .filter(models.Product.tenant_id == tenant_id)
        .order_by(models.Product.name.asc())
        .all()
    )

    outlet_stocks = []
    if outlet_ids:
        outlet_stocks = (
            db.query(models.BranchStock)
            .filter(models.BranchStock.tenant_id == tenant_id, models.BranchStock.outlet_id.in_(outlet_ids))
            .all()
        )

    movement_query = db.query(models.InventoryMovement).filter(models.InventoryMovement.tenant_id == tenant_id)
    if access.restricted:
        visible = [models.InventoryMovement.location_kind == models.LocationKind.CENTRAL]
        if outlet_ids:
            visible.append(models.InventoryMovement.outlet_id.in_(outlet_ids))
        movement_query = movement_query.filter(or_(*visible))
    movements = movement_query.order_by(
        models.InventoryMovement.created_at.desc(),
        models.InventoryMovement.id.desc(),
    ).all()

    transfer_rows = (
        db.query(models.InventoryTransfer)
        .filter(models.InventoryTransfer.tenant_id == tenant_id)
        .order_by(models.InventoryTransfer.created_at.desc(), models.InventoryTransfer.id.desc())
        .all()
    )
    if not access.restricted:
        all_ids = {dest.outlet_id for row in transfer_rows for dest in row.destinations}
        missing = all_ids - set(outlet_names)
        if missing:
            outlet_names.update(
                {
                    outlet_id: name
                    for outlet_id, name in db.query(models.Outlet.id, models.Outlet.name)
                    .filter(models.Outlet.tenant_id == tenant_id, models.Outlet.id.in_(missing))
                    .all()
                }
            )

    visible_ids = set(outlet_ids)
    transfer_reads = []
    for row in transfer_rows:
        destinations = list(row.destinations)
        if access.restricted:
            destinations = [dest for dest in destinations if dest.outlet_id in visible_ids]
            source_visible = row.source_kind == models.LocationKind.CENTRAL or row.source_outlet_id in visible_ids
            if not source_visible and not destinations:
                continue
        transfer_reads.append(
            schemas.TransferRead(
                id=row.id,
                product_id=row.product_id,
                product_name=row.product.name,
                source_kind=row.source_kind,
                source_outlet_id=row.source_outlet_id,
                source_label=row.source_label,
                total_qty=row.total_qty,
                note=row.note,
                created_at=row.created_at,
                destinations=[
                    schemas.TransferDestinationRead(
                        outlet_id=dest.outlet_id,
                        outlet_name=outlet_names.get(dest.outlet_id, dest.outlet_label),
                        qty=dest.qty,
                    )
                    for dest in destinations
                ],
            )
        )

    return schemas.InventorySnapshot(
        categories=[schemas.CategoryRead.model_validate(category) for category in categories],
        units=[schemas.UnitRead.model_validate(unit) for unit in units],
        products=[_product_read(product) for product in products],
        outlets=[_outlet_read(outlet) for outlet in outlets],
        outlet_stocks=[
            schemas.OutletStockRead(outlet_id=stock.outlet_id, product_id=stock.product_id, qty=stock.qty)
            for stock in outlet_stocks
        ],
        movements=[_movement_read(movement) for movement in movements],
        transfers=transfer_reads,
    )
