"""
Low-stock ranking for the inventory dashboard.

Pure read over committed balances, no locks. Central stock is always a
candidate; an outlet/product pair only becomes one once the product has
touched that outlet (balance row, movement, transfer source or destination).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from . import models
from .errors import ValidationError

DEFAULT_LIMIT = 5
MAX_LIMIT = 50


@dataclass(frozen=True)
class LowStockItem:
    product_id: str
    name: str
    sku: str
    current_stock: int
    minimum_low_stock: int
    gap: int
    location_kind: models.LocationKind
    location_key: str
    location_label: str
    outlet_id: Optional[str] = None


@dataclass(frozen=True)
class LowStockAlerts:
    location_filter: str
    low_stock_count: int
    low_stock_priorities: List[LowStockItem] = field(default_factory=list)
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, int(limit)))


def parse_location_filter(location_filter: Optional[str]) -> Optional[str]:
    """Return None for all/central, or the outlet id for `outlet:<id>`."""
    value = (location_filter or "all").strip()
    if value in ("all", "central"):
        return None
    if value.startswith("outlet:") and len(value) > len("outlet:"):
        return value[len("outlet:"):]
    raise ValidationError(
        "Location filter must be 'all', 'central' or 'outlet:<id>'.",
        details={"location": location_filter},
    )


def _touched_products(db: Session, *, tenant_id: str, outlet_ids: List[str]) -> Dict[str, Set[str]]:
    touched: Dict[str, Set[str]] = {outlet_id: set() for outlet_id in outlet_ids}
    if not outlet_ids:
        return touched

    def mark(rows: Iterable) -> None:
        for outlet_id, product_id in rows:
            if outlet_id in touched:
                touched[outlet_id].add(product_id)

    mark(
        db.query(models.BranchStock.outlet_id, models.BranchStock.product_id)
        .filter(models.BranchStock.tenant_id == tenant_id, models.BranchStock.outlet_id.in_(outlet_ids))
        .all()
    )
    mark(
        db.query(models.InventoryMovement.outlet_id, models.InventoryMovement.product_id)
        .filter(
            models.InventoryMovement.tenant_id == tenant_id,
            models.InventoryMovement.location_kind == models.LocationKind.OUTLET,
            models.InventoryMovement.outlet_id.in_(outlet_ids),
        )
        .distinct()
        .all()
    )
    mark(
        db.query(models.InventoryTransfer.source_outlet_id, models.InventoryTransfer.product_id)
        .filter(
            models.InventoryTransfer.tenant_id == tenant_id,
            models.InventoryTransfer.source_kind == models.LocationKind.OUTLET,
            models.InventoryTransfer.source_outlet_id.in_(outlet_ids),
        )
        .distinct()
        .all()
    )
    mark(
        db.query(models.InventoryTransferDestination.outlet_id, models.InventoryTransfer.product_id)
        .join(models.InventoryTransfer, models.InventoryTransferDestination.transfer_id == models.InventoryTransfer.id)
        .filter(
            models.InventoryTransfer.tenant_id == tenant_id,
            models.InventoryTransferDestination.outlet_id.in_(outlet_ids),
        )
        .distinct()
        .all()
    )
    return touched


def _sort_key(item: LowStockItem):
    return (-item.gap, item.current_stock, item.location_label, item.name)


def rank_low_stock(
    db: Session,
    *,
    tenant_id: str,
    outlets: List[models.Outlet],
    location_filter: str = "all",
    limit: Optional[int] = DEFAULT_LIMIT,
) -> LowStockAlerts:
    """
    Rank shortages across central and the given (already accessible) outlets.

    `outlets` is the caller's visible outlet set; an `outlet:<id>` filter must
    name one of them. The count is reported before `limit` truncation.
    """
    filter_value = (location_filter or "all").strip()
    target_outlet_id = parse_location_filter(filter_value)
    safe_limit = clamp_limit(limit)

    products = (
        db.query(models.Product)
        .filter(models.Product.tenant_id == tenant_id)
        .order_by(models.Product.name.asc())
        .all()
    )
    product_by_id = {product.id: product for product in products}
    outlet_by_id = {outlet.id: outlet for outlet in outlets}

    include_central = filter_value in ("all", "central")
    if target_outlet_id is not None:
        outlet_ids = [target_outlet_id] if target_outlet_id in outlet_by_id else []
    elif filter_value == "all":
        outlet_ids = [outlet.id for outlet in outlets]
    else:
        outlet_ids = []

    candidates: List[LowStockItem] = []

    if include_central:
        for product in products:
            current = int(product.central_stock)
            minimum = int(product.minimum_low_stock)
            if current > minimum:
                continue
            candidates.append(
                LowStockItem(
                    product_id=product.id,
                    name=product.name,
                    sku=product.sku,
                    current_stock=current,
                    minimum_low_stock=minimum,
                    gap=max(0, minimum - current),
                    location_kind=models.LocationKind.CENTRAL,
                    location_key=models.CENTRAL_LOCATION_ID,
                    location_label=models.CENTRAL_LOCATION_LABEL,
                )
            )

    if outlet_ids:
        touched = _touched_products(db, tenant_id=tenant_id, outlet_ids=outlet_ids)
        stock_map = {
            (row.outlet_id, row.product_id): int(row.qty)
            for row in db.query(models.BranchStock)
            .filter(models.BranchStock.tenant_id == tenant_id, models.BranchStock.outlet_id.in_(outlet_ids))
            .all()
        }
        for outlet_id in outlet_ids:
            outlet = outlet_by_id[outlet_id]
            for product_id in touched[outlet_id]:
                product = product_by_id.get(product_id)
                if product is None:
                    continue
                current = stock_map.get((outlet_id, product_id), 0)
                minimum = int(product.minimum_low_stock)
                if current > minimum:
                    continue
                candidates.append(
                    LowStockItem(
                        product_id=product.id,
                        name=product.name,
                        sku=product.sku,
                        current_stock=current,
                        minimum_low_stock=minimum,
                        gap=max(0, minimum - current),
                        location_kind=models.LocationKind.OUTLET,
                        location_key=f"outlet:{outlet_id}",
                        location_label=outlet.label,
                        outlet_id=outlet_id,
                    )
                )

    candidates.sort(key=_sort_key)
    return LowStockAlerts(
        location_filter=filter_value,
        low_stock_count=len(candidates),
        low_stock_priorities=candidates[:safe_limit],
    )
