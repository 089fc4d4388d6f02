"""
StockLedger: the only writer of balance columns.

Central stock lives on `Product.central_stock`, so locking central means
locking the product row. Outlet stock lives in `BranchStock`; a missing row
is inserted with qty 0 and flushed before it is locked. Locks taken through
one ledger instance are held until the surrounding transaction ends and are
never re-acquired.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.orm import Query, Session

from . import models
from .errors import InsufficientStock, NotFoundError, ValidationError


@dataclass(frozen=True)
class Location:
    kind: models.LocationKind
    outlet_id: Optional[str] = None

    @classmethod
    def central(cls) -> "Location":
        return cls(models.LocationKind.CENTRAL)

    @classmethod
    def outlet(cls, outlet_id: str) -> "Location":
        return cls(models.LocationKind.OUTLET, outlet_id)

    @property
    def is_central(self) -> bool:
        return self.kind == models.LocationKind.CENTRAL

    @property
    def location_id(self) -> str:
        return models.CENTRAL_LOCATION_ID if self.is_central else self.outlet_id

    @property
    def key(self) -> str:
        return "central" if self.is_central else f"outlet:{self.outlet_id}"

    def sort_key(self) -> Tuple[int, str]:
        # Global lock order: central first, then outlets by ascending id.
        return (0, "") if self.is_central else (1, self.outlet_id or "")


def lock_order(locations: Iterable[Location]) -> List[Location]:
    return sorted(set(locations), key=Location.sort_key)


BalanceRow = Union[models.Product, models.BranchStock]


class StockLedger:
    def __init__(self, db: Session, *, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self._held: Dict[Tuple[str, Location], BalanceRow] = {}
        self._outlets: Dict[str, models.Outlet] = {}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def outlet(self, outlet_id: str) -> models.Outlet:
        outlet = self._outlets.get(outlet_id)
        if outlet is None:
            outlet = (
                self.db.query(models.Outlet)
                .filter(models.Outlet.tenant_id == self.tenant_id, models.Outlet.id == outlet_id)
                .first()
            )
            if outlet is None:
                raise NotFoundError("Outlet not found.", details={"outlet_id": outlet_id})
            self._outlets[outlet_id] = outlet
        return outlet

    def describe(self, location: Location) -> str:
        if location.is_central:
            return models.CENTRAL_LOCATION_LABEL
        return self.outlet(location.outlet_id).label

    def holds(self, product_id: str, location: Location) -> bool:
        return (product_id, location) in self._held

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, product_id: str, location: Location) -> int:
        """Unlocked read of the current balance; 0 for an untouched outlet."""
        held = self._held.get((product_id, location))
        if held is not None:
            return self._value(held)
        if location.is_central:
            row = (
                self.db.query(models.Product.central_stock)
                .filter(models.Product.tenant_id == self.tenant_id, models.Product.id == product_id)
                .first()
            )
            if row is None:
                raise NotFoundError("Product not found.", details={"product_id": product_id})
            return int(row[0])
        row = (
            self.db.query(models.BranchStock.qty)
            .filter(
                models.BranchStock.tenant_id == self.tenant_id,
                models.BranchStock.outlet_id == location.outlet_id,
                models.BranchStock.product_id == product_id,
            )
            .first()
        )
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock(self, product_id: str, location: Location) -> int:
        """Take the row lock for (product, location) and return its balance."""
        held = self._held.get((product_id, location))
        if held is not None:
            return self._value(held)
        if location.is_central:
            row = self._lock_product(product_id)
        else:
            row = self._lock_branch_stock(product_id, location.outlet_id)
        self._held[(product_id, location)] = row
        return self._value(row)

    def lock_many(self, product_id: str, locations: Iterable[Location]) -> Dict[Location, int]:
        return {location: self.lock(product_id, location) for location in lock_order(locations)}

    # FOR NO KEY UPDATE: inserts whose foreign keys reference a locked row
    # take FOR KEY SHARE on it, which a plain FOR UPDATE would block.
    def _product_lock_query(self, product_id: str) -> Query:
        return (
            self.db.query(models.Product)
            .filter(models.Product.tenant_id == self.tenant_id, models.Product.id == product_id)
            .with_for_update(of=models.Product, key_share=True)
            .populate_existing()
        )

    def _branch_stock_lock_query(self, product_id: str, outlet_id: str) -> Query:
        return (
            self.db.query(models.BranchStock)
            .filter(
                models.BranchStock.tenant_id == self.tenant_id,
                models.BranchStock.outlet_id == outlet_id,
                models.BranchStock.product_id == product_id,
            )
            .with_for_update(key_share=True)
            .populate_existing()
        )

    def _lock_product(self, product_id: str) -> models.Product:
        product = self._product_lock_query(product_id).first()
        if product is None:
            raise NotFoundError("Product not found.", details={"product_id": product_id})
        return product

    def _select_branch_stock(self, product_id: str, outlet_id: str) -> Optional[models.BranchStock]:
        return self._branch_stock_lock_query(product_id, outlet_id).first()

    def _lock_branch_stock(self, product_id: str, outlet_id: str) -> models.BranchStock:
        self.outlet(outlet_id)
        stock = self._select_branch_stock(product_id, outlet_id)
        if stock is None:
            # A concurrent insert of the same pair raises IntegrityError here;
            # run_atomic rolls back and re-runs the operation.
            self.db.add(
                models.BranchStock(
                    tenant_id=self.tenant_id,
                    outlet_id=outlet_id,
                    product_id=product_id,
                    qty=0,
                )
            )
            self.db.flush()
            stock = self._select_branch_stock(product_id, outlet_id)
        return stock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_delta(self, product_id: str, location: Location, delta: int) -> int:
        current = self.lock(product_id, location)
        new_balance = current + int(delta)
        if new_balance > models.MAX_STOCK:
            raise ValidationError(
                f"Stock at {self.describe(location)} cannot exceed {models.MAX_STOCK}.",
                details={"balance": current, "delta": int(delta)},
            )
        if new_balance < 0:
            label = self.describe(location)
            raise InsufficientStock(
                f"Insufficient stock at {label}. Available: {current}, requested: {-int(delta)}.",
                available=current,
                requested=-int(delta),
                location_label=label,
            )
        self._write(product_id, location, new_balance)
        return new_balance

    def set_balance(self, product_id: str, location: Location, value: int) -> int:
        if value < 0:
            raise ValidationError("Stock cannot be negative.", details={"value": value})
        if value > models.MAX_STOCK:
            raise ValidationError(f"Stock cannot exceed {models.MAX_STOCK}.", details={"value": value})
        self.lock(product_id, location)
        self._write(product_id, location, int(value))
        return int(value)

    def _write(self, product_id: str, location: Location, value: int) -> None:
        row = self._held[(product_id, location)]
        if isinstance(row, models.Product):
            row.central_stock = value
        else:
            row.qty = value
        self.db.flush()

    @staticmethod
    def _value(row: BalanceRow) -> int:
        if isinstance(row, models.Product):
            return int(row.central_stock)
        return int(row.qty)
