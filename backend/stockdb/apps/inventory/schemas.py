from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from . import models


class CamelModel(BaseModel):
    """JSON bodies use camelCase keys; Python code uses snake_case names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _strip_note(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


Note = Annotated[Optional[str], Field(max_length=1000), AfterValidator(_strip_note)]


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class LocationRef(CamelModel):
    kind: models.LocationKind
    outlet_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_outlet_id(self) -> "LocationRef":
        if self.kind == models.LocationKind.OUTLET:
            if not (self.outlet_id or "").strip():
                raise ValueError("outletId is required when kind is 'outlet'")
            self.outlet_id = self.outlet_id.strip()
        else:
            self.outlet_id = None
        return self


# ---------------------------------------------------------------------------
# Ledger operations
# ---------------------------------------------------------------------------


class MovementCreate(CamelModel):
    product_id: str = Field(min_length=1)
    qty: int = Field(gt=0, le=models.MAX_STOCK)
    type: Literal["in", "out"]
    location: LocationRef
    note: Note = None


class OpnameCreate(CamelModel):
    product_id: str = Field(min_length=1)
    actual_stock: int = Field(ge=0, le=models.MAX_STOCK)
    location: LocationRef
    note: Note = None


class TransferDestinationIn(CamelModel):
    outlet_id: str = Field(min_length=1)
    qty: int = Field(gt=0, le=models.MAX_STOCK)


class TransferCreate(CamelModel):
    product_id: str = Field(min_length=1)
    source: LocationRef
    destinations: List[TransferDestinationIn] = Field(min_length=1)
    note: Note = None


class OperationResult(CamelModel):
    ok: bool = True
    message: str


class MovementResult(OperationResult):
    movement_id: str
    balance_after: int


class OpnameResult(OperationResult):
    movement_id: str
    delta: int
    balance_after: int


class TransferResult(OperationResult):
    transfer_id: str
    total_qty: int
    source_balance_after: int


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class LowStockItemRead(CamelModel):
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


class LowStockAlertsRead(CamelModel):
    location_filter: str
    low_stock_count: int
    low_stock_priorities: List[LowStockItemRead]
    as_of: datetime


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class NamedCreate(CamelModel):
    name: str = Field(min_length=1, max_length=128)


class CategoryRead(CamelModel):
    id: str
    name: str


class UnitRead(CamelModel):
    id: str
    name: str


class ProductCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str = Field(min_length=1, max_length=64)
    category_id: str = Field(min_length=1)
    unit_id: str = Field(min_length=1)
    initial_stock: int = Field(default=0, ge=0, le=models.MAX_STOCK)
    minimum_low_stock: int = Field(default=0, ge=0, le=models.MAX_STOCK)


class ProductUpdate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str = Field(min_length=1, max_length=64)
    category_id: str = Field(min_length=1)
    unit_id: str = Field(min_length=1)
    minimum_low_stock: int = Field(default=0, ge=0, le=models.MAX_STOCK)


class ProductRead(CamelModel):
    id: str
    name: str
    sku: str
    stock: int
    minimum_low_stock: int
    category_id: str
    unit_id: str


class OutletWrite(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=32)
    address: str = Field(min_length=1)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class OutletRead(CamelModel):
    id: str
    name: str
    code: str
    address: str
    latitude: float = 0
    longitude: float = 0


class CatalogWriteResult(OperationResult):
    id: Optional[str] = None


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class OutletStockRead(CamelModel):
    outlet_id: str
    product_id: str
    qty: int


class MovementRead(CamelModel):
    id: str
    product_id: str
    product_name: str
    qty: int
    type: models.MovementType
    note: str
    delta: int
    balance_after: int
    location_kind: models.LocationKind
    location_id: str
    location_label: str
    counted_stock: Optional[int] = None
    created_at: datetime


class TransferDestinationRead(CamelModel):
    outlet_id: str
    outlet_name: str
    qty: int


class TransferRead(CamelModel):
    id: str
    product_id: str
    product_name: str
    source_kind: models.LocationKind
    source_outlet_id: Optional[str] = None
    source_label: str
    total_qty: int
    note: str
    created_at: datetime
    destinations: List[TransferDestinationRead]


class InventorySnapshot(CamelModel):
    categories: List[CategoryRead]
    units: List[UnitRead]
    products: List[ProductRead]
    outlets: List[OutletRead]
    outlet_stocks: List[OutletStockRead]
    movements: List[MovementRead]
    transfers: List[TransferRead]
