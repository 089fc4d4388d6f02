from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base
from stockdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


CENTRAL_LOCATION_ID = "central"
CENTRAL_LOCATION_LABEL = "Central"
RESERVED_OUTLET_CODE = "PST"
# Balance and quantity columns are 32-bit integers.
MAX_STOCK = 2_147_483_647


class LocationKind(str, enum.Enum):
    CENTRAL = "central"
    OUTLET = "outlet"


class MovementType(str, enum.Enum):
    IN = "in"
    OUT = "out"
    OPNAME = "opname"


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an audit-trail row."""


class InventoryCategory(Base):
    __tablename__ = "inventory_categories"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_inventory_category_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class InventoryUnit(Base):
    __tablename__ = "inventory_units"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_inventory_unit_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class Outlet(Base):
    """
    Tenant-owned physical location with its own per-product balance.

    The central pool is implicit (a column on the product); the code `PST`
    is reserved for it and never stored here.
    """

    __tablename__ = "outlets"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_outlet_code"),
        Index("ix_outlets_tenant_name", "tenant_id", "name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(32), nullable=False)
    address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def label(self) -> str:
        return f"{self.name} ({self.code})"


class Product(Base):
    """
    Tenant-scoped product. `central_stock` is the central balance and is
    only ever written by StockLedger.
    """

    __tablename__ = "inventory_products"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_inventory_product_sku"),
        Index("ix_inventory_products_tenant_name", "tenant_id", "name"),
        CheckConstraint("central_stock >= 0", name="ck_inventory_products_central_stock_non_negative"),
        CheckConstraint("minimum_low_stock >= 0", name="ck_inventory_products_minimum_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("inventory_categories.id", ondelete="RESTRICT"), nullable=False)
    unit_id = Column(String(36), ForeignKey("inventory_units.id", ondelete="RESTRICT"), nullable=False)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=False)
    central_stock = Column(Integer, nullable=False, default=0)
    minimum_low_stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    category = relationship("InventoryCategory", lazy="joined")
    unit = relationship("InventoryUnit", lazy="joined")


class BranchStock(Base):
    __tablename__ = "inventory_branch_stocks"
    __table_args__ = (
        UniqueConstraint("outlet_id", "product_id", name="uq_branch_stock_outlet_product"),
        Index("ix_branch_stocks_tenant_outlet", "tenant_id", "outlet_id"),
        CheckConstraint("qty >= 0", name="ck_inventory_branch_stocks_qty_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    outlet_id = Column(String(36), ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("inventory_products.id", ondelete="CASCADE"), nullable=False, index=True)
    qty = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class InventoryMovement(Base):
    """
    Append-only log: one row per balance change, written in the same
    transaction as the change. `balance_after` is the ledger value right
    after the mutation.
    """

    __tablename__ = "inventory_movements"
    __table_args__ = (
        Index("ix_inventory_movements_tenant_created", "tenant_id", "created_at"),
        Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        Index("ix_inventory_movements_outlet_product", "outlet_id", "product_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("inventory_products.id", ondelete="RESTRICT"), nullable=False)
    outlet_id = Column(String(36), ForeignKey("outlets.id", ondelete="RESTRICT"), nullable=True)

    movement_type = Column(
        SAEnum(MovementType, name="inventory_movement_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    qty = Column(Integer, nullable=False)
    delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    counted_stock = Column(Integer, nullable=True)

    location_kind = Column(
        SAEnum(LocationKind, name="inventory_location_kind_enum", native_enum=False),
        nullable=False,
    )
    location_id = Column(String(36), nullable=False)
    location_label = Column(String(255), nullable=False)

    note = Column(Text, nullable=False)
    actor_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    product = relationship("Product", lazy="joined")


class InventoryTransfer(Base):
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        Index("ix_inventory_transfers_tenant_created", "tenant_id", "created_at"),
        CheckConstraint("total_qty > 0", name="ck_inventory_transfers_total_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("inventory_products.id", ondelete="RESTRICT"), nullable=False, index=True)
    source_kind = Column(
        SAEnum(LocationKind, name="inventory_transfer_source_kind_enum", native_enum=False),
        nullable=False,
    )
    source_outlet_id = Column(String(36), ForeignKey("outlets.id", ondelete="RESTRICT"), nullable=True, index=True)
    source_label = Column(String(255), nullable=False)
    total_qty = Column(Integer, nullable=False)
    note = Column(Text, nullable=False)
    actor_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    product = relationship("Product", lazy="joined")
    destinations = relationship(
        "InventoryTransferDestination",
        back_populates="transfer",
        lazy="selectin",
        order_by="InventoryTransferDestination.outlet_id",
    )


class InventoryTransferDestination(Base):
    __tablename__ = "inventory_transfer_destinations"
    __table_args__ = (
        UniqueConstraint("transfer_id", "outlet_id", name="uq_transfer_destination_outlet"),
        CheckConstraint("qty > 0", name="ck_transfer_destination_qty_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    transfer_id = Column(String(36), ForeignKey("inventory_transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    outlet_id = Column(String(36), ForeignKey("outlets.id", ondelete="RESTRICT"), nullable=False, index=True)
    outlet_label = Column(String(255), nullable=False)
    qty = Column(Integer, nullable=False)

    transfer = relationship("InventoryTransfer", back_populates="destinations")


# ---------------------------------------------------------------------------
# APPEND-ONLY ENFORCEMENT
# ---------------------------------------------------------------------------

_APPEND_ONLY_MODELS = (InventoryMovement, InventoryTransfer, InventoryTransferDestination)


def _reject_update(mapper, connection, target) -> None:
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only and cannot be updated.")


def _reject_delete(mapper, connection, target) -> None:
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only and cannot be deleted.")


for _model in _APPEND_ONLY_MODELS:
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
