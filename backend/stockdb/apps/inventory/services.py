from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from stockdb.apps.accounts.services import TenantAccess
from . import alerts, models, opname, queries, schemas, transfers
from .errors import InventoryError, NotFoundError, ReadOnly, ScopeViolation
from .ledger import Location, StockLedger
from .recorder import MovementRecorder
from .transactions import RetryPolicy, run_atomic

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def require_writable(access: TenantAccess, *, operation: str) -> None:
    if not access.writable_now:
        logger.warning(
            "Inventory write rejected: subscription is read-only",
            extra={
                "tenant_id": access.tenant_id,
                "operation": operation,
                "subscription_status": getattr(access.subscription_status, "value", None),
            },
        )
        raise ReadOnly()


def to_location(ref: schemas.LocationRef) -> Location:
    if ref.kind == models.LocationKind.CENTRAL:
        return Location.central()
    return Location.outlet(ref.outlet_id)


def get_product(db: Session, *, tenant_id: str, product_id: str) -> models.Product:
    product = (
        db.query(models.Product)
        .filter(models.Product.tenant_id == tenant_id, models.Product.id == product_id)
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found.", details={"product_id": product_id})
    return product


def check_location_access(ledger: StockLedger, access: TenantAccess, location: Location) -> None:
    """Outlet must belong to the tenant; staff must also hold a grant for it."""
    if location.is_central:
        return
    ledger.outlet(location.outlet_id)
    if access.restricted and not access.can_access_outlet(location.outlet_id):
        raise ScopeViolation("No access to this outlet.", details={"outlet_id": location.outlet_id})


def _session_tools(db: Session, access: TenantAccess):
    ledger = StockLedger(db, tenant_id=access.tenant_id)
    recorder = MovementRecorder(db, tenant_id=access.tenant_id, actor_id=access.actor_id)
    return ledger, recorder


def _log_rejection(message: str, exc: InventoryError, access: TenantAccess, **context) -> None:
    logger.warning(
        message,
        extra={"tenant_id": access.tenant_id, "actor_id": access.actor_id, "kind": exc.kind, **context},
    )


# ---------------------------------------------------------------------------
# Stock in / out
# ---------------------------------------------------------------------------


def create_movement(
    db: Session,
    access: TenantAccess,
    payload: schemas.MovementCreate,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.MovementResult:
    require_writable(access, operation="movement")
    location = to_location(payload.location)
    delta = payload.qty if payload.type == "in" else -payload.qty

    def work():
        ledger, recorder = _session_tools(db, access)
        get_product(db, tenant_id=access.tenant_id, product_id=payload.product_id)
        check_location_access(ledger, access, location)
        balance_after = ledger.apply_delta(payload.product_id, location, delta)
        movement = recorder.append(
            operation=payload.type,
            product_id=payload.product_id,
            location=location,
            location_label=ledger.describe(location),
            delta=delta,
            balance_after=balance_after,
            note=payload.note,
        )
        return movement.id, balance_after

    try:
        movement_id, balance_after = run_atomic(db, work, policy=policy, operation="movement")
    except InventoryError as exc:
        _log_rejection(
            "Stock movement rejected",
            exc,
            access,
            product_id=payload.product_id,
            location=location.key,
            delta=delta,
        )
        raise

    logger.info(
        "Stock movement recorded",
        extra={
            "tenant_id": access.tenant_id,
            "movement_id": movement_id,
            "product_id": payload.product_id,
            "location": location.key,
            "delta": delta,
            "balance_after": balance_after,
        },
    )
    message = "Stock-in transaction saved." if payload.type == "in" else "Stock-out transaction saved."
    return schemas.MovementResult(message=message, movement_id=movement_id, balance_after=balance_after)


# ---------------------------------------------------------------------------
# Opname
# ---------------------------------------------------------------------------


def create_opname(
    db: Session,
    access: TenantAccess,
    payload: schemas.OpnameCreate,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.OpnameResult:
    require_writable(access, operation="opname")
    location = to_location(payload.location)

    def work():
        ledger, recorder = _session_tools(db, access)
        get_product(db, tenant_id=access.tenant_id, product_id=payload.product_id)
        check_location_access(ledger, access, location)
        outcome = opname.reconcile(
            ledger,
            recorder,
            product_id=payload.product_id,
            location=location,
            counted_stock=payload.actual_stock,
            note=payload.note,
        )
        return outcome.movement.id, outcome.delta, outcome.balance_after

    try:
        movement_id, delta, balance_after = run_atomic(db, work, policy=policy, operation="opname")
    except InventoryError as exc:
        _log_rejection("Opname rejected", exc, access, product_id=payload.product_id, location=location.key)
        raise

    logger.info(
        "Opname recorded",
        extra={
            "tenant_id": access.tenant_id,
            "movement_id": movement_id,
            "product_id": payload.product_id,
            "location": location.key,
            "delta": delta,
            "balance_after": balance_after,
        },
    )
    message = "Opname saved. No stock change." if delta == 0 else "Opname saved with stock adjustment."
    return schemas.OpnameResult(message=message, movement_id=movement_id, delta=delta, balance_after=balance_after)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


def create_transfer(
    db: Session,
    access: TenantAccess,
    payload: schemas.TransferCreate,
    *,
    policy: Optional[RetryPolicy] = None,
) -> schemas.TransferResult:
    require_writable(access, operation="transfer")
    source = to_location(payload.source)
    destinations = [(dest.outlet_id, dest.qty) for dest in payload.destinations]

    def work():
        ledger, recorder = _session_tools(db, access)
        get_product(db, tenant_id=access.tenant_id, product_id=payload.product_id)
        check_location_access(ledger, access, source)
        outcome = transfers.transfer(
            ledger,
            recorder,
            product_id=payload.product_id,
            source=source,
            destinations=destinations,
            access=access,
            note=payload.note,
        )
        return outcome.transfer.id, outcome.total_qty, outcome.source_balance_after

    try:
        transfer_id, total_qty, source_balance_after = run_atomic(db, work, policy=policy, operation="transfer")
    except InventoryError as exc:
        _log_rejection(
            "Stock transfer rejected",
            exc,
            access,
            product_id=payload.product_id,
            source=source.key,
            destinations=[outlet_id for outlet_id, _ in destinations],
        )
        raise

    logger.info(
        "Stock transfer recorded",
        extra={
            "tenant_id": access.tenant_id,
            "transfer_id": transfer_id,
            "product_id": payload.product_id,
            "source": source.key,
            "total_qty": total_qty,
            "destination_count": len(destinations),
        },
    )
    return schemas.TransferResult(
        message="Product transfer saved.",
        transfer_id=transfer_id,
        total_qty=total_qty,
        source_balance_after=source_balance_after,
    )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def get_low_stock_alerts(
    db: Session,
    access: TenantAccess,
    location_filter: Optional[str] = "all",
    limit: Optional[int] = alerts.DEFAULT_LIMIT,
) -> schemas.LowStockAlertsRead:
    target_outlet_id = alerts.parse_location_filter(location_filter)
    if target_outlet_id is not None and target_outlet_id not in access.outlet_ids:
        if access.restricted:
            raise ScopeViolation("No access to this outlet.", details={"outlet_id": target_outlet_id})
        raise NotFoundError("Outlet not found.", details={"outlet_id": target_outlet_id})

    result = alerts.rank_low_stock(
        db,
        tenant_id=access.tenant_id,
        outlets=queries.visible_outlets(db, access),
        location_filter=location_filter or "all",
        limit=limit,
    )
    return schemas.LowStockAlertsRead.model_validate(result, from_attributes=True)
