"""
TransferCoordinator: move quantity from one source to N outlets atomically.

Every balance row involved is locked in the ledger's global order (central,
then outlets by ascending id) before any quantity changes, whatever role each
location plays in the transfer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from stockdb.apps.accounts.services import TenantAccess

from . import models
from .errors import DuplicateDestination, InsufficientStock, InvalidDestination, ScopeViolation, ValidationError
from .ledger import Location, StockLedger, lock_order
from .recorder import MovementRecorder

logger = logging.getLogger(__name__)

TRANSFER_NOTE = "Stock transfer"


@dataclass(frozen=True)
class TransferOutcome:
    transfer: models.InventoryTransfer
    total_qty: int
    source_balance_after: int
    movements: Tuple[models.InventoryMovement, ...]


def validate_destinations(
    ledger: StockLedger,
    *,
    source: Location,
    destinations: Sequence[Tuple[str, int]],
    access: TenantAccess,
) -> None:
    if not destinations:
        raise ValidationError("At least one destination outlet is required.")

    seen = set()
    for outlet_id, qty in destinations:
        if outlet_id in seen:
            raise DuplicateDestination(
                "Destination outlets must be unique.",
                details={"outlet_id": outlet_id},
            )
        seen.add(outlet_id)
        if int(qty) <= 0:
            raise ValidationError("Destination quantity must be greater than zero.", details={"outlet_id": outlet_id})

    if not source.is_central and source.outlet_id in seen:
        raise InvalidDestination(
            "Source outlet cannot also be a destination.",
            details={"outlet_id": source.outlet_id},
        )

    known = {
        row[0]
        for row in ledger.db.query(models.Outlet.id)
        .filter(models.Outlet.tenant_id == ledger.tenant_id, models.Outlet.id.in_(seen))
        .all()
    }
    missing = sorted(seen - known)
    if missing:
        raise InvalidDestination("Destination outlet not found.", details={"outlet_ids": missing})

    if access.restricted:
        if not source.is_central and not access.can_access_outlet(source.outlet_id):
            raise ScopeViolation("No access to the source outlet.", details={"outlet_id": source.outlet_id})
        denied = sorted(outlet_id for outlet_id in seen if not access.can_access_outlet(outlet_id))
        if denied:
            raise ScopeViolation("No access to destination outlet.", details={"outlet_ids": denied})


def lock_plan(source: Location, destination_ids: Sequence[str]) -> List[Location]:
    return lock_order([source] + [Location.outlet(outlet_id) for outlet_id in destination_ids])


def transfer(
    ledger: StockLedger,
    recorder: MovementRecorder,
    *,
    product_id: str,
    source: Location,
    destinations: Sequence[Tuple[str, int]],
    access: TenantAccess,
    note: Optional[str] = None,
) -> TransferOutcome:
    validate_destinations(ledger, source=source, destinations=destinations, access=access)

    plan = lock_plan(source, [outlet_id for outlet_id, _ in destinations])
    balances = ledger.lock_many(product_id, plan)

    total_qty = sum(int(qty) for _, qty in destinations)
    available = balances[source]
    source_label = ledger.describe(source)
    if total_qty > available:
        raise InsufficientStock(
            f"Insufficient stock at {source_label}. Available: {available}, requested: {total_qty}.",
            available=available,
            requested=total_qty,
            location_label=source_label,
        )

    source_balance_after = ledger.apply_delta(product_id, source, -total_qty)
    destination_balances = {}
    for outlet_id, qty in destinations:
        destination_balances[outlet_id] = ledger.apply_delta(product_id, Location.outlet(outlet_id), int(qty))

    header = models.InventoryTransfer(
        tenant_id=ledger.tenant_id,
        product_id=product_id,
        source_kind=source.kind,
        source_outlet_id=None if source.is_central else source.outlet_id,
        source_label=source_label,
        total_qty=total_qty,
        note=(note or "").strip() or TRANSFER_NOTE,
        actor_user_id=recorder.actor_id,
    )
    ledger.db.add(header)
    ledger.db.flush()
    for outlet_id, qty in destinations:
        ledger.db.add(
            models.InventoryTransferDestination(
                transfer_id=header.id,
                outlet_id=outlet_id,
                outlet_label=ledger.describe(Location.outlet(outlet_id)),
                qty=int(qty),
            )
        )
    ledger.db.flush()

    movements = [
        recorder.append(
            operation="transfer_out",
            product_id=product_id,
            location=source,
            location_label=source_label,
            delta=-total_qty,
            balance_after=source_balance_after,
            note=note,
        )
    ]
    for outlet_id, qty in destinations:
        location = Location.outlet(outlet_id)
        movements.append(
            recorder.append(
                operation="transfer_in",
                product_id=product_id,
                location=location,
                location_label=ledger.describe(location),
                delta=int(qty),
                balance_after=destination_balances[outlet_id],
                note=note,
            )
        )

    logger.debug(
        "Transfer staged",
        extra={"transfer_id": header.id, "product_id": product_id, "lock_plan": [loc.key for loc in plan]},
    )
    return TransferOutcome(
        transfer=header,
        total_qty=total_qty,
        source_balance_after=source_balance_after,
        movements=tuple(movements),
    )
