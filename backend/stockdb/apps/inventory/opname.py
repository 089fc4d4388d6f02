from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import models
from .errors import ValidationError
from .ledger import Location, StockLedger
from .recorder import MovementRecorder


@dataclass(frozen=True)
class OpnameOutcome:
    delta: int
    balance_after: int
    movement: models.InventoryMovement


def reconcile(
    ledger: StockLedger,
    recorder: MovementRecorder,
    *,
    product_id: str,
    location: Location,
    counted_stock: int,
    note: Optional[str] = None,
) -> OpnameOutcome:
    """
    Set the balance at `location` to the physically counted value.

    The movement row is written even when the count matches the ledger, so
    every count leaves a trace.
    """
    if counted_stock < 0:
        raise ValidationError("Actual stock cannot be negative.", details={"actual_stock": counted_stock})

    current = ledger.lock(product_id, location)
    delta = int(counted_stock) - current
    balance_after = ledger.set_balance(product_id, location, counted_stock)
    movement = recorder.append(
        operation="opname",
        product_id=product_id,
        location=location,
        location_label=ledger.describe(location),
        delta=delta,
        balance_after=balance_after,
        counted_stock=int(counted_stock),
        note=note,
    )
    return OpnameOutcome(delta=delta, balance_after=balance_after, movement=movement)
