from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .ledger import Location

# Operation -> (movement type, note used when the caller leaves it blank)
OPERATIONS = {
    "in": (models.MovementType.IN, "Stock in"),
    "out": (models.MovementType.OUT, "Stock out"),
    "opname": (models.MovementType.OPNAME, "Opname adjustment"),
    "transfer_in": (models.MovementType.IN, "Transfer in"),
    "transfer_out": (models.MovementType.OUT, "Transfer out"),
    "initial_stock": (models.MovementType.IN, "Initial product stock"),
}


def default_note(operation: str) -> str:
    return OPERATIONS[operation][1]


def resolve_note(note: Optional[str], operation: str) -> str:
    cleaned = (note or "").strip()
    return cleaned or default_note(operation)


class MovementRecorder:
    """Appends one immutable movement row per balance change."""

    def __init__(self, db: Session, *, tenant_id: str, actor_id: Optional[str]):
        self.db = db
        self.tenant_id = tenant_id
        self.actor_id = actor_id

    def append(
        self,
        *,
        operation: str,
        product_id: str,
        location: Location,
        location_label: str,
        delta: int,
        balance_after: int,
        counted_stock: Optional[int] = None,
        note: Optional[str] = None,
    ) -> models.InventoryMovement:
        movement_type, _ = OPERATIONS[operation]
        movement = models.InventoryMovement(
            tenant_id=self.tenant_id,
            product_id=product_id,
            outlet_id=None if location.is_central else location.outlet_id,
            movement_type=movement_type,
            qty=abs(int(delta)),
            delta=int(delta),
            balance_after=int(balance_after),
            counted_stock=counted_stock if movement_type == models.MovementType.OPNAME else None,
            location_kind=location.kind,
            location_id=location.location_id,
            location_label=location_label,
            note=resolve_note(note, operation),
            actor_user_id=self.actor_id,
        )
        self.db.add(movement)
        self.db.flush()
        return movement
