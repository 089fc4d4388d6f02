"""
Domain errors raised by the stock ledger and the operation surface.

Each error carries a machine-checkable `kind` and the HTTP status the app
renders it with; `stockdb.main` installs one exception handler for the
whole hierarchy.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class InventoryError(Exception):
    kind = "inventory_error"
    status_code = 400

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(InventoryError):
    kind = "validation_error"
    status_code = 422


class NotFoundError(InventoryError):
    kind = "not_found"
    status_code = 404


class ScopeViolation(InventoryError):
    kind = "scope_violation"
    status_code = 403


class InsufficientStock(InventoryError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str, *, available: int, requested: int, location_label: str):
        super().__init__(
            message,
            details={
                "available": available,
                "requested": requested,
                "location": location_label,
            },
        )
        self.available = available
        self.requested = requested
        self.location_label = location_label


class DuplicateDestination(InventoryError):
    kind = "duplicate_destination"
    status_code = 422


class InvalidDestination(InventoryError):
    kind = "invalid_destination"
    status_code = 422


class ReadOnly(InventoryError):
    kind = "read_only"
    status_code = 403

    def __init__(self, message: str = "Subscription is read-only. Renew the plan to change stock."):
        super().__init__(message)


class LedgerSystemError(InventoryError):
    """Retries exhausted on lock conflicts or insert races."""

    kind = "system_error"
    status_code = 503
