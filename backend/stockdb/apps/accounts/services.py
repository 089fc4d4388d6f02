from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockdb.apps.inventory import models as inventory_models
from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TenantAccessDenied(Exception):
    """Raised when the user has no active membership in an active tenant."""


# ---------------------------------------------------------------------------
# Resolved access
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantAccess:
    """
    What the ledger needs to know about the caller.

    `outlet_ids` is always explicit: owners/admins get every outlet of the
    tenant, staff only their grants. An empty set means no outlet access.
    """

    tenant_id: str
    tenant_slug: str
    actor_id: Optional[str]
    role: models.MembershipRole
    outlet_ids: FrozenSet[str] = field(default_factory=frozenset)
    writable_now: bool = False
    membership_id: Optional[str] = None
    subscription_status: Optional[models.SubscriptionStatus] = None

    @property
    def restricted(self) -> bool:
        return self.role == models.MembershipRole.STAFF

    def can_access_outlet(self, outlet_id: Optional[str]) -> bool:
        return bool(outlet_id) and outlet_id in self.outlet_ids


def latest_subscription(db: Session, *, tenant_id: str) -> Optional[models.Subscription]:
    return (
        db.query(models.Subscription)
        .filter(models.Subscription.tenant_id == tenant_id)
        .order_by(models.Subscription.updated_at.desc(), models.Subscription.id.desc())
        .first()
    )


def is_writable(subscription: Optional[models.Subscription]) -> bool:
    if subscription is None:
        return False
    return subscription.status in models.WRITABLE_SUBSCRIPTION_STATUSES


def _accessible_outlet_ids(db: Session, *, tenant_id: str, membership: models.Membership) -> FrozenSet[str]:
    query = db.query(inventory_models.Outlet.id).filter(inventory_models.Outlet.tenant_id == tenant_id)
    if membership.role == models.MembershipRole.STAFF:
        granted = select(models.MembershipOutletAccess.outlet_id).where(
            models.MembershipOutletAccess.membership_id == membership.id
        )
        query = query.filter(inventory_models.Outlet.id.in_(granted))
    return frozenset(row[0] for row in query.all())


def resolve_tenant_access(db: Session, *, user_id: str, tenant_slug: str) -> TenantAccess:
    """
    Resolve the caller's role, accessible outlets and write permission for
    one tenant. Raises TenantAccessDenied when there is no active membership
    in an active tenant.
    """
    membership = (
        db.query(models.Membership)
        .join(models.Tenant, models.Membership.tenant_id == models.Tenant.id)
        .filter(
            models.Membership.user_id == user_id,
            models.Membership.is_active.is_(True),
            models.Tenant.slug == (tenant_slug or "").strip().lower(),
            models.Tenant.status == models.TenantStatus.ACTIVE,
        )
        .first()
    )
    if membership is None:
        logger.warning(
            "Tenant access denied",
            extra={"user_id": user_id, "tenant_slug": tenant_slug},
        )
        raise TenantAccessDenied("Tenant access denied")

    subscription = latest_subscription(db, tenant_id=membership.tenant_id)
    return TenantAccess(
        tenant_id=membership.tenant_id,
        tenant_slug=membership.tenant.slug,
        actor_id=user_id,
        role=membership.role,
        outlet_ids=_accessible_outlet_ids(db, tenant_id=membership.tenant_id, membership=membership),
        writable_now=is_writable(subscription),
        membership_id=membership.id,
        subscription_status=subscription.status if subscription else None,
    )


def grant_outlet_access(db: Session, *, membership_id: str, outlet_id: str) -> models.MembershipOutletAccess:
    existing = (
        db.query(models.MembershipOutletAccess)
        .filter(
            models.MembershipOutletAccess.membership_id == membership_id,
            models.MembershipOutletAccess.outlet_id == outlet_id,
        )
        .first()
    )
    if existing:
        return existing
    grant = models.MembershipOutletAccess(membership_id=membership_id, outlet_id=outlet_id)
    db.add(grant)
    db.flush()
    return grant
