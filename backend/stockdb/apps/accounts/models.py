# backend/stockdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base
from stockdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class TenantStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class MembershipRole(str, enum.Enum):
    """Roles inside one tenant.

    Owners and admins see every outlet of the tenant; staff only see the
    outlets granted through MembershipOutletAccess.
    """

    OWNER = "owner"
    ADMIN = "admin"
    STAFF = "staff"


class SubscriptionStatus(str, enum.Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


WRITABLE_SUBSCRIPTION_STATUSES = frozenset(
    {SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE}
)


# ---------------------------------------------------------------------------
# TENANT + USERS
# ---------------------------------------------------------------------------


class Tenant(Base):
    """
    Isolated business account.

    Products, outlets, balances and the movement log are always scoped to a
    tenant; the slug is what appears in inventory URLs.
    """

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    slug = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(
        Enum(TenantStatus, name="tenant_status_enum", native_enum=False),
        nullable=False,
        default=TenantStatus.ACTIVE,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    memberships = relationship("Membership", back_populates="tenant", lazy="selectin")


class User(Base):
    """
    Authenticated person. Login and password handling live outside this
    service; the ledger only needs a stable id for `actor_user_id`.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    memberships = relationship("Membership", back_populates="user", lazy="selectin")


class Membership(Base):
    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_memberships_tenant_user"),
        Index("ix_memberships_tenant_role", "tenant_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        Enum(MembershipRole, name="membership_role_enum", native_enum=False),
        nullable=False,
        default=MembershipRole.STAFF,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    tenant = relationship("Tenant", back_populates="memberships", lazy="joined")
    user = relationship("User", back_populates="memberships", lazy="joined")
    outlet_access = relationship(
        "MembershipOutletAccess",
        back_populates="membership",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class MembershipOutletAccess(Base):
    __tablename__ = "membership_outlet_access"
    __table_args__ = (
        UniqueConstraint("membership_id", "outlet_id", name="uq_membership_outlet_access"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    membership_id = Column(String(36), ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False, index=True)
    outlet_id = Column(String(36), ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    membership = relationship("Membership", back_populates="outlet_access")


class Subscription(Base):
    """
    Billing state as last written by the billing collaborator.

    Only the newest row per tenant matters; it decides whether the tenant
    may write to the ledger right now.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (Index("ix_subscriptions_tenant_updated", "tenant_id", "updated_at"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        Enum(SubscriptionStatus, name="subscription_status_enum", native_enum=False),
        nullable=False,
        default=SubscriptionStatus.TRIALING,
    )
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
