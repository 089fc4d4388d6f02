"""Create tenant, membership and stock ledger tables.

Revision ID: 5a1e0c9b7d21
Revises:
Create Date: 2026-02-14 10:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "5a1e0c9b7d21"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(table_name: str) -> bool:
    return bool(inspect(op.get_bind()).has_table(table_name))


def _timestamps(*, updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return cols


def _tenant_fk() -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.String(length=36),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    if not _table_exists("tenants"):
        op.create_table(
            "tenants",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("slug", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=9), nullable=False),
            *_timestamps(),
        )
        op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)
        op.create_index("ix_tenants_status", "tenants", ["status"])

    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("display_name", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(updated=False),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_is_active", "users", ["is_active"])

    if not _table_exists("memberships"):
        op.create_table(
            "memberships",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(length=5), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(updated=False),
            sa.UniqueConstraint("tenant_id", "user_id", name="uq_memberships_tenant_user"),
        )
        op.create_index("ix_memberships_tenant_id", "memberships", ["tenant_id"])
        op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
        op.create_index("ix_memberships_tenant_role", "memberships", ["tenant_id", "role"])

    if not _table_exists("subscriptions"):
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column("status", sa.String(length=9), nullable=False),
            sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_subscriptions_tenant_id", "subscriptions", ["tenant_id"])
        op.create_index("ix_subscriptions_tenant_updated", "subscriptions", ["tenant_id", "updated_at"])

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    if not _table_exists("outlets"):
        op.create_table(
            "outlets",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("code", sa.String(length=32), nullable=False),
            sa.Column("address", sa.Text(), nullable=False),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("tenant_id", "code", name="uq_outlet_code"),
        )
        op.create_index("ix_outlets_tenant_id", "outlets", ["tenant_id"])
        op.create_index("ix_outlets_tenant_name", "outlets", ["tenant_id", "name"])

    if not _table_exists("membership_outlet_access"):
        op.create_table(
            "membership_outlet_access",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column(
                "membership_id",
                sa.String(length=36),
                sa.ForeignKey("memberships.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("outlet_id", sa.String(length=36), sa.ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False),
            *_timestamps(updated=False),
            sa.UniqueConstraint("membership_id", "outlet_id", name="uq_membership_outlet_access"),
        )
        op.create_index("ix_membership_outlet_access_membership_id", "membership_outlet_access", ["membership_id"])
        op.create_index("ix_membership_outlet_access_outlet_id", "membership_outlet_access", ["outlet_id"])

    for table_name, length, constraint in (
        ("inventory_categories", 128, "uq_inventory_category_name"),
        ("inventory_units", 64, "uq_inventory_unit_name"),
    ):
        if not _table_exists(table_name):
            op.create_table(
                table_name,
                sa.Column("id", sa.String(length=36), primary_key=True),
                _tenant_fk(),
                sa.Column("name", sa.String(length=length), nullable=False),
                *_timestamps(),
                sa.UniqueConstraint("tenant_id", "name", name=constraint),
            )
            op.create_index(f"ix_{table_name}_tenant_id", table_name, ["tenant_id"])

    if not _table_exists("inventory_products"):
        op.create_table(
            "inventory_products",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column(
                "category_id",
                sa.String(length=36),
                sa.ForeignKey("inventory_categories.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column(
                "unit_id",
                sa.String(length=36),
                sa.ForeignKey("inventory_units.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("sku", sa.String(length=64), nullable=False),
            sa.Column("central_stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("minimum_low_stock", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint("tenant_id", "sku", name="uq_inventory_product_sku"),
            sa.CheckConstraint("central_stock >= 0", name="ck_inventory_products_central_stock_non_negative"),
            sa.CheckConstraint("minimum_low_stock >= 0", name="ck_inventory_products_minimum_non_negative"),
        )
        op.create_index("ix_inventory_products_tenant_id", "inventory_products", ["tenant_id"])
        op.create_index("ix_inventory_products_tenant_name", "inventory_products", ["tenant_id", "name"])

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------
    if not _table_exists("inventory_branch_stocks"):
        op.create_table(
            "inventory_branch_stocks",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column("outlet_id", sa.String(length=36), sa.ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "product_id",
                sa.String(length=36),
                sa.ForeignKey("inventory_products.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("qty", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint("outlet_id", "product_id", name="uq_branch_stock_outlet_product"),
            sa.CheckConstraint("qty >= 0", name="ck_inventory_branch_stocks_qty_non_negative"),
        )
        op.create_index("ix_inventory_branch_stocks_tenant_id", "inventory_branch_stocks", ["tenant_id"])
        op.create_index("ix_inventory_branch_stocks_product_id", "inventory_branch_stocks", ["product_id"])
        op.create_index("ix_branch_stocks_tenant_outlet", "inventory_branch_stocks", ["tenant_id", "outlet_id"])

    if not _table_exists("inventory_movements"):
        op.create_table(
            "inventory_movements",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column(
                "product_id",
                sa.String(length=36),
                sa.ForeignKey("inventory_products.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("outlet_id", sa.String(length=36), sa.ForeignKey("outlets.id", ondelete="RESTRICT"), nullable=True),
            sa.Column("movement_type", sa.String(length=6), nullable=False),
            sa.Column("qty", sa.Integer(), nullable=False),
            sa.Column("delta", sa.Integer(), nullable=False),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.Column("counted_stock", sa.Integer(), nullable=True),
            sa.Column("location_kind", sa.String(length=7), nullable=False),
            sa.Column("location_id", sa.String(length=36), nullable=False),
            sa.Column("location_label", sa.String(length=255), nullable=False),
            sa.Column("note", sa.Text(), nullable=False),
            sa.Column("actor_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            *_timestamps(updated=False),
        )
        op.create_index("ix_inventory_movements_movement_type", "inventory_movements", ["movement_type"])
        op.create_index("ix_inventory_movements_tenant_created", "inventory_movements", ["tenant_id", "created_at"])
        op.create_index("ix_inventory_movements_product_created", "inventory_movements", ["product_id", "created_at"])
        op.create_index("ix_inventory_movements_outlet_product", "inventory_movements", ["outlet_id", "product_id"])

    if not _table_exists("inventory_transfers"):
        op.create_table(
            "inventory_transfers",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _tenant_fk(),
            sa.Column(
                "product_id",
                sa.String(length=36),
                sa.ForeignKey("inventory_products.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("source_kind", sa.String(length=7), nullable=False),
            sa.Column(
                "source_outlet_id",
                sa.String(length=36),
                sa.ForeignKey("outlets.id", ondelete="RESTRICT"),
                nullable=True,
            ),
            sa.Column("source_label", sa.String(length=255), nullable=False),
            sa.Column("total_qty", sa.Integer(), nullable=False),
            sa.Column("note", sa.Text(), nullable=False),
            sa.Column("actor_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            *_timestamps(updated=False),
            sa.CheckConstraint("total_qty > 0", name="ck_inventory_transfers_total_positive"),
        )
        op.create_index("ix_inventory_transfers_product_id", "inventory_transfers", ["product_id"])
        op.create_index("ix_inventory_transfers_source_outlet_id", "inventory_transfers", ["source_outlet_id"])
        op.create_index("ix_inventory_transfers_tenant_created", "inventory_transfers", ["tenant_id", "created_at"])

    if not _table_exists("inventory_transfer_destinations"):
        op.create_table(
            "inventory_transfer_destinations",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column(
                "transfer_id",
                sa.String(length=36),
                sa.ForeignKey("inventory_transfers.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("outlet_id", sa.String(length=36), sa.ForeignKey("outlets.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("outlet_label", sa.String(length=255), nullable=False),
            sa.Column("qty", sa.Integer(), nullable=False),
            sa.UniqueConstraint("transfer_id", "outlet_id", name="uq_transfer_destination_outlet"),
            sa.CheckConstraint("qty > 0", name="ck_transfer_destination_qty_positive"),
        )
        op.create_index(
            "ix_inventory_transfer_destinations_transfer_id",
            "inventory_transfer_destinations",
            ["transfer_id"],
        )
        op.create_index(
            "ix_inventory_transfer_destinations_outlet_id",
            "inventory_transfer_destinations",
            ["outlet_id"],
        )


def downgrade() -> None:
    for table_name in (
        "inventory_transfer_destinations",
        "inventory_transfers",
        "inventory_movements",
        "inventory_branch_stocks",
        "inventory_products",
        "inventory_units",
        "inventory_categories",
        "membership_outlet_access",
        "outlets",
        "subscriptions",
        "memberships",
        "users",
        "tenants",
    ):
        if _table_exists(table_name):
            op.drop_table(table_name)
