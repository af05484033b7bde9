"""initial pharmacy schema

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-09-14
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "formulary",
        sa.Column("id", PK, primary_key=True),
        sa.Column("drug_id", sa.String(64), nullable=False, unique=True),
        sa.Column("trade_name", sa.String(255), nullable=False),
        sa.Column("generic_name", sa.String(255)),
        sa.Column("legal_category", sa.String(128)),
        sa.Column("pharma_category", sa.String(128)),
        sa.Column("strength", sa.String(64)),
        sa.Column("unit", sa.String(32)),
        sa.Column("indication", sa.Text()),
        sa.Column("caution", sa.Text()),
        sa.Column("min_stock", sa.Integer(), server_default="0"),
        sa.Column("max_stock", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("min_stock IS NULL OR min_stock >= 0", name="ck_formulary_min_stock_nonneg"),
        sa.CheckConstraint("max_stock IS NULL OR max_stock >= 0", name="ck_formulary_max_stock_nonneg"),
    )

    op.create_table(
        "members",
        sa.Column("id", PK, primary_key=True),
        sa.Column("member_id", sa.String(64), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("national_id", sa.String(32)),
        sa.Column("dob", sa.Date()),
        sa.Column("phone", sa.String(32)),
        sa.Column("allergies", sa.Text()),
        sa.Column("disease", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "inventory",
        sa.Column("id", PK, primary_key=True),
        sa.Column("inventory_id", sa.String(64), nullable=False, unique=True),
        sa.Column("drug_id", sa.String(64), nullable=False),
        sa.Column("lot_number", sa.String(64), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("cost_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("selling_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("reference_id", sa.String(64)),
        sa.Column("barcode", sa.String(64)),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("cost_price >= 0", name="ck_inventory_cost_price_nonneg"),
        sa.CheckConstraint("selling_price >= 0", name="ck_inventory_selling_price_nonneg"),
    )
    op.create_index("ix_inventory_drug_id", "inventory", ["drug_id"])
    op.create_index("ix_inventory_drug_expiry", "inventory", ["drug_id", "expiry_date"])

    # première version : un sale_id par ligne (unique)
    op.create_table(
        "sales",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sale_id", sa.String(64), nullable=False),
        sa.Column("sale_date", sa.DateTime(), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False, server_default="N/A"),
        sa.Column("pharmacist_id", sa.String(64), nullable=False),
        sa.Column("pharmacist", sa.String(200), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "inventory_id",
            sa.String(64),
            sa.ForeignKey("inventory.inventory_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity_sold", sa.Integer(), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(14, 2), nullable=False),
        sa.Column("drug_id", sa.String(64), nullable=False),
        sa.Column("lot_number", sa.String(64), nullable=False),
        sa.CheckConstraint("quantity_sold > 0", name="ck_sales_quantity_pos"),
        sa.CheckConstraint("price_per_unit >= 0", name="ck_sales_price_nonneg"),
        sa.UniqueConstraint("sale_id", name="uq_sales_sale_id"),
    )
    op.create_index("ix_sales_sale_date", "sales", ["sale_date"])
    op.create_index("ix_sales_drug_id", "sales", ["drug_id"])
    op.create_index("ix_sales_drug_date", "sales", ["drug_id", "sale_date"])

    op.create_table(
        "activity_log",
        sa.Column("id", PK, primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("entity", sa.String(64)),
        sa.Column("entity_id", sa.String(64)),
        sa.Column("performed_by", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_entity", "activity_log", ["entity", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_entity", table_name="activity_log")
    op.drop_table("activity_log")
    op.drop_index("ix_sales_drug_date", table_name="sales")
    op.drop_index("ix_sales_drug_id", table_name="sales")
    op.drop_index("ix_sales_sale_date", table_name="sales")
    op.drop_table("sales")
    op.drop_index("ix_inventory_drug_expiry", table_name="inventory")
    op.drop_index("ix_inventory_drug_id", table_name="inventory")
    op.drop_table("inventory")
    op.drop_table("members")
    op.drop_table("formulary")
