"""multi-line sales (sale_id non unique) + inventory quantity nonneg

Revision ID: 8b61e4d0a2c5
Revises: 3f2a9c1d7b40
Create Date: 2026-09-28
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b61e4d0a2c5"
down_revision: Union[str, Sequence[str], None] = "3f2a9c1d7b40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "inventory"
CK_QUANTITY = "ck_inventory_quantity_nonneg"


def _add_check_if_missing(constraint_name: str, check_sql: str) -> None:
    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{TABLE_NAME}'
                  AND c.conname = '{constraint_name}'
            ) THEN
                ALTER TABLE {TABLE_NAME}
                ADD CONSTRAINT {constraint_name}
                CHECK ({check_sql});
            END IF;
        END $$;
        """
    )


def upgrade() -> None:
    # un panier = plusieurs lignes partageant le même sale_id
    with op.batch_alter_table("sales") as batch:
        batch.drop_constraint("uq_sales_sale_id", type_="unique")
        batch.create_index("ix_sales_sale_id", ["sale_id"])

    # les anciennes ventes concurrentes ont pu laisser des quantités négatives
    op.execute(
        f"""
        UPDATE {TABLE_NAME}
        SET quantity = 0
        WHERE quantity < 0;
        """
    )

    if op.get_context().dialect.name == "postgresql":
        _add_check_if_missing(CK_QUANTITY, "quantity >= 0")
    else:
        with op.batch_alter_table(TABLE_NAME) as batch:
            batch.create_check_constraint(CK_QUANTITY, "quantity >= 0")


def downgrade() -> None:
    with op.batch_alter_table(TABLE_NAME) as batch:
        batch.drop_constraint(CK_QUANTITY, type_="check")

    # échoue si des paniers multi-lignes existent déjà
    with op.batch_alter_table("sales") as batch:
        batch.drop_index("ix_sales_sale_id")
        batch.create_unique_constraint("uq_sales_sale_id", ["sale_id"])
