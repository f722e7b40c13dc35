"""Add payment days to parks and leases and due dates to invoices

Revision ID: 20251025_0002
Revises: 20251018_0001
Create Date: 2025-10-25 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20251025_0002"
down_revision = "20251018_0001"
branch_labels = None
depends_on = None


def _columns(table_name: str) -> set[str]:
    inspector = sa.inspect(op.get_bind())
    return {column["name"] for column in inspector.get_columns(table_name)}


def upgrade() -> None:
    if "default_payment_day" not in _columns("parks"):
        with op.batch_alter_table("parks") as batch_op:
            batch_op.add_column(sa.Column("default_payment_day", sa.Integer(), nullable=True))
            batch_op.create_check_constraint(
                "ck_parks_default_payment_day_range",
                "default_payment_day IS NULL OR (default_payment_day >= 1 AND default_payment_day <= 31)",
            )

    if "payment_day" not in _columns("leases"):
        with op.batch_alter_table("leases") as batch_op:
            batch_op.add_column(sa.Column("payment_day", sa.Integer(), nullable=True))
            batch_op.create_check_constraint(
                "ck_leases_payment_day_range",
                "payment_day IS NULL OR (payment_day >= 1 AND payment_day <= 31)",
            )

    if "due_date" not in _columns("invoices"):
        op.add_column("invoices", sa.Column("due_date", sa.Date(), nullable=True))


def downgrade() -> None:
    op.drop_column("invoices", "due_date")
    with op.batch_alter_table("leases") as batch_op:
        batch_op.drop_constraint("ck_leases_payment_day_range", type_="check")
        batch_op.drop_column("payment_day")
    with op.batch_alter_table("parks") as batch_op:
        batch_op.drop_constraint("ck_parks_default_payment_day_range", type_="check")
        batch_op.drop_column("default_payment_day")
