"""Initial settlement schema: parks, leases, operator funds, periods and invoices."""

from __future__ import annotations

from alembic import context, op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20251018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _dialect_name() -> str:
    bind = op.get_bind()
    if bind is not None:
        return bind.dialect.name
    ctx = context.get_context()
    return ctx.dialect.name if ctx is not None else ""


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    uuid_type = sa.CHAR(length=36)
    json_type = sa.JSON()
    if _dialect_name() == "postgresql":
        uuid_type = postgresql.UUID(as_uuid=True)
        json_type = postgresql.JSONB()

    op.create_table(
        "parks",
        sa.Column("park_id", uuid_type, primary_key=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("minimum_rent_per_turbine", sa.Numeric(14, 2), nullable=True),
        sa.Column("wea_share_percentage", sa.Numeric(9, 4), nullable=True),
        sa.Column("pool_share_percentage", sa.Numeric(9, 4), nullable=True),
        sa.Column("commissioning_date", sa.Date(), nullable=True),
        sa.Column("ownership_model", sa.String(length=15), nullable=False, server_default="DIRECT"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "minimum_rent_per_turbine IS NULL OR minimum_rent_per_turbine >= 0",
            name="ck_parks_minimum_rent_non_negative",
        ),
        sa.CheckConstraint(
            "wea_share_percentage IS NULL OR (wea_share_percentage >= 0 AND wea_share_percentage <= 100)",
            name="ck_parks_wea_share_range",
        ),
        sa.CheckConstraint(
            "pool_share_percentage IS NULL OR (pool_share_percentage >= 0 AND pool_share_percentage <= 100)",
            name="ck_parks_pool_share_range",
        ),
    )
    op.create_index("ix_parks_tenant_id", "parks", ["tenant_id"])

    op.create_table(
        "park_revenue_phases",
        sa.Column("phase_id", uuid_type, primary_key=True),
        sa.Column(
            "park_id",
            uuid_type,
            sa.ForeignKey("parks.park_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("phase_number", sa.Integer(), nullable=False),
        sa.Column("start_year", sa.Integer(), nullable=False),
        sa.Column("end_year", sa.Integer(), nullable=True),
        sa.Column("revenue_share_percentage", sa.Numeric(9, 4), nullable=False),
        sa.UniqueConstraint("park_id", "phase_number", name="park_revenue_phases_park_phase_key"),
        sa.CheckConstraint("start_year >= 1", name="ck_park_revenue_phases_start_year"),
        sa.CheckConstraint(
            "end_year IS NULL OR end_year >= start_year",
            name="ck_park_revenue_phases_valid_range",
        ),
        sa.CheckConstraint(
            "revenue_share_percentage >= 0 AND revenue_share_percentage <= 100",
            name="ck_park_revenue_phases_share_range",
        ),
    )
    op.create_index("ix_park_revenue_phases_park_id", "park_revenue_phases", ["park_id"])

    op.create_table(
        "turbines",
        sa.Column("turbine_id", uuid_type, primary_key=True),
        sa.Column(
            "park_id",
            uuid_type,
            sa.ForeignKey("parks.park_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("designation", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=14), nullable=False, server_default="ACTIVE"),
        sa.Column("commissioning_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_turbines_park_id", "turbines", ["park_id"])

    op.create_table(
        "leases",
        sa.Column("lease_id", uuid_type, primary_key=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column(
            "park_id",
            uuid_type,
            sa.ForeignKey("parks.park_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("lessor_name", sa.String(length=200), nullable=False),
        sa.Column("lessor_address", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="ACTIVE"),
        sa.Column("pool_area_sqm", sa.Numeric(14, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "pool_area_sqm IS NULL OR pool_area_sqm >= 0",
            name="ck_leases_pool_area_non_negative",
        ),
    )
    op.create_index("ix_leases_tenant_id", "leases", ["tenant_id"])
    op.create_index("ix_leases_park_id", "leases", ["park_id"])

    op.create_table(
        "lease_turbines",
        sa.Column("lease_turbine_id", uuid_type, primary_key=True),
        sa.Column(
            "lease_id",
            uuid_type,
            sa.ForeignKey("leases.lease_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "turbine_id",
            uuid_type,
            sa.ForeignKey("turbines.turbine_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("site_share_percentage", sa.Numeric(9, 4), nullable=False, server_default="100"),
        sa.UniqueConstraint("lease_id", "turbine_id", name="lease_turbines_lease_turbine_key"),
        sa.CheckConstraint(
            "site_share_percentage >= 0 AND site_share_percentage <= 100",
            name="ck_lease_turbines_site_share_range",
        ),
    )
    op.create_index("ix_lease_turbines_lease_id", "lease_turbines", ["lease_id"])
    op.create_index("ix_lease_turbines_turbine_id", "lease_turbines", ["turbine_id"])

    op.create_table(
        "operator_funds",
        sa.Column("fund_id", uuid_type, primary_key=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("legal_form", sa.String(length=60), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_operator_funds_tenant_id", "operator_funds", ["tenant_id"])

    op.create_table(
        "turbine_operators",
        sa.Column("turbine_operator_id", uuid_type, primary_key=True),
        sa.Column(
            "turbine_id",
            uuid_type,
            sa.ForeignKey("turbines.turbine_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "fund_id",
            uuid_type,
            sa.ForeignKey("operator_funds.fund_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ownership_percentage", sa.Numeric(9, 4), nullable=False, server_default="100"),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.CheckConstraint(
            "ownership_percentage > 0 AND ownership_percentage <= 100",
            name="ck_turbine_operators_ownership_range",
        ),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name="ck_turbine_operators_valid_range",
        ),
    )
    op.create_index("ix_turbine_operators_turbine_id", "turbine_operators", ["turbine_id"])
    op.create_index("ix_turbine_operators_fund_id", "turbine_operators", ["fund_id"])

    op.create_table(
        "settlement_periods",
        sa.Column("period_id", uuid_type, primary_key=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column(
            "park_id",
            uuid_type,
            sa.ForeignKey("parks.park_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_key", sa.String(length=32), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=True),
        sa.Column("period_type", sa.String(length=7), nullable=False),
        sa.Column("advance_interval", sa.String(length=9), nullable=True),
        sa.Column("status", sa.String(length=14), nullable=False, server_default="OPEN"),
        sa.Column("total_revenue", sa.Numeric(14, 2), nullable=True),
        sa.Column("total_minimum_rent", sa.Numeric(14, 2), nullable=True),
        sa.Column("total_actual_rent", sa.Numeric(14, 2), nullable=True),
        sa.Column("linked_energy_settlement_id", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        sa.Column("reviewed_by", sa.String(length=120), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoiced_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "tenant_id", "park_id", "period_key", name="settlement_periods_tenant_park_key"
        ),
        sa.CheckConstraint(
            "month IS NULL OR (month >= 1 AND month <= 12)",
            name="ck_settlement_periods_month_range",
        ),
        sa.CheckConstraint(
            "year >= 2000 AND year <= 2100",
            name="ck_settlement_periods_year_range",
        ),
    )
    op.create_index("ix_settlement_periods_tenant_id", "settlement_periods", ["tenant_id"])
    op.create_index("ix_settlement_periods_park_id", "settlement_periods", ["park_id"])
    op.create_index("ix_settlement_periods_status", "settlement_periods", ["status"])
    op.create_index(
        "settlement_periods_park_year_idx",
        "settlement_periods",
        ["tenant_id", "park_id", "year"],
    )

    op.create_table(
        "invoices",
        sa.Column("invoice_id", uuid_type, primary_key=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column("invoice_number", sa.String(length=32), nullable=False),
        sa.Column("invoice_type", sa.String(length=11), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False, server_default="DRAFT"),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column(
            "park_id",
            uuid_type,
            sa.ForeignKey("parks.park_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "settlement_period_id",
            uuid_type,
            sa.ForeignKey("settlement_periods.period_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "lease_id",
            uuid_type,
            sa.ForeignKey("leases.lease_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "operator_fund_id",
            uuid_type,
            sa.ForeignKey("operator_funds.fund_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("recipient_name", sa.String(length=200), nullable=False),
        sa.Column("recipient_address", sa.Text(), nullable=True),
        sa.Column("net_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("gross_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("service_start", sa.Date(), nullable=True),
        sa.Column("service_end", sa.Date(), nullable=True),
        sa.Column("payment_reference", sa.String(length=140), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="invoices_tenant_number_key"),
        sa.CheckConstraint(
            "lease_id IS NOT NULL OR operator_fund_id IS NOT NULL",
            name="ck_invoices_has_recipient",
        ),
    )
    for column_name in (
        "tenant_id",
        "status",
        "park_id",
        "settlement_period_id",
        "lease_id",
        "operator_fund_id",
    ):
        op.create_index(f"ix_invoices_{column_name}", "invoices", [column_name])

    op.create_table(
        "invoice_items",
        sa.Column("invoice_item_id", uuid_type, primary_key=True),
        sa.Column(
            "invoice_id",
            uuid_type,
            sa.ForeignKey("invoices.invoice_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("net_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("cost_component", sa.String(length=32), nullable=True),
        sa.Column("tax_type", sa.String(length=8), nullable=False, server_default="EXEMPT"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("gross_amount", sa.Numeric(14, 2), nullable=False),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_number_sequences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column("invoice_type", sa.String(length=11), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "tenant_id",
            "invoice_type",
            "year",
            name="invoice_number_sequences_tenant_type_year_key",
        ),
    )

    op.create_table(
        "cost_allocations",
        sa.Column("allocation_id", uuid_type, primary_key=True),
        sa.Column("tenant_id", uuid_type, nullable=False),
        sa.Column(
            "settlement_period_id",
            uuid_type,
            sa.ForeignKey("settlement_periods.period_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_label", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False, server_default="DRAFT"),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_taxable", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_exempt", sa.Numeric(14, 2), nullable=False),
        sa.Column("vat_rate_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_cost_allocations_tenant_id", "cost_allocations", ["tenant_id"])
    op.create_index(
        "ix_cost_allocations_settlement_period_id",
        "cost_allocations",
        ["settlement_period_id"],
    )

    op.create_table(
        "cost_allocation_items",
        sa.Column("allocation_item_id", uuid_type, primary_key=True),
        sa.Column(
            "allocation_id",
            uuid_type,
            sa.ForeignKey("cost_allocations.allocation_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "operator_fund_id",
            uuid_type,
            sa.ForeignKey("operator_funds.fund_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("allocation_basis", sa.String(length=200), nullable=False),
        sa.Column("share_percentage", sa.Numeric(9, 4), nullable=False),
        sa.Column("taxable_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("taxable_vat", sa.Numeric(14, 2), nullable=False),
        sa.Column("exempt_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_allocated", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "invoice_id",
            uuid_type,
            sa.ForeignKey("invoices.invoice_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index(
        "ix_cost_allocation_items_allocation_id", "cost_allocation_items", ["allocation_id"]
    )
    op.create_index(
        "ix_cost_allocation_items_operator_fund_id",
        "cost_allocation_items",
        ["operator_fund_id"],
    )

    op.create_table(
        "settlement_audit_events",
        sa.Column("event_id", uuid_type, primary_key=True),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("outcome", sa.String(length=32), nullable=False),
        sa.Column("tenant_id", uuid_type, nullable=True),
        sa.Column("duration_ms", sa.Numeric(14, 3), nullable=True),
        sa.Column("labels", json_type, nullable=False),
        sa.Column("details", json_type, nullable=True),
        _timestamp("recorded_at"),
    )
    for column_name in ("event_type", "outcome", "tenant_id", "recorded_at"):
        op.create_index(
            f"ix_settlement_audit_events_{column_name}",
            "settlement_audit_events",
            [column_name],
        )


def downgrade() -> None:
    op.drop_table("settlement_audit_events")
    op.drop_table("cost_allocation_items")
    op.drop_table("cost_allocations")
    op.drop_table("invoice_number_sequences")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("settlement_periods")
    op.drop_table("turbine_operators")
    op.drop_table("operator_funds")
    op.drop_table("lease_turbines")
    op.drop_table("leases")
    op.drop_table("turbines")
    op.drop_table("park_revenue_phases")
    op.drop_table("parks")
