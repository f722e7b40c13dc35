"""Models for distributing settlement costs across operator funds."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class CostAllocationStatus(str, enum.Enum):
    """Status of a cost allocation."""

    DRAFT = "DRAFT"
    INVOICED = "INVOICED"


COST_ALLOCATION_STATUS_ENUM = Enum(
    CostAllocationStatus,
    name="cost_allocation_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class CostAllocation(Base):
    """Allocation of the lease costs of one settlement run."""

    __tablename__ = "cost_allocations"

    id = Column("allocation_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(GUID(), nullable=False, index=True)
    settlement_period_id = Column(
        GUID(),
        ForeignKey("settlement_periods.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_label = Column(String(120), nullable=False)
    status = Column(
        COST_ALLOCATION_STATUS_ENUM,
        nullable=False,
        default=CostAllocationStatus.DRAFT,
    )
    total_amount = Column(Numeric(14, 2), nullable=False)
    total_taxable = Column(Numeric(14, 2), nullable=False)
    total_exempt = Column(Numeric(14, 2), nullable=False)
    vat_rate_percent = Column(Numeric(5, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    settlement_period = relationship("SettlementPeriod", back_populates="cost_allocations")
    items = relationship(
        "CostAllocationItem",
        back_populates="allocation",
        cascade="all, delete-orphan",
    )


class CostAllocationItem(Base):
    """Share of an allocation charged to one operator fund."""

    __tablename__ = "cost_allocation_items"

    id = Column(
        "allocation_item_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    allocation_id = Column(
        GUID(),
        ForeignKey("cost_allocations.allocation_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    operator_fund_id = Column(
        GUID(),
        ForeignKey("operator_funds.fund_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    allocation_basis = Column(String(200), nullable=False)
    share_percentage = Column(Numeric(9, 4), nullable=False)
    taxable_amount = Column(Numeric(14, 2), nullable=False)
    taxable_vat = Column(Numeric(14, 2), nullable=False)
    exempt_amount = Column(Numeric(14, 2), nullable=False)
    total_allocated = Column(Numeric(14, 2), nullable=False)
    invoice_id = Column(
        GUID(),
        ForeignKey("invoices.invoice_id", ondelete="SET NULL"),
        nullable=True,
    )

    allocation = relationship("CostAllocation", back_populates="items")
    operator_fund = relationship("OperatorFund")
    invoice = relationship("Invoice")
