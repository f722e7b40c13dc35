"""SQLAlchemy model for lease settlement periods."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class SettlementPeriodType(str, enum.Enum):
    """Direction of a settlement period."""

    ADVANCE = "ADVANCE"
    FINAL = "FINAL"


class AdvanceInterval(str, enum.Enum):
    """Interval covered by an advance period."""

    YEARLY = "YEARLY"
    QUARTERLY = "QUARTERLY"
    MONTHLY = "MONTHLY"


class SettlementPeriodStatus(str, enum.Enum):
    """Lifecycle states of a settlement period."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
    )


PERIOD_TYPE_ENUM = _enum_column(SettlementPeriodType, "settlement_period_type_enum")
ADVANCE_INTERVAL_ENUM = _enum_column(AdvanceInterval, "advance_interval_enum")
PERIOD_STATUS_ENUM = _enum_column(SettlementPeriodStatus, "settlement_period_status_enum")


class SettlementPeriod(Base):
    """One settlement run per tenant, park, year, month and period type."""

    __tablename__ = "settlement_periods"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "park_id",
            "period_key",
            name="settlement_periods_tenant_park_key",
        ),
        CheckConstraint(
            "month IS NULL OR (month >= 1 AND month <= 12)",
            name="ck_settlement_periods_month_range",
        ),
        CheckConstraint(
            "year >= 2000 AND year <= 2100",
            name="ck_settlement_periods_year_range",
        ),
        Index("settlement_periods_park_year_idx", "tenant_id", "park_id", "year"),
    )

    id = Column("period_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(GUID(), nullable=False, index=True)
    park_id = Column(
        GUID(),
        ForeignKey("parks.park_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_key = Column(String(32), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=True)
    period_type = Column(PERIOD_TYPE_ENUM, nullable=False)
    advance_interval = Column(ADVANCE_INTERVAL_ENUM, nullable=True)
    status = Column(
        PERIOD_STATUS_ENUM,
        nullable=False,
        default=SettlementPeriodStatus.OPEN,
        index=True,
    )
    total_revenue = Column(Numeric(14, 2), nullable=True)
    total_minimum_rent = Column(Numeric(14, 2), nullable=True)
    total_actual_rent = Column(Numeric(14, 2), nullable=True)
    linked_energy_settlement_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(120), nullable=True)
    reviewed_by = Column(String(120), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    calculated_at = Column(DateTime(timezone=True), nullable=True)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    park = relationship("Park", back_populates="settlement_periods")
    invoices = relationship("Invoice", back_populates="settlement_period")
    cost_allocations = relationship(
        "CostAllocation",
        back_populates="settlement_period",
        cascade="all, delete-orphan",
    )
