"""Models describing lessor contracts and their turbine assignments."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
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


class LeaseStatus(str, enum.Enum):
    """Contract status of a lease."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


LEASE_STATUS_ENUM = Enum(
    LeaseStatus,
    name="lease_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class Lease(Base):
    """A lessor contract covering turbine sites and/or a pooled area."""

    __tablename__ = "leases"
    __table_args__ = (
        CheckConstraint(
            "pool_area_sqm IS NULL OR pool_area_sqm >= 0",
            name="ck_leases_pool_area_non_negative",
        ),
        CheckConstraint(
            "payment_day IS NULL OR (payment_day >= 1 AND payment_day <= 31)",
            name="ck_leases_payment_day_range",
        ),
    )

    id = Column("lease_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(GUID(), nullable=False, index=True)
    park_id = Column(
        GUID(),
        ForeignKey("parks.park_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lessor_name = Column(String(200), nullable=False)
    lessor_address = Column(Text, nullable=True)
    status = Column(LEASE_STATUS_ENUM, nullable=False, default=LeaseStatus.ACTIVE)
    pool_area_sqm = Column(Numeric(14, 2), nullable=True)
    payment_day = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    park = relationship("Park", back_populates="leases")
    turbine_assignments = relationship(
        "LeaseTurbine", back_populates="lease", cascade="all, delete-orphan"
    )
    invoices = relationship("Invoice", back_populates="lease")


class LeaseTurbine(Base):
    """Share of a turbine site that belongs to a lease."""

    __tablename__ = "lease_turbines"
    __table_args__ = (
        UniqueConstraint("lease_id", "turbine_id", name="lease_turbines_lease_turbine_key"),
        CheckConstraint(
            "site_share_percentage >= 0 AND site_share_percentage <= 100",
            name="ck_lease_turbines_site_share_range",
        ),
    )

    id = Column(
        "lease_turbine_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lease_id = Column(
        GUID(),
        ForeignKey("leases.lease_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    turbine_id = Column(
        GUID(),
        ForeignKey("turbines.turbine_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    site_share_percentage = Column(Numeric(9, 4), nullable=False, default=100)

    lease = relationship("Lease", back_populates="turbine_assignments")
    turbine = relationship("Turbine", back_populates="lease_assignments")
