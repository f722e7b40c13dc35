"""Models describing wind parks, their turbines and revenue phases."""

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
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class OwnershipModel(str, enum.Enum):
    """How turbine operators hold their interest in the park."""

    DIRECT = "DIRECT"
    NETWORK_COMPANY = "NETWORK_COMPANY"


class TurbineStatus(str, enum.Enum):
    """Operational status of a turbine."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DECOMMISSIONED = "DECOMMISSIONED"


OWNERSHIP_MODEL_ENUM = Enum(
    OwnershipModel,
    name="park_ownership_model_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

TURBINE_STATUS_ENUM = Enum(
    TurbineStatus,
    name="turbine_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class Park(Base):
    """A wind park owned by a tenant."""

    __tablename__ = "parks"
    __table_args__ = (
        CheckConstraint(
            "minimum_rent_per_turbine IS NULL OR minimum_rent_per_turbine >= 0",
            name="ck_parks_minimum_rent_non_negative",
        ),
        CheckConstraint(
            "wea_share_percentage IS NULL OR (wea_share_percentage >= 0 AND wea_share_percentage <= 100)",
            name="ck_parks_wea_share_range",
        ),
        CheckConstraint(
            "pool_share_percentage IS NULL OR (pool_share_percentage >= 0 AND pool_share_percentage <= 100)",
            name="ck_parks_pool_share_range",
        ),
        CheckConstraint(
            "default_payment_day IS NULL OR (default_payment_day >= 1 AND default_payment_day <= 31)",
            name="ck_parks_default_payment_day_range",
        ),
    )

    id = Column("park_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(GUID(), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    minimum_rent_per_turbine = Column(Numeric(14, 2), nullable=True)
    wea_share_percentage = Column(Numeric(9, 4), nullable=True)
    pool_share_percentage = Column(Numeric(9, 4), nullable=True)
    commissioning_date = Column(Date, nullable=True)
    default_payment_day = Column(Integer, nullable=True)
    ownership_model = Column(
        OWNERSHIP_MODEL_ENUM, nullable=False, default=OwnershipModel.DIRECT
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    turbines = relationship(
        "Turbine", back_populates="park", cascade="all, delete-orphan"
    )
    revenue_phases = relationship(
        "ParkRevenuePhase",
        back_populates="park",
        cascade="all, delete-orphan",
        order_by="ParkRevenuePhase.phase_number",
    )
    leases = relationship("Lease", back_populates="park")
    settlement_periods = relationship("SettlementPeriod", back_populates="park")


class ParkRevenuePhase(Base):
    """Revenue share percentage applying to a range of operating years."""

    __tablename__ = "park_revenue_phases"
    __table_args__ = (
        UniqueConstraint("park_id", "phase_number", name="park_revenue_phases_park_phase_key"),
        CheckConstraint("start_year >= 1", name="ck_park_revenue_phases_start_year"),
        CheckConstraint(
            "end_year IS NULL OR end_year >= start_year",
            name="ck_park_revenue_phases_valid_range",
        ),
        CheckConstraint(
            "revenue_share_percentage >= 0 AND revenue_share_percentage <= 100",
            name="ck_park_revenue_phases_share_range",
        ),
    )

    id = Column("phase_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    park_id = Column(
        GUID(),
        ForeignKey("parks.park_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_number = Column(Integer, nullable=False)
    start_year = Column(Integer, nullable=False)
    end_year = Column(Integer, nullable=True)
    revenue_share_percentage = Column(Numeric(9, 4), nullable=False)

    park = relationship("Park", back_populates="revenue_phases")


class Turbine(Base):
    """A single wind turbine (WEA) inside a park."""

    __tablename__ = "turbines"

    id = Column("turbine_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    park_id = Column(
        GUID(),
        ForeignKey("parks.park_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    designation = Column(String(120), nullable=False)
    status = Column(TURBINE_STATUS_ENUM, nullable=False, default=TurbineStatus.ACTIVE)
    commissioning_date = Column(Date, nullable=True)

    park = relationship("Park", back_populates="turbines")
    lease_assignments = relationship("LeaseTurbine", back_populates="turbine")
    operators = relationship("TurbineOperator", back_populates="turbine")
