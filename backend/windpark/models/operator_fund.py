"""Models for operator funds and their interest in turbines."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class OperatorFund(Base):
    """A fund holding an operating interest in one or more turbines."""

    __tablename__ = "operator_funds"

    id = Column("fund_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(GUID(), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    legal_form = Column(String(60), nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    turbine_interests = relationship("TurbineOperator", back_populates="fund")

    @property
    def display_name(self) -> str:
        if self.legal_form:
            return f"{self.name} {self.legal_form}"
        return self.name


class TurbineOperator(Base):
    """Ownership history of a turbine by an operator fund."""

    __tablename__ = "turbine_operators"
    __table_args__ = (
        CheckConstraint(
            "ownership_percentage > 0 AND ownership_percentage <= 100",
            name="ck_turbine_operators_ownership_range",
        ),
        CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name="ck_turbine_operators_valid_range",
        ),
    )

    id = Column(
        "turbine_operator_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    turbine_id = Column(
        GUID(),
        ForeignKey("turbines.turbine_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    fund_id = Column(
        GUID(),
        ForeignKey("operator_funds.fund_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ownership_percentage = Column(Numeric(9, 4), nullable=False, default=100)
    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=True)

    turbine = relationship("Turbine", back_populates="operators")
    fund = relationship("OperatorFund", back_populates="turbine_interests")
