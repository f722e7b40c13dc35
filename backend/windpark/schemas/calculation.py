"""Schemas describing settlement calculation results."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models.settlement_period import AdvanceInterval
from .settlement_period import SettlementPeriodRead


class CalculationRequest(BaseModel):
    total_revenue: Optional[Decimal] = Field(
        default=None, ge=0, description="Overrides the revenue stored on the period"
    )
    save_result: bool = Field(
        default=True, description="Persist the aggregates; false only previews"
    )


class CalculationTotalsRead(BaseModel):
    lease_count: int
    total_minimum_rent: Decimal
    total_revenue_share: Decimal
    total_payment: Decimal
    total_advances_paid: Decimal
    total_final_payment: Decimal

    model_config = ConfigDict(from_attributes=True)


class AdvanceLeaseItemRead(BaseModel):
    lease_id: str
    lessor_name: str
    weight: Decimal
    monthly_baseline: Decimal
    advance_amount: Decimal
    taxable_amount: Decimal
    exempt_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class LeaseTurbineShareRead(BaseModel):
    turbine_id: str
    weight: Decimal
    minimum_rent: Decimal
    revenue_share: Decimal
    payment: Decimal

    model_config = ConfigDict(from_attributes=True)


class FinalLeaseItemRead(BaseModel):
    lease_id: str
    lessor_name: str
    weight: Decimal
    total_minimum_rent: Decimal
    total_revenue_share: Decimal
    total_payment: Decimal
    already_paid_advances: Decimal
    final_payment: Decimal
    is_credit: bool
    payment_taxable_amount: Decimal
    payment_exempt_amount: Decimal
    taxable_amount: Decimal
    exempt_amount: Decimal
    turbines: list[LeaseTurbineShareRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TurbineFiguresRead(BaseModel):
    turbine_id: str
    designation: str
    operating_fraction: Decimal
    revenue_phase_percentage: Optional[Decimal] = None
    minimum_rent: Decimal
    revenue_share: Decimal
    payment: Decimal

    model_config = ConfigDict(from_attributes=True)


class AdvanceCalculationRead(BaseModel):
    period_type: Literal["ADVANCE"] = "ADVANCE"
    year: int
    advance_interval: AdvanceInterval
    interval_factor: Decimal
    items: list[AdvanceLeaseItemRead]
    totals: CalculationTotalsRead

    model_config = ConfigDict(from_attributes=True)


class FinalCalculationRead(BaseModel):
    period_type: Literal["FINAL"] = "FINAL"
    year: int
    total_revenue: Decimal
    phasing_strategy: str
    turbines: list[TurbineFiguresRead]
    items: list[FinalLeaseItemRead]
    totals: CalculationTotalsRead

    model_config = ConfigDict(from_attributes=True)


class CalculationResponse(BaseModel):
    period: SettlementPeriodRead
    calculation: Union[AdvanceCalculationRead, FinalCalculationRead]
    saved: bool
