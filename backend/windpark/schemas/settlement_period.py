from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.settlement_period import (
    AdvanceInterval,
    SettlementPeriodStatus,
    SettlementPeriodType,
)
from .common import PaginatedResponse


class SettlementPeriodCreate(BaseModel):
    """Payload used to create or re-enter a settlement period."""

    park_id: str = Field(..., min_length=1, description="Park being settled")
    year: int = Field(..., ge=2000, le=2100, description="Settlement year")
    month: Optional[int] = Field(
        default=None, ge=1, le=12, description="Month for sub-yearly advance periods"
    )
    period_type: SettlementPeriodType = Field(..., description="ADVANCE or FINAL")
    advance_interval: Optional[AdvanceInterval] = Field(
        default=None, description="Interval covered by an advance period"
    )
    total_revenue: Optional[Decimal] = Field(
        default=None, ge=0, description="Park revenue for the year, if already known"
    )
    linked_energy_settlement_id: Optional[str] = Field(
        default=None, max_length=64, description="Reference to an external energy settlement"
    )
    notes: Optional[str] = Field(default=None, description="Free-form notes")


class SettlementPeriodBulkCreate(BaseModel):
    """Payload used to create every advance period of a year at once."""

    park_id: str = Field(..., min_length=1)
    year: int = Field(..., ge=2000, le=2100)
    advance_interval: AdvanceInterval = Field(
        ..., description="MONTHLY or QUARTERLY advances to create"
    )
    include_final: bool = Field(default=True, description="Also create the FINAL period")


class SettlementPeriodStatusUpdate(BaseModel):
    status: SettlementPeriodStatus
    notes: Optional[str] = Field(default=None, description="Review or rejection notes")


class SettlementPeriodRead(BaseModel):
    """Settlement period returned by the API."""

    id: str
    tenant_id: str
    park_id: str
    period_key: str
    year: int
    month: Optional[int] = None
    period_type: SettlementPeriodType
    advance_interval: Optional[AdvanceInterval] = None
    status: SettlementPeriodStatus
    total_revenue: Optional[Decimal] = None
    total_minimum_rent: Optional[Decimal] = None
    total_actual_rent: Optional[Decimal] = None
    linked_energy_settlement_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    calculated_at: Optional[datetime] = None
    invoiced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SettlementPeriodListResponse(PaginatedResponse[SettlementPeriodRead]):
    """Paginated collection of settlement periods."""


class SettlementPeriodBulkCreateResult(BaseModel):
    created: list[SettlementPeriodRead]
    skipped_keys: list[str] = Field(default_factory=list)
