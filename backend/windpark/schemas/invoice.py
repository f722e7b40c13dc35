from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.invoice import InvoiceStatus, InvoiceType

GENERATION_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.SENT}


class InvoiceGenerationRequest(BaseModel):
    initial_status: InvoiceStatus = Field(
        default=InvoiceStatus.DRAFT, description="Status of the created credit notes"
    )
    invoice_date: Optional[date] = Field(
        default=None, description="Date printed on the documents; defaults to today"
    )

    @field_validator("initial_status")
    @classmethod
    def validate_initial_status(cls, value: InvoiceStatus) -> InvoiceStatus:
        if value not in GENERATION_STATUSES:
            raise ValueError("initial_status must be DRAFT or SENT")
        return value


class InvoiceSummaryRead(BaseModel):
    id: str
    invoice_number: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    lease_id: Optional[str] = None
    operator_fund_id: Optional[str] = None
    recipient_name: str
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    invoice_date: date
    due_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class AllocationOutcomeRead(BaseModel):
    allocation_id: Optional[str] = None
    period_label: Optional[str] = None
    invoices: list[InvoiceSummaryRead] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceGenerationResponse(BaseModel):
    period_id: str
    invoices: list[InvoiceSummaryRead]
    skipped: int = Field(..., ge=0)
    allocation: Optional[AllocationOutcomeRead] = None

    model_config = ConfigDict(from_attributes=True)
