from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..models.cost_allocation import CostAllocationStatus
from .invoice import InvoiceSummaryRead


class CostAllocationItemRead(BaseModel):
    id: str
    operator_fund_id: str
    allocation_basis: str
    share_percentage: Decimal
    taxable_amount: Decimal
    taxable_vat: Decimal
    exempt_amount: Decimal
    total_allocated: Decimal
    invoice_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CostAllocationRead(BaseModel):
    id: str
    settlement_period_id: str
    period_label: str
    status: CostAllocationStatus
    total_amount: Decimal
    total_taxable: Decimal
    total_exempt: Decimal
    vat_rate_percent: Decimal
    created_at: Optional[datetime] = None
    items: list[CostAllocationItemRead]

    model_config = ConfigDict(from_attributes=True)


class CostAllocationRunResponse(BaseModel):
    allocation: CostAllocationRead
    invoices: list[InvoiceSummaryRead]
