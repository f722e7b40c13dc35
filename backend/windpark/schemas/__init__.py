"""Expose Pydantic schemas for convenient imports."""

from .calculation import (
    AdvanceCalculationRead,
    AdvanceLeaseItemRead,
    CalculationRequest,
    CalculationResponse,
    CalculationTotalsRead,
    FinalCalculationRead,
    FinalLeaseItemRead,
    LeaseTurbineShareRead,
    TurbineFiguresRead,
)
from .common import PaginatedResponse
from .cost_allocation import (
    CostAllocationItemRead,
    CostAllocationRead,
    CostAllocationRunResponse,
)
from .invoice import (
    AllocationOutcomeRead,
    InvoiceGenerationRequest,
    InvoiceGenerationResponse,
    InvoiceSummaryRead,
)
from .settlement_period import (
    SettlementPeriodBulkCreate,
    SettlementPeriodBulkCreateResult,
    SettlementPeriodCreate,
    SettlementPeriodListResponse,
    SettlementPeriodRead,
    SettlementPeriodStatusUpdate,
)

__all__ = [
    "AdvanceCalculationRead",
    "AdvanceLeaseItemRead",
    "AllocationOutcomeRead",
    "CalculationRequest",
    "CalculationResponse",
    "CalculationTotalsRead",
    "CostAllocationItemRead",
    "CostAllocationRead",
    "CostAllocationRunResponse",
    "FinalCalculationRead",
    "FinalLeaseItemRead",
    "InvoiceGenerationRequest",
    "InvoiceGenerationResponse",
    "InvoiceSummaryRead",
    "LeaseTurbineShareRead",
    "PaginatedResponse",
    "SettlementPeriodBulkCreate",
    "SettlementPeriodBulkCreateResult",
    "SettlementPeriodCreate",
    "SettlementPeriodListResponse",
    "SettlementPeriodRead",
    "SettlementPeriodStatusUpdate",
    "TurbineFiguresRead",
]
