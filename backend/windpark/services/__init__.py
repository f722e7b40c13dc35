"""Service layer encapsulating settlement business logic for API routers."""

from .advance_reconciliation import AdvanceReconciliationService
from .audit import AuditOutcome, AuditService
from .cost_allocation import AllocationOutcome, CostAllocationService
from .exceptions import (
    CostAllocationError,
    SettlementConflictError,
    SettlementError,
    SettlementNotFoundError,
    SettlementStateError,
    SettlementValidationError,
)
from .invoice_generator import GenerationResult, SettlementInvoiceService
from .invoice_numbers import InvoiceNumberService
from .settlement_calculations import CalculationOutcome, SettlementCalculationService
from .settlement_periods import PeriodCreateResult, SettlementPeriodService

__all__ = [
    "AdvanceReconciliationService",
    "AllocationOutcome",
    "AuditOutcome",
    "AuditService",
    "CalculationOutcome",
    "CostAllocationError",
    "CostAllocationService",
    "GenerationResult",
    "InvoiceNumberService",
    "PeriodCreateResult",
    "SettlementCalculationService",
    "SettlementConflictError",
    "SettlementError",
    "SettlementInvoiceService",
    "SettlementNotFoundError",
    "SettlementPeriodService",
    "SettlementStateError",
    "SettlementValidationError",
]
