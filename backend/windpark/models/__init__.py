"""Expose SQLAlchemy models for convenient imports."""

from .audit import SettlementAuditEvent
from .cost_allocation import CostAllocation, CostAllocationItem, CostAllocationStatus
from .invoice import (
    CostComponent,
    Invoice,
    InvoiceItem,
    InvoiceNumberSequence,
    InvoiceStatus,
    InvoiceType,
    TaxType,
)
from .lease import Lease, LeaseStatus, LeaseTurbine
from .operator_fund import OperatorFund, TurbineOperator
from .park import OwnershipModel, Park, ParkRevenuePhase, Turbine, TurbineStatus
from .settlement_period import (
    AdvanceInterval,
    SettlementPeriod,
    SettlementPeriodStatus,
    SettlementPeriodType,
)

__all__ = [
    "AdvanceInterval",
    "CostAllocation",
    "CostAllocationItem",
    "CostAllocationStatus",
    "CostComponent",
    "Invoice",
    "InvoiceItem",
    "InvoiceNumberSequence",
    "InvoiceStatus",
    "InvoiceType",
    "Lease",
    "LeaseStatus",
    "LeaseTurbine",
    "OperatorFund",
    "OwnershipModel",
    "Park",
    "ParkRevenuePhase",
    "SettlementAuditEvent",
    "SettlementPeriod",
    "SettlementPeriodStatus",
    "SettlementPeriodType",
    "TaxType",
    "Turbine",
    "TurbineOperator",
    "TurbineStatus",
]
