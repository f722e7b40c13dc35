"""Allocation of lease costs to operator funds for network-company parks.

A network company pays the lessors and passes the cost on to the operator
funds holding the turbines. Pool area payments are re-invoiced with VAT while
turbine site payments stay exempt (section 4 no. 12 UStG), so every fund
receives one invoice with a taxable and an exempt position.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Dict, Hashable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, settings
from ..models.cost_allocation import CostAllocationStatus
from ..models.invoice import CostComponent, InvoiceStatus, InvoiceType, TaxType
from ..models.park import OwnershipModel, TurbineStatus
from ..models.settlement_period import SettlementPeriodType
from .exceptions import CostAllocationError
from .invoice_documents import (
    InvoiceSummary,
    LineDraft,
    build_invoice,
    build_period_label,
    calculate_due_date,
    resolve_payment_day,
    summarize_invoice,
)
from .settlement_calculator import CENTS, HUNDRED, round_currency
from .settlement_periods import SettlementPeriodService

LOGGER = logging.getLogger(__name__)

EXEMPT_NOTICE = "steuerfrei gem. §4 Nr. 12 UStG"


def distribute_with_remainder(
    total_amount: Decimal, shares: Dict[Hashable, Decimal]
) -> Dict[Hashable, Decimal]:
    """Split ``total_amount`` by ``shares`` so the parts add up to the cent.

    Each part is rounded down first; the remaining cents go to the holders with
    the largest truncated remainders, ties broken by insertion order.
    """

    if not shares:
        return {}
    total = Decimal(str(total_amount))
    weights = {key: Decimal(str(value)) for key, value in shares.items()}
    weight_sum = sum(weights.values(), Decimal("0"))
    if weight_sum == 0:
        return {key: Decimal("0.00") for key in weights}

    sign = Decimal("-1") if total < 0 else Decimal("1")
    absolute = abs(total).quantize(CENTS)
    allocations: Dict[Hashable, Decimal] = {}
    remainders: list[tuple[Decimal, int, Hashable]] = []
    for index, (key, weight) in enumerate(weights.items()):
        exact = absolute * weight / weight_sum
        floored = exact.quantize(CENTS, rounding=ROUND_DOWN)
        allocations[key] = floored
        remainders.append((exact - floored, -index, key))

    leftover_cents = int((absolute - sum(allocations.values(), Decimal("0"))) / CENTS)
    for _, _, key in sorted(remainders, reverse=True)[:leftover_cents]:
        allocations[key] += CENTS

    return {key: amount * sign for key, amount in allocations.items()}


@dataclass
class AllocationOutcome:
    """Result of the best-effort allocation step."""

    allocation_id: Optional[str] = None
    period_label: Optional[str] = None
    invoices: list[InvoiceSummary] = field(default_factory=list)
    error: Optional[str] = None


def _reference_date(period: models.SettlementPeriod) -> date:
    if period.period_type == SettlementPeriodType.FINAL or period.month is None:
        return date(period.year, 12, 31)
    last_day = calendar.monthrange(period.year, period.month)[1]
    return date(period.year, period.month, last_day)


class CostAllocationService:
    """Distributes the lessor payments of a settlement over operator funds."""

    @staticmethod
    def fund_weights(
        db: Session, tenant_id: str, park_id: str, reference_date: date
    ) -> dict[str, Decimal]:
        """Sum the ownership fractions each fund holds on ``reference_date``."""

        rows = (
            db.query(models.TurbineOperator.fund_id, models.TurbineOperator.ownership_percentage)
            .join(models.Turbine, models.TurbineOperator.turbine_id == models.Turbine.id)
            .join(models.OperatorFund, models.TurbineOperator.fund_id == models.OperatorFund.id)
            .filter(
                models.Turbine.park_id == park_id,
                models.Turbine.status == TurbineStatus.ACTIVE,
                models.OperatorFund.tenant_id == tenant_id,
                models.TurbineOperator.valid_from <= reference_date,
                or_(
                    models.TurbineOperator.valid_to.is_(None),
                    models.TurbineOperator.valid_to >= reference_date,
                ),
            )
            .order_by(models.OperatorFund.name.asc(), models.TurbineOperator.fund_id.asc())
            .all()
        )
        weights: dict[str, Decimal] = {}
        for fund_id, percentage in rows:
            weights[fund_id] = weights.get(fund_id, Decimal("0")) + Decimal(percentage) / HUNDRED
        return weights

    @staticmethod
    def credited_amounts(
        db: Session, tenant_id: str, period_id: str
    ) -> tuple[Decimal, Decimal]:
        """Return the (taxable, exempt) totals credited to lessors for a period."""

        lines = (
            db.query(models.InvoiceItem.cost_component, models.InvoiceItem.net_amount)
            .join(models.Invoice, models.InvoiceItem.invoice_id == models.Invoice.id)
            .filter(
                models.Invoice.tenant_id == tenant_id,
                models.Invoice.settlement_period_id == period_id,
                models.Invoice.invoice_type == InvoiceType.CREDIT_NOTE,
                models.Invoice.status != InvoiceStatus.CANCELLED,
            )
            .all()
        )
        taxable = Decimal("0")
        exempt = Decimal("0")
        for component, amount in lines:
            if component == CostComponent.POOL_AREA.value:
                taxable += Decimal(amount)
            else:
                exempt += Decimal(amount)
        return round_currency(taxable), round_currency(exempt)

    @classmethod
    def allocate_period(
        cls,
        db: Session,
        tenant_id: str,
        period_id: str,
        *,
        created_by: Optional[str] = None,
        vat_rate: Optional[Decimal] = None,
        invoice_date: Optional[date] = None,
    ) -> AllocationOutcome:
        """Create the allocation and one invoice per operator fund.

        A previous DRAFT allocation of the period is replaced; an INVOICED one
        blocks the run.
        """

        period = SettlementPeriodService.get_period(db, tenant_id, period_id)
        park = SettlementPeriodService.get_park(db, tenant_id, period.park_id)
        if park.ownership_model != OwnershipModel.NETWORK_COMPANY:
            raise CostAllocationError(
                "Cost allocation only applies to parks operated through a network company"
            )

        for existing in list(period.cost_allocations):
            if existing.status == CostAllocationStatus.INVOICED:
                raise CostAllocationError(
                    "Costs of this settlement period were already allocated and invoiced"
                )
            period.cost_allocations.remove(existing)
        db.flush()

        taxable_total, exempt_total = cls.credited_amounts(db, tenant_id, period.id)
        if taxable_total + exempt_total <= 0:
            raise CostAllocationError("No credited lease payments to allocate")

        weights = cls.fund_weights(db, tenant_id, park.id, _reference_date(period))
        if not weights:
            raise CostAllocationError("No operator fund holds an interest in the park's turbines")

        rate = Decimal(vat_rate) if vat_rate is not None else settings.vat_rate_percent()
        invoice_date = invoice_date or date.today()
        due_date = calculate_due_date(invoice_date, resolve_payment_day(None, park))
        label = build_period_label(
            period.period_type, period.advance_interval, period.month, period.year
        )
        taxable_parts = distribute_with_remainder(taxable_total, weights)
        exempt_parts = distribute_with_remainder(exempt_total, weights)
        weight_sum = sum(weights.values(), Decimal("0"))

        allocation = models.CostAllocation(
            tenant_id=tenant_id,
            settlement_period_id=period.id,
            period_label=label,
            status=CostAllocationStatus.DRAFT,
            total_amount=taxable_total + exempt_total,
            total_taxable=taxable_total,
            total_exempt=exempt_total,
            vat_rate_percent=rate,
            created_by=created_by,
        )
        db.add(allocation)

        funds = {
            fund.id: fund
            for fund in db.query(models.OperatorFund)
            .filter(models.OperatorFund.id.in_(list(weights)))
            .all()
        }

        invoices: list[models.Invoice] = []
        for fund_id, weight in weights.items():
            fund = funds[fund_id]
            taxable = taxable_parts[fund_id]
            exempt = exempt_parts[fund_id]
            vat = round_currency(taxable * rate / HUNDRED)
            share = (weight / weight_sum * HUNDRED).quantize(Decimal("0.0001"))
            item = models.CostAllocationItem(
                operator_fund_id=fund_id,
                allocation_basis=f"Anteil {share}% der WEA-Betriebsanteile",
                share_percentage=share,
                taxable_amount=taxable,
                taxable_vat=vat,
                exempt_amount=exempt,
                total_allocated=taxable + vat + exempt,
            )
            allocation.items.append(item)
            if taxable + exempt <= 0:
                continue

            lines = []
            if taxable > 0:
                lines.append(
                    LineDraft(
                        description=f"Weiterberechnung Nutzungsentgelt Poolflaeche\n{label}",
                        net_amount=taxable,
                        tax_type=TaxType.STANDARD,
                        tax_rate=rate,
                        cost_component=CostComponent.POOL_AREA,
                    )
                )
            if exempt > 0:
                lines.append(
                    LineDraft(
                        description=f"Weiterberechnung Nutzungsentgelt WEA-Standort\n{label}\n{EXEMPT_NOTICE}",
                        net_amount=exempt,
                        tax_type=TaxType.EXEMPT,
                        cost_component=CostComponent.TURBINE_SITE,
                    )
                )
            invoice = build_invoice(
                db,
                tenant_id=tenant_id,
                invoice_type=InvoiceType.INVOICE,
                status=InvoiceStatus.DRAFT,
                period=period,
                recipient_name=fund.display_name,
                recipient_address=fund.address,
                lines=lines,
                operator_fund_id=fund_id,
                payment_reference=f"Kostenaufteilung {label} - {park.name}",
                created_by=created_by,
                invoice_date=invoice_date,
                due_date=due_date,
            )
            item.invoice_id = invoice.id
            invoices.append(invoice)

        allocation.status = CostAllocationStatus.INVOICED
        db.flush()
        outcome = AllocationOutcome(
            allocation_id=allocation.id,
            period_label=label,
            invoices=[summarize_invoice(invoice) for invoice in invoices],
        )
        db.commit()
        LOGGER.info(
            "Allocated %s of settlement period %s across %d operator funds",
            allocation.total_amount,
            period.id,
            len(weights),
        )
        return outcome

    @staticmethod
    def get_allocation(
        db: Session, tenant_id: str, allocation_id: str
    ) -> Optional[models.CostAllocation]:
        return (
            db.query(models.CostAllocation)
            .filter(
                models.CostAllocation.id == allocation_id,
                models.CostAllocation.tenant_id == tenant_id,
            )
            .first()
        )
