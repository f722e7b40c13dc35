"""Building blocks shared by credit note and allocation invoice generation."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from .. import models
from ..models.invoice import CostComponent, InvoiceStatus, InvoiceType, TaxType
from ..models.settlement_period import AdvanceInterval, SettlementPeriodType
from .invoice_numbers import InvoiceNumberService
from .settlement_calculator import HUNDRED, round_currency

DEFAULT_PAYMENT_DAY = 15

GERMAN_MONTH_NAMES = (
    "Januar",
    "Februar",
    "Maerz",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
)


def calculate_due_date(invoice_date: date, payment_day: int) -> date:
    """Return the next payment day on or after the invoice date.

    Days beyond the end of a month fall on its last day.
    """

    year, month = invoice_date.year, invoice_date.month
    if invoice_date.day > payment_day:
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(payment_day, last_day))


def resolve_payment_day(lease: Optional[models.Lease], park: models.Park) -> int:
    if lease is not None and lease.payment_day:
        return lease.payment_day
    return park.default_payment_day or DEFAULT_PAYMENT_DAY


def quarter_of(month: int) -> int:
    return (month - 1) // 3 + 1


def build_period_label(
    period_type: SettlementPeriodType,
    advance_interval: Optional[AdvanceInterval],
    month: Optional[int],
    year: int,
) -> str:
    """Human readable label such as ``Vorschuss Q2 2025`` or ``Nutzungsentgelt 2025``."""

    if period_type == SettlementPeriodType.FINAL:
        return f"Nutzungsentgelt {year}"
    if month is None or advance_interval in (None, AdvanceInterval.YEARLY):
        return f"Vorschuss {year}"
    if advance_interval == AdvanceInterval.QUARTERLY:
        return f"Vorschuss Q{quarter_of(month)} {year}"
    return f"Vorschuss {GERMAN_MONTH_NAMES[month - 1]} {year}"


def service_period_dates(
    period_type: SettlementPeriodType,
    advance_interval: Optional[AdvanceInterval],
    month: Optional[int],
    year: int,
) -> tuple[date, date]:
    if period_type == SettlementPeriodType.FINAL or month is None:
        return date(year, 1, 1), date(year, 12, 31)
    if advance_interval == AdvanceInterval.QUARTERLY:
        last_month = quarter_of(month) * 3
        first_month = last_month - 2
    elif advance_interval == AdvanceInterval.MONTHLY:
        first_month = last_month = month
    else:
        return date(year, 1, 1), date(year, 12, 31)
    last_day = calendar.monthrange(year, last_month)[1]
    return date(year, first_month, 1), date(year, last_month, last_day)


@dataclass
class LineDraft:
    description: str
    net_amount: Decimal
    tax_type: TaxType = TaxType.EXEMPT
    tax_rate: Decimal = Decimal("0")
    cost_component: Optional[CostComponent] = None


@dataclass
class InvoiceSummary:
    """Detached description of a persisted invoice."""

    id: str
    invoice_number: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    lease_id: Optional[str]
    operator_fund_id: Optional[str]
    recipient_name: str
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    invoice_date: date
    due_date: Optional[date] = None


def summarize_invoice(invoice: models.Invoice) -> InvoiceSummary:
    return InvoiceSummary(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        invoice_type=InvoiceType(invoice.invoice_type),
        status=InvoiceStatus(invoice.status),
        lease_id=invoice.lease_id,
        operator_fund_id=invoice.operator_fund_id,
        recipient_name=invoice.recipient_name,
        net_amount=Decimal(invoice.net_amount),
        tax_amount=Decimal(invoice.tax_amount),
        gross_amount=Decimal(invoice.gross_amount),
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
    )


def build_invoice(
    db: Session,
    *,
    tenant_id: str,
    invoice_type: InvoiceType,
    status: InvoiceStatus,
    period: models.SettlementPeriod,
    recipient_name: str,
    recipient_address: Optional[str],
    lines: Sequence[LineDraft],
    lease_id: Optional[str] = None,
    operator_fund_id: Optional[str] = None,
    payment_reference: Optional[str] = None,
    created_by: Optional[str] = None,
    invoice_date: Optional[date] = None,
    due_date: Optional[date] = None,
) -> models.Invoice:
    """Add an invoice with its positions to the session and return it."""

    invoice_date = invoice_date or date.today()
    service_start, service_end = service_period_dates(
        period.period_type, period.advance_interval, period.month, period.year
    )
    invoice = models.Invoice(
        tenant_id=tenant_id,
        invoice_number=InvoiceNumberService.next_number(
            db, tenant_id, invoice_type, invoice_date.year
        ),
        invoice_type=invoice_type,
        status=status,
        invoice_date=invoice_date,
        due_date=due_date,
        park_id=period.park_id,
        settlement_period_id=period.id,
        lease_id=lease_id,
        operator_fund_id=operator_fund_id,
        recipient_name=recipient_name,
        recipient_address=recipient_address,
        service_start=service_start,
        service_end=service_end,
        payment_reference=payment_reference,
        created_by=created_by,
    )

    net_total = Decimal("0")
    tax_total = Decimal("0")
    for position, line in enumerate(lines, start=1):
        net = round_currency(line.net_amount)
        tax = round_currency(net * Decimal(line.tax_rate) / HUNDRED)
        invoice.items.append(
            models.InvoiceItem(
                position=position,
                description=line.description,
                quantity=Decimal("1"),
                unit_price=net,
                net_amount=net,
                cost_component=line.cost_component.value if line.cost_component else None,
                tax_type=line.tax_type,
                tax_rate=Decimal(line.tax_rate),
                tax_amount=tax,
                gross_amount=net + tax,
            )
        )
        net_total += net
        tax_total += tax

    invoice.net_amount = net_total
    invoice.tax_amount = tax_total
    invoice.gross_amount = net_total + tax_total
    db.add(invoice)
    db.flush()
    return invoice
