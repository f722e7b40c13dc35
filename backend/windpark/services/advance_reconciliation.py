"""Reconciliation of already paid advances against a final settlement."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..models.invoice import InvoiceStatus, InvoiceType
from ..models.settlement_period import SettlementPeriodStatus, SettlementPeriodType
from .settlement_calculator import round_currency

COUNTED_PERIOD_STATUSES = (
    SettlementPeriodStatus.IN_PROGRESS,
    SettlementPeriodStatus.CLOSED,
)
COUNTED_INVOICE_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.PAID)


class AdvanceReconciliationService:
    """Looks up advances that count as paid for a park and year."""

    @staticmethod
    def paid_advances_by_lease(
        db: Session, tenant_id: str, park_id: str, year: int
    ) -> dict[str, Decimal]:
        """Sum gross amounts of sent or paid advance credit notes per lease.

        Only advance periods that are in progress or closed contribute; draft
        and cancelled credit notes are not considered paid.
        """

        rows = (
            db.query(models.Invoice.lease_id, func.sum(models.Invoice.gross_amount))
            .join(
                models.SettlementPeriod,
                models.Invoice.settlement_period_id == models.SettlementPeriod.id,
            )
            .filter(
                models.SettlementPeriod.tenant_id == tenant_id,
                models.SettlementPeriod.park_id == park_id,
                models.SettlementPeriod.year == year,
                models.SettlementPeriod.period_type == SettlementPeriodType.ADVANCE,
                models.SettlementPeriod.status.in_(COUNTED_PERIOD_STATUSES),
                models.Invoice.tenant_id == tenant_id,
                models.Invoice.invoice_type == InvoiceType.CREDIT_NOTE,
                models.Invoice.status.in_(COUNTED_INVOICE_STATUSES),
                models.Invoice.lease_id.isnot(None),
            )
            .group_by(models.Invoice.lease_id)
            .all()
        )
        return {
            lease_id: round_currency(Decimal(str(total or 0))) for lease_id, total in rows
        }
