"""Creates lessor credit notes from a calculated settlement period."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .. import models
from ..database import session_scope
from ..models.invoice import CostComponent, InvoiceStatus, InvoiceType
from ..models.park import OwnershipModel
from ..models.settlement_period import SettlementPeriodStatus, SettlementPeriodType
from .audit import AuditOutcome, AuditService
from .cost_allocation import AllocationOutcome, CostAllocationService
from .exceptions import SettlementStateError, SettlementValidationError
from .invoice_documents import (
    InvoiceSummary,
    LineDraft,
    build_invoice,
    build_period_label,
    calculate_due_date,
    resolve_payment_day,
    summarize_invoice,
)
from .settlement_calculations import SettlementCalculationService
from .settlement_periods import SettlementPeriodService

LOGGER = logging.getLogger(__name__)

ADVANCE_GENERATION_STATUSES = (SettlementPeriodStatus.IN_PROGRESS,)
SETTLEMENT_GENERATION_STATUSES = (
    SettlementPeriodStatus.IN_PROGRESS,
    SettlementPeriodStatus.APPROVED,
)


@dataclass
class GenerationResult:
    """Credit notes created for a period plus the best-effort allocation outcome."""

    period: models.SettlementPeriod
    invoices: list[InvoiceSummary]
    skipped: int
    allocation: Optional[AllocationOutcome] = None


def _component_lines(
    taxable: Decimal,
    exempt: Decimal,
    *,
    pool_description: str,
    site_description: str,
) -> list[LineDraft]:
    lines = []
    if taxable != 0:
        lines.append(
            LineDraft(
                description=pool_description,
                net_amount=taxable,
                cost_component=CostComponent.POOL_AREA,
            )
        )
    if exempt != 0:
        lines.append(
            LineDraft(
                description=site_description,
                net_amount=exempt,
                cost_component=CostComponent.TURBINE_SITE,
            )
        )
    return lines


class SettlementInvoiceService:
    """Generates credit notes for advance and final settlement periods."""

    @staticmethod
    def _ensure_generation_allowed(
        period: models.SettlementPeriod,
        *,
        period_type: SettlementPeriodType,
        allowed_statuses: Iterable[SettlementPeriodStatus],
    ) -> None:
        if period.period_type != period_type:
            raise SettlementValidationError(
                f"Settlement period is a {period.period_type.value} period; "
                f"this operation requires a {period_type.value} period"
            )
        current = SettlementPeriodStatus(period.status)
        required = [status.value for status in allowed_statuses]
        if period.calculated_at is None:
            raise SettlementStateError(
                "Settlement period has no calculated items; run calculation first",
                current=current.value,
                required=required,
            )
        if current.value not in required:
            raise SettlementStateError(
                f"Settlement period is {current.value}; invoice generation requires "
                f"{' or '.join(required)}",
                current=current.value,
                required=required,
            )
        if period.invoiced_at is not None:
            raise SettlementStateError(
                f"Invoices for settlement period {period.period_key} were already generated",
                current=current.value,
                required=required,
            )

    @classmethod
    def generate_advance_invoices(
        cls,
        db: Session,
        tenant_id: str,
        period_id: str,
        *,
        initial_status: InvoiceStatus = InvoiceStatus.DRAFT,
        created_by: Optional[str] = None,
        invoice_date: Optional[date] = None,
    ) -> GenerationResult:
        """Create one credit note per lease with a nonzero advance."""

        period = SettlementPeriodService.get_period(db, tenant_id, period_id, for_update=True)
        cls._ensure_generation_allowed(
            period,
            period_type=SettlementPeriodType.ADVANCE,
            allowed_statuses=ADVANCE_GENERATION_STATUSES,
        )
        park = SettlementPeriodService.get_park(db, tenant_id, period.park_id)
        invoice_date = invoice_date or date.today()
        result = SettlementCalculationService.run_calculation(db, period)
        label = build_period_label(
            period.period_type, period.advance_interval, period.month, period.year
        )
        leases = cls._load_leases(db, tenant_id, [item.lease_id for item in result.items])

        created: list[models.Invoice] = []
        skipped = 0
        for item in result.items:
            if item.advance_amount <= 0:
                skipped += 1
                continue
            lease = leases[item.lease_id]
            lines = _component_lines(
                item.taxable_amount,
                item.exempt_amount,
                pool_description=f"Vorschuss Flaechenanteil Poolflaeche\n{label}",
                site_description=f"Vorschuss WEA-Standort\n{label}",
            )
            created.append(
                build_invoice(
                    db,
                    tenant_id=tenant_id,
                    invoice_type=InvoiceType.CREDIT_NOTE,
                    status=initial_status,
                    period=period,
                    recipient_name=lease.lessor_name,
                    recipient_address=lease.lessor_address,
                    lines=lines,
                    lease_id=lease.id,
                    payment_reference=f"Nutzungsentgelt {label} - {park.name}",
                    created_by=created_by,
                    invoice_date=invoice_date,
                    due_date=calculate_due_date(
                        invoice_date, resolve_payment_day(lease, park)
                    ),
                )
            )

        return cls._finish_generation(
            db,
            tenant_id,
            period,
            park,
            created,
            skipped,
            created_by=created_by,
            invoice_date=invoice_date,
        )

    @classmethod
    def generate_settlement_invoices(
        cls,
        db: Session,
        tenant_id: str,
        period_id: str,
        *,
        initial_status: InvoiceStatus = InvoiceStatus.DRAFT,
        created_by: Optional[str] = None,
        invoice_date: Optional[date] = None,
    ) -> GenerationResult:
        """Create one credit note per lease that is still owed a balancing payment.

        Leases whose advances already cover the year (final payment of zero or
        less) are skipped.
        """

        period = SettlementPeriodService.get_period(db, tenant_id, period_id, for_update=True)
        cls._ensure_generation_allowed(
            period,
            period_type=SettlementPeriodType.FINAL,
            allowed_statuses=SETTLEMENT_GENERATION_STATUSES,
        )
        park = SettlementPeriodService.get_park(db, tenant_id, period.park_id)
        invoice_date = invoice_date or date.today()
        result = SettlementCalculationService.run_calculation(db, period)
        leases = cls._load_leases(db, tenant_id, [item.lease_id for item in result.items])
        year = period.year

        created: list[models.Invoice] = []
        skipped = 0
        for item in result.items:
            if item.final_payment <= 0:
                LOGGER.info(
                    "Skipping lease %s in settlement period %s: final payment %s",
                    item.lease_id,
                    period.id,
                    item.final_payment,
                )
                skipped += 1
                continue
            lease = leases[item.lease_id]
            lines = _component_lines(
                item.payment_taxable_amount,
                item.payment_exempt_amount,
                pool_description=f"Nutzungsentgelt Poolflaeche {year}",
                site_description=f"Nutzungsentgelt WEA-Standort {year}",
            )
            lines.extend(
                _component_lines(
                    item.taxable_amount - item.payment_taxable_amount,
                    item.exempt_amount - item.payment_exempt_amount,
                    pool_description=f"abzgl. geleistete Vorschuesse Poolflaeche {year}",
                    site_description=f"abzgl. geleistete Vorschuesse WEA-Standort {year}",
                )
            )
            created.append(
                build_invoice(
                    db,
                    tenant_id=tenant_id,
                    invoice_type=InvoiceType.CREDIT_NOTE,
                    status=initial_status,
                    period=period,
                    recipient_name=lease.lessor_name,
                    recipient_address=lease.lessor_address,
                    lines=lines,
                    lease_id=lease.id,
                    payment_reference=f"Nutzungsentgelt Endabrechnung {year} - {park.name}",
                    created_by=created_by,
                    invoice_date=invoice_date,
                    due_date=calculate_due_date(
                        invoice_date, resolve_payment_day(lease, park)
                    ),
                )
            )

        return cls._finish_generation(
            db,
            tenant_id,
            period,
            park,
            created,
            skipped,
            created_by=created_by,
            invoice_date=invoice_date,
        )

    @staticmethod
    def _load_leases(
        db: Session, tenant_id: str, lease_ids: list[str]
    ) -> dict[str, models.Lease]:
        if not lease_ids:
            return {}
        leases = (
            db.query(models.Lease)
            .filter(models.Lease.tenant_id == tenant_id, models.Lease.id.in_(lease_ids))
            .all()
        )
        return {lease.id: lease for lease in leases}

    @classmethod
    def _finish_generation(
        cls,
        db: Session,
        tenant_id: str,
        period: models.SettlementPeriod,
        park: models.Park,
        created: list[models.Invoice],
        skipped: int,
        *,
        created_by: Optional[str],
        invoice_date: date,
    ) -> GenerationResult:
        period.invoiced_at = datetime.now(timezone.utc)
        db.add(period)
        db.flush()
        summaries = [summarize_invoice(invoice) for invoice in created]
        db.commit()
        db.refresh(period)
        LOGGER.info(
            "Generated %d credit notes for settlement period %s (%d skipped)",
            len(summaries),
            period.id,
            skipped,
        )
        AuditService.record_event(
            db,
            "settlement_period.invoices_generated",
            AuditOutcome.SUCCESS,
            tenant_id=tenant_id,
            tags={"period_type": period.period_type.value},
            metadata={"period_id": period.id, "created": len(summaries), "skipped": skipped},
        )

        allocation = None
        if park.ownership_model == OwnershipModel.NETWORK_COMPANY:
            allocation = cls._allocate_best_effort(
                db, tenant_id, period, created_by=created_by, invoice_date=invoice_date
            )
        return GenerationResult(
            period=period, invoices=summaries, skipped=skipped, allocation=allocation
        )

    @staticmethod
    def _allocate_best_effort(
        db: Session,
        tenant_id: str,
        period: models.SettlementPeriod,
        *,
        created_by: Optional[str],
        invoice_date: date,
    ) -> AllocationOutcome:
        """Run the cost allocation in its own session; failures never propagate."""

        try:
            with session_scope(db.get_bind()) as allocation_db:
                return CostAllocationService.allocate_period(
                    allocation_db,
                    tenant_id,
                    period.id,
                    created_by=created_by,
                    invoice_date=invoice_date,
                )
        except Exception as exc:
            LOGGER.warning(
                "Cost allocation for settlement period %s (tenant %s) failed; "
                "lessor credit notes were kept",
                period.id,
                tenant_id,
                exc_info=True,
            )
            AuditService.record_event(
                db,
                "cost_allocation.failed",
                AuditOutcome.ERROR,
                tenant_id=tenant_id,
                metadata={"period_id": period.id, "error": str(exc)},
            )
            return AllocationOutcome(error=str(exc))
