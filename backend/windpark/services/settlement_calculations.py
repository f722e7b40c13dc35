"""Loads settlement inputs from the database and runs the calculator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy.orm import Session

from .. import models, settings
from ..models.lease import LeaseStatus
from ..models.park import TurbineStatus
from ..models.settlement_period import (
    AdvanceInterval,
    SettlementPeriodStatus,
    SettlementPeriodType,
)
from . import settlement_calculator as calculator
from .advance_reconciliation import AdvanceReconciliationService
from .audit import AuditService
from .exceptions import SettlementStateError
from .settlement_periods import SettlementPeriodService

LOGGER = logging.getLogger(__name__)

CalculationResult = Union[calculator.AdvanceResult, calculator.FinalResult]

LOCKED_STATUSES = frozenset(
    {SettlementPeriodStatus.CLOSED, SettlementPeriodStatus.CANCELLED}
)
SAVE_LOCKED_STATUSES = frozenset(
    {SettlementPeriodStatus.PENDING_REVIEW, SettlementPeriodStatus.APPROVED}
)


@dataclass
class CalculationOutcome:
    period: models.SettlementPeriod
    result: CalculationResult
    saved: bool


def _resolve_share_split(park: models.Park) -> tuple[Decimal, Decimal]:
    wea = park.wea_share_percentage
    pool = park.pool_share_percentage
    if wea is None and pool is None:
        return settings.default_share_split()
    if wea is None:
        return Decimal("100") - Decimal(pool), Decimal(pool)
    if pool is None:
        return Decimal(wea), Decimal("100") - Decimal(wea)
    return Decimal(wea), Decimal(pool)


class SettlementCalculationService:
    """Runs settlement calculations for stored periods."""

    @staticmethod
    def load_park_terms(db: Session, park: models.Park) -> calculator.ParkTerms:
        turbines = (
            db.query(models.Turbine)
            .filter(
                models.Turbine.park_id == park.id,
                models.Turbine.status == TurbineStatus.ACTIVE,
            )
            .order_by(models.Turbine.designation.asc())
            .all()
        )
        wea_share, pool_share = _resolve_share_split(park)
        return calculator.ParkTerms(
            park_id=park.id,
            minimum_rent_per_turbine=Decimal(park.minimum_rent_per_turbine or 0),
            wea_share_percentage=wea_share,
            pool_share_percentage=pool_share,
            commissioning_date=park.commissioning_date,
            turbines=[
                calculator.TurbineTerms(
                    turbine_id=turbine.id,
                    designation=turbine.designation,
                    commissioning_date=turbine.commissioning_date,
                )
                for turbine in turbines
            ],
            revenue_phases=[
                calculator.RevenuePhaseTerms(
                    start_year=phase.start_year,
                    end_year=phase.end_year,
                    revenue_share_percentage=Decimal(phase.revenue_share_percentage),
                )
                for phase in park.revenue_phases
            ],
        )

    @staticmethod
    def load_lease_terms(
        db: Session, tenant_id: str, park_id: str
    ) -> list[calculator.LeaseTerms]:
        leases = (
            db.query(models.Lease)
            .filter(
                models.Lease.tenant_id == tenant_id,
                models.Lease.park_id == park_id,
                models.Lease.status == LeaseStatus.ACTIVE,
            )
            .order_by(models.Lease.lessor_name.asc(), models.Lease.id.asc())
            .all()
        )
        return [
            calculator.LeaseTerms(
                lease_id=lease.id,
                lessor_name=lease.lessor_name,
                site_shares={
                    assignment.turbine_id: Decimal(assignment.site_share_percentage)
                    for assignment in lease.turbine_assignments
                },
                pool_area_sqm=Decimal(lease.pool_area_sqm or 0),
            )
            for lease in leases
        ]

    @classmethod
    def run_calculation(
        cls,
        db: Session,
        period: models.SettlementPeriod,
        *,
        total_revenue: Optional[Decimal] = None,
    ) -> CalculationResult:
        """Compute the settlement for a period without writing anything."""

        park = SettlementPeriodService.get_park(db, period.tenant_id, period.park_id)
        park_terms = cls.load_park_terms(db, park)
        leases = cls.load_lease_terms(db, period.tenant_id, park.id)
        phasing = calculator.resolve_phasing_strategy()

        if period.period_type == SettlementPeriodType.ADVANCE:
            return calculator.calculate_advance(
                park_terms,
                leases,
                year=period.year,
                advance_interval=period.advance_interval or AdvanceInterval.YEARLY,
                phasing=phasing,
            )

        revenue = total_revenue
        if revenue is None:
            revenue = Decimal(period.total_revenue or 0)
        advances = AdvanceReconciliationService.paid_advances_by_lease(
            db, period.tenant_id, park.id, period.year
        )
        return calculator.calculate_final(
            park_terms,
            leases,
            year=period.year,
            total_revenue=revenue,
            advances_paid=advances,
            phasing=phasing,
        )

    @classmethod
    def calculate_period(
        cls,
        db: Session,
        tenant_id: str,
        period_id: str,
        *,
        total_revenue: Optional[Decimal] = None,
        save_result: bool = True,
    ) -> CalculationOutcome:
        period = SettlementPeriodService.get_period(db, tenant_id, period_id)
        status = SettlementPeriodStatus(period.status)
        if status in LOCKED_STATUSES:
            raise SettlementStateError(
                f"Settlement period is {status.value}; calculation requires OPEN or IN_PROGRESS",
                current=status.value,
                required=[
                    SettlementPeriodStatus.OPEN.value,
                    SettlementPeriodStatus.IN_PROGRESS.value,
                ],
            )
        if save_result and status in SAVE_LOCKED_STATUSES:
            raise SettlementStateError(
                f"Settlement period is {status.value}; saving a calculation requires OPEN or IN_PROGRESS",
                current=status.value,
                required=[
                    SettlementPeriodStatus.OPEN.value,
                    SettlementPeriodStatus.IN_PROGRESS.value,
                ],
            )

        with AuditService.timed_event(
            db,
            "settlement_period.calculated",
            tenant_id=tenant_id,
            tags={"period_type": period.period_type.value, "saved": save_result},
        ):
            result = cls.run_calculation(db, period, total_revenue=total_revenue)

        if not save_result:
            return CalculationOutcome(period=period, result=result, saved=False)

        totals = result.totals
        if isinstance(result, calculator.FinalResult):
            period.total_revenue = result.total_revenue
        period.total_minimum_rent = totals.total_minimum_rent
        period.total_actual_rent = totals.total_payment
        period.calculated_at = datetime.now(timezone.utc)
        if status == SettlementPeriodStatus.OPEN:
            period.status = SettlementPeriodStatus.IN_PROGRESS
        db.add(period)
        db.commit()
        db.refresh(period)
        LOGGER.info(
            "Calculated settlement period %s: %d leases, total payment %s",
            period.id,
            totals.lease_count,
            totals.total_payment,
        )
        return CalculationOutcome(period=period, result=result, saved=True)
