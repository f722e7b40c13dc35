"""Lifecycle management for lease settlement periods."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..models.settlement_period import (
    AdvanceInterval,
    SettlementPeriodStatus,
    SettlementPeriodType,
)
from .audit import AuditOutcome, AuditService
from .exceptions import (
    SettlementConflictError,
    SettlementNotFoundError,
    SettlementStateError,
    SettlementValidationError,
)

LOGGER = logging.getLogger(__name__)

REUSABLE_STATUSES = frozenset(
    {SettlementPeriodStatus.OPEN, SettlementPeriodStatus.IN_PROGRESS}
)

ALLOWED_TRANSITIONS: dict[SettlementPeriodStatus, frozenset[SettlementPeriodStatus]] = {
    SettlementPeriodStatus.OPEN: frozenset(
        {SettlementPeriodStatus.IN_PROGRESS, SettlementPeriodStatus.CANCELLED}
    ),
    SettlementPeriodStatus.IN_PROGRESS: frozenset(
        {
            SettlementPeriodStatus.PENDING_REVIEW,
            SettlementPeriodStatus.OPEN,
            SettlementPeriodStatus.CANCELLED,
        }
    ),
    SettlementPeriodStatus.PENDING_REVIEW: frozenset(
        {
            SettlementPeriodStatus.APPROVED,
            SettlementPeriodStatus.IN_PROGRESS,
            SettlementPeriodStatus.CANCELLED,
        }
    ),
    SettlementPeriodStatus.APPROVED: frozenset(
        {SettlementPeriodStatus.CLOSED, SettlementPeriodStatus.CANCELLED}
    ),
    SettlementPeriodStatus.CLOSED: frozenset(),
    SettlementPeriodStatus.CANCELLED: frozenset(),
}

BULK_ADVANCE_MONTHS: dict[AdvanceInterval, tuple[int, ...]] = {
    AdvanceInterval.MONTHLY: tuple(range(1, 13)),
    AdvanceInterval.QUARTERLY: (3, 6, 9, 12),
}


def _status_names(statuses: Iterable[SettlementPeriodStatus]) -> list[str]:
    return sorted(status.value for status in statuses)


def build_period_key(
    year: int,
    period_type: SettlementPeriodType,
    month: Optional[int] = None,
) -> str:
    """Return the natural key of a period, unique per tenant and park."""

    if SettlementPeriodType(period_type) == SettlementPeriodType.FINAL:
        return f"{year}-FINAL"
    if month is None:
        return f"{year}-ADVANCE-YR"
    return f"{year}-ADVANCE-{month:02d}"


def normalize_period_shape(
    period_type: SettlementPeriodType,
    advance_interval: Optional[AdvanceInterval],
    month: Optional[int],
) -> Tuple[Optional[AdvanceInterval], Optional[int]]:
    """Validate the month/interval combination for a period type."""

    if period_type == SettlementPeriodType.FINAL:
        if month is not None:
            raise SettlementValidationError("FINAL periods cannot carry a month")
        if advance_interval is not None:
            raise SettlementValidationError("FINAL periods cannot carry an advance interval")
        return None, None

    if advance_interval is None:
        if month is not None:
            raise SettlementValidationError(
                "advance_interval is required for monthly or quarterly advance periods"
            )
        return AdvanceInterval.YEARLY, None

    if advance_interval == AdvanceInterval.YEARLY:
        if month is not None:
            raise SettlementValidationError("YEARLY advance periods cannot carry a month")
        return advance_interval, None

    if month is None:
        raise SettlementValidationError(
            f"{advance_interval.value} advance periods require a month"
        )
    allowed_months = BULK_ADVANCE_MONTHS[advance_interval]
    if month not in allowed_months:
        raise SettlementValidationError(
            f"{advance_interval.value} advance periods must use one of the months "
            f"{', '.join(str(value) for value in allowed_months)}"
        )
    return advance_interval, month


@dataclass
class PeriodCreateResult:
    """Outcome of a create request: a new period or a reused one."""

    period: models.SettlementPeriod
    created: bool
    replaced_period_id: Optional[str] = None


class SettlementPeriodService:
    """Encapsulates the settlement period lifecycle."""

    @staticmethod
    def get_period(
        db: Session,
        tenant_id: str,
        period_id: str,
        *,
        for_update: bool = False,
    ) -> models.SettlementPeriod:
        query = db.query(models.SettlementPeriod).filter(
            models.SettlementPeriod.id == period_id,
            models.SettlementPeriod.tenant_id == tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        period = query.first()
        if period is None:
            raise SettlementNotFoundError("Settlement period not found")
        return period

    @staticmethod
    def get_park(db: Session, tenant_id: str, park_id: str) -> models.Park:
        park = (
            db.query(models.Park)
            .filter(models.Park.id == park_id, models.Park.tenant_id == tenant_id)
            .first()
        )
        if park is None:
            raise SettlementNotFoundError("Park not found")
        return park

    @staticmethod
    def _find_by_key(
        db: Session, tenant_id: str, park_id: str, period_key: str
    ) -> Optional[models.SettlementPeriod]:
        return (
            db.query(models.SettlementPeriod)
            .filter(
                models.SettlementPeriod.tenant_id == tenant_id,
                models.SettlementPeriod.park_id == park_id,
                models.SettlementPeriod.period_key == period_key,
            )
            .with_for_update()
            .first()
        )

    @staticmethod
    def _ensure_single_advance_interval(
        db: Session,
        tenant_id: str,
        park_id: str,
        year: int,
        advance_interval: AdvanceInterval,
    ) -> None:
        """Reject advances whose interval differs from the park's other advances that year.

        Mixed intervals would credit the same months twice under different keys.
        """

        other = (
            db.query(models.SettlementPeriod)
            .filter(
                models.SettlementPeriod.tenant_id == tenant_id,
                models.SettlementPeriod.park_id == park_id,
                models.SettlementPeriod.year == year,
                models.SettlementPeriod.period_type == SettlementPeriodType.ADVANCE,
                models.SettlementPeriod.status != SettlementPeriodStatus.CANCELLED,
                models.SettlementPeriod.advance_interval != advance_interval,
            )
            .first()
        )
        if other is not None:
            existing = AdvanceInterval(other.advance_interval)
            raise SettlementConflictError(
                f"Advance period {other.period_key} already uses the {existing.value} "
                f"interval; {year} advances cannot be {advance_interval.value}",
                existing_status=SettlementPeriodStatus(other.status).value,
            )

    @staticmethod
    def _ensure_same_interval(
        period: models.SettlementPeriod, advance_interval: Optional[AdvanceInterval]
    ) -> None:
        current = AdvanceInterval(period.advance_interval) if period.advance_interval else None
        if current != advance_interval:
            raise SettlementConflictError(
                f"Settlement period {period.period_key} exists with advance interval "
                f"{current.value if current else 'none'}",
                existing_status=SettlementPeriodStatus(period.status).value,
            )

    @classmethod
    def create_period(
        cls,
        db: Session,
        tenant_id: str,
        data: schemas.SettlementPeriodCreate,
        *,
        created_by: Optional[str] = None,
    ) -> PeriodCreateResult:
        """Create a period, re-enter an in-flight one or replace a cancelled one."""

        cls.get_park(db, tenant_id, data.park_id)
        advance_interval, month = normalize_period_shape(
            data.period_type, data.advance_interval, data.month
        )
        period_key = build_period_key(data.year, data.period_type, month)
        if advance_interval is not None:
            cls._ensure_single_advance_interval(
                db, tenant_id, data.park_id, data.year, advance_interval
            )

        existing = cls._find_by_key(db, tenant_id, data.park_id, period_key)
        replaced_id = None
        if existing is not None:
            status = SettlementPeriodStatus(existing.status)
            if status in REUSABLE_STATUSES:
                cls._ensure_same_interval(existing, advance_interval)
                LOGGER.info(
                    "Reusing settlement period %s (%s) for tenant %s",
                    existing.id,
                    status.value,
                    tenant_id,
                )
                return PeriodCreateResult(period=existing, created=False)
            if status != SettlementPeriodStatus.CANCELLED:
                raise SettlementConflictError(
                    f"A settlement period {period_key} already exists with status {status.value}",
                    existing_status=status.value,
                )
            replaced_id = existing.id
            db.delete(existing)
            db.flush()

        period = models.SettlementPeriod(
            tenant_id=tenant_id,
            park_id=data.park_id,
            period_key=period_key,
            year=data.year,
            month=month,
            period_type=data.period_type,
            advance_interval=advance_interval,
            status=SettlementPeriodStatus.OPEN,
            total_revenue=data.total_revenue,
            linked_energy_settlement_id=data.linked_energy_settlement_id,
            notes=data.notes,
            created_by=created_by,
        )
        try:
            with db.begin_nested():
                db.add(period)
        except IntegrityError as exc:
            # Another request inserted the same key first.
            winner = cls._find_by_key(db, tenant_id, data.park_id, period_key)
            if winner is not None and SettlementPeriodStatus(winner.status) in REUSABLE_STATUSES:
                cls._ensure_same_interval(winner, advance_interval)
                db.commit()
                LOGGER.info(
                    "Settlement period %s was created concurrently; reusing %s",
                    period_key,
                    winner.id,
                )
                return PeriodCreateResult(period=winner, created=False)
            existing_status = (
                SettlementPeriodStatus(winner.status).value if winner is not None else None
            )
            raise SettlementConflictError(
                f"A settlement period {period_key} was created concurrently",
                existing_status=existing_status,
            ) from exc
        db.commit()
        db.refresh(period)

        if replaced_id:
            LOGGER.info(
                "Replaced cancelled settlement period %s with %s", replaced_id, period.id
            )
        else:
            LOGGER.info("Created settlement period %s (%s)", period.id, period_key)
        AuditService.record_event(
            db,
            "settlement_period.created",
            AuditOutcome.SUCCESS,
            tenant_id=tenant_id,
            tags={"period_key": period_key, "park_id": data.park_id},
            metadata={"replaced_period_id": replaced_id} if replaced_id else None,
        )
        return PeriodCreateResult(period=period, created=True, replaced_period_id=replaced_id)

    @classmethod
    def bulk_create_periods(
        cls,
        db: Session,
        tenant_id: str,
        data: schemas.SettlementPeriodBulkCreate,
        *,
        created_by: Optional[str] = None,
    ) -> Tuple[list[models.SettlementPeriod], list[str]]:
        cls.get_park(db, tenant_id, data.park_id)
        months = BULK_ADVANCE_MONTHS.get(data.advance_interval)
        if months is None:
            raise SettlementValidationError(
                "Bulk creation supports MONTHLY or QUARTERLY advances only"
            )
        cls._ensure_single_advance_interval(
            db, tenant_id, data.park_id, data.year, data.advance_interval
        )

        planned: list[tuple[str, SettlementPeriodType, Optional[int]]] = [
            (
                build_period_key(data.year, SettlementPeriodType.ADVANCE, month),
                SettlementPeriodType.ADVANCE,
                month,
            )
            for month in months
        ]
        if data.include_final:
            planned.append(
                (
                    build_period_key(data.year, SettlementPeriodType.FINAL),
                    SettlementPeriodType.FINAL,
                    None,
                )
            )

        existing_keys = {
            key
            for (key,) in db.query(models.SettlementPeriod.period_key)
            .filter(
                models.SettlementPeriod.tenant_id == tenant_id,
                models.SettlementPeriod.park_id == data.park_id,
                models.SettlementPeriod.year == data.year,
            )
            .all()
        }

        created: list[models.SettlementPeriod] = []
        skipped: list[str] = []
        for period_key, period_type, month in planned:
            if period_key in existing_keys:
                skipped.append(period_key)
                continue
            period = models.SettlementPeriod(
                tenant_id=tenant_id,
                park_id=data.park_id,
                period_key=period_key,
                year=data.year,
                month=month,
                period_type=period_type,
                advance_interval=(
                    data.advance_interval
                    if period_type == SettlementPeriodType.ADVANCE
                    else None
                ),
                status=SettlementPeriodStatus.OPEN,
                created_by=created_by,
            )
            db.add(period)
            created.append(period)

        if not created:
            raise SettlementConflictError(
                f"All settlement periods for {data.year} already exist"
            )

        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise SettlementConflictError(
                f"Settlement periods for {data.year} were created concurrently"
            ) from exc
        for period in created:
            db.refresh(period)

        LOGGER.info(
            "Created %d settlement periods for park %s in %s (skipped %d)",
            len(created),
            data.park_id,
            data.year,
            len(skipped),
        )
        return created, skipped

    @staticmethod
    def list_periods(
        db: Session,
        tenant_id: str,
        *,
        park_id: Optional[str] = None,
        year: Optional[int] = None,
        period_type: Optional[SettlementPeriodType] = None,
        status: Optional[SettlementPeriodStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[list[models.SettlementPeriod], int]:
        query = db.query(models.SettlementPeriod).filter(
            models.SettlementPeriod.tenant_id == tenant_id
        )
        if park_id:
            query = query.filter(models.SettlementPeriod.park_id == park_id)
        if year is not None:
            query = query.filter(models.SettlementPeriod.year == year)
        if period_type is not None:
            query = query.filter(models.SettlementPeriod.period_type == period_type)
        if status is not None:
            query = query.filter(models.SettlementPeriod.status == status)

        total = query.count()
        items = (
            query.order_by(
                models.SettlementPeriod.year.desc(),
                models.SettlementPeriod.period_key.asc(),
            )
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @classmethod
    def update_status(
        cls,
        db: Session,
        tenant_id: str,
        period_id: str,
        new_status: SettlementPeriodStatus,
        *,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> models.SettlementPeriod:
        period = cls.get_period(db, tenant_id, period_id, for_update=True)
        current = SettlementPeriodStatus(period.status)
        target = SettlementPeriodStatus(new_status)

        if target not in ALLOWED_TRANSITIONS[current]:
            allowed_from = [
                source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets
            ]
            raise SettlementStateError(
                f"Cannot change settlement period from {current.value} to {target.value}; "
                f"requires one of {', '.join(_status_names(allowed_from)) or 'none'}",
                current=current.value,
                required=_status_names(allowed_from),
            )

        if target == SettlementPeriodStatus.PENDING_REVIEW:
            if period.calculated_at is None:
                raise SettlementStateError(
                    "Settlement period has no calculated items; run calculation first",
                    current=current.value,
                    required=[SettlementPeriodStatus.IN_PROGRESS.value],
                )
            period.reviewed_by = None
            period.reviewed_at = None
            period.review_notes = None
        elif target == SettlementPeriodStatus.APPROVED:
            period.reviewed_by = user_id
            period.reviewed_at = datetime.now(timezone.utc)
            period.review_notes = notes
        elif current == SettlementPeriodStatus.PENDING_REVIEW:
            period.review_notes = notes

        period.status = target
        db.add(period)
        db.commit()
        db.refresh(period)
        LOGGER.info(
            "Settlement period %s moved from %s to %s", period.id, current.value, target.value
        )
        AuditService.record_event(
            db,
            "settlement_period.status_changed",
            AuditOutcome.SUCCESS,
            tenant_id=tenant_id,
            tags={"from": current.value, "to": target.value},
            metadata={"period_id": period.id, "user_id": user_id},
        )
        return period

    @classmethod
    def delete_period(cls, db: Session, tenant_id: str, period_id: str) -> None:
        period = cls.get_period(db, tenant_id, period_id, for_update=True)
        current = SettlementPeriodStatus(period.status)
        if current != SettlementPeriodStatus.OPEN:
            raise SettlementStateError(
                f"Settlement period is {current.value}; only OPEN periods can be deleted",
                current=current.value,
                required=[SettlementPeriodStatus.OPEN.value],
            )
        db.delete(period)
        db.commit()
        LOGGER.info("Deleted settlement period %s", period_id)
