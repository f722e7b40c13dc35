"""API router for settlement periods, calculations and invoice generation."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..models.settlement_period import SettlementPeriodStatus, SettlementPeriodType
from ..security import TenantContext, require_tenant
from ..services import (
    CostAllocationError,
    CostAllocationService,
    SettlementCalculationService,
    SettlementConflictError,
    SettlementError,
    SettlementInvoiceService,
    SettlementNotFoundError,
    SettlementPeriodService,
)
from ..services.settlement_calculator import AdvanceResult

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _to_http_exception(exc: SettlementError) -> HTTPException:
    if isinstance(exc, SettlementNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SettlementConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _database_failure(action: str, exc: SQLAlchemyError) -> HTTPException:
    LOGGER.exception("Failed to %s", action, exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Could not {action}. Please try again later.",
    )


def _generation_response(result) -> schemas.InvoiceGenerationResponse:
    return schemas.InvoiceGenerationResponse(
        period_id=result.period.id,
        invoices=[schemas.InvoiceSummaryRead.model_validate(item) for item in result.invoices],
        skipped=result.skipped,
        allocation=(
            schemas.AllocationOutcomeRead.model_validate(result.allocation)
            if result.allocation is not None
            else None
        ),
    )


@router.get("", response_model=schemas.SettlementPeriodListResponse)
def list_settlement_periods(
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
    park_id: Optional[str] = Query(None, description="Filter by park"),
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Filter by year"),
    period_type: Optional[SettlementPeriodType] = Query(None, description="ADVANCE or FINAL"),
    status_filter: Optional[SettlementPeriodStatus] = Query(
        None, alias="status", description="Filter by lifecycle status"
    ),
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=200, description="Records to return"),
) -> schemas.SettlementPeriodListResponse:
    try:
        items, total = SettlementPeriodService.list_periods(
            db,
            context.tenant_id,
            park_id=park_id,
            year=year,
            period_type=period_type,
            status=status_filter,
            skip=skip,
            limit=limit,
        )
    except SQLAlchemyError as exc:
        raise _database_failure("load settlement periods", exc) from exc
    return schemas.SettlementPeriodListResponse(
        items=[schemas.SettlementPeriodRead.model_validate(item) for item in items],
        total=total,
        limit=limit,
        skip=skip,
    )


@router.post(
    "",
    response_model=schemas.SettlementPeriodRead,
    status_code=status.HTTP_201_CREATED,
)
def create_settlement_period(
    payload: schemas.SettlementPeriodCreate,
    response: Response,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.SettlementPeriodRead:
    try:
        result = SettlementPeriodService.create_period(
            db, context.tenant_id, payload, created_by=context.user_id
        )
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.period


@router.post(
    "/bulk",
    response_model=schemas.SettlementPeriodBulkCreateResult,
    status_code=status.HTTP_201_CREATED,
)
def bulk_create_settlement_periods(
    payload: schemas.SettlementPeriodBulkCreate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.SettlementPeriodBulkCreateResult:
    try:
        created, skipped = SettlementPeriodService.bulk_create_periods(
            db, context.tenant_id, payload, created_by=context.user_id
        )
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc
    return schemas.SettlementPeriodBulkCreateResult(
        created=[schemas.SettlementPeriodRead.model_validate(period) for period in created],
        skipped_keys=skipped,
    )


@router.get("/{period_id}", response_model=schemas.SettlementPeriodRead)
def get_settlement_period(
    period_id: str,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.SettlementPeriodRead:
    try:
        return SettlementPeriodService.get_period(db, context.tenant_id, period_id)
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc


@router.patch("/{period_id}/status", response_model=schemas.SettlementPeriodRead)
def update_settlement_period_status(
    period_id: str,
    payload: schemas.SettlementPeriodStatusUpdate,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.SettlementPeriodRead:
    try:
        return SettlementPeriodService.update_status(
            db,
            context.tenant_id,
            period_id,
            payload.status,
            user_id=context.user_id,
            notes=payload.notes,
        )
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc


@router.delete("/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_settlement_period(
    period_id: str,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> None:
    try:
        SettlementPeriodService.delete_period(db, context.tenant_id, period_id)
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc


@router.post("/{period_id}/calculate", response_model=schemas.CalculationResponse)
def calculate_settlement_period(
    period_id: str,
    payload: Optional[schemas.CalculationRequest] = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.CalculationResponse:
    payload = payload or schemas.CalculationRequest()
    try:
        outcome = SettlementCalculationService.calculate_period(
            db,
            context.tenant_id,
            period_id,
            total_revenue=payload.total_revenue,
            save_result=payload.save_result,
        )
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_failure("calculate the settlement period", exc) from exc

    if isinstance(outcome.result, AdvanceResult):
        calculation = schemas.AdvanceCalculationRead.model_validate(outcome.result)
    else:
        calculation = schemas.FinalCalculationRead.model_validate(outcome.result)
    return schemas.CalculationResponse(
        period=schemas.SettlementPeriodRead.model_validate(outcome.period),
        calculation=calculation,
        saved=outcome.saved,
    )


@router.post(
    "/{period_id}/advance-invoices",
    response_model=schemas.InvoiceGenerationResponse,
    status_code=status.HTTP_201_CREATED,
)
def generate_advance_invoices(
    period_id: str,
    payload: Optional[schemas.InvoiceGenerationRequest] = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.InvoiceGenerationResponse:
    payload = payload or schemas.InvoiceGenerationRequest()
    try:
        result = SettlementInvoiceService.generate_advance_invoices(
            db,
            context.tenant_id,
            period_id,
            initial_status=payload.initial_status,
            created_by=context.user_id,
            invoice_date=payload.invoice_date,
        )
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_failure("generate advance invoices", exc) from exc
    return _generation_response(result)


@router.post(
    "/{period_id}/settlement-invoices",
    response_model=schemas.InvoiceGenerationResponse,
    status_code=status.HTTP_201_CREATED,
)
def generate_settlement_invoices(
    period_id: str,
    payload: Optional[schemas.InvoiceGenerationRequest] = None,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.InvoiceGenerationResponse:
    payload = payload or schemas.InvoiceGenerationRequest()
    try:
        result = SettlementInvoiceService.generate_settlement_invoices(
            db,
            context.tenant_id,
            period_id,
            initial_status=payload.initial_status,
            created_by=context.user_id,
            invoice_date=payload.invoice_date,
        )
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_failure("generate settlement invoices", exc) from exc
    return _generation_response(result)


@router.post(
    "/{period_id}/cost-allocation",
    response_model=schemas.CostAllocationRunResponse,
    status_code=status.HTTP_201_CREATED,
)
def run_cost_allocation(
    period_id: str,
    db: Session = Depends(get_db),
    context: TenantContext = Depends(require_tenant),
) -> schemas.CostAllocationRunResponse:
    try:
        outcome = CostAllocationService.allocate_period(
            db, context.tenant_id, period_id, created_by=context.user_id
        )
    except CostAllocationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SettlementError as exc:
        raise _to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_failure("allocate the settlement costs", exc) from exc

    allocation = CostAllocationService.get_allocation(db, context.tenant_id, outcome.allocation_id)
    return schemas.CostAllocationRunResponse(
        allocation=schemas.CostAllocationRead.model_validate(allocation),
        invoices=[schemas.InvoiceSummaryRead.model_validate(item) for item in outcome.invoices],
    )
