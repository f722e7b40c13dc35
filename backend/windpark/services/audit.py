"""Helpers to persist settlement audit events without affecting the caller."""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from .. import models
from ..database import session_scope

LOGGER = logging.getLogger(__name__)


class AuditOutcome(str):
    SUCCESS = "success"
    REJECTED = "rejected"
    ERROR = "error"


class AuditService:
    """Write-only sink for settlement operations."""

    @staticmethod
    def record_event(
        db: Session,
        event_type: str,
        outcome: str,
        *,
        tenant_id: str | None = None,
        duration_ms: float | None = None,
        tags: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        event = models.SettlementAuditEvent(
            event_type=event_type,
            outcome=outcome,
            tenant_id=tenant_id,
            duration_ms=Decimal(str(round(duration_ms, 3))) if duration_ms is not None else None,
            tags=tags or {},
            details=metadata or None,
        )
        AuditService._persist(db, event)

    @staticmethod
    def timed_event(
        db: Session,
        event_type: str,
        *,
        tenant_id: str | None = None,
        tags: dict[str, Any] | None = None,
    ):
        """Context manager recording the duration and outcome of an operation."""

        class _Timer:
            def __enter__(self):
                self._start = time.perf_counter()
                return self

            def __exit__(self, exc_type, exc, tb):
                duration = (time.perf_counter() - self._start) * 1000
                if exc is None:
                    outcome = AuditOutcome.SUCCESS
                elif isinstance(exc, RuntimeError):
                    outcome = AuditOutcome.REJECTED
                else:
                    outcome = AuditOutcome.ERROR
                AuditService.record_event(
                    db,
                    event_type,
                    outcome,
                    tenant_id=tenant_id,
                    duration_ms=duration,
                    tags=tags,
                    metadata={"exception": str(exc)} if exc else None,
                )
                return False

        return _Timer()

    @staticmethod
    def _persist(db: Session, event: models.SettlementAuditEvent) -> None:
        try:
            with session_scope(db.get_bind()) as audit_session:
                audit_session.add(event)
        except Exception:  # pragma: no cover - audit failures must not break settlements
            LOGGER.exception("Failed to persist settlement audit event %s", event.event_type)
