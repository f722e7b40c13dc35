"""Sequential invoice numbers per tenant, document type and year."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..models.invoice import InvoiceType

LOGGER = logging.getLogger(__name__)

NUMBER_PREFIXES = {
    InvoiceType.CREDIT_NOTE: "GS",
    InvoiceType.INVOICE: "RE",
}


class InvoiceNumberService:
    @staticmethod
    def _locked_sequence(
        db: Session, tenant_id: str, invoice_type: InvoiceType, year: int
    ) -> Optional[models.InvoiceNumberSequence]:
        return (
            db.query(models.InvoiceNumberSequence)
            .filter(
                models.InvoiceNumberSequence.tenant_id == tenant_id,
                models.InvoiceNumberSequence.invoice_type == invoice_type,
                models.InvoiceNumberSequence.year == year,
            )
            .with_for_update()
            .first()
        )

    @classmethod
    def next_number(
        cls, db: Session, tenant_id: str, invoice_type: InvoiceType, year: int
    ) -> str:
        """Reserve the next number, e.g. ``GS-2025-00001``.

        The sequence row is locked until the caller's transaction ends. When two
        transactions start the same sequence, the loser re-reads the winner's row.
        """

        sequence = cls._locked_sequence(db, tenant_id, invoice_type, year)
        if sequence is None:
            candidate = models.InvoiceNumberSequence(
                tenant_id=tenant_id,
                invoice_type=invoice_type,
                year=year,
                last_value=0,
            )
            try:
                with db.begin_nested():
                    db.add(candidate)
                sequence = candidate
            except IntegrityError:
                LOGGER.info(
                    "Invoice number sequence %s/%s for tenant %s was started concurrently",
                    invoice_type.value,
                    year,
                    tenant_id,
                )
                sequence = cls._locked_sequence(db, tenant_id, invoice_type, year)
                if sequence is None:
                    raise
        sequence.last_value = (sequence.last_value or 0) + 1
        db.flush()
        return f"{NUMBER_PREFIXES[invoice_type]}-{year}-{sequence.last_value:05d}"
