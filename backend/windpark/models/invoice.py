"""Models for credit notes and allocation invoices created by settlements."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class InvoiceType(str, enum.Enum):
    """Kinds of documents issued by the settlement engine."""

    CREDIT_NOTE = "CREDIT_NOTE"
    INVOICE = "INVOICE"


class InvoiceStatus(str, enum.Enum):
    """Status values owned by the invoicing subsystem."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class CostComponent(str, enum.Enum):
    """Lease cost component a credit note line belongs to."""

    POOL_AREA = "POOL_AREA"
    TURBINE_SITE = "TURBINE_SITE"


class TaxType(str, enum.Enum):
    """VAT treatment of an invoice line."""

    STANDARD = "STANDARD"
    EXEMPT = "EXEMPT"


INVOICE_TYPE_ENUM = Enum(
    InvoiceType,
    name="invoice_type_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

INVOICE_STATUS_ENUM = Enum(
    InvoiceStatus,
    name="invoice_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

TAX_TYPE_ENUM = Enum(
    TaxType,
    name="invoice_tax_type_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class Invoice(Base):
    """Invoice document addressed to a lessor or an operator fund."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="invoices_tenant_number_key"),
        CheckConstraint(
            "lease_id IS NOT NULL OR operator_fund_id IS NOT NULL",
            name="ck_invoices_has_recipient",
        ),
    )

    id = Column("invoice_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(GUID(), nullable=False, index=True)
    invoice_number = Column(String(32), nullable=False)
    invoice_type = Column(INVOICE_TYPE_ENUM, nullable=False)
    status = Column(INVOICE_STATUS_ENUM, nullable=False, default=InvoiceStatus.DRAFT, index=True)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    park_id = Column(
        GUID(),
        ForeignKey("parks.park_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    settlement_period_id = Column(
        GUID(),
        ForeignKey("settlement_periods.period_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    lease_id = Column(
        GUID(),
        ForeignKey("leases.lease_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    operator_fund_id = Column(
        GUID(),
        ForeignKey("operator_funds.fund_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    recipient_name = Column(String(200), nullable=False)
    recipient_address = Column(Text, nullable=True)
    net_amount = Column(Numeric(14, 2), nullable=False)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    gross_amount = Column(Numeric(14, 2), nullable=False)
    service_start = Column(Date, nullable=True)
    service_end = Column(Date, nullable=True)
    payment_reference = Column(String(140), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    settlement_period = relationship("SettlementPeriod", back_populates="invoices")
    lease = relationship("Lease", back_populates="invoices")
    operator_fund = relationship("OperatorFund")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )


class InvoiceItem(Base):
    """A single position on an invoice."""

    __tablename__ = "invoice_items"

    id = Column("invoice_item_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    invoice_id = Column(
        GUID(),
        ForeignKey("invoices.invoice_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(14, 4), nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), nullable=False)
    net_amount = Column(Numeric(14, 2), nullable=False)
    cost_component = Column(String(32), nullable=True)
    tax_type = Column(TAX_TYPE_ENUM, nullable=False, default=TaxType.EXEMPT)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    gross_amount = Column(Numeric(14, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="items")


class InvoiceNumberSequence(Base):
    """Per tenant, document type and year counter for invoice numbers."""

    __tablename__ = "invoice_number_sequences"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "invoice_type",
            "year",
            name="invoice_number_sequences_tenant_type_year_key",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(GUID(), nullable=False)
    invoice_type = Column(INVOICE_TYPE_ENUM, nullable=False)
    year = Column(Integer, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
