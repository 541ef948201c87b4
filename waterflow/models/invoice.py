"""Invoice ORM models: one base table with consumption and infraction variants."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waterflow.models import Base, BaseModel


class InvoiceType(str, Enum):
    """Invoice variants (polymorphic identity)."""

    CONSUMPTION = "consumption"
    """Bill for metered consumption, tied 1:1 to a reading"""

    INFRACTION = "infraction"
    """Penalty bill for a recorded infraction"""


class InvoiceStatus(str, Enum):
    """Invoice settlement state."""

    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Invoice(Base, BaseModel):
    """Common invoice record shared by every variant.

    Amount invariants, enforced when the invoice is issued:
    - total_amount == base_amount + tax_amount
    - remaining_debt == total_amount - credit_applied
    - status is PAID exactly when remaining_debt is zero

    Variant-specific references live in the joined subclass tables, where
    they are NOT NULL, instead of being conditionally required here.
    """

    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        comment="Sequential human-facing number, e.g. INV000001",
    )
    invoice_type: Mapped[InvoiceType] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )

    # Foreign keys
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    # Amounts
    base_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Tariff result before tax",
    )
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="base_amount + tax_amount",
    )
    credit_applied: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Settled from the customer's available credit",
    )
    remaining_debt: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True,
    )
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    billing_month: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="YYYY-MM of the issue date",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    customer: Mapped["Customer"] = relationship(  # noqa: F821
        "Customer",
        foreign_keys=[customer_id],
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="invoice",
    )

    __mapper_args__ = {
        "polymorphic_on": "invoice_type",
        "polymorphic_abstract": True,
    }

    __table_args__ = (
        CheckConstraint("credit_applied >= 0", name="ck_invoice_credit_non_negative"),
        CheckConstraint("remaining_debt >= 0", name="ck_invoice_debt_non_negative"),
        Index("idx_invoice_customer_status", "customer_id", "status"),
    )

    @property
    def is_settled(self) -> bool:
        return self.remaining_debt == 0

    @property
    def billed_item(self) -> str:
        """Short description of what the invoice charges for."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(id={self.id}, number={self.invoice_number!r}, "
            f"total={self.total_amount}, remaining={self.remaining_debt}, status={self.status})>"
        )


class ConsumptionInvoice(Invoice):
    """Invoice for metered consumption of one reading."""

    __tablename__ = "consumption_invoices"

    id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), primary_key=True)
    reading_id: Mapped[int] = mapped_column(
        ForeignKey("readings.id"),
        nullable=False,
        unique=True,
    )
    connection_id: Mapped[int] = mapped_column(
        ForeignKey("connections.id"),
        nullable=False,
        index=True,
    )

    reading: Mapped["Reading"] = relationship(  # noqa: F821
        "Reading",
        foreign_keys=[reading_id],
    )

    __mapper_args__ = {"polymorphic_identity": InvoiceType.CONSUMPTION.value}

    @property
    def billed_item(self) -> str:
        return f"reading {self.reading_id}"


class InfractionInvoice(Invoice):
    """Penalty invoice for an infraction recorded against the customer."""

    __tablename__ = "infraction_invoices"

    id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), primary_key=True)
    infraction_reference: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Identifier of the infraction record in the inspection system",
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    __mapper_args__ = {"polymorphic_identity": InvoiceType.INFRACTION.value}

    @property
    def billed_item(self) -> str:
        return f"infraction {self.infraction_reference}"


__all__ = [
    "ConsumptionInvoice",
    "InfractionInvoice",
    "Invoice",
    "InvoiceStatus",
    "InvoiceType",
]
