"""Payment ORM model for automatic settlements from prepaid credit."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waterflow.models import Base, BaseModel


class Payment(Base, BaseModel):
    """Model representing settlement of an invoice from available credit.

    Links customer to invoice with amount, date, and optional notes.
    """

    __tablename__ = "payments"

    # Foreign keys
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"),
        nullable=False,
        index=True,
        comment="Customer whose credit paid the invoice",
    )
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id"),
        nullable=False,
        index=True,
        comment="Invoice being settled",
    )
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"),
        nullable=False,
    )
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    # Payment details
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount settled, equals the invoice's credit_applied",
    )
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Optional payment comment",
    )

    # Relationships
    invoice: Mapped["Invoice"] = relationship(  # noqa: F821
        "Invoice",
        back_populates="payments",
        foreign_keys=[invoice_id],
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_customer_date", "customer_id", "payment_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, customer_id={self.customer_id}, invoice_id={self.invoice_id}, "
            f"amount={self.amount}, payment_date={self.payment_date})>"
        )


__all__ = ["Payment"]
