"""Customer ORM model carrying the prepaid credit balance."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waterflow.models import Base, BaseModel


class Customer(Base, BaseModel):
    """Billed party owning one or more connections.

    ``available_credit`` is prepaid balance that new invoices settle against
    automatically. It is shared mutable state between concurrent reading
    submissions, so it must only be read and written inside the ingestion
    transaction that owns the customer row.
    """

    __tablename__ = "customers"

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Human-facing customer code",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
        comment="Operator that bills this customer",
    )

    available_credit: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Prepaid balance applied to new invoices",
    )

    # Relationships
    company: Mapped["Company"] = relationship(  # noqa: F821
        "Company",
        foreign_keys=[company_id],
    )
    connections: Mapped[list["Connection"]] = relationship(  # noqa: F821
        "Connection",
        back_populates="customer",
    )

    __table_args__ = (
        CheckConstraint("available_credit >= 0", name="ck_customer_credit_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Customer(id={self.id}, code={self.code!r}, "
            f"available_credit={self.available_credit})>"
        )


__all__ = ["Customer"]
