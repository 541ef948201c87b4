"""Reading ORM model: one immutable meter observation."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waterflow.models import Base, BaseModel


class Reading(Base, BaseModel):
    """Meter reading with the consumption derived from the previous one.

    Readings are written once by the ingestion pipeline and never updated.
    ``previous_reading`` is copied from the latest reading of the same
    connection (or the connection's initial reading) at submission time.
    """

    __tablename__ = "readings"

    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        comment="Sequential human-facing code, e.g. L001",
    )

    # Foreign keys
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )
    connection_id: Mapped[int] = mapped_column(
        ForeignKey("connections.id"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        comment="Operator who submitted the reading",
    )

    # Reading details
    reading_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    consumption: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        comment="current_reading - previous_reading",
    )
    image_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    connection: Mapped["Connection"] = relationship(  # noqa: F821
        "Connection",
        foreign_keys=[connection_id],
    )
    customer: Mapped["Customer"] = relationship(  # noqa: F821
        "Customer",
        foreign_keys=[customer_id],
    )

    __table_args__ = (
        CheckConstraint("current_reading >= previous_reading", name="ck_reading_monotonic"),
        Index("idx_reading_connection_date", "connection_id", "reading_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reading(id={self.id}, code={self.code!r}, connection_id={self.connection_id}, "
            f"previous={self.previous_reading}, current={self.current_reading})>"
        )


__all__ = ["Reading"]
