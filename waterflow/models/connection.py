"""Connection ORM model: a metered water connection point."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waterflow.models import Base, BaseModel
from waterflow.schemas.tariffs import ConnectionCategory


class ConnectionStatus(str, Enum):
    """Connection lifecycle state."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    FRAUD = "fraud"


class Connection(Base, BaseModel):
    """Physical connection point owned by a customer inside a billing system.

    Provisioning happens elsewhere; billing only reads the category, the
    owning system and ``initial_reading``, which is the baseline for the
    first reading ever submitted on the meter.
    """

    __tablename__ = "connections"

    meter_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Serial number printed on the meter",
    )

    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )
    system_id: Mapped[int] = mapped_column(
        ForeignKey("systems.id"),
        nullable=False,
        index=True,
        comment="Billing zone whose tariff applies",
    )

    # Stored as plain string so an unknown value is reported by the tariff
    # engine instead of failing inside the ORM loader
    category: Mapped[ConnectionCategory] = mapped_column(
        String(50),
        nullable=False,
        comment="Tariff category, see ConnectionCategory",
    )
    initial_reading: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        default=Decimal("0"),
        comment="Meter value at installation",
    )
    status: Mapped[ConnectionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ConnectionStatus.ACTIVE,
    )

    # Relationships
    customer: Mapped["Customer"] = relationship(  # noqa: F821
        "Customer",
        back_populates="connections",
        foreign_keys=[customer_id],
    )
    system: Mapped["System"] = relationship(  # noqa: F821
        "System",
        foreign_keys=[system_id],
    )

    __table_args__ = (
        CheckConstraint("initial_reading >= 0", name="ck_connection_initial_reading"),
    )

    def __repr__(self) -> str:
        return (
            f"<Connection(id={self.id}, meter_number={self.meter_number!r}, "
            f"category={self.category}, customer_id={self.customer_id})>"
        )


__all__ = ["Connection", "ConnectionCategory", "ConnectionStatus"]
