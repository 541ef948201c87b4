"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from waterflow.models.audit_log import AuditLog  # noqa: E402
from waterflow.models.company import Company  # noqa: E402
from waterflow.models.connection import Connection, ConnectionCategory  # noqa: E402
from waterflow.models.customer import Customer  # noqa: E402
from waterflow.models.invoice import (  # noqa: E402
    ConsumptionInvoice,
    InfractionInvoice,
    Invoice,
    InvoiceStatus,
    InvoiceType,
)
from waterflow.models.payment import Payment  # noqa: E402
from waterflow.models.reading import Reading  # noqa: E402
from waterflow.models.sequence_counter import SequenceCounter  # noqa: E402
from waterflow.models.system import System  # noqa: E402
from waterflow.models.user import User  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "AuditLog",
    "Company",
    "Connection",
    "ConnectionCategory",
    "ConsumptionInvoice",
    "Customer",
    "InfractionInvoice",
    "Invoice",
    "InvoiceStatus",
    "InvoiceType",
    "Payment",
    "Reading",
    "SequenceCounter",
    "System",
    "User",
]
