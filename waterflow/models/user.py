"""User ORM model for operators who submit readings and issue invoices."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from waterflow.models import Base, BaseModel


class User(Base, BaseModel):
    """Operator account referenced as the creator of billing records.

    Authentication and role management live outside this package; the row
    exists so readings, invoices and audit entries can reference their actor.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Operator display name",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
        comment="Inactive operators keep their history but cannot act",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name!r}, is_active={self.is_active})>"


__all__ = ["User"]
