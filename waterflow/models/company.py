"""Company ORM model for the water utility operator owning customers."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from waterflow.models import Base, BaseModel


class Company(Base, BaseModel):
    """Utility operator. Readings, invoices and payments are scoped to one."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Operator name",
    )

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name!r})>"


__all__ = ["Company"]
