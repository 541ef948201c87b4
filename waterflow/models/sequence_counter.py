"""Sequence counter model backing sequential business codes."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from waterflow.models import Base, BaseModel


class SequenceCounter(Base, BaseModel):
    """One row per code namespace holding the last issued value.

    Only SequenceService touches this table; it increments ``current_value``
    with a single atomic UPDATE so concurrent callers never share a value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Namespace, e.g. 'reading' or 'invoice'",
    )
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Last issued value",
    )

    def __repr__(self) -> str:
        return f"<SequenceCounter(name={self.name!r}, current_value={self.current_value})>"


__all__ = ["SequenceCounter"]
