"""System ORM model: a billing zone owning a rate schedule."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from waterflow.models import Base, BaseModel
from waterflow.schemas.tariffs import RateSchedule


class System(Base, BaseModel):
    """Billing zone. Every connection is billed with its system's schedule.

    The schedule is stored as a JSON document and parsed into a typed
    ``RateSchedule`` on write and whenever it is loaded for billing, so a
    malformed document surfaces as ``MalformedScheduleError`` before any
    amount is computed.
    """

    __tablename__ = "systems"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Billing zone name",
    )
    rate_schedule: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Per-category tariff document, see RateSchedule",
    )

    @validates("rate_schedule")
    def _validate_rate_schedule(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        RateSchedule.from_document(value)
        return value

    def load_schedule(self) -> RateSchedule:
        """Parse the stored document into a typed schedule.

        Raises:
            MalformedScheduleError: If the stored document does not validate
        """
        return RateSchedule.from_document(self.rate_schedule)

    def __repr__(self) -> str:
        return f"<System(id={self.id}, name={self.name!r})>"


__all__ = ["System"]
