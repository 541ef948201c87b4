"""Pydantic schemas for reading submission."""

import math
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from waterflow.errors import InvalidInputError


class ReadingSubmission(BaseModel):
    """Payload for a new meter reading, as handed over by the HTTP layer.

    ``actor_id`` is the authenticated operator; authentication itself happens
    before this payload is built.
    """

    customer_id: int = Field(..., gt=0, description="Customer that owns the connection")
    connection_id: int = Field(..., gt=0, description="Connection the meter belongs to")
    # Same precision as the readings.current_reading column
    current_reading: Decimal = Field(
        ..., ge=0, max_digits=12, decimal_places=3, description="Value shown on the meter"
    )
    actor_id: int = Field(..., gt=0, description="Operator submitting the reading")
    notes: str | None = Field(None, max_length=2000, description="Free-text notes")
    image_path: str | None = Field(None, max_length=500, description="Stored meter photo")

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @field_validator("current_reading", mode="before")
    @classmethod
    def _finite_number(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("current_reading must be a number")
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError("current_reading must be finite")
            return Decimal(str(value))
        return value

    @field_validator("current_reading")
    @classmethod
    def _no_special_values(cls, value: Decimal) -> Decimal:
        if not value.is_finite():
            raise ValueError("current_reading must be finite")
        return value

    @classmethod
    def parse(cls, **data: Any) -> "ReadingSubmission":
        """Build a submission, mapping validation failures to InvalidInputError."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise InvalidInputError(
                f"Invalid reading submission: {', '.join(fields) or 'payload'}",
                fields=fields,
            ) from exc


__all__ = ["ReadingSubmission"]
