"""Rate schedule schemas: typed, validated view of a system's tariff document.

A System stores its schedule as JSON. ``RateSchedule.from_document`` turns it
into these models and rejects malformed bands up front, so the tariff engine
never has to guess at missing fields.

Document shape::

    {
        "availability_fee": "150.00",
        "fountain_rate": "30.00",
        "domestic": {"bands": [
            {"min": 0, "max": 5, "unit_price": "225.81"},
            {"min": 5, "max": 10, "unit_price": "65.91"},
            {"min": 10, "max": null, "unit_price": "74.11"}
        ]},
        "municipal": {"use_tiers": false, "flat_rate": "55.00"},
        "public_commerce": {"minimum_consumption": 10, "base_fee": "900", "overage_rate": "85"},
        "industrial": {"minimum_consumption": 25, "base_fee": "2500", "overage_rate": "95"}
    }

Every category section is optional; billing a category whose section is
absent fails with ``MalformedScheduleError``.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

from waterflow.errors import MalformedScheduleError


class ConnectionCategory(str, Enum):
    """Tariff categories. Each value selects exactly one tariff branch."""

    DOMESTIC = "domestic"
    """Household supply, progressive three-band tariff"""

    FOUNTAIN = "fountain"
    """Public tap/fountain, flat rate per cubic metre"""

    MUNICIPAL = "municipal"
    """Municipal buildings, tiered or flat depending on the system"""

    PUBLIC_COMMERCE = "public_commerce"
    """Commercial premises, base fee covering a minimum plus overage"""

    INDUSTRIAL = "industrial"
    """Industrial premises, base fee covering a minimum plus overage"""


def _to_decimal(value: Any) -> Any:
    # JSON numbers arrive as float; go through str so 225.81 stays 225.81
    if isinstance(value, float):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return value
    return value


Amount = Annotated[Decimal, BeforeValidator(_to_decimal), Field(ge=0)]


class Band(BaseModel):
    """Consumption band: [min, max) at unit_price. ``max`` None means open-ended."""

    model_config = ConfigDict(frozen=True)

    min: Amount
    max: Amount | None = None
    unit_price: Amount

    @model_validator(mode="after")
    def _check_bounds(self) -> "Band":
        if self.max is not None and self.max <= self.min:
            raise ValueError(f"band max ({self.max}) must be greater than min ({self.min})")
        return self


ThreeBands = tuple[Band, Band, Band]


def _check_contiguous(bands: ThreeBands) -> None:
    first, second, third = bands
    if first.max is None or second.max is None:
        raise ValueError("only the last band may be open-ended")
    if third.max is not None:
        raise ValueError("the last band must be open-ended")
    if first.max != second.min or second.max != third.min:
        raise ValueError("bands must be contiguous and non-overlapping")


class TieredRates(BaseModel):
    """Three ascending bands (Domestic)."""

    model_config = ConfigDict(frozen=True)

    bands: ThreeBands

    @model_validator(mode="after")
    def _check_bands(self) -> "TieredRates":
        _check_contiguous(self.bands)
        return self


class MunicipalRates(BaseModel):
    """Municipal schedule: tiered when ``use_tiers`` is set, flat otherwise."""

    model_config = ConfigDict(frozen=True)

    use_tiers: bool
    flat_rate: Amount | None = None
    bands: ThreeBands | None = None

    @model_validator(mode="after")
    def _check_variant(self) -> "MunicipalRates":
        if self.use_tiers:
            if self.bands is None:
                raise ValueError("tiered municipal schedule requires bands")
            _check_contiguous(self.bands)
        elif self.flat_rate is None:
            raise ValueError("flat municipal schedule requires flat_rate")
        return self


class MinimumChargeRates(BaseModel):
    """Base fee covering a minimum consumption plus a per-unit overage rate."""

    model_config = ConfigDict(frozen=True)

    minimum_consumption: Amount
    base_fee: Amount
    overage_rate: Amount


class RateSchedule(BaseModel):
    """Complete tariff of one billing system."""

    model_config = ConfigDict(frozen=True)

    availability_fee: Amount = Decimal("0")
    fountain_rate: Amount | None = None
    domestic: TieredRates | None = None
    municipal: MunicipalRates | None = None
    public_commerce: MinimumChargeRates | None = None
    industrial: MinimumChargeRates | None = None

    @classmethod
    def from_document(cls, document: Any) -> "RateSchedule":
        """Validate a stored schedule document.

        Raises:
            MalformedScheduleError: If the document is not a valid schedule
        """
        if not isinstance(document, dict):
            raise MalformedScheduleError(
                f"Rate schedule must be a mapping, got {type(document).__name__}"
            )
        try:
            return cls.model_validate(document)
        except ValidationError as exc:
            raise MalformedScheduleError(
                f"Invalid rate schedule: {exc.error_count()} error(s)",
                errors=[
                    {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                    for err in exc.errors()
                ],
            ) from exc


__all__ = [
    "Band",
    "ConnectionCategory",
    "MinimumChargeRates",
    "MunicipalRates",
    "RateSchedule",
    "TieredRates",
]
