"""Tariff engine: base amount for a consumption under a system's rate schedule.

Pure functions, no I/O. Every accumulation step is rounded to cents so the
result matches historical invoices band for band.
"""

import logging
from decimal import Decimal
from typing import Callable

from waterflow.errors import InvalidCategoryError, InvalidInputError, MalformedScheduleError
from waterflow.schemas.tariffs import (
    Band,
    ConnectionCategory,
    MinimumChargeRates,
    RateSchedule,
)
from waterflow.services.money import round_money

logger = logging.getLogger(__name__)


def _tiered(start: Decimal, consumption: Decimal, bands: tuple[Band, ...]) -> Decimal:
    # Progressive tiers: each band bills only the part of consumption inside it
    amount = round_money(start)
    for band in bands:
        if consumption > band.min:
            upper = consumption if band.max is None else min(consumption, band.max)
            amount = round_money(amount + (upper - band.min) * band.unit_price)
    return amount


def _minimum_charge(consumption: Decimal, rates: MinimumChargeRates) -> Decimal:
    amount = round_money(rates.base_fee)
    if consumption > rates.minimum_consumption:
        amount = round_money(
            amount + (consumption - rates.minimum_consumption) * rates.overage_rate
        )
    return amount


def _require(section, category: ConnectionCategory):
    if section is None:
        raise MalformedScheduleError(
            f"Rate schedule has no {category.value} section",
            category=category.value,
        )
    return section


def _fountain(consumption: Decimal, schedule: RateSchedule) -> Decimal:
    rate = _require(schedule.fountain_rate, ConnectionCategory.FOUNTAIN)
    return round_money(consumption * rate)


def _domestic(consumption: Decimal, schedule: RateSchedule) -> Decimal:
    rates = _require(schedule.domestic, ConnectionCategory.DOMESTIC)
    return _tiered(schedule.availability_fee, consumption, rates.bands)


def _municipal(consumption: Decimal, schedule: RateSchedule) -> Decimal:
    rates = _require(schedule.municipal, ConnectionCategory.MUNICIPAL)
    if rates.use_tiers:
        return _tiered(schedule.availability_fee, consumption, rates.bands)
    return round_money(round_money(schedule.availability_fee) + consumption * rates.flat_rate)


def _public_commerce(consumption: Decimal, schedule: RateSchedule) -> Decimal:
    rates = _require(schedule.public_commerce, ConnectionCategory.PUBLIC_COMMERCE)
    return _minimum_charge(consumption, rates)


def _industrial(consumption: Decimal, schedule: RateSchedule) -> Decimal:
    rates = _require(schedule.industrial, ConnectionCategory.INDUSTRIAL)
    return _minimum_charge(consumption, rates)


_BRANCHES: dict[ConnectionCategory, Callable[[Decimal, RateSchedule], Decimal]] = {
    ConnectionCategory.FOUNTAIN: _fountain,
    ConnectionCategory.DOMESTIC: _domestic,
    ConnectionCategory.MUNICIPAL: _municipal,
    ConnectionCategory.PUBLIC_COMMERCE: _public_commerce,
    ConnectionCategory.INDUSTRIAL: _industrial,
}


def parse_category(category: ConnectionCategory | str) -> ConnectionCategory:
    """Resolve a stored category value to its enum member.

    Raises:
        InvalidCategoryError: If the value has no tariff branch
    """
    try:
        return ConnectionCategory(category)
    except ValueError as exc:
        raise InvalidCategoryError(category) from exc


def compute_base_amount(
    category: ConnectionCategory | str,
    consumption: Decimal,
    schedule: RateSchedule,
) -> Decimal:
    """Compute the pre-tax amount for a consumption.

    Args:
        category: Connection category selecting the tariff branch
        consumption: Consumed volume, non-negative
        schedule: Validated rate schedule of the connection's system

    Returns:
        Base amount rounded to cents

    Raises:
        InvalidCategoryError: If the category has no tariff branch
        MalformedScheduleError: If the schedule lacks the category's section
        InvalidInputError: If consumption is negative
    """
    resolved = parse_category(category)
    consumption = Decimal(consumption)
    if consumption < 0:
        raise InvalidInputError(f"Consumption must be non-negative, got {consumption}")

    amount = _BRANCHES[resolved](consumption, schedule)
    logger.debug(
        "Tariff %s: consumption=%s base_amount=%s", resolved.value, consumption, amount
    )
    return amount


__all__ = ["compute_base_amount", "parse_category"]
