"""Billing error hierarchy and response helpers.

Every failure of the billing core is a ``BillingError`` subclass carrying a
stable ``code``, an HTTP-equivalent status for the outer layers, and whether
retrying the unchanged request can succeed.
"""

from http import HTTPStatus
from typing import Any, Dict


class BillingError(Exception):
    """Base billing error."""

    code = "billing_error"
    http_status = HTTPStatus.INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str, **details: Any):
        """Initialize error."""
        self.message = message
        self.details = details
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        """True when the caller can fix the request; False for server faults."""
        return self.http_status < HTTPStatus.INTERNAL_SERVER_ERROR


class InvalidInputError(BillingError):
    """Malformed identifiers or reading value."""

    code = "invalid_input"
    http_status = HTTPStatus.BAD_REQUEST


class NotFoundError(BillingError):
    """Customer or connection does not exist."""

    code = "not_found"
    http_status = HTTPStatus.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class OwnershipMismatchError(BillingError):
    """Connection belongs to a different customer than the one supplied."""

    code = "ownership_mismatch"
    http_status = HTTPStatus.BAD_REQUEST


class ReadingRegressionError(BillingError):
    """Submitted meter value is lower than the previous one."""

    code = "reading_regression"
    http_status = HTTPStatus.BAD_REQUEST

    def __init__(self, previous_reading, current_reading):
        self.previous_reading = previous_reading
        self.current_reading = current_reading
        super().__init__(
            f"Current reading ({current_reading}) cannot be lower than "
            f"previous reading ({previous_reading})",
            previous_reading=str(previous_reading),
            current_reading=str(current_reading),
        )


class SystemMissingError(BillingError):
    """Connection references a billing system that cannot be resolved."""

    code = "system_missing"


class MalformedScheduleError(BillingError):
    """Rate schedule is missing fields or has invalid bands."""

    code = "malformed_schedule"


class InvalidCategoryError(BillingError):
    """Connection category has no tariff branch."""

    code = "invalid_category"

    def __init__(self, category: Any):
        self.category = category
        super().__init__(f"Unknown connection category: {category!r}", category=str(category))


class AllocatorUnavailableError(BillingError):
    """Sequence counter could not be incremented."""

    code = "allocator_unavailable"
    http_status = HTTPStatus.SERVICE_UNAVAILABLE
    retryable = True


class StorageUnavailableError(BillingError):
    """Transaction could not be completed because of a storage fault."""

    code = "storage_unavailable"
    http_status = HTTPStatus.SERVICE_UNAVAILABLE
    retryable = True


class PersistenceError(BillingError):
    """Storage rejected the write for good (constraint violation, value out of range)."""

    code = "persistence_error"


def error_response(error: BillingError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }


__all__ = [
    "AllocatorUnavailableError",
    "BillingError",
    "InvalidCategoryError",
    "InvalidInputError",
    "MalformedScheduleError",
    "NotFoundError",
    "OwnershipMismatchError",
    "PersistenceError",
    "ReadingRegressionError",
    "StorageUnavailableError",
    "SystemMissingError",
    "error_response",
]
