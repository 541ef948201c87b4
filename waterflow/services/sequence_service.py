"""Sequence allocation for human-facing business codes.

Every sequential code in the system (reading codes ``L001``, invoice numbers
``INV000001``) is issued here from a counter row per namespace. The counter
is bumped with one atomic ``UPDATE ... SET current_value = current_value + 1
RETURNING current_value``, so two callers can never receive the same value
even across processes. Scanning for the last issued code and adding one is
never used.

The increment joins the caller's transaction: if the caller rolls back, the
value is released again on backends that roll back the counter row with the
rest of the work. Gaps are tolerated, duplicates are not.
"""

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from waterflow.errors import AllocatorUnavailableError
from waterflow.models.sequence_counter import SequenceCounter

logger = logging.getLogger(__name__)

_counters = SequenceCounter.__table__


class SequenceService:
    """Issue unique, increasing values per namespace.

    Does not commit; the caller owns the transaction boundary.
    """

    # Well-known namespaces
    READING = "reading"
    INVOICE = "invoice"

    # namespace -> (prefix, minimum digits)
    CODE_FORMATS = {
        READING: ("L", 3),
        INVOICE: ("INV", 6),
    }

    def __init__(self, session: Session):
        """Initialize with a session that is inside a transaction.

        Args:
            session: SQLAlchemy session
        """
        self._session = session

    def next_value(self, namespace: str) -> int:
        """Increment and return the counter of a namespace, starting at 1.

        Args:
            namespace: Counter name, e.g. SequenceService.READING

        Returns:
            The newly issued value (always > 0)

        Raises:
            AllocatorUnavailableError: If the counter cannot be incremented
        """
        try:
            value = self._increment(namespace)
            if value is None:
                value = self._create(namespace)
        except SQLAlchemyError as exc:
            logger.error("Sequence %r could not be incremented: %s", namespace, exc)
            raise AllocatorUnavailableError(
                f"Sequence allocator unavailable for namespace {namespace!r}",
                namespace=namespace,
            ) from exc

        logger.debug("Allocated %s=%d", namespace, value)
        return value

    def next_code(self, namespace: str) -> str:
        """Issue the next value and format it as a business code."""
        return self.format_code(namespace, self.next_value(namespace))

    def format_code(self, namespace: str, value: int) -> str:
        """Format a value with the namespace prefix and zero padding.

        Unknown namespaces are rendered as the bare number.
        """
        prefix, width = self.CODE_FORMATS.get(namespace, ("", 1))
        return f"{prefix}{value:0{width}d}"

    def current_value(self, namespace: str) -> int | None:
        """Return the last issued value without incrementing, None if unused."""
        return self._session.execute(
            select(_counters.c.current_value).where(_counters.c.name == namespace)
        ).scalar_one_or_none()

    def reset(self, namespace: str, value: int = 0) -> None:
        """Set a namespace back to ``value``; the next code issued is value + 1.

        WARNING: administrative operation. Running it while readings are
        being ingested can reissue codes that are already in use; callers
        must make sure no ingestion is in flight.
        """
        if value < 0:
            raise ValueError("Sequence value cannot be negative")

        result = self._session.execute(
            update(_counters).where(_counters.c.name == namespace).values(current_value=value)
        )
        if result.rowcount == 0:
            self._session.add(SequenceCounter(name=namespace, current_value=value))
            self._session.flush()
        logger.warning("Sequence %r reset to %d", namespace, value)

    def delete(self, namespace: str) -> None:
        """Remove a namespace; the next code issued starts again at 1.

        Same caveat as reset(): never while ingestion is in flight.
        """
        self._session.execute(delete(_counters).where(_counters.c.name == namespace))
        logger.warning("Sequence %r deleted", namespace)

    def _increment(self, namespace: str) -> int | None:
        stmt = (
            update(_counters)
            .where(_counters.c.name == namespace)
            .values(current_value=_counters.c.current_value + 1)
            .returning(_counters.c.current_value)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, namespace: str) -> int:
        # First use of the namespace. A concurrent caller may insert the same
        # row first; the savepoint keeps the rest of the transaction intact.
        try:
            with self._session.begin_nested():
                self._session.add(SequenceCounter(name=namespace, current_value=1))
            return 1
        except IntegrityError:
            logger.debug("Sequence %r created concurrently, retrying increment", namespace)

        value = self._increment(namespace)
        if value is None:
            raise AllocatorUnavailableError(
                f"Sequence counter {namespace!r} vanished during allocation",
                namespace=namespace,
            )
        return value


__all__ = ["SequenceService"]
