"""Reading ingestion: from a submitted meter value to a billed, settled invoice.

One submission runs as one database transaction:

1. validate the payload
2. load customer (row-locked), connection and billing system
3. take the previous reading (or the connection's initial reading) as baseline
4. reject readings lower than the baseline
5. allocate the reading code
6. price the consumption and add tax
7. settle the total against the customer's available credit
8. write reading, invoice, automatic payment and audit entries

and either commits as a whole or leaves no trace. Transient storage
conflicts (locked database, serialization failures) roll back and retry the
whole transaction a bounded number of times.
"""

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, NamedTuple

from sqlalchemy import desc, select
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from waterflow.errors import (
    AllocatorUnavailableError,
    BillingError,
    NotFoundError,
    OwnershipMismatchError,
    PersistenceError,
    ReadingRegressionError,
    StorageUnavailableError,
    SystemMissingError,
)
from waterflow.models.connection import Connection
from waterflow.models.customer import Customer
from waterflow.models.invoice import ConsumptionInvoice
from waterflow.models.payment import Payment
from waterflow.models.reading import Reading
from waterflow.models.system import System
from waterflow.schemas.readings import ReadingSubmission
from waterflow.services.audit_service import AuditService
from waterflow.services.config import BillingConfig
from waterflow.services.db import session_scope
from waterflow.services.invoice_service import InvoiceService
from waterflow.services.sequence_service import SequenceService
from waterflow.services.tariff_service import compute_base_amount, parse_category

logger = logging.getLogger(__name__)


class IngestionResult(NamedTuple):
    """Records committed for one submission."""

    reading: Reading
    invoice: ConsumptionInvoice
    payment: Payment | None


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # Clamp to the last day of the target month
    day = moment.day
    while True:
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def _is_transient(exc: Exception) -> bool:
    # Lock timeouts, serialization failures and dropped connections can
    # succeed on a fresh transaction; constraint and data errors cannot
    if isinstance(exc, (OperationalError, AllocatorUnavailableError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class ReadingService:
    """Reading queries within one session."""

    def __init__(self, session: Session) -> None:
        """Initialize service with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def latest_reading(self, connection_id: int) -> Reading | None:
        """Get the most recent reading of a connection.

        Args:
            connection_id: Connection ID

        Returns:
            Latest Reading or None if the meter was never read
        """
        stmt = (
            select(Reading)
            .where(Reading.connection_id == connection_id)
            .order_by(desc(Reading.reading_date), desc(Reading.id))
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def baseline(self, connection: Connection) -> Decimal:
        """Meter value the next reading is measured from."""
        latest = self.latest_reading(connection.id)
        if latest is not None:
            return Decimal(latest.current_reading)
        return Decimal(connection.initial_reading)

    def list_readings(self, connection_id: int) -> list[Reading]:
        """All readings of a connection, newest first."""
        stmt = (
            select(Reading)
            .where(Reading.connection_id == connection_id)
            .order_by(desc(Reading.reading_date), desc(Reading.id))
        )
        return list(self.session.execute(stmt).scalars().all())

    def average_consumption(
        self,
        connection_id: int,
        months: int = 3,
        as_of: datetime | None = None,
    ) -> Decimal:
        """Mean consumption of the readings taken in the trailing window.

        Args:
            connection_id: Connection ID
            months: Window length in calendar months
            as_of: End of the window (default: now)

        Returns:
            Average consumption, 0 when there are no readings in the window
        """
        end = as_of or datetime.now(timezone.utc)
        start = _months_before(end, months)
        stmt = select(Reading.consumption).where(
            Reading.connection_id == connection_id,
            Reading.reading_date >= start,
            Reading.reading_date <= end,
        )
        values = [Decimal(v) for v in self.session.execute(stmt).scalars().all()]
        if not values:
            return Decimal("0")
        return sum(values, Decimal("0")) / len(values)


class ReadingIngestionService:
    """Turn a reading submission into committed reading, invoice and payment.

    Holds no locks or state of its own; isolation comes from the database
    transaction (customer row lock, serialized SQLite writers).
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_attempts: int = 3,
        retry_backoff: float = 0.05,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            session_factory: Factory opening a session per attempt
            max_attempts: Transaction attempts on transient storage conflicts
            retry_backoff: Seconds; attempt N waits N * retry_backoff before retrying
            clock: Returns the current time (default: UTC now)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(
        cls, config: BillingConfig, session_factory: sessionmaker[Session]
    ) -> "ReadingIngestionService":
        return cls(
            session_factory,
            max_attempts=config.ingest_max_attempts,
            retry_backoff=config.ingest_retry_backoff,
        )

    def ingest(self, submission: ReadingSubmission) -> IngestionResult:
        """Ingest one reading.

        Args:
            submission: Validated payload (see ReadingSubmission.parse)

        Returns:
            IngestionResult with detached, fully loaded records

        Raises:
            NotFoundError: Customer or connection missing
            OwnershipMismatchError: Connection belongs to another customer
            ReadingRegressionError: Value lower than the previous reading
            SystemMissingError, MalformedScheduleError, InvalidCategoryError:
                Billing configuration faults
            AllocatorUnavailableError, StorageUnavailableError: Transient
                storage failure persisting after all attempts
            PersistenceError: Storage rejected the write; not retried
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                with session_scope(self.session_factory) as session:
                    result = self._ingest_once(session, submission)
            except (SQLAlchemyError, AllocatorUnavailableError) as exc:
                if not _is_transient(exc):
                    logger.error(
                        "Reading for connection %d rejected by storage: %s",
                        submission.connection_id,
                        exc,
                    )
                    raise PersistenceError(
                        "Storage rejected the reading",
                        attempts=attempt,
                    ) from exc
                if attempt >= self.max_attempts:
                    logger.error(
                        "Reading for connection %d failed after %d attempts: %s",
                        submission.connection_id,
                        attempt,
                        exc,
                    )
                    if isinstance(exc, BillingError):
                        raise
                    raise StorageUnavailableError(
                        "Storage unavailable while recording reading",
                        attempts=attempt,
                    ) from exc
                logger.warning(
                    "Transient conflict on connection %d (attempt %d/%d): %s",
                    submission.connection_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                time.sleep(self.retry_backoff * attempt)
                continue
            except BillingError as exc:
                if exc.is_client_error:
                    logger.info("Reading rejected (%s): %s", exc.code, exc.message)
                else:
                    logger.error("Billing configuration fault (%s): %s", exc.code, exc.message)
                raise

            logger.info(
                "Recorded reading %s for connection %d: consumption=%s invoice=%s total=%s remaining=%s",
                result.reading.code,
                result.reading.connection_id,
                result.reading.consumption,
                result.invoice.invoice_number,
                result.invoice.total_amount,
                result.invoice.remaining_debt,
            )
            return result

    def _ingest_once(self, session: Session, submission: ReadingSubmission) -> IngestionResult:
        customer, connection, system = self._load(session, submission)

        category = parse_category(connection.category)
        schedule = system.load_schedule()

        readings = ReadingService(session)
        previous = readings.baseline(connection)
        current = submission.current_reading
        if current < previous:
            raise ReadingRegressionError(previous, current)

        sequences = SequenceService(session)
        code = sequences.next_code(SequenceService.READING)

        consumption = current - previous
        base_amount = compute_base_amount(category, consumption, schedule)
        now = self.clock()

        reading = Reading(
            code=code,
            customer_id=customer.id,
            connection_id=connection.id,
            company_id=customer.company_id,
            created_by_id=submission.actor_id,
            reading_date=now,
            previous_reading=previous,
            current_reading=current,
            consumption=consumption,
            image_path=submission.image_path,
            notes=submission.notes,
        )
        session.add(reading)
        session.flush()

        AuditService.log(
            session,
            entity_type="reading",
            entity_id=reading.id,
            action="create",
            actor_id=submission.actor_id,
            after_state={
                "code": code,
                "customer_id": customer.id,
                "connection_id": connection.id,
                "previous_reading": str(previous),
                "current_reading": str(current),
                "consumption": str(consumption),
            },
        )

        issued = InvoiceService(session, sequences).issue_consumption_invoice(
            customer=customer,
            reading=reading,
            base_amount=base_amount,
            actor_id=submission.actor_id,
            issued_at=now,
        )
        return IngestionResult(reading=reading, invoice=issued.invoice, payment=issued.payment)

    def _load(
        self, session: Session, submission: ReadingSubmission
    ) -> tuple[Customer, Connection, System]:
        # Row lock on the customer: concurrent submissions for the same
        # customer serialize here until this transaction ends
        customer = session.execute(
            select(Customer).where(Customer.id == submission.customer_id).with_for_update()
        ).scalar_one_or_none()
        if customer is None:
            raise NotFoundError("customer", submission.customer_id)

        connection = session.get(Connection, submission.connection_id)
        if connection is None:
            raise NotFoundError("connection", submission.connection_id)
        if connection.customer_id != customer.id:
            raise OwnershipMismatchError(
                f"Connection {connection.id} does not belong to customer {customer.id}",
                connection_id=connection.id,
                customer_id=customer.id,
            )

        system = session.get(System, connection.system_id)
        if system is None:
            raise SystemMissingError(
                f"Billing system {connection.system_id} not found for connection {connection.id}",
                connection_id=connection.id,
                system_id=connection.system_id,
            )
        return customer, connection, system


__all__ = ["IngestionResult", "ReadingIngestionService", "ReadingService"]
