"""Integration tests for reading ingestion against a real database.

Covers the full path from submission to committed reading, invoice and
automatic payment, and verifies that every failure leaves no trace.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from waterflow.errors import (
    InvalidCategoryError,
    InvalidInputError,
    MalformedScheduleError,
    NotFoundError,
    OwnershipMismatchError,
    ReadingRegressionError,
)
from waterflow.models import (
    AuditLog,
    ConsumptionInvoice,
    Customer,
    Invoice,
    InvoiceStatus,
    Payment,
    Reading,
    System,
)
from waterflow.schemas.readings import ReadingSubmission
from waterflow.services.audit_service import AuditService
from waterflow.services.db import session_scope
from waterflow.services.invoice_service import AUTO_PAYMENT_NOTE
from waterflow.services.reading_service import ReadingIngestionService, ReadingService
from waterflow.services.sequence_service import SequenceService

D = Decimal
ISSUED_AT = datetime(2026, 3, 20, 9, 30, tzinfo=timezone.utc)


def _submit(seeded, value, **extra) -> ReadingSubmission:
    return ReadingSubmission.parse(
        customer_id=seeded.customer_id,
        connection_id=seeded.connection_id,
        current_reading=value,
        actor_id=seeded.actor_id,
        **extra,
    )


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


def _credit(session_factory, customer_id) -> Decimal:
    with session_factory() as session:
        return session.get(Customer, customer_id).available_credit


def _audited(session_factory) -> list[tuple[str, str]]:
    with session_factory() as session:
        rows = session.execute(select(AuditLog.entity_type, AuditLog.action).order_by(AuditLog.id))
        return [tuple(row) for row in rows]


@pytest.fixture
def ingestion(session_factory):
    return ReadingIngestionService(session_factory, retry_backoff=0, clock=lambda: ISSUED_AT)


class TestSuccessfulIngestion:
    def test_first_reading_without_credit(self, seed, session_factory, ingestion):
        """Previous 100, current 112, domestic tariff, no credit."""
        seeded = seed(initial_reading="100", available_credit="0")

        result = ingestion.ingest(_submit(seeded, "112", notes="meter by the gate"))

        reading = result.reading
        assert reading.code == "L001"
        assert reading.previous_reading == D("100")
        assert reading.current_reading == D("112")
        assert reading.consumption == D("12")
        assert reading.notes == "meter by the gate"

        invoice = result.invoice
        assert isinstance(invoice, ConsumptionInvoice)
        assert invoice.invoice_number == "INV000001"
        assert invoice.reading_id == reading.id
        assert invoice.connection_id == seeded.connection_id
        assert invoice.base_amount == D("1756.82")
        assert invoice.tax_amount == D("210.82")
        assert invoice.total_amount == D("1967.64")
        assert invoice.credit_applied == D("0.00")
        assert invoice.remaining_debt == D("1967.64")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert invoice.issue_date == ISSUED_AT
        assert invoice.due_date == ISSUED_AT + timedelta(days=15)
        assert invoice.billing_month == "2026-03"
        assert result.payment is None

        assert _count(session_factory, Reading) == 1
        assert _count(session_factory, Invoice) == 1
        assert _count(session_factory, Payment) == 0
        assert _credit(session_factory, seeded.customer_id) == D("0.00")
        assert _audited(session_factory) == [("reading", "create"), ("invoice", "create")]

    def test_next_reading_starts_from_previous(self, seed, ingestion):
        seeded = seed(initial_reading="100")
        ingestion.ingest(_submit(seeded, "112"))

        result = ingestion.ingest(_submit(seeded, "115"))

        assert result.reading.code == "L002"
        assert result.reading.previous_reading == D("112")
        assert result.reading.consumption == D("3")
        assert result.invoice.invoice_number == "INV000002"
        assert result.invoice.base_amount == D("827.43")

    def test_unchanged_meter_bills_availability_fee(self, seed, ingestion):
        seeded = seed(initial_reading="100")

        result = ingestion.ingest(_submit(seeded, "100"))

        assert result.reading.consumption == D("0")
        assert result.invoice.base_amount == D("150.00")
        assert result.invoice.total_amount == D("168.00")

    def test_credit_covers_invoice(self, seed, session_factory, ingestion):
        seeded = seed(available_credit="2000.00")

        result = ingestion.ingest(_submit(seeded, "112"))

        assert result.invoice.status == InvoiceStatus.PAID
        assert result.invoice.credit_applied == D("1967.64")
        assert result.invoice.remaining_debt == D("0.00")
        assert result.payment is not None
        assert result.payment.amount == D("1967.64")
        assert result.payment.invoice_id == result.invoice.id
        assert result.payment.notes == AUTO_PAYMENT_NOTE
        assert _credit(session_factory, seeded.customer_id) == D("32.36")
        assert _audited(session_factory) == [
            ("reading", "create"),
            ("customer", "update"),
            ("invoice", "create"),
            ("payment", "create"),
        ]

    def test_partial_credit(self, seed, session_factory, ingestion):
        seeded = seed(available_credit="500.00")

        result = ingestion.ingest(_submit(seeded, "112"))

        assert result.invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert result.invoice.credit_applied == D("500.00")
        assert result.invoice.remaining_debt == D("1467.64")
        assert result.payment.amount == D("500.00")
        assert _credit(session_factory, seeded.customer_id) == D("0.00")

    def test_billed_consumption_matches_stored_reading(self, seed, session_factory, ingestion):
        seeded = seed(category="fountain", initial_reading="100")

        first = ingestion.ingest(_submit(seeded, "100.123"))
        second = ingestion.ingest(_submit(seeded, "200"))

        with session_factory() as session:
            stored = ReadingService(session).list_readings(seeded.connection_id)
        assert [r.consumption for r in stored] == [D("99.877"), D("0.123")]
        assert first.reading.consumption == D("0.123")
        assert second.reading.previous_reading == D("100.123")
        # 0.123 * 30 and 99.877 * 30: the meter moved exactly 100
        assert first.invoice.base_amount == D("3.69")
        assert first.invoice.base_amount + second.invoice.base_amount == D("3000.00")

    def test_other_categories(self, seed, ingestion):
        seeded = seed(category="industrial", initial_reading="0")

        result = ingestion.ingest(_submit(seeded, "30"))

        assert result.invoice.base_amount == D("2977.50")


class TestRejectedReadings:
    def test_excess_precision_is_rejected(self, seed, session_factory):
        seeded = seed(category="fountain", initial_reading="100")

        with pytest.raises(InvalidInputError):
            _submit(seeded, "100.12345")

        assert _count(session_factory, Reading) == 0

    def test_regression_leaves_no_trace(self, seed, session_factory, ingestion):
        seeded = seed(initial_reading="100")
        ingestion.ingest(_submit(seeded, "112"))

        with pytest.raises(ReadingRegressionError) as exc_info:
            ingestion.ingest(_submit(seeded, "111.5"))

        assert exc_info.value.previous_reading == D("112")
        assert _count(session_factory, Reading) == 1
        assert _count(session_factory, Invoice) == 1
        with session_factory() as session:
            assert SequenceService(session).current_value(SequenceService.READING) == 1

    def test_first_reading_below_initial_value(self, seed, session_factory, ingestion):
        seeded = seed(initial_reading="100")

        with pytest.raises(ReadingRegressionError):
            ingestion.ingest(_submit(seeded, "99.5"))

        assert _count(session_factory, Reading) == 0

    def test_unknown_customer(self, seed, ingestion):
        seeded = seed()

        with pytest.raises(NotFoundError) as exc_info:
            ingestion.ingest(_submit(seeded._replace(customer_id=9999), "112"))

        assert exc_info.value.entity_type == "customer"

    def test_unknown_connection(self, seed, ingestion):
        seeded = seed()

        with pytest.raises(NotFoundError) as exc_info:
            ingestion.ingest(_submit(seeded._replace(connection_id=9999), "112"))

        assert exc_info.value.entity_type == "connection"

    def test_connection_of_another_customer(self, seed, session_factory, ingestion):
        mine = seed()
        theirs = seed()

        with pytest.raises(OwnershipMismatchError):
            ingestion.ingest(_submit(mine._replace(connection_id=theirs.connection_id), "112"))

        assert _count(session_factory, Reading) == 0


class TestConfigurationFaults:
    def test_malformed_stored_schedule(self, seed, session_factory, ingestion):
        seeded = seed()
        # Core update skips the model-level validation on purpose
        with session_scope(session_factory) as session:
            session.execute(
                update(System.__table__)
                .where(System.__table__.c.id == seeded.system_id)
                .values(rate_schedule={"domestic": {"bands": []}})
            )

        with pytest.raises(MalformedScheduleError):
            ingestion.ingest(_submit(seeded, "112"))

        assert _count(session_factory, Reading) == 0

    def test_schedule_without_category_section(self, seed, session_factory, ingestion):
        seeded = seed(schedule={"fountain_rate": "30.00"})

        with pytest.raises(MalformedScheduleError):
            ingestion.ingest(_submit(seeded, "112"))

        assert _count(session_factory, Reading) == 0
        assert _count(session_factory, Invoice) == 0

    def test_unknown_category(self, seed, session_factory, ingestion):
        seeded = seed(category="ornamental")

        with pytest.raises(InvalidCategoryError):
            ingestion.ingest(_submit(seeded, "112"))

        assert _count(session_factory, Reading) == 0


class TestAtomicity:
    def test_failure_after_settlement_rolls_back_everything(self, seed, session_factory, ingestion):
        """A crash after credit was spent must not leave a partial transaction."""
        seeded = seed(available_credit="2000.00")
        original = AuditService.log

        def failing_log(db, **kwargs):
            if kwargs["entity_type"] == "payment":
                raise RuntimeError("audit store offline")
            return original(db, **kwargs)

        with patch.object(AuditService, "log", side_effect=failing_log):
            with pytest.raises(RuntimeError):
                ingestion.ingest(_submit(seeded, "112"))

        assert _count(session_factory, Reading) == 0
        assert _count(session_factory, Invoice) == 0
        assert _count(session_factory, Payment) == 0
        assert _count(session_factory, AuditLog) == 0
        assert _credit(session_factory, seeded.customer_id) == D("2000.00")

    def test_locked_database_is_retried(self, seed, session_factory, ingestion):
        seeded = seed()
        calls = []
        original = SequenceService.next_code

        def flaky(self, namespace):
            calls.append(namespace)
            if len(calls) == 1:
                raise OperationalError("UPDATE sequence_counters", {}, Exception("database is locked"))
            return original(self, namespace)

        with patch.object(SequenceService, "next_code", autospec=True, side_effect=flaky):
            result = ingestion.ingest(_submit(seeded, "112"))

        assert calls == ["reading", "reading", "invoice"]
        assert result.reading.code == "L001"
        assert _count(session_factory, Reading) == 1
