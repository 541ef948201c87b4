"""Tests for transaction handling in ReadingIngestionService (mocked storage)."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import DBAPIError, DataError, IntegrityError, OperationalError

from waterflow.errors import (
    AllocatorUnavailableError,
    NotFoundError,
    PersistenceError,
    StorageUnavailableError,
    SystemMissingError,
)
from waterflow.models import Connection
from waterflow.schemas.readings import ReadingSubmission
from waterflow.services.config import BillingConfig
from waterflow.services.reading_service import ReadingIngestionService


def _locked():
    return OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))


@pytest.fixture
def submission():
    return ReadingSubmission.parse(
        customer_id=1, connection_id=2, current_reading=Decimal("112"), actor_id=3
    )


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def session_factory(session):
    return MagicMock(return_value=session)


class TestIngestionTransactions:
    def test_rejects_zero_attempts(self, session_factory):
        with pytest.raises(ValueError):
            ReadingIngestionService(session_factory, max_attempts=0)

    def test_from_config(self, session_factory):
        config = BillingConfig(ingest_max_attempts=7, ingest_retry_backoff=0.5)

        service = ReadingIngestionService.from_config(config, session_factory)

        assert service.max_attempts == 7
        assert service.retry_backoff == 0.5

    def test_missing_system_rolls_back(self, session, session_factory, submission):
        customer = MagicMock(id=1, company_id=1)
        connection = MagicMock(id=2, customer_id=1, system_id=99)
        session.execute.return_value.scalar_one_or_none.return_value = customer
        session.get.side_effect = lambda model, pk: connection if model is Connection else None

        service = ReadingIngestionService(session_factory, retry_backoff=0)
        with pytest.raises(SystemMissingError) as exc_info:
            service.ingest(submission)

        assert exc_info.value.details == {"connection_id": 2, "system_id": 99}
        session.rollback.assert_called_once()
        session.commit.assert_not_called()
        session.close.assert_called_once()
        assert session_factory.call_count == 1

    def test_client_errors_are_not_retried(self, session, session_factory, submission):
        service = ReadingIngestionService(session_factory, retry_backoff=0)

        with patch.object(
            ReadingIngestionService, "_ingest_once", side_effect=NotFoundError("customer", 1)
        ):
            with pytest.raises(NotFoundError):
                service.ingest(submission)

        assert session_factory.call_count == 1

    def test_locked_database_is_retried_then_surfaced(self, session, session_factory, submission):
        session.execute.side_effect = _locked()
        service = ReadingIngestionService(session_factory, max_attempts=3, retry_backoff=0)

        with pytest.raises(StorageUnavailableError) as exc_info:
            service.ingest(submission)

        assert exc_info.value.details == {"attempts": 3}
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert session_factory.call_count == 3
        assert session.rollback.call_count == 3
        session.commit.assert_not_called()

    def test_transient_failure_recovers(self, session, session_factory, submission):
        result = MagicMock()
        result.reading.connection_id = 2
        service = ReadingIngestionService(session_factory, retry_backoff=0)

        with patch.object(
            ReadingIngestionService, "_ingest_once", side_effect=[_locked(), result]
        ), patch("waterflow.services.reading_service.time.sleep") as sleep:
            assert service.ingest(submission) is result

        sleep.assert_called_once_with(0)
        assert session.rollback.call_count == 1
        assert session.commit.call_count == 1

    def test_backoff_grows_per_attempt(self, session_factory, submission):
        service = ReadingIngestionService(session_factory, max_attempts=3, retry_backoff=0.1)

        with patch.object(
            ReadingIngestionService, "_ingest_once", side_effect=_locked()
        ), patch("waterflow.services.reading_service.time.sleep") as sleep:
            with pytest.raises(StorageUnavailableError):
                service.ingest(submission)

        assert [c.args[0] for c in sleep.call_args_list] == pytest.approx([0.1, 0.2])

    def test_allocator_failure_surfaces_after_retries(self, session_factory, submission):
        service = ReadingIngestionService(session_factory, max_attempts=2, retry_backoff=0)

        with patch.object(
            ReadingIngestionService,
            "_ingest_once",
            side_effect=AllocatorUnavailableError("counter busy"),
        ):
            with pytest.raises(AllocatorUnavailableError):
                service.ingest(submission)

        assert session_factory.call_count == 2

    @pytest.mark.parametrize(
        "error",
        [
            IntegrityError("INSERT INTO readings", {}, Exception("UNIQUE constraint failed")),
            DataError("INSERT INTO readings", {}, Exception("numeric field overflow")),
        ],
    )
    def test_permanent_storage_errors_are_not_retried(self, session_factory, submission, error):
        service = ReadingIngestionService(session_factory, retry_backoff=0)

        with patch.object(ReadingIngestionService, "_ingest_once", side_effect=error):
            with pytest.raises(PersistenceError) as exc_info:
                service.ingest(submission)

        assert exc_info.value.retryable is False
        assert exc_info.value.http_status == 500
        assert exc_info.value.__cause__ is error
        assert session_factory.call_count == 1

    def test_dropped_connection_is_retried(self, session_factory, submission):
        result = MagicMock()
        result.reading.connection_id = 2
        dropped = DBAPIError(
            "SELECT 1", {}, Exception("server closed the connection"), connection_invalidated=True
        )
        service = ReadingIngestionService(session_factory, retry_backoff=0)

        with patch.object(ReadingIngestionService, "_ingest_once", side_effect=[dropped, result]):
            assert service.ingest(submission) is result

        assert session_factory.call_count == 2
