"""Pytest configuration: a fresh SQLite billing database per test."""

import copy
import itertools
from decimal import Decimal
from typing import NamedTuple

import pytest

from waterflow.models import Company, Connection, Customer, System, User
from waterflow.schemas.tariffs import ConnectionCategory, RateSchedule
from waterflow.services.db import create_db_engine, create_session_factory, init_db, session_scope

# Bands from the published domestic tariff
RATE_SCHEDULE = {
    "availability_fee": "150.00",
    "fountain_rate": "30.00",
    "domestic": {
        "bands": [
            {"min": 0, "max": 5, "unit_price": "225.81"},
            {"min": 5, "max": 10, "unit_price": "65.91"},
            {"min": 10, "max": None, "unit_price": "74.11"},
        ]
    },
    "municipal": {
        "use_tiers": True,
        "bands": [
            {"min": 0, "max": 10, "unit_price": "40.00"},
            {"min": 10, "max": 20, "unit_price": "50.00"},
            {"min": 20, "max": None, "unit_price": "60.00"},
        ],
    },
    "public_commerce": {"minimum_consumption": 10, "base_fee": "900.00", "overage_rate": "85.00"},
    "industrial": {"minimum_consumption": 25, "base_fee": "2500.00", "overage_rate": "95.50"},
}

_sequence = itertools.count(1)


class Seeded(NamedTuple):
    """Primary keys of the records created by the ``seed`` fixture."""

    actor_id: int
    company_id: int
    customer_id: int
    system_id: int
    connection_id: int


@pytest.fixture
def rate_document() -> dict:
    """Editable copy of the reference schedule document."""
    return copy.deepcopy(RATE_SCHEDULE)


@pytest.fixture
def rate_schedule() -> RateSchedule:
    return RateSchedule.from_document(RATE_SCHEDULE)


@pytest.fixture
def engine(tmp_path):
    """File-backed database so several sessions and threads can share it."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'billing.db'}", busy_timeout=30)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Single session for tests that stay inside one transaction."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def seed(session_factory):
    """Create actor, company, customer, system and one connection.

    Returns a callable so tests can pick category, baseline and credit.
    Passing ``customer_id`` adds another connection to an existing customer.
    """

    def _seed(
        category: ConnectionCategory | str = ConnectionCategory.DOMESTIC,
        initial_reading: str = "100",
        available_credit: str = "0",
        schedule: dict | None = None,
        customer_id: int | None = None,
    ) -> Seeded:
        n = next(_sequence)
        with session_scope(session_factory) as session:
            actor = User(name=f"Operator {n}")
            session.add(actor)

            if customer_id is None:
                company = Company(name=f"Water Co {n}")
                session.add(company)
                session.flush()
                customer = Customer(
                    code=f"C{n:04d}",
                    name=f"Customer {n}",
                    company_id=company.id,
                    available_credit=Decimal(available_credit),
                )
                session.add(customer)
            else:
                customer = session.get(Customer, customer_id)

            system = System(name=f"Zone {n}", rate_schedule=schedule or RATE_SCHEDULE)
            session.add(system)
            session.flush()

            connection = Connection(
                meter_number=f"M-{n:06d}",
                customer_id=customer.id,
                system_id=system.id,
                category=category,
                initial_reading=Decimal(initial_reading),
            )
            session.add(connection)
            session.flush()

            return Seeded(
                actor_id=actor.id,
                company_id=customer.company_id,
                customer_id=customer.id,
                system_id=system.id,
                connection_id=connection.id,
            )

    return _seed
