"""Database engine and session management.

SQLite note: pysqlite defers BEGIN until the first write, which lets two
transactions read the same customer balance before either writes it. The
engine built here disables that behaviour and opens every transaction with
``BEGIN IMMEDIATE``, so SQLite writers are serialized for the whole
transaction (waiting up to the busy timeout). Server databases get row
locks from ``SELECT ... FOR UPDATE`` in the services instead.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from waterflow.models import Base
from waterflow.services.config import BillingConfig

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, busy_timeout: float = 30.0, echo: bool = False) -> Engine:
    """
    Create an engine for the billing database.

    Args:
        database_url: SQLAlchemy database URL (e.g., "sqlite:///./waterflow.db")
        busy_timeout: Seconds a SQLite connection waits for the write lock
        echo: Log SQL statements

    Returns:
        Configured Engine
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True, echo=echo)

    options = {
        "echo": echo,
        "connect_args": {"check_same_thread": False, "timeout": busy_timeout},
    }
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        options["poolclass"] = StaticPool
    engine = create_engine(database_url, **options)

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself (see module docstring)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def engine_from_config(config: BillingConfig, echo: bool = False) -> Engine:
    """Engine for the configured DATABASE_URL and SQLITE_BUSY_TIMEOUT."""
    return create_db_engine(
        config.database_url, busy_timeout=config.sqlite_busy_timeout, echo=echo
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables (development and tests; production uses Alembic)."""
    Base.metadata.create_all(engine)
    logger.info("Database schema created on %s", engine.url.render_as_string(hide_password=True))


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope: commit on success, roll back on any error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "create_db_engine",
    "create_session_factory",
    "engine_from_config",
    "init_db",
    "session_scope",
]
