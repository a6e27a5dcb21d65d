# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up the SQLAlchemy engine, session factory and declarative
base, and provides the transaction helper every booking operation runs in.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL, DB_BUSY_TIMEOUT_SECONDS
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import BookingError, InternalBookingError

logger = logging.getLogger(__name__)


# Connection execution option marking a transaction that will write
WRITE_TRANSACTION_OPTION = "booking_write_transaction"


def configure_sqlite_locking(engine: Engine) -> None:
    """
    Make SQLite write transactions take the write lock up front.

    pysqlite defers BEGIN until the first write, so two sessions could both
    read a slot's active count before either inserts. Transactions opened by
    ``transaction()`` carry WRITE_TRANSACTION_OPTION and start with BEGIN
    IMMEDIATE, which serializes read-then-write sequences the same way
    SELECT ... FOR UPDATE does on PostgreSQL. Everything else starts with a
    plain deferred BEGIN, so readers never hold the write lock.
    """
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):  # type: ignore
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):  # type: ignore
        if conn.get_execution_options().get(WRITE_TRANSACTION_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs) -> Engine:  # type: ignore
    """Create an engine for ``url`` with the locking behavior the services rely on."""
    if url.startswith("sqlite"):
        new_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": DB_BUSY_TIMEOUT_SECONDS},
            future=True,
            **kwargs,
        )
        configure_sqlite_locking(new_engine)
        return new_engine

    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=DB_POOL_RECYCLE_SECONDS,
        echo=False,
        future=True,
        **kwargs,
    )


engine = build_engine(DATABASE_URL)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)


# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Stamp created_at / updated_at in UTC
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    now = utc_now()
    if "created_at" in mapper.columns and getattr(target, "created_at", None) is None:  # type: ignore
        target.created_at = now
    if "updated_at" in mapper.columns and getattr(target, "updated_at", None) is None:  # type: ignore
        target.updated_at = now


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    from utils.datetime_utils import utc_now
    if "updated_at" in mapper.columns:  # type: ignore
        target.updated_at = utc_now()


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Run a unit of booking work in a single transaction.

    Commits when the block finishes. Booking errors roll back and propagate
    unchanged; persistence errors roll back and surface as InternalBookingError
    chained from the original exception.

    A transaction the session already has open (left by earlier reads) is
    committed first, so the block always runs in a fresh write transaction.

    Example:
        ```python
        with transaction(db):
            slot = SlotOccupancyService.lock_slot(db, slot_id)
            ...
        ```
    """
    try:
        if db.in_transaction():
            db.commit()
        db.connection(execution_options={WRITE_TRANSACTION_OPTION: True})
        yield db
        db.commit()
    except BookingError:
        # Expected business outcome, not worth an error log
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise InternalBookingError() from e
    except Exception:
        db.rollback()
        raise


@contextmanager
def read_only(db: Session) -> Generator[Session, None, None]:
    """
    Run lookups and end the transaction they open.

    Read services return with the session outside any transaction, so a
    long-lived session never keeps SQLite's shared lock between calls.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database read failed: {e}")
        raise InternalBookingError() from e
    except Exception:
        db.rollback()
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Provide a database session that is closed after use.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except BookingError:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of a request scope.

    Useful for background jobs, scripts, or testing where you need manual
    session management.

    Example:
        ```python
        with get_db_context() as db:
            QueueService.promote_next(db, service_id)
        ```
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise
    finally:
        db.close()


def create_tables(bind: Engine = engine) -> None:
    """
    Create all database tables defined in SQLAlchemy models.

    Note:
        In production, prefer running the Alembic migrations.
    """
    import models  # noqa: F401  (registers every mapper on Base.metadata)
    try:
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create database tables: {e}")
        raise


def drop_tables(bind: Engine = engine) -> None:
    """
    Drop all database tables defined in SQLAlchemy models.

    WARNING: This will permanently delete all data in the tables!
    """
    import models  # noqa: F401
    try:
        Base.metadata.drop_all(bind=bind)
        logger.info("Database tables dropped successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to drop database tables: {e}")
        raise
