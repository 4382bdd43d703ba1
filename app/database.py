"""
Database engine, session factory and the transaction boundary used by every write.
"""

import logging
import os
import sqlite3
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from .exceptions import Conflict, Internal, InvalidRequest

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./slotswapper.db")
TRANSACTION_MAX_ATTEMPTS = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "3"))

# Driver messages that mean another writer holds the row or table
_CONTENTION_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock wait timeout")

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    """Yield a session for read-only views; closed when the request ends."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Session factory handed to the services that open their own transactions."""
    return SessionLocal


def is_write_conflict(error: BaseException) -> bool:
    """
    True when the store rejected a write because another transaction got there first.

    Constraint violations are not included: they fail the same way on every attempt.
    """
    if isinstance(error, StaleDataError):
        return True
    if isinstance(error, OperationalError):
        message = str(error.orig).lower()
        return any(marker in message for marker in _CONTENTION_MARKERS)
    return False


def _run_once(session_factory: Callable[[], Session], work: Callable[[Session], T]) -> T:
    session = session_factory()
    try:
        result = work(session)
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    attempts: Optional[int] = None,
) -> T:
    """
    Run ``work`` against a fresh session and commit it as one unit.

    Every read and write ``work`` performs either commits together or is rolled back.
    When the store reports that a row changed underneath us (version mismatch or
    locked database) the closure is re-run from scratch so it re-reads current
    state; once the attempts are used up the caller gets Conflict. A write that
    breaks a foreign key or check constraint is InvalidRequest straight away.
    Domain errors raised by ``work`` abort immediately and are never retried.
    """
    max_attempts = attempts or TRANSACTION_MAX_ATTEMPTS
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(multiplier=0.02, max=0.5),
        retry=retry_if_exception(is_write_conflict),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    try:
        for attempt in retrying:
            with attempt:
                return _run_once(session_factory, work)
    except (StaleDataError, SQLAlchemyError) as e:
        if is_write_conflict(e):
            logger.warning(f"Transaction gave up after {max_attempts} attempts: {e.__class__.__name__}")
            raise Conflict(
                "concurrent update detected, re-read state and retry",
                attempts=max_attempts,
            ) from e
        if isinstance(e, IntegrityError):
            logger.warning(f"Write rejected by a store constraint: {e.orig}")
            raise InvalidRequest("write violates a store constraint") from e
        logger.error(f"Store failure inside transaction: {e}")
        raise Internal("store failure") from e
    raise RuntimeError("Retrying loop exited unexpectedly")
