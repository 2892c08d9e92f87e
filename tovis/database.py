# tovis/database.py

import logging
from typing import Callable, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .services.errors import ConflictError, StorageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes: serialization_failure, deadlock_detected
_RETRYABLE_PGCODES = {"40001", "40P01"}
# SQLSTATE codes: lock_not_available, query_canceled (statement_timeout)
_TIMEOUT_PGCODES = {"55P03", "57014"}


def create_db_engine(url: str, timeout_seconds: float, **kwargs) -> Engine:
    """
    Create an engine whose write transactions serialize per professional.

    SQLite: every transaction starts with BEGIN IMMEDIATE, so a
    read-then-write conflict check holds the write lock for its whole duration.
    PostgreSQL: callers lock the professional row (SELECT ... FOR UPDATE);
    lock waits and statements are bounded by the timeout.
    """
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout_seconds}
        engine = create_engine(url, connect_args=connect_args, **kwargs)
        configure_sqlite(engine)
        return engine

    timeout_ms = int(timeout_seconds * 1000)
    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args={
            "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}"
        },
        **kwargs,
    )


def configure_sqlite(engine: Engine) -> None:
    """Attach foreign keys and BEGIN IMMEDIATE handling to a SQLite engine."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _):
        # Let SQLAlchemy emit BEGIN itself instead of the driver
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_db_engine(settings.resolved_database_url, settings.store_timeout_seconds)

# SessionLocal: one unit of work per request
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _pgcode(exc: OperationalError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_serialization_failure(exc: OperationalError) -> bool:
    if _pgcode(exc) in _RETRYABLE_PGCODES:
        return True
    message = str(exc).lower()
    return "deadlock detected" in message or "could not serialize" in message


def is_timeout(exc: OperationalError) -> bool:
    if _pgcode(exc) in _TIMEOUT_PGCODES:
        return True
    message = str(exc).lower()
    return "database is locked" in message or "timeout" in message


def run_in_transaction(db: Session, work: Callable[[], T], retries: int = 1) -> T:
    """
    Run `work` and commit, as one transaction.

    Serialization failures are retried `retries` times and then reported as
    ConflictError. Lock/statement timeouts become StorageTimeoutError.
    Anything else (domain errors included) rolls back and propagates.
    """
    attempt = 0
    while True:
        try:
            result = work()
            db.commit()
            return result
        except OperationalError as exc:
            db.rollback()
            if is_serialization_failure(exc):
                if attempt < retries:
                    attempt += 1
                    logger.warning(f"Serialization failure, retrying ({attempt}/{retries})")
                    continue
                raise ConflictError("That time was just taken. Please pick another time.") from exc
            if is_timeout(exc):
                logger.error(f"Store operation timed out: {exc}")
                raise StorageTimeoutError() from exc
            raise
        except Exception:
            db.rollback()
            raise
