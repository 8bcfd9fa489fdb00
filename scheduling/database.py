"""Database engine, connection pool and transaction boundary.

Production Pattern:
- One SQLAlchemy engine (connection pool) per process, injected into the
  coordinator instead of a global connection handle
- Every coordinator operation runs inside a single transaction
- Automatic table creation via create_all()
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from scheduling import config
from scheduling.database_models import Base
from scheduling.errors import SchedulingError, StorageError
from scheduling.logging_config import get_logger

logger = get_logger(__name__)


class Database:
    """
    Owns the engine and hands out transactional sessions.

    Pool configuration (server databases):
    - pool_size: connections kept open
    - max_overflow: extra connections under burst load
    - pool_pre_ping: drop dead connections before use

    SQLite is configured so that write transactions take the database lock
    up front (BEGIN IMMEDIATE); concurrent writers then queue on the lock
    instead of failing with a deadlock.
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = config.DB_POOL_SIZE,
        max_overflow: int = config.DB_MAX_OVERFLOW,
        pool_timeout: int = config.DB_POOL_TIMEOUT,
    ):
        """
        Initialize Database with a connection pool.

        Args:
            database_url: SQLAlchemy connection string
            echo: Log every SQL statement (DEBUG_SQL)
            pool_size: Pool size for server databases
            max_overflow: Extra connections allowed above pool_size
            pool_timeout: Seconds to wait for a free connection
        """
        url = make_url(database_url)
        self.is_sqlite = url.get_backend_name() == "sqlite"

        if self.is_sqlite:
            engine_kwargs = {"connect_args": {"check_same_thread": False, "timeout": pool_timeout}}
            if url.database in (None, "", ":memory:"):
                # Single shared connection, otherwise each checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs = {
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
            }

        self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True, **engine_kwargs)

        if self.is_sqlite:
            _use_immediate_transactions(self.engine)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self):
        """Create tables and indexes if they don't exist (idempotent)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Open a session whose work commits as one unit.

        Commits when the block exits normally and rolls back on any
        exception. IntegrityError propagates unchanged so callers can tell
        a lost race from an outage; other SQLAlchemy failures become
        StorageError.

        Usage:
            with database.transaction() as db:
                ledger.create(db, ...)
                catalog.occupy(db, ...)

        Yields:
            SQLAlchemy Session bound to the pool
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except (SchedulingError, IntegrityError):
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("transaction_failed", error=str(e), exc_info=True)
            raise StorageError("Storage is temporarily unavailable") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self):
        """Close all pooled connections."""
        self.engine.dispose()


def _use_immediate_transactions(engine):
    """Make pysqlite emit BEGIN IMMEDIATE instead of its implicit deferred BEGIN."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# Global database (initialized on first use)
_database: Optional[Database] = None


def get_database() -> Database:
    """
    Get or create the process-wide Database.

    Returns:
        Database configured from DATABASE_URL
    """
    global _database

    if _database is None:
        _database = Database(config.DATABASE_URL, echo=config.DEBUG_SQL)

    return _database


def init_database() -> Database:
    """
    Initialize database tables.

    Safe to call multiple times (idempotent).
    """
    database = get_database()
    database.create_all()
    logger.info("database_initialized", backend=database.engine.url.get_backend_name())
    return database


def close_database():
    """
    Close the global database pool.

    Call this during application shutdown.
    """
    global _database

    if _database is not None:
        _database.dispose()
        _database = None
