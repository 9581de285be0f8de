# backend/tutormarket/database.py
from datetime import datetime
import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            kwargs["poolclass"] = StaticPool
        else:
            # Seconds a writer waits for the database lock before failing
            kwargs["connect_args"]["timeout"] = 30
        return kwargs
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "connect_args": {"connect_timeout": 10, "application_name": "tutormarket_backend"},
    }


def enable_sqlite_write_locks(sqlite_engine: Engine) -> None:
    """
    Start every SQLite transaction with ``BEGIN IMMEDIATE``.

    SQLite has no row locks and pysqlite defers ``BEGIN`` until the first
    write, so two requests could both pass the conflict check before either
    inserts. Taking the database write lock when the transaction begins
    makes the lock-check-write sequences run one at a time, which is what
    ``SELECT ... FOR UPDATE`` gives on PostgreSQL.
    """

    @event.listens_for(sqlite_engine, "connect")
    def disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def begin_immediate(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> Engine:
    """Create an engine with pool settings appropriate for the URL's dialect."""
    new_engine = create_engine(database_url, **_engine_kwargs(database_url))
    if database_url.startswith("sqlite") and ":memory:" not in database_url:
        enable_sqlite_write_locks(new_engine)

    @event.listens_for(new_engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    @event.listens_for(new_engine, "checkout")
    def receive_checkout(
        dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        logger.debug("Connection checked out from pool")

    return new_engine


engine: Engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
