"""Database configuration and setup for the event journal."""

import time
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..utils.logging_config import get_logger

logger = get_logger('journal')

# Base class for models
Base = declarative_base()


def _is_sqlite_url(url: str) -> bool:
    """Check if database URL is for SQLite."""
    return url.startswith("sqlite:")


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _setup_sqlite_pragma(dbapi_connection, connection_record):
    """Set SQLite pragmas for better performance and concurrency."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")  # 5 second timeout for concurrent access
    cursor.execute("PRAGMA temp_store=MEMORY")
    cursor.close()


def _setup_query_logging(engine: Engine) -> None:
    """Log slow journal queries."""

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.time()

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total = time.time() - context._query_start_time
        if total > 0.1:
            logger.warning(f"Slow query ({total:.3f}s): {statement[:200]}{'...' if len(statement) > 200 else ''}")


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """Create database engine with appropriate configuration."""
    if _is_sqlite_url(database_url):
        kwargs = {"connect_args": {"check_same_thread": False}, "echo": echo}
        if _is_memory_sqlite(database_url):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)

        # Enable WAL mode and other SQLite optimizations
        event.listen(engine, "connect", _setup_sqlite_pragma)
    else:
        engine = create_engine(database_url, echo=echo)

    _setup_query_logging(engine)
    return engine


class Database:
    """Engine and session factory for one journal database."""

    def __init__(self, database_url: str, echo: bool = False):
        self.url = database_url
        self.engine = create_database_engine(database_url, echo=echo)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def init_schema(self) -> None:
        """Create journal tables if they do not exist."""
        from . import models  # noqa: F401  (registers the tables on Base)

        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Journal schema ready at {self.safe_url}")

    def session(self) -> Session:
        return self.SessionLocal()

    def get_db(self) -> Iterator[Session]:
        """Yield a session and close it afterwards."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    @property
    def safe_url(self) -> str:
        """URL with any password removed, for logs."""
        return self.engine.url.render_as_string(hide_password=True)

    def dispose(self) -> None:
        self.engine.dispose()


_database: Optional[Database] = None


def get_database(database_url: str, echo: bool = False) -> Database:
    """Process-wide database, created on first use."""
    global _database
    if _database is None or _database.url != database_url:
        _database = Database(database_url, echo=echo)
    return _database
