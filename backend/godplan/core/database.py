import logging
import re
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

# Pool limits: 25 open connections at most, 10 kept idle, recycled after 30 minutes
POOL_SIZE = 10
MAX_OVERFLOW = 15
POOL_RECYCLE_SECONDS = 30 * 60

CONNECT_ATTEMPTS = 5
CONNECT_DELAY_SECONDS = 2.0


class DatabaseUnavailable(Exception):
    """The database could not be reached."""


def mask_database_url(url: str) -> str:
    """Hide the password part of a connection URL for logging."""
    return re.sub(r"(://[^:/@]+:)[^@]*(@)", r"\1****\2", url)


class Database:
    """Owns the process-wide connection pool and hands out sessions."""

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if url is None:
                raise ValueError("either url or engine is required")
            kwargs = {"pool_pre_ping": True, "echo": False}
            if url.startswith("postgresql"):
                kwargs.update(
                    pool_size=POOL_SIZE,
                    max_overflow=MAX_OVERFLOW,
                    pool_recycle=POOL_RECYCLE_SECONDS,
                )
            engine = create_engine(url, **kwargs)
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @property
    def is_postgres(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    def health(self) -> None:
        """Probe the database with ``SELECT 1``; raises DatabaseUnavailable on failure."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise DatabaseUnavailable(str(e)) from e

    def connect(
        self,
        attempts: int = CONNECT_ATTEMPTS,
        delay: float = CONNECT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Startup reachability probe, retried ``attempts`` times ``delay`` seconds apart."""
        logger.info("Connecting to database at %s", mask_database_url(str(self.engine.url)))
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                self.health()
                logger.info("Database connected successfully")
                return
            except DatabaseUnavailable as e:
                last_error = e
                logger.warning(f"Database connection attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    sleep(delay)
        logger.error("All database connection attempts failed")
        raise DatabaseUnavailable(f"database unreachable after {attempts} attempts") from last_error

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def apply_deadline(db: Session, seconds: int) -> None:
    """Bound the statements of the current transaction to ``seconds`` (PostgreSQL only)."""
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL statement_timeout = {int(seconds * 1000)}"))


def init_database(database: Database) -> None:
    """Create the godplan schema and all tables if they do not exist yet."""
    from godplan.models import Attendance, Employee, User  # noqa: F401  ensure tables are registered

    if database.is_postgres:
        with database.engine.begin() as conn:
            conn.execute(text("CREATE SCHEMA IF NOT EXISTS godplan"))
    Base.metadata.create_all(bind=database.engine)
    logger.info("Tables created successfully")


# Dependency for FastAPI routes
def get_db(request: Request):
    db = request.app.state.db.SessionLocal()
    try:
        yield db
    finally:
        db.close()
