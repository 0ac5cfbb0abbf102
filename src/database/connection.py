"""
Database connection management for FireWatch Reports
PostgreSQL in production, SQLite for local runs and tests
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def engine_options(database_url: str, pool_size: int, max_overflow: int, pool_timeout: int) -> Dict[str, Any]:
    """Engine keyword arguments for the URL's backend."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_pre_ping": True,
        }

    # Verification runs on worker threads
    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        # In-memory database lives on a single shared connection
        options["poolclass"] = StaticPool
    return options


class DatabaseConnection:
    """
    Owns the engine and session factory for the report store.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        echo: bool = False
    ):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy connection URL
            pool_size: Connection pool size (ignored for SQLite)
            max_overflow: Max connections beyond pool_size
            pool_timeout: Seconds to wait for a pooled connection
            echo: Log emitted SQL
        """
        self.database_url = database_url
        self.engine = create_engine(
            database_url,
            echo=echo,
            **engine_options(database_url, pool_size, max_overflow, pool_timeout)
        )
        self.session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

        logger.info(f"Database connection initialized: {self._mask_url(database_url)}")

    def _mask_url(self, url: str) -> str:
        """Connection URL with the password hidden."""
        try:
            return make_url(url).render_as_string(hide_password=True)
        except ArgumentError:
            return "<unparseable database url>"

    def create_tables(self) -> None:
        """Create the reports schema if missing."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables ready")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {e}")
            raise

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if a trivial query succeeds
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Session scope: commit on success, roll back on database errors.

        Yields:
            SQLAlchemy session
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        self.engine.dispose()
        logger.info("Database connection closed")


def init_db(database_url: str, echo: bool = False, pool_size: int = 5) -> DatabaseConnection:
    """
    Create a connection and make sure the schema exists.

    Args:
        database_url: SQLAlchemy connection URL
        echo: Log emitted SQL
        pool_size: Connection pool size

    Returns:
        DatabaseConnection instance
    """
    db = DatabaseConnection(database_url=database_url, pool_size=pool_size, echo=echo)
    db.create_tables()
    return db
