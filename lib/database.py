# =============================================================================
# lib/database.py - Database Client Lifecycle
# =============================================================================
# This module owns the process-wide database handle: a single SQLAlchemy
# Engine (and its connection pool) created on first demand and disposed
# exactly once during shutdown.
#
# The client is an explicitly owned resource. The entry point constructs one
# DatabaseClient, stores it on app.state, and hands the same instance to the
# lifecycle manager. Route handlers receive it through app.dependencies.
#
# Usage:
#   database = DatabaseClient(settings)
#   await database.connect()
#   healthy = await database.health_check()
#   await database.disconnect()
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from lib.utils import ApplicationError

if TYPE_CHECKING:
    from app.config import Settings

# Set up logging for this module
logger = logging.getLogger(__name__)

HEALTH_CHECK_QUERY = "SELECT 1"


class DatabaseClientError(ApplicationError):
    """Error while creating, connecting or closing the database client."""

    def __init__(self, message: str, code: str = "DATABASE_ERROR", **kwargs):
        super().__init__(message, code=code, **kwargs)


def normalize_database_url(url: str) -> str:
    """
    Normalize a connection string for SQLAlchemy.

    Hosting providers hand out `postgres://` URLs, but SQLAlchemy 2.x only
    recognises the `postgresql://` dialect name.
    """
    url = url.strip()
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


class DatabaseClient:
    """
    Lifecycle wrapper around one SQLAlchemy Engine.

    The engine is built lazily by get_engine() and reused for every caller.
    SQLAlchemy's pool handles concurrent checkouts; this class adds no
    locking of its own.

    Blocking driver calls are pushed to a worker thread so they never stall
    the event loop serving requests.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._engine: Engine | None = None

    @property
    def is_initialized(self) -> bool:
        """True once the engine has been created."""
        return self._engine is not None

    def get_engine(self) -> Engine:
        """
        Get or create the shared Engine.

        Query logging is verbose (sqlalchemy.engine at INFO) outside
        production and limited to warnings and errors in production.

        Returns:
            Engine: The process-wide SQLAlchemy engine

        Raises:
            DatabaseClientError: If the connection string cannot be parsed
        """
        if self._engine is None:
            url = normalize_database_url(self._settings.DATABASE_URL)
            try:
                self._engine = create_engine(url, pool_pre_ping=True)
            except (ArgumentError, ImportError) as e:
                raise DatabaseClientError(
                    message=f"Failed to create database client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check DATABASE_URL and that the matching database driver is installed",
                ) from e

            logging.getLogger("sqlalchemy.engine").setLevel(
                logging.WARNING if self._settings.is_production else logging.INFO
            )
            logger.info(f"Database client initialized ({self._engine.dialect.name})")
        return self._engine

    def _ping(self) -> None:
        with self.get_engine().connect() as connection:
            connection.execute(text(HEALTH_CHECK_QUERY))

    async def connect(self) -> None:
        """
        Establish the database connection.

        Failures are logged and re-raised so startup can abort.

        Raises:
            DatabaseClientError: If the database cannot be reached
        """
        engine = self.get_engine()
        try:
            await asyncio.to_thread(self._ping)
        except SQLAlchemyError as e:
            logger.error(f"Database connection failed: {e}")
            raise DatabaseClientError(
                message=f"Failed to connect to database: {e}",
                code="CONNECTION_FAILED",
                suggestion="Check that the database is running and DATABASE_URL is correct",
                details={"dialect": engine.dialect.name},
            ) from e
        logger.info("Database connected successfully")

    async def disconnect(self) -> None:
        """
        Close every pooled connection.

        A no-op when the engine was never created. Safe to call repeatedly.
        """
        if self._engine is None:
            return
        engine, self._engine = self._engine, None
        await asyncio.to_thread(engine.dispose)
        logger.info("Database disconnected")

    async def health_check(self) -> bool:
        """Run a trivial round-trip query. Returns False instead of raising."""
        try:
            await asyncio.to_thread(self._ping)
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False
        return True
