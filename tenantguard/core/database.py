"""
Database engine management with async SQLAlchemy 2.0.

Provides:
- Declarative base for the table definitions
- Async engine with connection pooling and store-level timeouts

Data access goes through ``tenantguard.core.executor``; nothing in the
application borrows connections from the engine directly.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from tenantguard.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all table definitions."""
    pass


class DatabaseManager:
    """
    Manages the database engine lifecycle.

    One engine (and so one pool) per process.
    """

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None

    def init(self) -> None:
        """
        Initialize the database engine.

        Called during application startup (lifespan event).
        """
        logger.info("Initializing database connection...")

        engine_kwargs: dict[str, Any] = {
            "echo": settings.db_echo if settings.is_development else False,
            "pool_pre_ping": True,
            "connect_args": {
                # asyncpg: connection establishment and per-statement timeouts
                "timeout": settings.db_connect_timeout_seconds,
                "command_timeout": settings.db_statement_timeout_seconds,
                "server_settings": {"application_name": settings.app_name},
            },
        }

        if settings.is_development:
            engine_kwargs["poolclass"] = NullPool
        else:
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout_seconds,
            )

        self._engine = create_async_engine(str(settings.database_url), **engine_kwargs)

        logger.info("Database connection initialized successfully")

    async def close(self) -> None:
        """
        Close database connections.

        Called during application shutdown (lifespan event).
        """
        if self._engine:
            logger.info("Closing database connections...")
            await self._engine.dispose()
            self._engine = None
            logger.info("Database connections closed")

    @property
    def engine(self) -> AsyncEngine:
        """Get the database engine."""
        if not self._engine:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine


# Global instance
db_manager = DatabaseManager()
