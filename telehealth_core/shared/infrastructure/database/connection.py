# 📄 File: telehealth_core/shared/infrastructure/database/connection.py
#
# 🧭 Purpose (Layman Explanation):
# Manages the connection to the database that stores subscriptions, their history and usage
# counters, and makes sure the tables exist before anything is saved.
#
# 🧪 Purpose (Technical Summary):
# Async SQLAlchemy engine management with pool configuration from settings, a declarative
# base with a constraint naming convention, schema creation and a retried health check.
#
# 🔗 Dependencies:
# - sqlalchemy (async engine)
# - telehealth_core/shared/config/settings.py (database configuration)
# - asyncpg in production, aiosqlite in tests
#
# 🔄 Connected Modules / Calls From:
# - telehealth_core/shared/infrastructure/database/session.py (session management)
# - subscription_lifecycle ORM models and SQLAlchemy store

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from telehealth_core.shared.config.settings import get_settings
from telehealth_core.shared.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)


# =============================================================================
# DATABASE MODELS BASE CLASS
# =============================================================================

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}


class DatabaseBase(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    metadata = MetaData(naming_convention=convention)


# =============================================================================
# CONNECTION MANAGER
# =============================================================================

class DatabaseConnectionManager:
    """
    Owns the async engine. Pool options are applied only for server
    databases; SQLite (tests) runs on SQLAlchemy's default pool.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings()
        self._url = url or settings.DATABASE_URL
        self._echo = settings.DB_ECHO if echo is None else echo
        self._engine: Optional[AsyncEngine] = None
        self._health_check_query = text("SELECT 1")
        self._retry_attempts = 3
        self._retry_delay = 1.0

    def _build_connection_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"url": self._url, "echo": self._echo}
        if not self._url.startswith("sqlite"):
            settings = get_settings()
            params.update(
                pool_pre_ping=True,
                pool_recycle=3600,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=30,
            )
        return params

    async def initialize(self, create_schema: bool = False) -> None:
        """
        Create the engine.

        Args:
            create_schema: Run metadata.create_all, used by tests and local setups
        """
        if self._engine is not None:
            logger.warning("Database engine already initialized")
            return

        try:
            logger.info("Initializing database connection pool...")
            self._engine = create_async_engine(**self._build_connection_params())
            if create_schema:
                await self.create_schema()
        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None
            raise DatabaseError(f"Database initialization failed: {e}", operation="initialize")

        logger.info("Database connection pool initialized successfully")

    async def create_schema(self) -> None:
        # models register themselves on DatabaseBase.metadata at import time
        from telehealth_core.modules.subscription_lifecycle.infrastructure.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(DatabaseBase.metadata.create_all)
        logger.info("Database schema created")

    async def health_check(self) -> Dict[str, Any]:
        """Run SELECT 1 with exponential backoff between attempts."""
        if self._engine is None:
            return {
                "status": "unhealthy",
                "error": "Database engine not initialized",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        for attempt in range(self._retry_attempts):
            try:
                async with self._engine.begin() as conn:
                    result = await conn.execute(self._health_check_query)
                    result.scalar()
                return {
                    "status": "healthy",
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }
            except Exception as e:
                logger.warning(
                    f"Database health check failed (attempt {attempt + 1}/{self._retry_attempts}): {e}"
                )
                if attempt < self._retry_attempts - 1:
                    await asyncio.sleep(self._retry_delay * (2 ** attempt))

        logger.error("Database health check failed after all retry attempts")
        return {
            "status": "unhealthy",
            "error": "Database health check failed after all retry attempts",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    async def close(self) -> None:
        if self._engine is None:
            logger.warning("Database engine not initialized, nothing to close")
            return

        await self._engine.dispose()
        self._engine = None
        logger.info("Database connection pool closed successfully")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None
