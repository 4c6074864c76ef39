# 📄 File: telehealth_core/shared/infrastructure/database/session.py
#
# 🧭 Purpose (Layman Explanation):
# Hands out database "conversations" (sessions) and makes sure each one either saves
# everything it did or nothing at all.
#
# 🧪 Purpose (Technical Summary):
# Async SQLAlchemy session factory with commit-on-success / rollback-on-error semantics.
# SQLAlchemy errors are translated into DatabaseError so callers see a systemic failure.
#
# 🔗 Dependencies:
# - sqlalchemy.ext.asyncio (AsyncSession, async_sessionmaker)
# - telehealth_core/shared/infrastructure/database/connection.py (database engine)
#
# 🔄 Connected Modules / Calls From:
# - SqlAlchemySubscriptionStore (transaction scopes)
# - Celery sweep task wiring

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telehealth_core.shared.core.exceptions import DatabaseError, TelehealthException
from telehealth_core.shared.infrastructure.database.connection import DatabaseConnectionManager

logger = logging.getLogger(__name__)


class DatabaseSessionManager:
    """
    Manages database sessions with transaction handling and automatic cleanup.
    """

    def __init__(self, connection_manager: DatabaseConnectionManager):
        self._connection_manager = connection_manager
        self._session_factory: Optional[async_sessionmaker] = None

    def initialize(self) -> None:
        """Build the session factory from an initialized engine."""
        self._session_factory = async_sessionmaker(
            self._connection_manager.engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Keep objects accessible after commit
            autoflush=True,
        )
        logger.info("Database session factory initialized successfully")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session inside a transaction.

        Commits when the block exits cleanly. Domain exceptions roll back and
        propagate unchanged; raw SQLAlchemy errors become DatabaseError.
        """
        if self._session_factory is None:
            raise DatabaseError("Session manager not initialized")

        session: AsyncSession = self._session_factory()
        try:
            yield session
            await session.commit()
        except TelehealthException:
            await session.rollback()
            raise
        except exc.SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error occurred, transaction rolled back: {e}")
            raise DatabaseError(f"Database operation failed: {e}")
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def get_read_only_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that is never committed."""
        if self._session_factory is None:
            raise DatabaseError("Session manager not initialized")

        session: AsyncSession = self._session_factory()
        try:
            yield session
        except exc.SQLAlchemyError as e:
            logger.error(f"Read-only session error: {e}")
            raise DatabaseError(f"Read operation failed: {e}")
        finally:
            await session.close()

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None
