# 📄 File: telehealth_core/modules/subscription_lifecycle/infrastructure/database/subscription_store_impl.py
# 🧭 Purpose (Layman Explanation):
# Saves and loads subscriptions, their status diary and usage counters in the real database,
# refusing to overwrite a record someone else changed in the meantime.
# 🧪 Purpose (Technical Summary):
# SQLAlchemy async implementation of SubscriptionStore. Updates are issued as
# UPDATE ... WHERE version = :expected; zero affected rows becomes ConcurrencyConflictError.
# transaction() binds one session to the current task context so nested store calls share it.
# 🔗 Dependencies:
# SQLAlchemy (async ORM), DatabaseSessionManager, ORM models and mappers
# 🔄 Connected Modules / Calls From:
# dependencies.build_lifecycle_services (database wiring), Celery sweep tasks

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import AsyncGenerator, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from telehealth_core.shared.core.exceptions import (
    ConcurrencyConflictError,
    SubscriptionNotFoundError,
    ValidationError,
)
from telehealth_core.shared.infrastructure.database.session import DatabaseSessionManager

from ...domain.models import (
    PrivilegeUsageRecord,
    Subscription,
    SubscriptionStatus,
    SubscriptionStatusHistory,
)
from ...domain.repositories.subscription_store import SubscriptionStore
from .models import (
    PrivilegeUsageModel,
    SubscriptionModel,
    SubscriptionStatusHistoryModel,
    history_from_row,
    history_to_row,
    subscription_from_row,
    subscription_to_values,
    usage_from_row,
    usage_to_values,
)

logger = logging.getLogger(__name__)


class SqlAlchemySubscriptionStore(SubscriptionStore):
    """
    SQLAlchemy implementation of the subscription store.
    Handles all lifecycle database operations with version-checked writes.
    """

    def __init__(self, session_manager: DatabaseSessionManager):
        self._sessions = session_manager
        self._current: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"subscription_store_session_{id(self)}", default=None
        )

    # =========================================================================
    # SESSION HANDLING
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        if self._current.get() is not None:
            yield
            return

        async with self._sessions.get_session() as session:
            token = self._current.set(session)
            try:
                yield
            finally:
                self._current.reset(token)

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        """The transaction's session if one is open, otherwise a short-lived one."""
        session = self._current.get()
        if session is not None:
            yield session
            return
        async with self._sessions.get_session() as session:
            yield session

    @asynccontextmanager
    async def _read_session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._current.get()
        if session is not None:
            yield session
            return
        async with self._sessions.get_read_only_session() as session:
            yield session

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def get(self, subscription_id: str) -> Optional[Subscription]:
        async with self._read_session() as session:
            row = await session.scalar(
                select(SubscriptionModel)
                .where(SubscriptionModel.subscription_id == subscription_id)
                .execution_options(populate_existing=True)
            )
            return subscription_from_row(row) if row else None

    async def list_by_status(self, statuses: Iterable[SubscriptionStatus]) -> List[Subscription]:
        values = [SubscriptionStatus(s).value for s in statuses]
        async with self._read_session() as session:
            rows = await session.scalars(
                select(SubscriptionModel)
                .where(SubscriptionModel.status.in_(values))
                .order_by(SubscriptionModel.subscription_id)
                .execution_options(populate_existing=True)
            )
            return [subscription_from_row(row) for row in rows]

    async def add(self, subscription: Subscription) -> Subscription:
        async with self._session() as session:
            exists = await session.scalar(
                select(func.count())
                .select_from(SubscriptionModel)
                .where(SubscriptionModel.subscription_id == subscription.subscription_id)
            )
            if exists:
                raise ValidationError(
                    f"Subscription {subscription.subscription_id} already exists",
                    field="subscription_id", value=subscription.subscription_id,
                )
            session.add(SubscriptionModel(**subscription_to_values(subscription)))
            await session.flush()
        return subscription.model_copy(deep=True)

    async def save(self, subscription: Subscription) -> Subscription:
        subscription_id = subscription.subscription_id
        expected = subscription.version
        values = subscription_to_values(subscription)
        values["version"] = expected + 1
        del values["subscription_id"]

        async with self._session() as session:
            result = await session.execute(
                update(SubscriptionModel)
                .where(
                    SubscriptionModel.subscription_id == subscription_id,
                    SubscriptionModel.version == expected,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                exists = await session.scalar(
                    select(func.count())
                    .select_from(SubscriptionModel)
                    .where(SubscriptionModel.subscription_id == subscription_id)
                )
                if not exists:
                    raise SubscriptionNotFoundError(subscription_id)
                raise ConcurrencyConflictError(
                    f"Subscription {subscription_id} was modified concurrently",
                    entity_type="subscription", entity_id=subscription_id, expected_version=expected,
                )

        return subscription.model_copy(update={"version": expected + 1}, deep=True)

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def append_history(self, entry: SubscriptionStatusHistory) -> None:
        async with self._session() as session:
            session.add(history_to_row(entry))
            await session.flush()

    async def get_history(self, subscription_id: str) -> List[SubscriptionStatusHistory]:
        async with self._read_session() as session:
            rows = await session.scalars(
                select(SubscriptionStatusHistoryModel)
                .where(SubscriptionStatusHistoryModel.subscription_id == subscription_id)
                .order_by(SubscriptionStatusHistoryModel.id)
            )
            return [history_from_row(row) for row in rows]

    # =========================================================================
    # USAGE
    # =========================================================================

    async def get_usage_records(self, subscription_id: str) -> List[PrivilegeUsageRecord]:
        async with self._read_session() as session:
            rows = await session.scalars(
                select(PrivilegeUsageModel)
                .where(PrivilegeUsageModel.subscription_id == subscription_id)
                .order_by(PrivilegeUsageModel.privilege_name)
                .execution_options(populate_existing=True)
            )
            return [usage_from_row(row) for row in rows]

    async def get_usage_record(self, subscription_id: str, privilege_name: str) -> Optional[PrivilegeUsageRecord]:
        async with self._read_session() as session:
            row = await session.scalar(
                select(PrivilegeUsageModel)
                .where(
                    PrivilegeUsageModel.subscription_id == subscription_id,
                    PrivilegeUsageModel.privilege_name == privilege_name,
                )
                .execution_options(populate_existing=True)
            )
            return usage_from_row(row) if row else None

    def _usage_conflict(self, record: PrivilegeUsageRecord) -> ConcurrencyConflictError:
        return ConcurrencyConflictError(
            f"Usage record {record.privilege_name} of {record.subscription_id} was modified concurrently",
            entity_type="privilege_usage", entity_id=record.usage_id, expected_version=record.version,
        )

    async def upsert_usage_record(self, record: PrivilegeUsageRecord) -> PrivilegeUsageRecord:
        expected = record.version
        values = usage_to_values(record)
        values["version"] = expected + 1

        async with self._session() as session:
            if expected == 0:
                existing = await session.scalar(
                    select(func.count())
                    .select_from(PrivilegeUsageModel)
                    .where(
                        PrivilegeUsageModel.subscription_id == record.subscription_id,
                        PrivilegeUsageModel.privilege_name == record.privilege_name,
                    )
                )
                if existing:
                    raise self._usage_conflict(record)
                session.add(PrivilegeUsageModel(**values))
                try:
                    await session.flush()
                except IntegrityError:
                    raise self._usage_conflict(record)
            else:
                del values["usage_id"]
                result = await session.execute(
                    update(PrivilegeUsageModel)
                    .where(
                        PrivilegeUsageModel.usage_id == record.usage_id,
                        PrivilegeUsageModel.version == expected,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise self._usage_conflict(record)

        return record.model_copy(update={"version": expected + 1}, deep=True)

    async def list_subscription_ids_with_elapsed_usage(self, now: datetime) -> List[str]:
        async with self._read_session() as session:
            rows = await session.scalars(
                select(PrivilegeUsageModel.subscription_id)
                .where(PrivilegeUsageModel.usage_period_end <= now)
                .distinct()
                .order_by(PrivilegeUsageModel.subscription_id)
            )
            return list(rows)
