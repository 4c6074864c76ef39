# 📄 File: telehealth_core/modules/subscription_lifecycle/infrastructure/memory/subscription_store.py
# 🧭 Purpose (Layman Explanation):
# A storage box that lives in memory, for tests, demos and single-process tools. It follows
# the same rules as the real database: versions must match and grouped writes save together.
# 🧪 Purpose (Technical Summary):
# Dict-backed SubscriptionStore. Reads return deep copies; writes inside transaction() are staged
# per task context and applied atomically at commit after every version check has passed.
# 🔗 Dependencies:
# asyncio, contextvars, subscription lifecycle domain models and store port
# 🔄 Connected Modules / Calls From:
# dependencies.build_lifecycle_services (in-memory wiring), test suite

import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from telehealth_core.shared.core.exceptions import (
    ConcurrencyConflictError,
    SubscriptionNotFoundError,
    ValidationError,
)

from ...domain.models import (
    PrivilegeUsageRecord,
    Subscription,
    SubscriptionStatus,
    SubscriptionStatusHistory,
)
from ...domain.repositories.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

# (check, apply): check raises on conflict, apply mutates state and cannot fail
_Write = Tuple[Callable[[], None], Callable[[], None]]


class InMemorySubscriptionStore(SubscriptionStore):
    """In-process SubscriptionStore with optimistic versioning."""

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._history: Dict[str, List[SubscriptionStatusHistory]] = defaultdict(list)
        self._usage: Dict[Tuple[str, str], PrivilegeUsageRecord] = {}
        self._staged: ContextVar[Optional[List[_Write]]] = ContextVar(
            f"in_memory_store_tx_{id(self)}", default=None
        )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        if self._staged.get() is not None:
            yield
            return

        staged: List[_Write] = []
        token = self._staged.set(staged)
        try:
            yield
        finally:
            self._staged.reset(token)

        # only reached when the block exited cleanly
        for check, _ in staged:
            check()
        for _, apply in staged:
            apply()
        if staged:
            logger.debug(f"Committed {len(staged)} staged write(s)")

    def _write(self, check: Callable[[], None], apply: Callable[[], None]):
        staged = self._staged.get()
        if staged is None:
            check()
            apply()
        else:
            check()
            staged.append((check, apply))

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def get(self, subscription_id: str) -> Optional[Subscription]:
        stored = self._subscriptions.get(subscription_id)
        return stored.model_copy(deep=True) if stored else None

    async def list_by_status(self, statuses: Iterable[SubscriptionStatus]) -> List[Subscription]:
        wanted = set(statuses)
        return [s.model_copy(deep=True) for s in self._subscriptions.values() if s.status in wanted]

    async def add(self, subscription: Subscription) -> Subscription:
        subscription_id = subscription.subscription_id
        snapshot = subscription.model_copy(deep=True)

        def check():
            if subscription_id in self._subscriptions:
                raise ValidationError(
                    f"Subscription {subscription_id} already exists",
                    field="subscription_id", value=subscription_id,
                )

        def apply():
            self._subscriptions[subscription_id] = snapshot

        self._write(check, apply)
        return snapshot.model_copy(deep=True)

    async def save(self, subscription: Subscription) -> Subscription:
        subscription_id = subscription.subscription_id
        expected = subscription.version
        snapshot = subscription.model_copy(deep=True)
        snapshot.version = expected + 1

        def check():
            stored = self._subscriptions.get(subscription_id)
            if stored is None:
                raise SubscriptionNotFoundError(subscription_id)
            if stored.version != expected:
                raise ConcurrencyConflictError(
                    f"Subscription {subscription_id} was modified concurrently",
                    entity_type="subscription", entity_id=subscription_id, expected_version=expected,
                )

        def apply():
            self._subscriptions[subscription_id] = snapshot

        self._write(check, apply)
        return snapshot.model_copy(deep=True)

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def append_history(self, entry: SubscriptionStatusHistory) -> None:
        self._write(lambda: None, lambda: self._history[entry.subscription_id].append(entry))

    async def get_history(self, subscription_id: str) -> List[SubscriptionStatusHistory]:
        return list(self._history.get(subscription_id, []))

    # =========================================================================
    # USAGE
    # =========================================================================

    async def get_usage_records(self, subscription_id: str) -> List[PrivilegeUsageRecord]:
        return [
            r.model_copy(deep=True)
            for (sid, _), r in self._usage.items()
            if sid == subscription_id
        ]

    async def get_usage_record(self, subscription_id: str, privilege_name: str) -> Optional[PrivilegeUsageRecord]:
        stored = self._usage.get((subscription_id, privilege_name))
        return stored.model_copy(deep=True) if stored else None

    async def upsert_usage_record(self, record: PrivilegeUsageRecord) -> PrivilegeUsageRecord:
        key = (record.subscription_id, record.privilege_name)
        expected = record.version
        snapshot = record.model_copy(deep=True)
        snapshot.version = expected + 1

        def check():
            stored = self._usage.get(key)
            current = stored.version if stored else 0
            if current != expected or (stored is not None and stored.usage_id != record.usage_id):
                raise ConcurrencyConflictError(
                    f"Usage record {record.privilege_name} of {record.subscription_id} was modified concurrently",
                    entity_type="privilege_usage", entity_id=record.usage_id, expected_version=expected,
                )

        def apply():
            self._usage[key] = snapshot

        self._write(check, apply)
        return snapshot.model_copy(deep=True)

    async def list_subscription_ids_with_elapsed_usage(self, now: datetime) -> List[str]:
        ids = {r.subscription_id for r in self._usage.values() if r.usage_period_end <= now}
        return sorted(ids)
