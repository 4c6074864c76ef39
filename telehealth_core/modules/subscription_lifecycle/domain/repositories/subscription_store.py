# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/repositories/subscription_store.py
# 🧭 Purpose (Layman Explanation):
# Lists what the lifecycle services need from storage: load and save subscriptions, keep their
# status diary and usage counters, and save several things together as one unit.
# 🧪 Purpose (Technical Summary):
# Abstract persistence port with optimistic versioning. save() and upsert_usage_record() compare
# the caller's version with the stored one and raise ConcurrencyConflictError on mismatch.
# Infrastructure failures surface as SystemicFailureError.
# 🔗 Dependencies:
# - abc (Abstract Base Classes)
# - Subscription lifecycle domain models
# 🔄 Connected Modules / Calls From:
# - Lifecycle manager, quota tracker, orchestrator
# - InMemorySubscriptionStore, SqlAlchemySubscriptionStore (implementations)

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Iterable, List, Optional

from ..models import (
    PrivilegeUsageRecord,
    Subscription,
    SubscriptionStatus,
    SubscriptionStatusHistory,
)


class SubscriptionStore(ABC):
    """
    Persistence interface for subscriptions, status history and usage records.

    Returned aggregates are detached copies: mutating them has no effect
    until they are passed back to save().
    """

    @abstractmethod
    async def get(self, subscription_id: str) -> Optional[Subscription]:
        """Load a subscription by id."""
        pass

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[SubscriptionStatus]) -> List[Subscription]:
        """List subscriptions currently in any of the given statuses."""
        pass

    @abstractmethod
    async def add(self, subscription: Subscription) -> Subscription:
        """Insert a new subscription. Fails with ValidationError if the id exists."""
        pass

    @abstractmethod
    async def save(self, subscription: Subscription) -> Subscription:
        """
        Persist changes to an existing subscription.

        Args:
            subscription: Aggregate carrying the version it was read at

        Returns:
            Subscription: The stored aggregate with its version incremented

        Raises:
            ConcurrencyConflictError: The stored version moved on since the read
        """
        pass

    @abstractmethod
    async def append_history(self, entry: SubscriptionStatusHistory) -> None:
        """Append one status history entry. Entries are never updated or deleted."""
        pass

    @abstractmethod
    async def get_history(self, subscription_id: str) -> List[SubscriptionStatusHistory]:
        """Status history in insertion order."""
        pass

    @abstractmethod
    async def get_usage_records(self, subscription_id: str) -> List[PrivilegeUsageRecord]:
        pass

    @abstractmethod
    async def get_usage_record(
        self, subscription_id: str, privilege_name: str
    ) -> Optional[PrivilegeUsageRecord]:
        pass

    @abstractmethod
    async def upsert_usage_record(self, record: PrivilegeUsageRecord) -> PrivilegeUsageRecord:
        """Insert a new usage record or update an existing one with a version check."""
        pass

    @abstractmethod
    async def list_subscription_ids_with_elapsed_usage(self, now: datetime) -> List[str]:
        """Ids of subscriptions owning at least one usage record whose period ended at or before now."""
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """
        Group the writes made inside the block so they commit together or not at all.
        Nested use joins the outer transaction.
        """
        pass
