"""In-memory adapters for the subscription lifecycle ports."""

from .plan_catalog import InMemoryPlanCatalog
from .subscription_store import InMemorySubscriptionStore

__all__ = ["InMemoryPlanCatalog", "InMemorySubscriptionStore"]
