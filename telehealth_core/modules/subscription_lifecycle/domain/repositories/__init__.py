"""Persistence and catalog ports for the subscription lifecycle."""

from .plan_catalog import PlanCatalog
from .subscription_store import SubscriptionStore

__all__ = ["PlanCatalog", "SubscriptionStore"]
