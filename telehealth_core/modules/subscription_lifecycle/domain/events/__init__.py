"""Subscription lifecycle domain events."""

from .subscription_events import SubscriptionPlanChanged, SubscriptionStatusChanged

__all__ = ["SubscriptionPlanChanged", "SubscriptionStatusChanged"]
