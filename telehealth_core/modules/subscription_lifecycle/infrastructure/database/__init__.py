"""SQLAlchemy adapters for the subscription lifecycle store."""

from .models import PrivilegeUsageModel, SubscriptionModel, SubscriptionStatusHistoryModel
from .subscription_store_impl import SqlAlchemySubscriptionStore

__all__ = [
    "PrivilegeUsageModel",
    "SqlAlchemySubscriptionStore",
    "SubscriptionModel",
    "SubscriptionStatusHistoryModel",
]
