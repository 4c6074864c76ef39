"""Subscription lifecycle domain models."""

from .plan import PlanDefinition
from .privilege import UNLIMITED, PlanPrivilege, PrivilegeUsageRecord, PrivilegeUsageSummary
from .result import (
    BulkResult,
    ItemError,
    LifecycleResult,
    LifecycleStatusSummary,
    PlanChangeQuote,
    SweepResult,
)
from .status_history import SubscriptionStatusHistory
from .subscription import BillingCycle, Subscription, SubscriptionStatus

__all__ = [
    "BillingCycle",
    "BulkResult",
    "ItemError",
    "LifecycleResult",
    "LifecycleStatusSummary",
    "PlanChangeQuote",
    "PlanDefinition",
    "PlanPrivilege",
    "PrivilegeUsageRecord",
    "PrivilegeUsageSummary",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionStatusHistory",
    "SweepResult",
    "UNLIMITED",
]
