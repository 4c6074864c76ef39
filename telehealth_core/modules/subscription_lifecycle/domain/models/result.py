# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/models/result.py
# 🧭 Purpose (Layman Explanation):
# The "receipts" the lifecycle services hand back: did it work, and if not, what kind of problem.
# 🧪 Purpose (Technical Summary):
# Typed result values for single operations, bulk batches and sweeps, plus the plan-change
# quote and lifecycle status summary read models.
# 🔗 Dependencies:
# pydantic, decimal, datetime
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py, privilege_quota_tracker.py, lifecycle_orchestrator.py, Celery tasks

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from telehealth_core.shared.core.exceptions import ErrorKind, TelehealthException

from .subscription import Subscription, SubscriptionStatus


class LifecycleResult(BaseModel):
    """Outcome of a single lifecycle or quota operation."""

    success: bool
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    subscription: Optional[Subscription] = None

    @classmethod
    def ok(cls, subscription: Optional[Subscription] = None, message: str = "") -> "LifecycleResult":
        return cls(success=True, subscription=subscription, message=message)

    @classmethod
    def fail(cls, error_kind: ErrorKind, message: str) -> "LifecycleResult":
        return cls(success=False, error_kind=error_kind, message=message)

    @classmethod
    def from_exception(cls, error: TelehealthException) -> "LifecycleResult":
        return cls.fail(error.error_kind, error.message)


class ItemError(BaseModel):
    """Why one subscription in a batch or sweep failed."""

    subscription_id: str
    error_kind: Optional[ErrorKind] = None
    message: str

    @classmethod
    def from_result(cls, subscription_id: str, outcome: LifecycleResult) -> "ItemError":
        return cls(subscription_id=subscription_id, error_kind=outcome.error_kind, message=outcome.message)


class BulkResult(BaseModel):
    """
    Batch outcome. errors holds one ItemError per failed item; systemic_error
    is set when a store/catalog failure aborted the batch.
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[ItemError] = Field(default_factory=list)
    systemic_error: Optional[str] = None
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def record_failure(self, subscription_id: str, outcome: LifecycleResult):
        self.failed += 1
        self.errors.append(ItemError.from_result(subscription_id, outcome))


class SweepResult(BaseModel):
    """Outcome of a scheduler sweep."""

    examined: int = 0
    expired: int = 0
    trials_expired: int = 0
    reset: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[ItemError] = Field(default_factory=list)
    cancelled: bool = False

    def record_failure(self, subscription_id: str, outcome: LifecycleResult):
        self.failed += 1
        self.errors.append(ItemError.from_result(subscription_id, outcome))


class PlanChangeQuote(BaseModel):
    """Proration breakdown for switching a subscription to another plan."""

    subscription_id: str
    current_plan_id: str
    new_plan_id: str
    old_price: Decimal
    new_price: Decimal
    days_remaining: int
    cycle_length_days: int
    credit: Decimal
    charge: Decimal


class LifecycleStatusSummary(BaseModel):
    """Where a subscription stands and what can happen to it next."""

    subscription_id: str
    status: SubscriptionStatus
    next_billing_date: Optional[datetime] = None
    days_until_next_billing: Optional[int] = None
    is_active: bool
    is_paused: bool
    is_cancelled: bool
    is_expired: bool
    is_in_trial: bool
    can_be_paused: bool
    can_be_cancelled: bool
    can_be_reactivated: bool
    allowed_transitions: List[SubscriptionStatus]
    failed_payment_attempts: int = 0
    status_counts: Dict[str, int] = Field(default_factory=dict)
