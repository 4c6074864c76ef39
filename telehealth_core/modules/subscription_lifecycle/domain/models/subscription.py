# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/models/subscription.py
# 🧭 Purpose (Layman Explanation):
# Describes a patient's subscription to a care plan: which plan, what it costs, where it is
# in its life (trial, active, paused, cancelled...) and the key dates along the way.
# 🧪 Purpose (Technical Summary):
# Pydantic aggregate for the subscription lifecycle with the closed status enum, billing cycle
# kinds and an optimistic concurrency version. Status is mutated only by the lifecycle manager.
# 🔗 Dependencies:
# pydantic, datetime, decimal, enum, uuid
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py, privilege_quota_tracker.py, proration_calculator.py, stores, ORM mapping

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telehealth_core.shared.utils.clock import ensure_utc


class SubscriptionStatus(str, Enum):
    """Closed set of lifecycle states."""
    PENDING = "Pending"
    TRIAL_ACTIVE = "TrialActive"
    TRIAL_EXPIRED = "TrialExpired"
    ACTIVE = "Active"
    PAUSED = "Paused"
    SUSPENDED = "Suspended"
    PAYMENT_FAILED = "PaymentFailed"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


class BillingCycle(str, Enum):
    """Recognized billing cycle kinds. Stored as free text on plans and subscriptions."""
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUAL = "Annual"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Subscription(BaseModel):
    """
    Subscription aggregate.

    Status-specific dates (paused_date, cancelled_date, suspended_date...) are
    kept as history once the status moves on; only reactivation clears them.
    """

    model_config = ConfigDict(validate_assignment=True)

    # Identity
    subscription_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    plan_id: str

    # Lifecycle
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    current_price: Decimal = Decimal("0.00")
    billing_cycle: str = BillingCycle.MONTHLY.value
    auto_renew: bool = True

    # Dates
    start_date: datetime = Field(default_factory=utc_now)
    next_billing_date: Optional[datetime] = None
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    paused_date: Optional[datetime] = None
    resumed_date: Optional[datetime] = None
    cancelled_date: Optional[datetime] = None
    suspended_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None

    # Payment tracking
    last_payment_date: Optional[datetime] = None
    last_payment_failed_date: Optional[datetime] = None
    last_payment_error: Optional[str] = None
    failed_payment_attempts: int = 0

    # Reasons
    cancellation_reason: Optional[str] = None
    pause_reason: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = 0

    @field_validator(
        'start_date', 'next_billing_date', 'trial_start_date', 'trial_end_date',
        'paused_date', 'resumed_date', 'cancelled_date', 'suspended_date',
        'expiration_date', 'last_payment_date', 'last_payment_failed_date',
        'created_at', 'updated_at',
    )
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        # naive values are taken as UTC
        return ensure_utc(v)

    @field_validator('current_price')
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError('Price cannot be negative')
        return v

    @field_validator('failed_payment_attempts')
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError('Failed payment attempts cannot be negative')
        return v

    def is_renewal_due(self, now: datetime) -> bool:
        return self.next_billing_date is not None and self.next_billing_date <= now

    def is_trial_over(self, now: datetime) -> bool:
        return self.trial_end_date is not None and self.trial_end_date <= now

    def __str__(self) -> str:
        return f"Subscription({self.subscription_id}, {self.status.value}, plan={self.plan_id})"
