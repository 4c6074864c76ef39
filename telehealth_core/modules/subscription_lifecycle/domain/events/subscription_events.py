# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/events/subscription_events.py
# 🧭 Purpose (Layman Explanation):
# Announcements the subscription system makes when something important happens (a status change,
# a plan switch) so notification and billing services can react.
# 🧪 Purpose (Technical Summary):
# Dataclass domain events published on the EventBus after a lifecycle change has been persisted.
# 🔗 Dependencies:
# dataclasses, datetime, telehealth_core.shared.core.event_bus
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py (publisher), notification / billing handlers (subscribers)

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from telehealth_core.shared.core.event_bus import DomainEvent, EventPriority

SUBSCRIPTION_AGGREGATE = "subscription"


@dataclass
class SubscriptionStatusChanged(DomainEvent):
    """
    Fired after a status transition is committed.

    Triggers:
    - Patient notifications (paused, cancelled, payment failed)
    - Access revocation for suspended or expired subscriptions
    """
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    reason: Optional[str] = None
    changed_by: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.to_status is None:
            raise ValueError("to_status is required for SubscriptionStatusChanged")
        self.event_type = "subscription.status_changed"
        self.aggregate_type = SUBSCRIPTION_AGGREGATE

    @classmethod
    def create(
        cls,
        subscription_id: str,
        user_id: str,
        from_status: Optional[str],
        to_status: str,
        reason: Optional[str],
        changed_by: Optional[str],
        occurred_at: datetime,
    ) -> "SubscriptionStatusChanged":
        priority = EventPriority.HIGH if to_status in ("Suspended", "PaymentFailed") else EventPriority.NORMAL
        return cls(
            event_id="",
            event_type="subscription.status_changed",
            aggregate_id=subscription_id,
            aggregate_type=SUBSCRIPTION_AGGREGATE,
            user_id=user_id,
            timestamp=occurred_at,
            priority=priority,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            changed_by=changed_by,
        )


@dataclass
class SubscriptionPlanChanged(DomainEvent):
    """Fired after a plan change is committed."""
    old_plan_id: Optional[str] = None
    new_plan_id: Optional[str] = None
    new_price: Optional[Decimal] = None
    changed_by: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.new_plan_id is None:
            raise ValueError("new_plan_id is required for SubscriptionPlanChanged")
        self.event_type = "subscription.plan_changed"
        self.aggregate_type = SUBSCRIPTION_AGGREGATE

    @classmethod
    def create(
        cls,
        subscription_id: str,
        user_id: str,
        old_plan_id: str,
        new_plan_id: str,
        new_price: Decimal,
        changed_by: Optional[str],
        occurred_at: datetime,
    ) -> "SubscriptionPlanChanged":
        return cls(
            event_id="",
            event_type="subscription.plan_changed",
            aggregate_id=subscription_id,
            aggregate_type=SUBSCRIPTION_AGGREGATE,
            user_id=user_id,
            timestamp=occurred_at,
            old_plan_id=old_plan_id,
            new_plan_id=new_plan_id,
            new_price=new_price,
            changed_by=changed_by,
        )
