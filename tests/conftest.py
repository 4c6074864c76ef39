"""
Shared fixtures for the subscription lifecycle tests.

Provides a frozen clock, an in-memory store and plan catalog with a small
plan lineup, an audit sink that records entries, and the wired services.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import pytest

from telehealth_core.modules.subscription_lifecycle.dependencies import (
    LifecycleServices,
    build_lifecycle_services,
)
from telehealth_core.modules.subscription_lifecycle.domain.models import (
    UNLIMITED,
    PlanDefinition,
    PlanPrivilege,
    Subscription,
    SubscriptionStatus,
)
from telehealth_core.modules.subscription_lifecycle.domain.services.audit import AuditRecord, AuditSink
from telehealth_core.modules.subscription_lifecycle.infrastructure.memory import (
    InMemoryPlanCatalog,
    InMemorySubscriptionStore,
)
from telehealth_core.shared.config.settings import Settings
from telehealth_core.shared.utils.clock import FrozenClock

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class RecordingAuditSink(AuditSink):
    """Keeps audit entries in memory for assertions."""

    def __init__(self):
        self.records: List[AuditRecord] = []

    async def record(self, entry: AuditRecord) -> None:
        self.records.append(entry)

    def actions(self) -> List[str]:
        return [r.action for r in self.records]


def build_catalog() -> InMemoryPlanCatalog:
    catalog = InMemoryPlanCatalog()
    catalog.add_plan(
        PlanDefinition(plan_id="basic", name="Basic Care", price=Decimal("30.00"), billing_cycle="Monthly"),
        [
            PlanPrivilege(plan_id="basic", privilege_name="consultations", value=2),
            PlanPrivilege(plan_id="basic", privilege_name="messages", value=UNLIMITED),
            PlanPrivilege(plan_id="basic", privilege_name="lab_tests", value=0),
        ],
    )
    catalog.add_plan(
        PlanDefinition(plan_id="premium", name="Premium Care", price=Decimal("60.00"), billing_cycle="Monthly"),
        [
            PlanPrivilege(plan_id="premium", privilege_name="consultations", value=5),
            PlanPrivilege(plan_id="premium", privilege_name="messages", value=UNLIMITED),
        ],
    )
    catalog.add_plan(
        PlanDefinition(plan_id="legacy", name="Legacy", price=Decimal("10.00"), is_active=False),
    )
    return catalog


def build_services(
    store=None,
    clock: Optional[FrozenClock] = None,
    audit_sink: Optional[AuditSink] = None,
    event_bus=None,
    max_conflict_retries: int = 3,
) -> LifecycleServices:
    settings = Settings(LIFECYCLE_MAX_CONFLICT_RETRIES=max_conflict_retries)
    return build_lifecycle_services(
        store or InMemorySubscriptionStore(),
        build_catalog(),
        clock=clock or FrozenClock(NOW),
        event_bus=event_bus,
        audit_sink=audit_sink or RecordingAuditSink(),
        settings=settings,
    )


async def create_subscription(
    services: LifecycleServices,
    subscription_id: str = "sub-1",
    plan_id: str = "basic",
    status: SubscriptionStatus = SubscriptionStatus.PENDING,
    activate: bool = False,
    **fields,
) -> Subscription:
    """Register a subscription through the manager, optionally activating it."""
    plan = await services.catalog.get_plan(plan_id)
    subscription = Subscription(
        subscription_id=subscription_id,
        user_id=f"patient-{subscription_id}",
        plan_id=plan_id,
        status=status,
        current_price=plan.price if plan else Decimal("0.00"),
        billing_cycle=plan.billing_cycle if plan else "Monthly",
        **fields,
    )
    result = await services.manager.initialize(subscription, actor="admin")
    assert result.success, result.message
    if activate:
        result = await services.manager.activate(subscription_id, actor="admin")
        assert result.success, result.message
    return result.subscription


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def store() -> InMemorySubscriptionStore:
    return InMemorySubscriptionStore()


@pytest.fixture
def services(store, clock, audit_sink) -> LifecycleServices:
    return build_services(store=store, clock=clock, audit_sink=audit_sink)
