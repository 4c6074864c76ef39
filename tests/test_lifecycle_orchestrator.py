"""
Bulk operation and sweep tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import pytest

from telehealth_core.modules.subscription_lifecycle.domain.models import Subscription, SubscriptionStatus
from telehealth_core.modules.subscription_lifecycle.domain.services.audit import (
    ACTION_BULK_PLAN_CHANGE,
    ACTION_BULK_STATE_CHANGE,
)
from telehealth_core.modules.subscription_lifecycle.infrastructure.memory import InMemorySubscriptionStore
from telehealth_core.shared.core.exceptions import DatabaseError, ErrorKind

from conftest import NOW, build_services, create_subscription

pytestmark = pytest.mark.asyncio

S = SubscriptionStatus


class FlakyStore(InMemorySubscriptionStore):
    """Store that loses its connection when it reads a given subscription."""

    def __init__(self, poisoned_id: Optional[str] = None, fail_listing: bool = False):
        super().__init__()
        self.poisoned_id = poisoned_id
        self.fail_listing = fail_listing

    async def get(self, subscription_id: str) -> Optional[Subscription]:
        if subscription_id == self.poisoned_id:
            raise DatabaseError("connection reset by peer", operation="select", table="subscriptions")
        return await super().get(subscription_id)

    async def list_by_status(self, statuses: Iterable[SubscriptionStatus]) -> List[Subscription]:
        if self.fail_listing:
            raise DatabaseError("connection reset by peer", operation="select", table="subscriptions")
        return await super().list_by_status(statuses)


class TestBulkTransition:

    async def test_bad_items_are_reported_not_fatal(self, services, audit_sink):
        await create_subscription(services, "sub-1", activate=True)
        await create_subscription(services, "sub-2", activate=True)

        result = await services.orchestrator.bulk_transition(
            ["sub-1", "missing", "sub-2"], S.CANCELLED, reason="clinic closed", actor="ops",
        )

        assert result.total == 3
        assert result.succeeded == 2
        assert result.failed == 1
        assert result.errors[0].subscription_id == "missing"
        assert result.errors[0].error_kind == ErrorKind.NOT_FOUND
        assert result.systemic_error is None
        assert (await services.store.get("sub-2")).cancellation_reason == "clinic closed"

        bulk_records = [r for r in audit_sink.records if r.action == ACTION_BULK_STATE_CHANGE]
        assert len(bulk_records) == 1
        assert bulk_records[0].actor == "ops"
        assert "2 succeeded, 1 failed of 3" in bulk_records[0].detail

    async def test_invalid_transitions_are_collected(self, services):
        await create_subscription(services, "sub-1")
        await create_subscription(services, "sub-2", activate=True)

        result = await services.orchestrator.bulk_transition(["sub-1", "sub-2"], S.PAUSED, reason="audit")

        assert result.succeeded == 1
        assert result.failed == 1
        [error] = result.errors
        assert error.subscription_id == "sub-1"
        assert error.error_kind == ErrorKind.INVALID_TRANSITION
        assert error.message == "Only active subscriptions can be paused"

    async def test_cancel_event_stops_between_items(self, services):
        await create_subscription(services, "sub-1", activate=True)
        stop = asyncio.Event()
        stop.set()

        result = await services.orchestrator.bulk_transition(["sub-1"], S.CANCELLED, cancel_event=stop)

        assert result.cancelled
        assert result.processed == 0
        assert (await services.store.get("sub-1")).status == S.ACTIVE

    async def test_systemic_failure_aborts_batch(self, clock, audit_sink):
        store = FlakyStore()
        services = build_services(store=store, clock=clock, audit_sink=audit_sink)
        for sid in ("sub-1", "sub-2", "sub-3"):
            await create_subscription(services, sid, activate=True)
        store.poisoned_id = "sub-2"

        result = await services.orchestrator.bulk_transition(["sub-1", "sub-2", "sub-3"], S.CANCELLED)

        assert result.succeeded == 1
        assert result.failed == 0
        assert result.systemic_error == "sub-2: connection reset by peer"
        assert (await store.get("sub-3")).status == S.ACTIVE


class TestBulkPlanChange:

    async def test_plan_migration(self, services, audit_sink):
        await create_subscription(services, "sub-1", activate=True)
        await create_subscription(services, "sub-2", plan_id="premium", activate=True)

        result = await services.orchestrator.bulk_change_plan(["sub-1", "sub-2"], "premium", actor="ops")

        assert result.succeeded == 1
        [error] = result.errors
        assert error.subscription_id == "sub-2"
        assert error.error_kind == ErrorKind.VALIDATION
        assert error.message == "Subscription is already on this plan"
        migrated = await services.store.get("sub-1")
        assert migrated.plan_id == "premium"
        assert str(migrated.current_price) == "60.00"
        assert ACTION_BULK_PLAN_CHANGE in audit_sink.actions()

    async def test_inactive_plan_rejected(self, services):
        await create_subscription(services, "sub-1", activate=True)

        result = await services.orchestrator.bulk_change_plan(["sub-1"], "legacy")

        assert result.failed == 1
        assert result.errors[0].error_kind == ErrorKind.VALIDATION
        assert "not available" in result.errors[0].message


class TestExpirationSweep:

    async def test_overdue_and_trials_are_expired(self, services, clock):
        await create_subscription(services, "due", activate=True)
        await create_subscription(services, "trial", status=S.TRIAL_ACTIVE)
        await create_subscription(services, "paused", activate=True)
        await services.manager.pause("paused", reason="travel")
        clock.advance(days=20)
        await create_subscription(services, "fresh", activate=True)

        clock.advance(days=15)
        result = await services.orchestrator.process_expiration_sweep()

        assert result.examined == 2
        assert result.expired == 1
        assert result.trials_expired == 1
        assert result.failed == 0

        expired = await services.store.get("due")
        assert expired.status == S.EXPIRED
        assert expired.expiration_date == NOW + timedelta(days=35)
        history = await services.manager.get_status_history("due")
        assert history[-1].reason == "Subscription expired due to non-payment"
        assert history[-1].changed_by is None

        trial = await services.store.get("trial")
        assert trial.status == S.TRIAL_EXPIRED
        assert trial.trial_end_date == NOW + timedelta(days=7)

        assert (await services.store.get("paused")).status == S.PAUSED
        assert (await services.store.get("fresh")).status == S.ACTIVE

    async def test_second_sweep_finds_nothing(self, services, clock):
        await create_subscription(services, "due", activate=True)
        clock.advance(days=40)

        first = await services.orchestrator.process_expiration_sweep()
        second = await services.orchestrator.process_expiration_sweep()

        assert first.expired == 1
        assert second.examined == 0
        history = await services.manager.get_status_history("due")
        assert [h.to_status for h in history] == [S.PENDING, S.ACTIVE, S.EXPIRED]

    async def test_naive_dates_are_read_as_utc(self, services, clock):
        await create_subscription(services, "good", activate=True)
        trial = await create_subscription(
            services, "trial", status=S.TRIAL_ACTIVE, trial_end_date=datetime(2025, 1, 10),
        )
        assert trial.trial_end_date == datetime(2025, 1, 10, tzinfo=timezone.utc)

        clock.advance(days=40)
        result = await services.orchestrator.process_expiration_sweep()

        assert result.expired == 1
        assert result.trials_expired == 1
        assert result.failed == 0
        assert (await services.store.get("good")).status == S.EXPIRED
        assert (await services.store.get("trial")).status == S.TRIAL_EXPIRED

    async def test_store_outage_propagates(self, clock):
        services = build_services(store=FlakyStore(fail_listing=True), clock=clock)

        with pytest.raises(DatabaseError):
            await services.orchestrator.process_expiration_sweep()


class TestUsageResetSweep:

    async def test_elapsed_windows_are_reset(self, services, clock):
        await create_subscription(services, "sub-1", activate=True)
        await create_subscription(services, "sub-2", activate=True)
        await services.quota_tracker.consume("sub-1", "consultations")
        clock.advance(days=10)
        await services.quota_tracker.consume("sub-2", "consultations")

        clock.advance(days=22)
        result = await services.orchestrator.process_usage_reset_sweep()

        assert result.examined == 1
        assert result.reset == 1
        record = await services.store.get_usage_record("sub-1", "consultations")
        assert record.used_value == 0
        assert (await services.store.get_usage_record("sub-2", "consultations")).used_value == 1

        again = await services.orchestrator.process_usage_reset_sweep()
        assert again.examined == 0
