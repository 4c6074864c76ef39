"""
Lifecycle manager tests: creation, transitions with their guards and side
effects, payments, queries, audit and event publication, and concurrency.
"""

import asyncio
from datetime import timedelta

import pytest
from dateutil.relativedelta import relativedelta

from telehealth_core.modules.subscription_lifecycle.domain.models import Subscription, SubscriptionStatus
from telehealth_core.modules.subscription_lifecycle.domain.services.audit import (
    ACTION_CREATED,
    ACTION_PAYMENT_RECORDED,
    ACTION_STATE_CHANGE,
    AuditRecord,
    AuditSink,
)
from telehealth_core.modules.subscription_lifecycle.infrastructure.memory import InMemorySubscriptionStore
from telehealth_core.shared.core.event_bus import EventBus
from telehealth_core.shared.core.exceptions import (
    ConcurrencyConflictError,
    ErrorKind,
    SubscriptionNotFoundError,
)

from conftest import NOW, build_services, create_subscription

pytestmark = pytest.mark.asyncio

S = SubscriptionStatus


class ConflictingStore(InMemorySubscriptionStore):
    """Store whose next N saves lose an optimistic concurrency race."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.save_attempts = 0

    async def save(self, subscription: Subscription) -> Subscription:
        self.save_attempts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ConcurrencyConflictError(entity_type="subscription", entity_id=subscription.subscription_id)
        return await super().save(subscription)


class BrokenAuditSink(AuditSink):
    async def record(self, entry: AuditRecord) -> None:
        raise RuntimeError("audit backend unavailable")


class TestInitialize:

    async def test_pending_subscription_gets_creation_history(self, services, audit_sink):
        await create_subscription(services)

        history = await services.manager.get_status_history("sub-1")
        assert len(history) == 1
        assert history[0].from_status is None
        assert history[0].to_status == S.PENDING
        assert history[0].changed_by == "admin"
        assert history[0].is_creation_entry
        assert audit_sink.actions() == [ACTION_CREATED]

    async def test_trial_defaults_dates(self, services):
        created = await create_subscription(services, status=S.TRIAL_ACTIVE)

        assert created.trial_start_date == NOW
        assert created.trial_end_date == NOW + timedelta(days=7)
        assert created.next_billing_date == created.trial_end_date

    async def test_rejects_non_entry_status(self, services):
        subscription = Subscription(subscription_id="sub-x", user_id="u", plan_id="basic", status=S.ACTIVE)
        result = await services.manager.initialize(subscription)

        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION
        assert await services.store.get("sub-x") is None

    async def test_rejects_unknown_plan(self, services):
        subscription = Subscription(subscription_id="sub-x", user_id="u", plan_id="platinum")
        result = await services.manager.initialize(subscription)

        assert result.error_kind == ErrorKind.VALIDATION
        assert "platinum" in result.message

    async def test_rejects_duplicate_id(self, services):
        await create_subscription(services)
        duplicate = Subscription(subscription_id="sub-1", user_id="u", plan_id="basic")
        result = await services.manager.initialize(duplicate)

        assert result.error_kind == ErrorKind.VALIDATION
        assert len(await services.manager.get_status_history("sub-1")) == 1


class TestTransitions:

    async def test_activate_sets_next_billing_one_cycle_out(self, services, audit_sink):
        activated = await create_subscription(services, activate=True)

        assert activated.status == S.ACTIVE
        assert activated.next_billing_date == NOW + relativedelta(months=1)
        assert audit_sink.records[-1].action == ACTION_STATE_CHANGE
        assert audit_sink.records[-1].detail == "Status changed from Pending to Active: Subscription activated"

    async def test_unknown_subscription_is_not_found(self, services):
        result = await services.manager.activate("nope")

        assert not result.success
        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_rejected_transition_leaves_store_untouched(self, services):
        await create_subscription(services)
        before = await services.store.get("sub-1")

        result = await services.manager.request_transition("sub-1", S.SUSPENDED)

        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        assert await services.store.get("sub-1") == before
        assert len(await services.manager.get_status_history("sub-1")) == 1

    async def test_double_cancel_is_rejected(self, services):
        await create_subscription(services, activate=True)
        first = await services.manager.cancel("sub-1", reason="too expensive", actor="patient")
        second = await services.manager.cancel("sub-1")

        assert first.success
        assert first.subscription.cancellation_reason == "too expensive"
        assert first.subscription.auto_renew is False
        assert first.subscription.cancelled_date == NOW
        assert second.error_kind == ErrorKind.INVALID_TRANSITION
        assert "already cancelled" in second.message

        counts = await services.history_log.count_by_status("sub-1")
        assert counts["Cancelled"] == 1

    async def test_cancelled_cannot_be_reactivated(self, services):
        await create_subscription(services)
        await services.manager.cancel("sub-1")

        result = await services.manager.activate("sub-1")
        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        assert result.message == "Cancelled subscriptions cannot be reactivated"

    async def test_pause_requires_reason(self, services):
        await create_subscription(services, activate=True)

        result = await services.manager.pause("sub-1", reason="  ")
        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        assert (await services.store.get("sub-1")).status == S.ACTIVE

    async def test_pause_then_resume(self, services, clock):
        await create_subscription(services, activate=True)

        paused = await services.manager.pause("sub-1", reason="travelling", actor="patient")
        assert paused.subscription.status == S.PAUSED
        assert paused.subscription.pause_reason == "travelling"
        assert paused.subscription.paused_date == NOW

        clock.advance(days=3)
        resumed = await services.manager.resume("sub-1")
        assert resumed.subscription.status == S.ACTIVE
        assert resumed.subscription.pause_reason is None
        assert resumed.subscription.resumed_date == NOW + timedelta(days=3)

        history = await services.manager.get_status_history("sub-1")
        assert history[-1].reason == "Subscription resumed"
        assert history[-1].changed_by is None

    async def test_resume_requires_paused(self, services):
        await create_subscription(services, activate=True)

        result = await services.manager.resume("sub-1")
        assert result.error_kind == ErrorKind.INVALID_TRANSITION

    async def test_payment_failure_then_suspension(self, services, clock):
        await create_subscription(services, activate=True)

        failed = await services.manager.mark_payment_failed("sub-1", error_message="card declined")
        assert failed.subscription.status == S.PAYMENT_FAILED
        assert failed.subscription.failed_payment_attempts == 1
        assert failed.subscription.last_payment_error == "card declined"

        clock.advance(days=2)
        suspended = await services.manager.suspend("sub-1")
        assert suspended.subscription.status == S.SUSPENDED
        assert suspended.subscription.suspended_date == NOW + timedelta(days=2)

    async def test_expired_reactivation_starts_fresh_term(self, services, clock):
        await create_subscription(services, activate=True)
        await services.manager.expire("sub-1")

        clock.advance(days=40)
        result = await services.manager.reactivate("sub-1", actor="support")

        reactivated = result.subscription
        now = NOW + timedelta(days=40)
        assert reactivated.status == S.ACTIVE
        assert reactivated.start_date == now
        assert reactivated.next_billing_date == now + relativedelta(months=1)
        assert reactivated.expiration_date is None
        assert reactivated.auto_renew is True

        history = await services.manager.get_status_history("sub-1")
        assert history[-1].reason == "Subscription reactivated"
        assert history[-1].changed_by == "support"

    async def test_reactivate_rejects_paused(self, services):
        await create_subscription(services, activate=True)
        await services.manager.pause("sub-1", reason="vacation")

        result = await services.manager.reactivate("sub-1")
        assert result.error_kind == ErrorKind.INVALID_TRANSITION

    async def test_reactivate_is_only_for_expired(self, services):
        await create_subscription(services, activate=True)
        await services.manager.mark_payment_failed("sub-1", "card declined")
        await services.manager.suspend("sub-1")

        result = await services.manager.reactivate("sub-1")

        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        assert result.message == "Subscription must be in one of [Expired] but is Suspended"
        summary = await services.manager.get_lifecycle_status("sub-1")
        assert not summary.can_be_reactivated
        assert (await services.store.get("sub-1")).status == S.SUSPENDED


class TestPayments:

    async def test_payment_on_active_advances_billing_without_history(self, services, audit_sink):
        activated = await create_subscription(services, activate=True)

        result = await services.manager.record_successful_payment("sub-1")

        assert result.success
        assert result.subscription.next_billing_date == activated.next_billing_date + relativedelta(months=1)
        assert result.subscription.last_payment_date == NOW
        assert len(await services.manager.get_status_history("sub-1")) == 2
        assert audit_sink.records[-1].action == ACTION_PAYMENT_RECORDED

    async def test_payment_recovers_suspended_subscription(self, services, clock):
        await create_subscription(services, activate=True)
        await services.manager.mark_payment_failed("sub-1", error_message="insufficient funds")
        await services.manager.suspend("sub-1")

        clock.advance(days=70)
        result = await services.manager.record_successful_payment("sub-1")

        now = NOW + timedelta(days=70)
        recovered = result.subscription
        assert recovered.status == S.ACTIVE
        assert recovered.failed_payment_attempts == 0
        assert recovered.last_payment_error is None
        # the old billing date is long past, so the next one is counted from now
        assert recovered.next_billing_date == now + relativedelta(months=1)

        history = await services.manager.get_status_history("sub-1")
        assert history[-1].from_status == S.SUSPENDED
        assert history[-1].reason == "Payment received"

    async def test_payment_rejected_for_pending(self, services):
        await create_subscription(services)

        result = await services.manager.record_successful_payment("sub-1")
        assert result.error_kind == ErrorKind.INVALID_TRANSITION


class TestQueries:

    async def test_lifecycle_status_summary(self, services):
        await create_subscription(services, activate=True)

        summary = await services.manager.get_lifecycle_status("sub-1")

        assert summary.status == S.ACTIVE
        assert summary.is_active and summary.can_be_paused and summary.can_be_cancelled
        assert not summary.can_be_reactivated
        assert summary.days_until_next_billing == 31
        assert summary.status_counts == {"Pending": 1, "Active": 1}
        assert set(summary.allowed_transitions) == {S.PAUSED, S.CANCELLED, S.PAYMENT_FAILED, S.EXPIRED}

    async def test_history_of_unknown_subscription_raises(self, services):
        with pytest.raises(SubscriptionNotFoundError):
            await services.manager.get_status_history("ghost")

    async def test_allowed_transitions_is_static(self, services):
        assert services.manager.allowed_transitions(S.CANCELLED) == []


class TestSideChannels:

    async def test_status_change_is_published(self, clock, audit_sink):
        bus = EventBus(worker_count=1)
        services = build_services(clock=clock, audit_sink=audit_sink, event_bus=bus)
        await create_subscription(services, activate=True)

        events = await bus.get_events(aggregate_id="sub-1")
        assert [e.event_type for e in events] == ["subscription.status_changed"] * 2
        assert events[-1].from_status == "Pending"
        assert events[-1].to_status == "Active"
        assert events[-1].changed_by == "admin"

    async def test_audit_failure_does_not_undo_transition(self, clock):
        services = build_services(clock=clock, audit_sink=BrokenAuditSink())
        await create_subscription(services, activate=True)

        assert (await services.store.get("sub-1")).status == S.ACTIVE
        assert len(await services.manager.get_status_history("sub-1")) == 2


class TestConcurrency:

    async def test_parallel_cancels_commit_once(self, services):
        await create_subscription(services, activate=True)

        results = await asyncio.gather(*(services.manager.cancel("sub-1") for _ in range(5)))

        assert sum(r.success for r in results) == 1
        assert all(r.error_kind == ErrorKind.INVALID_TRANSITION for r in results if not r.success)
        counts = await services.history_log.count_by_status("sub-1")
        assert counts["Cancelled"] == 1

    async def test_conflict_is_retried(self, clock):
        store = ConflictingStore(conflicts=0)
        services = build_services(store=store, clock=clock)
        await create_subscription(services)

        store.conflicts = 2
        result = await services.manager.activate("sub-1")

        assert result.success
        assert store.save_attempts == 3
        assert len(await services.manager.get_status_history("sub-1")) == 2

    async def test_persistent_conflict_becomes_result(self, clock):
        store = ConflictingStore(conflicts=0)
        services = build_services(store=store, clock=clock, max_conflict_retries=2)
        await create_subscription(services)

        store.conflicts = 100
        result = await services.manager.activate("sub-1")

        assert result.error_kind == ErrorKind.CONCURRENCY_CONFLICT
        assert store.save_attempts == 3
        assert (await services.store.get("sub-1")).status == S.PENDING
        assert len(await services.manager.get_status_history("sub-1")) == 1
