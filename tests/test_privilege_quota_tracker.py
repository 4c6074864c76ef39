"""
Privilege quota tests: allowances, unlimited and disabled privileges,
concurrent consumption, period rollover and resets.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta

from telehealth_core.modules.subscription_lifecycle.domain.models import UNLIMITED, PrivilegeUsageRecord
from telehealth_core.modules.subscription_lifecycle.domain.services.privilege_quota_tracker import (
    PrivilegeQuotaTracker,
)
from telehealth_core.shared.core.exceptions import (
    ErrorKind,
    PrivilegeNotGrantedError,
    SubscriptionNotFoundError,
)

from conftest import NOW, create_subscription

pytestmark = pytest.mark.asyncio


class TestConsume:

    async def test_allowance_is_enforced(self, services):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker

        assert (await tracker.consume("sub-1", "consultations")).success
        assert (await tracker.consume("sub-1", "consultations")).success
        third = await tracker.consume("sub-1", "consultations")

        assert third.error_kind == ErrorKind.QUOTA_EXCEEDED
        assert await tracker.get_remaining("sub-1", "consultations") == 0
        assert not await tracker.can_consume("sub-1", "consultations")

        record = await services.store.get_usage_record("sub-1", "consultations")
        assert record.used_value == 2
        assert record.allowed_value == 2
        assert record.usage_period_start == NOW
        assert record.usage_period_end == NOW + relativedelta(months=1)

    async def test_unlimited_privilege(self, services):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker

        for _ in range(25):
            assert (await tracker.consume("sub-1", "messages")).success

        assert await tracker.get_remaining("sub-1", "messages") is None
        assert await tracker.can_consume("sub-1", "messages")

    async def test_zero_allowance_means_disabled(self, services):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker

        assert not await tracker.can_consume("sub-1", "lab_tests")
        result = await tracker.consume("sub-1", "lab_tests")
        assert result.error_kind == ErrorKind.QUOTA_EXCEEDED

    async def test_capacity_rule_lives_in_the_tracker(self):
        assert not hasattr(PrivilegeUsageRecord, "has_capacity")
        assert PrivilegeQuotaTracker._has_capacity(UNLIMITED, 10_000)
        assert PrivilegeQuotaTracker._has_capacity(2, 1)
        assert not PrivilegeQuotaTracker._has_capacity(2, 2)
        assert not PrivilegeQuotaTracker._has_capacity(0, 0)

    async def test_privilege_outside_plan(self, services):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker

        result = await tracker.consume("sub-1", "home_visits")
        assert result.error_kind == ErrorKind.PRIVILEGE_NOT_GRANTED
        assert not await tracker.can_consume("sub-1", "home_visits")
        with pytest.raises(PrivilegeNotGrantedError):
            await tracker.get_remaining("sub-1", "home_visits")

    async def test_unknown_subscription(self, services):
        tracker = services.quota_tracker

        assert not await tracker.can_consume("ghost", "consultations")
        assert (await tracker.consume("ghost", "consultations")).error_kind == ErrorKind.NOT_FOUND
        with pytest.raises(SubscriptionNotFoundError):
            await tracker.get_usage_summary("ghost")

    async def test_parallel_consumers_never_exceed_allowance(self, services):
        await create_subscription(services, plan_id="premium", activate=True)
        tracker = services.quota_tracker

        results = await asyncio.gather(*(tracker.consume("sub-1", "consultations") for _ in range(12)))

        assert sum(r.success for r in results) == 5
        assert {r.error_kind for r in results if not r.success} == {ErrorKind.QUOTA_EXCEEDED}
        record = await services.store.get_usage_record("sub-1", "consultations")
        assert record.used_value == 5


class TestPeriods:

    async def test_elapsed_window_rolls_forward_on_use(self, services, clock):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker
        await tracker.consume("sub-1", "consultations")
        await tracker.consume("sub-1", "consultations")

        clock.advance(days=32)
        assert await tracker.can_consume("sub-1", "consultations")
        assert (await tracker.consume("sub-1", "consultations")).success

        record = await services.store.get_usage_record("sub-1", "consultations")
        assert record.used_value == 1
        assert record.usage_period_start == NOW + relativedelta(months=1)
        assert record.usage_period_end == NOW + relativedelta(months=2)

    async def test_reset_is_idempotent(self, services, clock):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker
        await tracker.consume("sub-1", "consultations")
        await tracker.consume("sub-1", "messages")

        clock.advance(hours=1)
        first, rewritten = await tracker.reset_period_counted("sub-1")
        assert first.success
        assert rewritten == 2

        snapshot = await services.store.get_usage_records("sub-1")
        assert all(r.used_value == 0 for r in snapshot)
        assert all(r.reset_at == NOW + timedelta(hours=1) for r in snapshot)

        second, rewritten_again = await tracker.reset_period_counted("sub-1")
        assert second.success
        assert rewritten_again == 0
        assert await services.store.get_usage_records("sub-1") == snapshot

    async def test_reset_of_unknown_subscription(self, services):
        result = await services.quota_tracker.reset_period("ghost")
        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_renewal_payment_restarts_window(self, services, clock):
        await create_subscription(services, activate=True)
        await services.quota_tracker.consume("sub-1", "consultations")

        clock.advance(days=10)
        await services.manager.record_successful_payment("sub-1")

        record = await services.store.get_usage_record("sub-1", "consultations")
        now = NOW + timedelta(days=10)
        assert record.used_value == 0
        assert record.usage_period_start == now
        assert record.usage_period_end == now + relativedelta(months=1)

    async def test_plan_change_refreshes_allowance(self, services):
        await create_subscription(services, activate=True)
        tracker = services.quota_tracker
        await tracker.consume("sub-1", "consultations")
        await tracker.consume("sub-1", "consultations")

        await services.manager.apply_plan_change("sub-1", "premium")

        assert await tracker.get_remaining("sub-1", "consultations") == 3
        assert (await tracker.consume("sub-1", "consultations")).success
        record = await services.store.get_usage_record("sub-1", "consultations")
        assert record.allowed_value == 5


class TestSummary:

    async def test_usage_summary(self, services):
        await create_subscription(services, activate=True)
        await services.quota_tracker.consume("sub-1", "consultations")

        summary = {s.privilege_name: s for s in await services.quota_tracker.get_usage_summary("sub-1")}

        assert summary["consultations"].used == 1
        assert summary["consultations"].remaining == 1
        assert summary["consultations"].usage_percentage == Decimal("50.00")
        assert summary["messages"].remaining is None
        assert summary["messages"].usage_percentage == Decimal("0.00")
        assert summary["lab_tests"].remaining == 0
        assert summary["lab_tests"].usage_percentage == Decimal("100.00")
