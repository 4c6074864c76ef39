"""
Celery sweep task tests. Tasks are called directly, which runs them eagerly
in the test process.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from telehealth_core.background_jobs.tasks import (
    configure_services,
    reset_privilege_usage,
    sweep_subscription_expirations,
)
from telehealth_core.modules.subscription_lifecycle.domain.models import SubscriptionStatus
from telehealth_core.shared.core.exceptions import SystemicFailureError
from telehealth_core.shared.utils.clock import FrozenClock

from conftest import NOW, build_services, create_subscription


@pytest.fixture
def configured():
    clock = FrozenClock(NOW)
    services = build_services(clock=clock)

    @asynccontextmanager
    async def factory():
        yield services

    configure_services(factory)
    yield services, clock
    configure_services(None)


def test_expiration_sweep_task(configured):
    services, clock = configured
    asyncio.run(create_subscription(services, "due", activate=True))
    clock.advance(days=40)

    outcome = sweep_subscription_expirations()

    assert outcome["examined"] == 1
    assert outcome["expired"] == 1
    assert outcome["errors"] == []
    assert asyncio.run(services.store.get("due")).status == SubscriptionStatus.EXPIRED


def test_usage_reset_task(configured):
    services, clock = configured

    async def seed():
        await create_subscription(services, "sub-1", activate=True)
        await services.quota_tracker.consume("sub-1", "consultations")

    asyncio.run(seed())
    clock.advance(days=32)

    outcome = reset_privilege_usage()

    assert outcome["reset"] == 1
    record = asyncio.run(services.store.get_usage_record("sub-1", "consultations"))
    assert record.used_value == 0


def test_unconfigured_worker_fails_loudly():
    configure_services(None)
    with pytest.raises(SystemicFailureError):
        sweep_subscription_expirations()


def test_beat_schedule_registers_both_sweeps():
    from celery_config import EXPIRATION_SWEEP_TASK, USAGE_RESET_TASK, app

    schedule = app.conf.beat_schedule
    assert schedule["sweep-subscription-expirations"]["task"] == EXPIRATION_SWEEP_TASK
    assert schedule["reset-privilege-usage"]["task"] == USAGE_RESET_TASK
    assert EXPIRATION_SWEEP_TASK == sweep_subscription_expirations.name
