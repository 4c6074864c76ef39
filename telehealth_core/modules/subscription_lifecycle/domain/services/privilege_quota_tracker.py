# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/privilege_quota_tracker.py
# 🧭 Purpose (Layman Explanation):
# Counts how many consultations, messages or other included services a patient has used this
# billing period and stops them once the plan's allowance is used up.
# 🧪 Purpose (Technical Summary):
# Check / consume / reset of per-privilege usage counters. Consumption is serialized per
# subscription through the shared KeyedLock and protected by optimistic versioning on the
# usage record, so concurrent consumers can never push used_value past the allowance.
# 🔗 Dependencies:
# SubscriptionStore, PlanCatalog, KeyedLock, Clock, BillingCycleAdvancer
# 🔄 Connected Modules / Calls From:
# Consultation / messaging services (consume), lifecycle_manager.py (renewal reset),
# lifecycle_orchestrator.py (usage reset sweep)

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from telehealth_core.shared.core.exceptions import (
    BUSINESS_ERRORS,
    ConcurrencyConflictError,
    ErrorKind,
    PrivilegeNotGrantedError,
    QuotaExceededError,
    SubscriptionNotFoundError,
)
from telehealth_core.shared.core.keyed_lock import KeyedLock
from telehealth_core.shared.utils.clock import Clock

from ..models.privilege import (
    UNLIMITED,
    PlanPrivilege,
    PrivilegeUsageRecord,
    PrivilegeUsageSummary,
)
from ..models.result import LifecycleResult
from ..models.subscription import Subscription
from ..repositories.plan_catalog import PlanCatalog
from ..repositories.subscription_store import SubscriptionStore
from .billing_cycle_advancer import BillingCycleAdvancer

logger = logging.getLogger(__name__)


class PrivilegeQuotaTracker:
    """
    Privilege usage accounting for one billing period at a time.

    A usage record whose window has already ended is rolled forward before it
    is checked or consumed, so a late reset sweep never blocks a patient.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        catalog: PlanCatalog,
        clock: Clock,
        locks: KeyedLock,
        advancer: Optional[BillingCycleAdvancer] = None,
        max_conflict_retries: int = 3,
    ):
        self._store = store
        self._catalog = catalog
        self._clock = clock
        self._locks = locks
        self._advancer = advancer or BillingCycleAdvancer()
        self._max_conflict_retries = max_conflict_retries

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def _load_subscription(self, subscription_id: str) -> Subscription:
        subscription = await self._store.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    async def _privileges_by_name(self, plan_id: str) -> Dict[str, PlanPrivilege]:
        privileges = await self._catalog.get_plan_privileges(plan_id)
        return {p.privilege_name: p for p in privileges}

    async def _resolve_privilege(self, subscription: Subscription, privilege_name: str) -> PlanPrivilege:
        privilege = (await self._privileges_by_name(subscription.plan_id)).get(privilege_name)
        if privilege is None:
            raise PrivilegeNotGrantedError(privilege_name, plan_id=subscription.plan_id)
        return privilege

    # =========================================================================
    # PERIOD WINDOWS
    # =========================================================================

    def _fresh_record(
        self, subscription: Subscription, privilege: PlanPrivilege, now: datetime
    ) -> PrivilegeUsageRecord:
        return PrivilegeUsageRecord(
            subscription_id=subscription.subscription_id,
            plan_privilege_id=privilege.plan_privilege_id,
            privilege_name=privilege.privilege_name,
            used_value=0,
            allowed_value=privilege.value,
            usage_period_start=now,
            usage_period_end=self._advancer.advance(now, subscription.billing_cycle),
        )

    def _roll_forward(
        self, record: PrivilegeUsageRecord, billing_cycle: str, now: datetime
    ) -> Tuple[datetime, datetime]:
        """Advance the window only while its end is at or before now."""
        start, end = record.usage_period_start, record.usage_period_end
        while end <= now:
            start, end = end, self._advancer.advance(end, billing_cycle)
        return start, end

    def _reset_record(
        self,
        record: PrivilegeUsageRecord,
        billing_cycle: str,
        allowed_value: Optional[int],
        now: datetime,
    ) -> Optional[PrivilegeUsageRecord]:
        """
        Zeroed copy of the record with its window rolled forward, or None when
        the record is already in that state.
        """
        start, end = self._roll_forward(record, billing_cycle, now)
        allowed = record.allowed_value if allowed_value is None else allowed_value
        if (
            record.used_value == 0
            and start == record.usage_period_start
            and allowed == record.allowed_value
        ):
            return None

        updated = record.model_copy(deep=True)
        updated.used_value = 0
        updated.usage_period_start = start
        updated.usage_period_end = end
        updated.allowed_value = allowed
        updated.reset_at = now
        return updated

    def _current_record(
        self,
        record: Optional[PrivilegeUsageRecord],
        subscription: Subscription,
        privilege: PlanPrivilege,
        now: datetime,
    ) -> PrivilegeUsageRecord:
        """The record as it applies at now: created lazily, rolled over if its window ended."""
        if record is None:
            return self._fresh_record(subscription, privilege, now)

        working = record.model_copy(deep=True)
        if working.usage_period_end <= now:
            rolled = self._reset_record(working, subscription.billing_cycle, privilege.value, now)
            if rolled is not None:
                working = rolled
        working.allowed_value = privilege.value
        return working

    @staticmethod
    def _has_capacity(allowed: int, used: int) -> bool:
        if allowed == UNLIMITED:
            return True
        return used < allowed

    # =========================================================================
    # CHECK / CONSUME
    # =========================================================================

    async def can_consume(self, subscription_id: str, privilege_name: str) -> bool:
        """
        Whether one more unit could be consumed right now.

        Advisory only: consume() re-checks under the subscription lock.
        Unknown subscriptions and privileges not in the plan answer False.
        """
        subscription = await self._store.get(subscription_id)
        if subscription is None:
            return False

        privilege = (await self._privileges_by_name(subscription.plan_id)).get(privilege_name)
        if privilege is None or privilege.value == 0:
            return False

        record = await self._store.get_usage_record(subscription_id, privilege_name)
        current = self._current_record(record, subscription, privilege, self._clock.now())
        return self._has_capacity(privilege.value, current.used_value)

    async def consume(self, subscription_id: str, privilege_name: str) -> LifecycleResult:
        """
        Consume exactly one unit of a privilege.

        Returns:
            LifecycleResult: success, or NOT_FOUND / PRIVILEGE_NOT_GRANTED /
            QUOTA_EXCEEDED / CONCURRENCY_CONFLICT
        """
        try:
            async with self._locks.acquire(subscription_id):
                for attempt in range(self._max_conflict_retries + 1):
                    try:
                        return await self._consume_once(subscription_id, privilege_name)
                    except ConcurrencyConflictError:
                        logger.warning(
                            f"Usage write conflict for {subscription_id}/{privilege_name} "
                            f"(attempt {attempt + 1}/{self._max_conflict_retries + 1})"
                        )
        except BUSINESS_ERRORS as e:
            logger.info(f"Consumption of {privilege_name} rejected for {subscription_id}: {e.message}")
            return LifecycleResult.from_exception(e)

        return LifecycleResult.fail(
            ErrorKind.CONCURRENCY_CONFLICT,
            f"Could not record usage of {privilege_name} after repeated conflicts",
        )

    async def _consume_once(self, subscription_id: str, privilege_name: str) -> LifecycleResult:
        subscription = await self._load_subscription(subscription_id)
        privilege = await self._resolve_privilege(subscription, privilege_name)
        now = self._clock.now()

        stored = await self._store.get_usage_record(subscription_id, privilege_name)
        record = self._current_record(stored, subscription, privilege, now)

        if not self._has_capacity(privilege.value, record.used_value):
            raise QuotaExceededError(privilege_name, used=record.used_value, allowed=privilege.value)

        record.used_value += 1
        record.last_used_at = now
        saved = await self._store.upsert_usage_record(record)

        logger.info(
            f"Privilege {privilege_name} consumed for {subscription_id} "
            f"({saved.used_value}/{'unlimited' if privilege.is_unlimited else privilege.value})"
        )
        return LifecycleResult.ok(subscription, message=f"{privilege_name} usage recorded")

    # =========================================================================
    # RESETS
    # =========================================================================

    async def build_period_reset(
        self, subscription: Subscription, now: datetime, restart_window: bool = False
    ) -> List[PrivilegeUsageRecord]:
        """
        Usage records that need writing to reset the subscription's counters.

        Caller must hold the subscription lock and write the records itself.

        Args:
            subscription: Subscription whose counters are reset
            now: Reset instant
            restart_window: Start a new window at now (renewal) instead of rolling the old one

        Returns:
            List[PrivilegeUsageRecord]: Changed records only
        """
        privileges = await self._privileges_by_name(subscription.plan_id)
        records = await self._store.get_usage_records(subscription.subscription_id)
        changed: List[PrivilegeUsageRecord] = []

        for record in records:
            privilege = privileges.get(record.privilege_name)
            allowed = privilege.value if privilege is not None else None

            if restart_window:
                updated = record.model_copy(deep=True)
                updated.used_value = 0
                updated.usage_period_start = now
                updated.usage_period_end = self._advancer.advance(now, subscription.billing_cycle)
                if allowed is not None:
                    updated.allowed_value = allowed
                updated.reset_at = now
                changed.append(updated)
                continue

            updated = self._reset_record(record, subscription.billing_cycle, allowed, now)
            if updated is not None:
                changed.append(updated)

        return changed

    async def reset_period(self, subscription_id: str) -> LifecycleResult:
        """
        Zero all counters of a subscription and roll elapsed windows forward.
        Idempotent: a second call right after the first changes nothing.
        """
        result, _ = await self.reset_period_counted(subscription_id)
        return result

    async def reset_period_counted(self, subscription_id: str) -> Tuple[LifecycleResult, int]:
        """reset_period plus the number of usage records actually rewritten."""
        try:
            async with self._locks.acquire(subscription_id):
                for attempt in range(self._max_conflict_retries + 1):
                    try:
                        return await self._reset_once(subscription_id)
                    except ConcurrencyConflictError:
                        logger.warning(
                            f"Usage reset conflict for {subscription_id} "
                            f"(attempt {attempt + 1}/{self._max_conflict_retries + 1})"
                        )
        except BUSINESS_ERRORS as e:
            return LifecycleResult.from_exception(e), 0

        return LifecycleResult.fail(
            ErrorKind.CONCURRENCY_CONFLICT,
            f"Could not reset usage for {subscription_id} after repeated conflicts",
        ), 0

    async def _reset_once(self, subscription_id: str) -> Tuple[LifecycleResult, int]:
        subscription = await self._load_subscription(subscription_id)
        now = self._clock.now()
        changed = await self.build_period_reset(subscription, now)

        if changed:
            async with self._store.transaction():
                for record in changed:
                    await self._store.upsert_usage_record(record)
            logger.info(f"Usage reset for {subscription_id}: {len(changed)} record(s)")

        return LifecycleResult.ok(
            subscription,
            message=f"{len(changed)} usage record(s) reset",
        ), len(changed)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_remaining(self, subscription_id: str, privilege_name: str) -> Optional[int]:
        """
        Units left in the current period; None for unlimited privileges.

        Raises:
            SubscriptionNotFoundError: Unknown subscription
            PrivilegeNotGrantedError: Privilege not part of the plan
        """
        subscription = await self._load_subscription(subscription_id)
        privilege = await self._resolve_privilege(subscription, privilege_name)
        if privilege.is_unlimited:
            return None

        record = await self._store.get_usage_record(subscription_id, privilege_name)
        current = self._current_record(record, subscription, privilege, self._clock.now())
        return max(0, privilege.value - current.used_value)

    async def get_usage_summary(self, subscription_id: str) -> List[PrivilegeUsageSummary]:
        """Usage statistics for every privilege of the subscription's plan."""
        subscription = await self._load_subscription(subscription_id)
        privileges = await self._catalog.get_plan_privileges(subscription.plan_id)
        records = {r.privilege_name: r for r in await self._store.get_usage_records(subscription_id)}
        now = self._clock.now()

        summaries = []
        for privilege in privileges:
            current = self._current_record(records.get(privilege.privilege_name), subscription, privilege, now)
            summaries.append(
                PrivilegeUsageSummary.build(
                    privilege_name=privilege.privilege_name,
                    used=current.used_value,
                    allowed=privilege.value,
                    period_start=current.usage_period_start,
                    period_end=current.usage_period_end,
                )
            )
        return summaries
