# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/lifecycle_manager.py
# 🧭 Purpose (Layman Explanation):
# The rulebook keeper for subscriptions. Every time a subscription is activated, paused,
# cancelled, fails a payment or expires, this service checks the move is allowed, updates the
# dates, writes the diary entry and tells the rest of the platform.
# 🧪 Purpose (Technical Summary):
# State machine service over the fixed transition table. Each command runs
# load -> guard -> edge check -> side effects -> (save + history + usage) in one store transaction,
# serialized per subscription by the KeyedLock and retried on optimistic-version conflicts.
# Business failures come back as LifecycleResult values; systemic failures propagate.
# 🔗 Dependencies:
# SubscriptionStore, PlanCatalog, StatusHistoryLog, PrivilegeQuotaTracker, BillingCycleAdvancer,
# ProrationCalculator, EventBus, AuditSink, KeyedLock, Clock
# 🔄 Connected Modules / Calls From:
# API endpoints, payment webhooks, lifecycle_orchestrator.py (bulk + sweeps), Celery tasks

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from telehealth_core.shared.core.event_bus import DomainEvent, EventBus
from telehealth_core.shared.core.exceptions import (
    BUSINESS_ERRORS,
    ConcurrencyConflictError,
    ErrorKind,
    InvalidTransitionError,
    SubscriptionNotFoundError,
    ValidationError,
)
from telehealth_core.shared.core.keyed_lock import KeyedLock
from telehealth_core.shared.utils.clock import Clock

from ..events.subscription_events import SubscriptionPlanChanged, SubscriptionStatusChanged
from ..models.plan import PlanDefinition
from ..models.privilege import PrivilegeUsageRecord
from ..models.result import LifecycleResult, LifecycleStatusSummary, PlanChangeQuote, SweepResult
from ..models.status_history import SubscriptionStatusHistory
from ..models.subscription import Subscription, SubscriptionStatus
from ..repositories.plan_catalog import PlanCatalog
from ..repositories.subscription_store import SubscriptionStore
from . import transition_rules as rules
from .audit import (
    ACTION_CREATED,
    ACTION_PAYMENT_RECORDED,
    ACTION_PLAN_CHANGE,
    ACTION_STATE_CHANGE,
    AuditRecord,
    AuditSink,
    state_change_detail,
)
from .billing_cycle_advancer import BillingCycleAdvancer
from .privilege_quota_tracker import PrivilegeQuotaTracker
from .proration_calculator import ProrationCalculator
from .status_history_log import StatusHistoryLog

logger = logging.getLogger(__name__)

S = SubscriptionStatus

# Suspended, PaymentFailed and TrialExpired return to Active through payment or activate().
REACTIVATABLE = frozenset({S.EXPIRED})
PAYABLE = frozenset({S.ACTIVE, S.PAYMENT_FAILED, S.SUSPENDED})
PLAN_CHANGEABLE = frozenset({S.ACTIVE, S.TRIAL_ACTIVE})


@dataclass
class _StatusChange:
    from_status: Optional[SubscriptionStatus]
    to_status: SubscriptionStatus
    reason: str


@dataclass
class _Change:
    """Everything one command wants to commit and announce."""
    subscription: Subscription
    status_change: Optional[_StatusChange] = None
    usage_records: List[PrivilegeUsageRecord] = field(default_factory=list)
    audit: List[AuditRecord] = field(default_factory=list)
    events: List[DomainEvent] = field(default_factory=list)
    message: str = ""
    noop: bool = False


Mutation = Callable[[Subscription, datetime], Awaitable[_Change]]


class SubscriptionLifecycleManager:
    """
    Owns every status change of a subscription.

    Callers sequence payments: a charge is taken before activate/reactivate/
    apply_plan_change is called, never after.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        catalog: PlanCatalog,
        clock: Clock,
        locks: KeyedLock,
        history_log: StatusHistoryLog,
        quota_tracker: PrivilegeQuotaTracker,
        advancer: Optional[BillingCycleAdvancer] = None,
        proration: Optional[ProrationCalculator] = None,
        event_bus: Optional[EventBus] = None,
        audit_sink: Optional[AuditSink] = None,
        max_conflict_retries: int = 3,
        system_actor: str = "System",
        default_trial_days: int = 7,
    ):
        self._store = store
        self._catalog = catalog
        self._clock = clock
        self._locks = locks
        self._history = history_log
        self._quota = quota_tracker
        self._advancer = advancer or BillingCycleAdvancer()
        self._proration = proration or ProrationCalculator(self._advancer)
        self._event_bus = event_bus
        self._audit_sink = audit_sink
        self._max_conflict_retries = max_conflict_retries
        self._system_actor = system_actor
        self._default_trial_days = default_trial_days

    # =========================================================================
    # COMMAND PIPELINE
    # =========================================================================

    async def _load(self, subscription_id: str) -> Subscription:
        subscription = await self._store.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    async def _commit(self, change: _Change, actor: Optional[str], now: datetime) -> Subscription:
        async with self._store.transaction():
            saved = await self._store.save(change.subscription)
            if change.status_change is not None:
                await self._history.record(
                    subscription_id=saved.subscription_id,
                    from_status=change.status_change.from_status,
                    to_status=change.status_change.to_status,
                    reason=change.status_change.reason,
                    changed_by=actor,
                    changed_at=now,
                )
            for record in change.usage_records:
                await self._store.upsert_usage_record(record)
        return saved

    async def _execute(
        self,
        subscription_id: str,
        operation: str,
        actor: Optional[str],
        mutate: Mutation,
    ) -> Tuple[LifecycleResult, Optional[_Change]]:
        """
        Run one read-validate-write cycle under the subscription lock.

        Business exceptions raised by mutate become failed results; a stale
        write restarts the cycle from a fresh read.
        """
        change: Optional[_Change] = None
        try:
            async with self._locks.acquire(subscription_id):
                for attempt in range(self._max_conflict_retries + 1):
                    subscription = await self._load(subscription_id)
                    now = self._clock.now()
                    change = await mutate(subscription, now)
                    if change.noop:
                        return LifecycleResult.ok(subscription, change.message), change
                    try:
                        saved = await self._commit(change, actor, now)
                        break
                    except ConcurrencyConflictError:
                        logger.warning(
                            f"{operation} on {subscription_id} lost a write race "
                            f"(attempt {attempt + 1}/{self._max_conflict_retries + 1})"
                        )
                else:
                    return LifecycleResult.fail(
                        ErrorKind.CONCURRENCY_CONFLICT,
                        f"{operation} on {subscription_id} failed after repeated concurrent updates",
                    ), None
        except BUSINESS_ERRORS as e:
            logger.info(f"{operation} rejected for {subscription_id}: {e.message}")
            return LifecycleResult.from_exception(e), None

        await self._announce(change)
        logger.info(f"{operation} completed for {subscription_id}: {change.message}")
        return LifecycleResult.ok(saved, change.message), change

    async def _announce(self, change: _Change):
        """Audit and publish after commit. Failures here never undo the change."""
        for record in change.audit:
            if self._audit_sink is None:
                break
            try:
                await self._audit_sink.record(record)
            except Exception as e:
                logger.error(f"Audit write failed for {record.entity_id}: {e}", exc_info=True)

        for event in change.events:
            if self._event_bus is None:
                break
            try:
                await self._event_bus.publish(event)
            except Exception as e:
                logger.error(f"Event publish failed for {event.aggregate_id}: {e}", exc_info=True)

    def _actor_name(self, actor: Optional[str]) -> str:
        return actor or self._system_actor

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def _check_guards(
        self,
        subscription: Subscription,
        target: SubscriptionStatus,
        reason: Optional[str],
        required_from: Optional[frozenset],
    ):
        current = subscription.status

        if current == S.CANCELLED and target == S.CANCELLED:
            raise InvalidTransitionError(
                "Subscription is already cancelled",
                current_status=current.value, target_status=target.value, rule="no_double_cancel",
            )
        if current == S.CANCELLED and target == S.ACTIVE:
            raise InvalidTransitionError(
                "Cancelled subscriptions cannot be reactivated",
                current_status=current.value, target_status=target.value, rule="no_reactivate_cancelled",
            )
        if target == S.PAUSED:
            if current != S.ACTIVE:
                raise InvalidTransitionError(
                    "Only active subscriptions can be paused",
                    current_status=current.value, target_status=target.value, rule="pause_requires_active",
                )
            if not reason or not reason.strip():
                raise InvalidTransitionError(
                    "A reason is required to pause a subscription",
                    current_status=current.value, target_status=target.value, rule="pause_requires_reason",
                )
        if required_from is not None and current not in required_from:
            allowed = ", ".join(sorted(s.value for s in required_from))
            raise InvalidTransitionError(
                f"Subscription must be in one of [{allowed}] but is {current.value}",
                current_status=current.value, target_status=target.value, rule="required_source_status",
            )

    def _enter_status(
        self,
        subscription: Subscription,
        target: SubscriptionStatus,
        reason: str,
        now: datetime,
        payment_error: Optional[str],
    ):
        """Apply the side effects of arriving in target, then set the status."""
        current = subscription.status

        if target == S.ACTIVE:
            subscription.pause_reason = None
            subscription.cancellation_reason = None
            if current == S.PAUSED:
                subscription.resumed_date = now
            if current == S.EXPIRED:
                # reactivation starts a fresh term
                subscription.start_date = now
                subscription.next_billing_date = self._advancer.advance(now, subscription.billing_cycle)
                subscription.cancelled_date = None
                subscription.expiration_date = None
                subscription.auto_renew = True
            elif subscription.next_billing_date is None or subscription.next_billing_date <= now:
                subscription.next_billing_date = self._advancer.advance(now, subscription.billing_cycle)
        elif target == S.PAUSED:
            subscription.paused_date = now
            subscription.pause_reason = reason
        elif target == S.CANCELLED:
            subscription.cancelled_date = now
            subscription.cancellation_reason = reason
            subscription.auto_renew = False
        elif target == S.PAYMENT_FAILED:
            subscription.last_payment_failed_date = now
            subscription.last_payment_error = payment_error or reason
            subscription.failed_payment_attempts += 1
        elif target == S.SUSPENDED:
            subscription.suspended_date = now
        elif target == S.EXPIRED:
            subscription.expiration_date = now
        elif target == S.TRIAL_EXPIRED:
            if subscription.trial_end_date is None or subscription.trial_end_date > now:
                subscription.trial_end_date = now
        elif target == S.TRIAL_ACTIVE:
            self._start_trial(subscription, now)

        subscription.status = target
        subscription.updated_at = now

    def _start_trial(self, subscription: Subscription, now: datetime):
        if subscription.trial_start_date is None:
            subscription.trial_start_date = now
        if subscription.trial_end_date is None:
            subscription.trial_end_date = subscription.trial_start_date + timedelta(days=self._default_trial_days)
        if subscription.next_billing_date is None:
            subscription.next_billing_date = subscription.trial_end_date

    def _transition_change(
        self,
        subscription: Subscription,
        target: SubscriptionStatus,
        reason: Optional[str],
        actor: Optional[str],
        now: datetime,
        payment_error: Optional[str] = None,
        required_from: Optional[frozenset] = None,
        default_reason: Optional[str] = None,
    ) -> _Change:
        current = subscription.status
        self._check_guards(subscription, target, reason, required_from)

        if not rules.is_allowed(current, target):
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {target.value}",
                current_status=current.value, target_status=target.value, rule="transition_table",
            )

        final_reason = reason.strip() if reason and reason.strip() else (
            default_reason or rules.DEFAULT_REASONS[target]
        )
        self._enter_status(subscription, target, final_reason, now, payment_error)

        return _Change(
            subscription=subscription,
            status_change=_StatusChange(current, target, final_reason),
            audit=[
                AuditRecord(
                    actor=self._actor_name(actor),
                    action=ACTION_STATE_CHANGE,
                    entity_id=subscription.subscription_id,
                    detail=state_change_detail(current.value, target.value, final_reason),
                    occurred_at=now,
                )
            ],
            events=[
                SubscriptionStatusChanged.create(
                    subscription_id=subscription.subscription_id,
                    user_id=subscription.user_id,
                    from_status=current.value,
                    to_status=target.value,
                    reason=final_reason,
                    changed_by=actor,
                    occurred_at=now,
                )
            ],
            message=f"Status changed from {current.value} to {target.value}",
        )

    async def _transition(
        self,
        subscription_id: str,
        target: SubscriptionStatus,
        reason: Optional[str],
        actor: Optional[str],
        payment_error: Optional[str] = None,
        required_from: Optional[frozenset] = None,
        default_reason: Optional[str] = None,
    ) -> LifecycleResult:
        async def mutate(subscription: Subscription, now: datetime) -> _Change:
            return self._transition_change(
                subscription, target, reason, actor, now,
                payment_error=payment_error, required_from=required_from, default_reason=default_reason,
            )

        result, _ = await self._execute(subscription_id, f"Transition to {target.value}", actor, mutate)
        return result

    async def request_transition(
        self,
        subscription_id: str,
        target_status: SubscriptionStatus,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> LifecycleResult:
        """
        Move a subscription to target_status if the transition table and guards allow it.

        Args:
            subscription_id: Subscription to change
            target_status: Desired status
            reason: Recorded in history and audit; defaults per target status
            actor: Who asked; None means the system

        Returns:
            LifecycleResult: Updated subscription, or NOT_FOUND / INVALID_TRANSITION /
            CONCURRENCY_CONFLICT. The stored subscription is untouched on failure.
        """
        return await self._transition(subscription_id, SubscriptionStatus(target_status), reason, actor)

    # =========================================================================
    # CONVENIENCE COMMANDS
    # =========================================================================

    async def activate(self, subscription_id: str, reason: Optional[str] = None, actor: Optional[str] = None):
        return await self._transition(subscription_id, S.ACTIVE, reason, actor)

    async def pause(self, subscription_id: str, reason: str, actor: Optional[str] = None):
        return await self._transition(subscription_id, S.PAUSED, reason, actor)

    async def resume(self, subscription_id: str, reason: Optional[str] = None, actor: Optional[str] = None):
        return await self._transition(
            subscription_id, S.ACTIVE, reason, actor,
            required_from=frozenset({S.PAUSED}), default_reason=rules.RESUMED_REASON,
        )

    async def cancel(self, subscription_id: str, reason: Optional[str] = None, actor: Optional[str] = None):
        return await self._transition(subscription_id, S.CANCELLED, reason, actor)

    async def suspend(self, subscription_id: str, reason: Optional[str] = None, actor: Optional[str] = None):
        return await self._transition(subscription_id, S.SUSPENDED, reason, actor)

    async def expire(self, subscription_id: str, reason: Optional[str] = None, actor: Optional[str] = None):
        return await self._transition(subscription_id, S.EXPIRED, reason, actor)

    async def mark_payment_failed(
        self, subscription_id: str, error_message: Optional[str] = None, actor: Optional[str] = None
    ):
        return await self._transition(
            subscription_id, S.PAYMENT_FAILED, None, actor, payment_error=error_message,
        )

    async def reactivate(self, subscription_id: str, reason: Optional[str] = None, actor: Optional[str] = None):
        """Start a fresh term for an Expired subscription (new start date and billing date)."""
        return await self._transition(
            subscription_id, S.ACTIVE, reason, actor,
            required_from=REACTIVATABLE, default_reason=rules.REACTIVATED_REASON,
        )

    # =========================================================================
    # CREATION, PAYMENTS, PLAN CHANGES
    # =========================================================================

    async def initialize(
        self, subscription: Subscription, reason: Optional[str] = None, actor: Optional[str] = None
    ) -> LifecycleResult:
        """
        Register a new subscription in Pending or TrialActive and write its creation history row.
        """
        if subscription.status not in rules.ENTRY_STATES:
            return LifecycleResult.fail(
                ErrorKind.VALIDATION,
                f"Subscriptions must start in Pending or TrialActive, not {subscription.status.value}",
            )

        plan = await self._catalog.get_plan(subscription.plan_id)
        if plan is None:
            return LifecycleResult.fail(ErrorKind.VALIDATION, f"Plan {subscription.plan_id} not found")

        subscription_id = subscription.subscription_id
        final_reason = rules.default_reason(subscription.status, reason)

        async with self._locks.acquire(subscription_id):
            now = self._clock.now()
            created = subscription.model_copy(deep=True)
            created.created_at = now
            created.updated_at = now
            created.version = 0
            if created.status == S.TRIAL_ACTIVE:
                self._start_trial(created, now)

            try:
                async with self._store.transaction():
                    saved = await self._store.add(created)
                    await self._history.record(
                        subscription_id=subscription_id,
                        from_status=None,
                        to_status=created.status,
                        reason=final_reason,
                        changed_by=actor,
                        changed_at=now,
                    )
            except BUSINESS_ERRORS as e:
                return LifecycleResult.from_exception(e)

        await self._announce(_Change(
            subscription=saved,
            audit=[AuditRecord(
                actor=self._actor_name(actor),
                action=ACTION_CREATED,
                entity_id=subscription_id,
                detail=state_change_detail(None, created.status.value, final_reason),
                occurred_at=now,
            )],
            events=[SubscriptionStatusChanged.create(
                subscription_id=subscription_id,
                user_id=saved.user_id,
                from_status=None,
                to_status=saved.status.value,
                reason=final_reason,
                changed_by=actor,
                occurred_at=now,
            )],
        ))
        logger.info(f"Subscription {subscription_id} created in {saved.status.value}")
        return LifecycleResult.ok(saved, f"Subscription created in {saved.status.value}")

    async def record_successful_payment(
        self, subscription_id: str, actor: Optional[str] = None
    ) -> LifecycleResult:
        """
        Renewal path: bring PaymentFailed / Suspended back to Active, clear the
        failure counters, push next_billing_date one cycle and restart the usage period.
        """
        async def mutate(subscription: Subscription, now: datetime) -> _Change:
            if subscription.status not in PAYABLE:
                raise InvalidTransitionError(
                    f"Payments cannot be recorded for a {subscription.status.value} subscription",
                    current_status=subscription.status.value, rule="payment_requires_billable_status",
                )

            base = subscription.next_billing_date or now
            if subscription.status != S.ACTIVE:
                change = self._transition_change(
                    subscription, S.ACTIVE, rules.PAYMENT_RECEIVED_REASON, actor, now,
                )
            else:
                change = _Change(subscription=subscription, message="Renewal payment recorded")

            next_billing = self._advancer.advance(base, subscription.billing_cycle)
            if next_billing <= now:
                next_billing = self._advancer.advance(now, subscription.billing_cycle)

            subscription.next_billing_date = next_billing
            subscription.last_payment_date = now
            subscription.failed_payment_attempts = 0
            subscription.last_payment_error = None
            subscription.updated_at = now

            change.usage_records = await self._quota.build_period_reset(subscription, now, restart_window=True)
            change.audit.append(AuditRecord(
                actor=self._actor_name(actor),
                action=ACTION_PAYMENT_RECORDED,
                entity_id=subscription.subscription_id,
                detail=f"Payment recorded, next billing on {next_billing.date().isoformat()}",
                occurred_at=now,
            ))
            return change

        result, _ = await self._execute(subscription_id, "Record payment", actor, mutate)
        return result

    async def _resolve_target_plan(self, subscription: Subscription, new_plan_id: str) -> PlanDefinition:
        if new_plan_id == subscription.plan_id:
            raise ValidationError("Subscription is already on this plan", field="new_plan_id", value=new_plan_id)
        plan = await self._catalog.get_plan(new_plan_id)
        if plan is None:
            raise ValidationError(f"Plan {new_plan_id} not found", field="new_plan_id", value=new_plan_id)
        if not plan.is_active:
            raise ValidationError(f"Plan {new_plan_id} is not available", field="new_plan_id", value=new_plan_id)
        return plan

    async def quote_plan_change(self, subscription_id: str, new_plan_id: str) -> PlanChangeQuote:
        """
        Proration preview for a plan switch. Read-only.

        Raises:
            SubscriptionNotFoundError: Unknown subscription
            ValidationError: Unknown, inactive or identical plan
        """
        subscription = await self._load(subscription_id)
        plan = await self._resolve_target_plan(subscription, new_plan_id)
        return self._proration.compute_quote(subscription, plan, self._clock.now())

    async def apply_plan_change(
        self, subscription_id: str, new_plan_id: str, actor: Optional[str] = None
    ) -> LifecycleResult:
        """Switch plans once the caller has collected the prorated charge."""
        async def mutate(subscription: Subscription, now: datetime) -> _Change:
            if subscription.status not in PLAN_CHANGEABLE:
                raise InvalidTransitionError(
                    f"Plan can only be changed for active or trial subscriptions, not {subscription.status.value}",
                    current_status=subscription.status.value, rule="plan_change_requires_active",
                )
            plan = await self._resolve_target_plan(subscription, new_plan_id)
            old_plan_id = subscription.plan_id

            subscription.plan_id = plan.plan_id
            subscription.current_price = plan.price
            subscription.billing_cycle = plan.billing_cycle
            subscription.updated_at = now

            return _Change(
                subscription=subscription,
                audit=[AuditRecord(
                    actor=self._actor_name(actor),
                    action=ACTION_PLAN_CHANGE,
                    entity_id=subscription.subscription_id,
                    detail=f"Plan changed from {old_plan_id} to {plan.plan_id}",
                    occurred_at=now,
                )],
                events=[SubscriptionPlanChanged.create(
                    subscription_id=subscription.subscription_id,
                    user_id=subscription.user_id,
                    old_plan_id=old_plan_id,
                    new_plan_id=plan.plan_id,
                    new_price=plan.price,
                    changed_by=actor,
                    occurred_at=now,
                )],
                message=f"Plan changed from {old_plan_id} to {plan.plan_id}",
            )

        result, _ = await self._execute(subscription_id, "Plan change", actor, mutate)
        return result

    # =========================================================================
    # SWEEPS
    # =========================================================================

    async def _sweep_one(self, subscription_id: str) -> Tuple[LifecycleResult, Optional[_Change]]:
        async def mutate(subscription: Subscription, now: datetime) -> _Change:
            if subscription.status == S.ACTIVE and subscription.is_renewal_due(now):
                return self._transition_change(
                    subscription, S.EXPIRED, rules.EXPIRED_NON_PAYMENT_REASON, None, now,
                )
            if subscription.status == S.TRIAL_ACTIVE and subscription.is_trial_over(now):
                return self._transition_change(
                    subscription, S.TRIAL_EXPIRED, rules.DEFAULT_REASONS[S.TRIAL_EXPIRED], None, now,
                )
            return _Change(subscription=subscription, noop=True, message="No longer due")

        return await self._execute(subscription_id, "Expiration sweep", None, mutate)

    async def process_expiration_sweep(self, cancel_event: Optional[asyncio.Event] = None) -> SweepResult:
        """
        Expire overdue Active subscriptions and ended trials.

        The due-check is repeated under each subscription's lock, so items
        changed by a concurrent caller or an overlapping sweep are skipped.
        """
        now = self._clock.now()
        candidates = [
            s for s in await self._store.list_by_status([S.ACTIVE, S.TRIAL_ACTIVE])
            if (s.status == S.ACTIVE and s.is_renewal_due(now))
            or (s.status == S.TRIAL_ACTIVE and s.is_trial_over(now))
        ]
        result = SweepResult(examined=len(candidates))

        for candidate in candidates:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info("Expiration sweep cancelled")
                break

            outcome, change = await self._sweep_one(candidate.subscription_id)
            if not outcome.success:
                result.record_failure(candidate.subscription_id, outcome)
            elif change is None or change.noop:
                result.skipped += 1
            elif change.status_change.to_status == S.EXPIRED:
                result.expired += 1
            else:
                result.trials_expired += 1

        logger.info(
            f"Expiration sweep done: {result.expired} expired, {result.trials_expired} trials ended, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_status_history(self, subscription_id: str) -> List[SubscriptionStatusHistory]:
        await self._load(subscription_id)
        return await self._history.get_history(subscription_id)

    @staticmethod
    def allowed_transitions(status: SubscriptionStatus) -> List[SubscriptionStatus]:
        return rules.allowed_targets(SubscriptionStatus(status))

    async def get_lifecycle_status(self, subscription_id: str) -> LifecycleStatusSummary:
        subscription = await self._load(subscription_id)
        now = self._clock.now()
        status = subscription.status
        targets = rules.allowed_targets(status)

        days_until = None
        if subscription.next_billing_date is not None:
            days_until = max(0, (subscription.next_billing_date - now).days)

        return LifecycleStatusSummary(
            subscription_id=subscription_id,
            status=status,
            next_billing_date=subscription.next_billing_date,
            days_until_next_billing=days_until,
            is_active=status == S.ACTIVE,
            is_paused=status == S.PAUSED,
            is_cancelled=status == S.CANCELLED,
            is_expired=status == S.EXPIRED,
            is_in_trial=status == S.TRIAL_ACTIVE,
            can_be_paused=status == S.ACTIVE,
            can_be_cancelled=S.CANCELLED in targets,
            can_be_reactivated=status in REACTIVATABLE,
            allowed_transitions=targets,
            failed_payment_attempts=subscription.failed_payment_attempts,
            status_counts=await self._history.count_by_status(subscription_id),
        )
