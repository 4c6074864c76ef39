# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/lifecycle_orchestrator.py
# 🧭 Purpose (Layman Explanation):
# Handles the big admin jobs: cancelling or moving many subscriptions at once, and the scheduled
# clean-ups that expire overdue subscriptions and refill monthly allowances.
# 🧪 Purpose (Technical Summary):
# Batch driver over the lifecycle manager and quota tracker. Items run one at a time through the
# normal single-subscription path; business failures are collected, a systemic failure aborts the
# batch and is reported once, and an asyncio.Event is checked between items for cancellation.
# 🔗 Dependencies:
# SubscriptionLifecycleManager, PrivilegeQuotaTracker, SubscriptionStore, AuditSink, Clock,
# structured logging context
# 🔄 Connected Modules / Calls From:
# Admin API endpoints, telehealth_core/background_jobs/tasks/subscription_sweeps.py

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional
from uuid import uuid4

from telehealth_core.shared.core.exceptions import SystemicFailureError
from telehealth_core.shared.utils.clock import Clock
from telehealth_core.shared.utils.logging import log_context

from ..models.result import BulkResult, LifecycleResult, SweepResult
from ..models.subscription import SubscriptionStatus
from ..repositories.subscription_store import SubscriptionStore
from .audit import ACTION_BULK_PLAN_CHANGE, ACTION_BULK_STATE_CHANGE, AuditRecord, AuditSink
from .lifecycle_manager import SubscriptionLifecycleManager
from .privilege_quota_tracker import PrivilegeQuotaTracker

logger = logging.getLogger(__name__)

ItemOperation = Callable[[str], Awaitable[LifecycleResult]]


class LifecycleOrchestrator:
    """Bulk administrative operations and scheduler entry points."""

    def __init__(
        self,
        manager: SubscriptionLifecycleManager,
        quota_tracker: PrivilegeQuotaTracker,
        store: SubscriptionStore,
        clock: Clock,
        audit_sink: Optional[AuditSink] = None,
        system_actor: str = "System",
    ):
        self._manager = manager
        self._quota = quota_tracker
        self._store = store
        self._clock = clock
        self._audit_sink = audit_sink
        self._system_actor = system_actor

    @staticmethod
    def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    async def _run_batch(
        self,
        subscription_ids: Iterable[str],
        operation: ItemOperation,
        cancel_event: Optional[asyncio.Event],
    ) -> BulkResult:
        ids = list(subscription_ids)
        result = BulkResult(total=len(ids))

        for subscription_id in ids:
            if self._cancelled(cancel_event):
                result.cancelled = True
                logger.info(f"Batch cancelled after {result.processed}/{result.total} item(s)")
                break

            try:
                outcome = await operation(subscription_id)
            except SystemicFailureError as e:
                result.systemic_error = f"{subscription_id}: {e.message}"
                logger.error(f"Batch aborted on systemic failure at {subscription_id}: {e.message}")
                break

            if outcome.success:
                result.succeeded += 1
            else:
                result.record_failure(subscription_id, outcome)

        return result

    async def _audit_batch(self, actor: str, action: str, batch_id: str, detail: str):
        if self._audit_sink is None:
            return
        try:
            await self._audit_sink.record(AuditRecord(
                actor=actor,
                action=action,
                entity_id=batch_id,
                detail=detail,
                occurred_at=self._clock.now(),
            ))
        except Exception as e:
            logger.error(f"Audit write failed for batch {batch_id}: {e}", exc_info=True)

    @staticmethod
    def _summary(result: BulkResult) -> str:
        text = f"{result.succeeded} succeeded, {result.failed} failed of {result.total}"
        if result.cancelled:
            text += " (cancelled)"
        if result.systemic_error:
            text += f" (aborted: {result.systemic_error})"
        return text

    async def bulk_transition(
        self,
        subscription_ids: Iterable[str],
        target_status: SubscriptionStatus,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkResult:
        """
        Apply the same transition to many subscriptions.

        Args:
            subscription_ids: Subscriptions to move, processed in order
            target_status: Desired status for all of them
            reason: Recorded on each history entry
            actor: Who requested the batch
            cancel_event: Checked between items; set it to stop early

        Returns:
            BulkResult: Per-batch counts, per-item errors and any systemic abort
        """
        target = SubscriptionStatus(target_status)
        batch_id = str(uuid4())
        actor_name = actor or self._system_actor

        with log_context(correlation_id=batch_id, actor=actor_name):
            logger.info(f"Bulk transition {batch_id} to {target.value} started")
            result = await self._run_batch(
                subscription_ids,
                lambda sid: self._manager.request_transition(sid, target, reason, actor),
                cancel_event,
            )
            summary = self._summary(result)
            await self._audit_batch(
                actor_name,
                ACTION_BULK_STATE_CHANGE,
                batch_id,
                f"Bulk transition to {target.value}: {summary}",
            )
            logger.info(f"Bulk transition {batch_id} finished: {summary}")
        return result

    async def bulk_change_plan(
        self,
        subscription_ids: Iterable[str],
        new_plan_id: str,
        actor: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkResult:
        """Administrative plan migration for many subscriptions."""
        batch_id = str(uuid4())
        actor_name = actor or self._system_actor

        with log_context(correlation_id=batch_id, actor=actor_name):
            logger.info(f"Bulk plan change {batch_id} to {new_plan_id} started")
            result = await self._run_batch(
                subscription_ids,
                lambda sid: self._manager.apply_plan_change(sid, new_plan_id, actor),
                cancel_event,
            )
            summary = self._summary(result)
            await self._audit_batch(
                actor_name,
                ACTION_BULK_PLAN_CHANGE,
                batch_id,
                f"Bulk plan change to {new_plan_id}: {summary}",
            )
            logger.info(f"Bulk plan change {batch_id} finished: {summary}")
        return result

    async def process_expiration_sweep(self, cancel_event: Optional[asyncio.Event] = None) -> SweepResult:
        with log_context(correlation_id=f"expiration-sweep-{uuid4()}", actor=self._system_actor):
            return await self._manager.process_expiration_sweep(cancel_event)

    async def process_usage_reset_sweep(self, cancel_event: Optional[asyncio.Event] = None) -> SweepResult:
        """Reset privilege counters of every subscription whose usage window has ended."""
        with log_context(correlation_id=f"usage-reset-{uuid4()}", actor=self._system_actor):
            subscription_ids = await self._store.list_subscription_ids_with_elapsed_usage(self._clock.now())
            result = SweepResult(examined=len(subscription_ids))

            for subscription_id in subscription_ids:
                if self._cancelled(cancel_event):
                    result.cancelled = True
                    break

                outcome, rewritten = await self._quota.reset_period_counted(subscription_id)
                if not outcome.success:
                    result.record_failure(subscription_id, outcome)
                elif rewritten == 0:
                    result.skipped += 1
                else:
                    result.reset += 1

            logger.info(
                f"Usage reset sweep done: {result.reset} reset, {result.skipped} skipped, {result.failed} failed"
            )
        return result
