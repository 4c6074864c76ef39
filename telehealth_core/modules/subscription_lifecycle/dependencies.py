# 📄 File: telehealth_core/modules/subscription_lifecycle/dependencies.py
# 🧭 Purpose (Layman Explanation):
# Puts all the subscription services together in the right order so that every part shares
# the same store, lock table and clock.
# 🧪 Purpose (Technical Summary):
# Composition root for the lifecycle module. Builds the KeyedLock, history log, quota tracker,
# lifecycle manager and orchestrator from a store + catalog pair and the application settings.
# 🔗 Dependencies:
# Domain services, telehealth_core.shared.config.settings, KeyedLock, Clock
# 🔄 Connected Modules / Calls From:
# Celery sweep tasks, API wiring, test fixtures

import logging
from dataclasses import dataclass
from typing import Optional

from telehealth_core.shared.config.settings import Settings, get_settings
from telehealth_core.shared.core.event_bus import EventBus
from telehealth_core.shared.core.keyed_lock import KeyedLock
from telehealth_core.shared.utils.clock import Clock, SystemClock

from .domain.repositories.plan_catalog import PlanCatalog
from .domain.repositories.subscription_store import SubscriptionStore
from .domain.services.audit import AuditSink, LoggingAuditSink
from .domain.services.billing_cycle_advancer import BillingCycleAdvancer
from .domain.services.lifecycle_manager import SubscriptionLifecycleManager
from .domain.services.lifecycle_orchestrator import LifecycleOrchestrator
from .domain.services.privilege_quota_tracker import PrivilegeQuotaTracker
from .domain.services.proration_calculator import ProrationCalculator
from .domain.services.status_history_log import StatusHistoryLog

logger = logging.getLogger(__name__)


@dataclass
class LifecycleServices:
    """The wired service graph for one store."""
    store: SubscriptionStore
    catalog: PlanCatalog
    clock: Clock
    locks: KeyedLock
    history_log: StatusHistoryLog
    quota_tracker: PrivilegeQuotaTracker
    manager: SubscriptionLifecycleManager
    orchestrator: LifecycleOrchestrator
    proration: ProrationCalculator


def build_lifecycle_services(
    store: SubscriptionStore,
    catalog: PlanCatalog,
    clock: Optional[Clock] = None,
    event_bus: Optional[EventBus] = None,
    audit_sink: Optional[AuditSink] = None,
    settings: Optional[Settings] = None,
) -> LifecycleServices:
    """
    Wire the lifecycle services around a store and plan catalog.

    Args:
        store: Subscription persistence
        catalog: Plan and privilege lookups
        clock: Time source, SystemClock when omitted
        event_bus: Optional bus for lifecycle events
        audit_sink: Audit destination, LoggingAuditSink when omitted
        settings: Overrides the cached application settings

    Returns:
        LifecycleServices: Manager and orchestrator sharing one lock table
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    audit_sink = audit_sink or LoggingAuditSink()
    locks = KeyedLock()
    advancer = BillingCycleAdvancer()
    proration = ProrationCalculator(advancer)
    retries = settings.LIFECYCLE_MAX_CONFLICT_RETRIES

    history_log = StatusHistoryLog(store)
    quota_tracker = PrivilegeQuotaTracker(
        store, catalog, clock, locks, advancer=advancer, max_conflict_retries=retries,
    )
    manager = SubscriptionLifecycleManager(
        store,
        catalog,
        clock,
        locks,
        history_log,
        quota_tracker,
        advancer=advancer,
        proration=proration,
        event_bus=event_bus,
        audit_sink=audit_sink,
        max_conflict_retries=retries,
        system_actor=settings.LIFECYCLE_SYSTEM_ACTOR,
        default_trial_days=settings.DEFAULT_TRIAL_DAYS,
    )
    orchestrator = LifecycleOrchestrator(
        manager,
        quota_tracker,
        store,
        clock,
        audit_sink=audit_sink,
        system_actor=settings.LIFECYCLE_SYSTEM_ACTOR,
    )

    logger.debug(f"Lifecycle services built on {type(store).__name__}")
    return LifecycleServices(
        store=store,
        catalog=catalog,
        clock=clock,
        locks=locks,
        history_log=history_log,
        quota_tracker=quota_tracker,
        manager=manager,
        orchestrator=orchestrator,
        proration=proration,
    )
