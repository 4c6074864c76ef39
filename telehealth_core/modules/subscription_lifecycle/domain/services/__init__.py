"""Subscription lifecycle domain services."""

from .audit import AuditRecord, AuditSink, LoggingAuditSink
from .billing_cycle_advancer import BillingCycleAdvancer
from .lifecycle_manager import SubscriptionLifecycleManager
from .lifecycle_orchestrator import LifecycleOrchestrator
from .privilege_quota_tracker import PrivilegeQuotaTracker
from .proration_calculator import ProrationCalculator
from .status_history_log import StatusHistoryLog

__all__ = [
    "AuditRecord",
    "AuditSink",
    "BillingCycleAdvancer",
    "LifecycleOrchestrator",
    "LoggingAuditSink",
    "PrivilegeQuotaTracker",
    "ProrationCalculator",
    "StatusHistoryLog",
    "SubscriptionLifecycleManager",
]
