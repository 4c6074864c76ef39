# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/audit.py
# 🧭 Purpose (Layman Explanation):
# Writes down who did what to which subscription, for compliance reviews.
# 🧪 Purpose (Technical Summary):
# Audit port plus the default sink that emits records through the structured logger's
# log_user_action, so they land in the JSON log stream with actor and entity fields.
# 🔗 Dependencies:
# pydantic, telehealth_core.shared.utils.logging
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py (transitions, plan changes), lifecycle_orchestrator.py (bulk operations)

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from telehealth_core.shared.utils.logging import get_logger

SUBSCRIPTION_ENTITY = "Subscription"

ACTION_STATE_CHANGE = "SubscriptionStateChange"
ACTION_CREATED = "SubscriptionCreated"
ACTION_PLAN_CHANGE = "SubscriptionPlanChange"
ACTION_PAYMENT_RECORDED = "SubscriptionPaymentRecorded"
ACTION_BULK_STATE_CHANGE = "BulkSubscriptionStateChange"
ACTION_BULK_PLAN_CHANGE = "BulkSubscriptionPlanChange"


class AuditRecord(BaseModel):
    actor: str
    action: str
    entity_type: str = SUBSCRIPTION_ENTITY
    entity_id: str
    detail: str
    occurred_at: Optional[datetime] = None


class AuditSink(ABC):
    """Destination for audit records."""

    @abstractmethod
    async def record(self, entry: AuditRecord) -> None:
        pass


class LoggingAuditSink(AuditSink):
    """Writes audit records to the 'telehealth_core.audit' structured logger."""

    def __init__(self, logger_name: str = "telehealth_core.audit"):
        self._logger = get_logger(logger_name)

    async def record(self, entry: AuditRecord) -> None:
        self._logger.log_user_action(
            action=entry.action,
            user_id=entry.actor,
            resource=f"{entry.entity_type}:{entry.entity_id}",
            extra={
                "entity_type": entry.entity_type,
                "entity_id": entry.entity_id,
                "detail": entry.detail,
                "occurred_at": entry.occurred_at.isoformat() if entry.occurred_at else None,
            },
        )


def state_change_detail(old_status: Optional[str], new_status: str, reason: str) -> str:
    return f"Status changed from {old_status} to {new_status}: {reason}"
