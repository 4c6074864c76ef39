# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/status_history_log.py
# 🧭 Purpose (Layman Explanation):
# Keeps the permanent diary of every status change a subscription goes through.
# 🧪 Purpose (Technical Summary):
# Append-only history writer and reader over the SubscriptionStore. Writes join the caller's
# open store transaction so the history row commits together with the status change.
# 🔗 Dependencies:
# SubscriptionStore, SubscriptionStatusHistory model
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py (record on every transition, history queries)

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from ..models.status_history import SubscriptionStatusHistory
from ..models.subscription import SubscriptionStatus
from ..repositories.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


class StatusHistoryLog:
    """Append-only log of status changes."""

    def __init__(self, store: SubscriptionStore):
        self._store = store

    async def record(
        self,
        subscription_id: str,
        from_status: Optional[SubscriptionStatus],
        to_status: SubscriptionStatus,
        reason: Optional[str],
        changed_by: Optional[str],
        changed_at: datetime,
    ) -> SubscriptionStatusHistory:
        """
        Append one history entry.

        Args:
            subscription_id: Subscription the entry belongs to
            from_status: Previous status, None for the creation entry
            to_status: New status
            reason: Human readable reason
            changed_by: Actor, None for the system or scheduler
            changed_at: Instant of the change

        Returns:
            SubscriptionStatusHistory: The stored entry
        """
        entry = SubscriptionStatusHistory(
            subscription_id=subscription_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            changed_by=changed_by,
            changed_at=changed_at,
        )
        await self._store.append_history(entry)
        logger.debug(
            f"History recorded for {subscription_id}: "
            f"{from_status.value if from_status else None} -> {to_status.value}"
        )
        return entry

    async def get_history(self, subscription_id: str) -> List[SubscriptionStatusHistory]:
        return await self._store.get_history(subscription_id)

    async def count_by_status(self, subscription_id: str) -> Dict[str, int]:
        """How many times the subscription entered each status."""
        history = await self._store.get_history(subscription_id)
        return dict(Counter(entry.to_status.value for entry in history))
