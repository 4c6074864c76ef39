# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/models/status_history.py
# 🧭 Purpose (Layman Explanation):
# One line in a subscription's diary: what status it moved from and to, why, who did it and when.
# 🧪 Purpose (Technical Summary):
# Immutable, append-only status history entry. from_status is None only for the creation entry.
# 🔗 Dependencies:
# pydantic, datetime, uuid
# 🔄 Connected Modules / Calls From:
# status_history_log.py, stores, lifecycle_manager.py

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telehealth_core.shared.utils.clock import ensure_utc

from .subscription import SubscriptionStatus


class SubscriptionStatusHistory(BaseModel):
    """Immutable record of one status change."""

    model_config = ConfigDict(frozen=True)

    history_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    subscription_id: str
    from_status: Optional[SubscriptionStatus] = None
    to_status: SubscriptionStatus
    reason: Optional[str] = None
    changed_by: Optional[str] = None  # None means system / scheduler
    changed_at: datetime

    @field_validator('changed_at')
    @classmethod
    def normalize_changed_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_creation_entry(self) -> bool:
        return self.from_status is None
