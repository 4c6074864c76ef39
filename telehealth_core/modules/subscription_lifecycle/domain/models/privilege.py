# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/models/privilege.py
# 🧭 Purpose (Layman Explanation):
# What a plan lets a patient do each billing period (say, 4 video consultations) and how
# much of it they have already used.
# 🧪 Purpose (Technical Summary):
# Plan privilege grant, per-subscription usage counter for the current period window,
# and the usage summary read model.
# 🔗 Dependencies:
# pydantic, datetime, decimal, uuid
# 🔄 Connected Modules / Calls From:
# privilege_quota_tracker.py, plan catalog, stores

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telehealth_core.shared.utils.clock import ensure_utc

# Allowance sentinel: no cap. An allowance of 0 means the privilege is disabled.
UNLIMITED = -1


class PlanPrivilege(BaseModel):
    """A privilege granted by a plan with its per-period allowance."""

    model_config = ConfigDict(frozen=True)

    plan_privilege_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    plan_id: str
    privilege_name: str
    value: int

    @field_validator('value')
    @classmethod
    def validate_value(cls, v: int) -> int:
        if v < UNLIMITED:
            raise ValueError('Allowance must be a non-negative integer or UNLIMITED (-1)')
        return v

    @property
    def is_unlimited(self) -> bool:
        return self.value == UNLIMITED


class PrivilegeUsageRecord(BaseModel):
    """
    Usage counter for one privilege of one subscription within the current period.

    Created on first consumption and reset (never deleted) at period rollover.
    """

    model_config = ConfigDict(validate_assignment=True)

    usage_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    subscription_id: str
    plan_privilege_id: str
    privilege_name: str
    used_value: int = 0
    allowed_value: int
    usage_period_start: datetime
    usage_period_end: datetime
    last_used_at: Optional[datetime] = None
    reset_at: Optional[datetime] = None
    version: int = 0

    @field_validator('usage_period_start', 'usage_period_end', 'last_used_at', 'reset_at')
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator('used_value')
    @classmethod
    def validate_used(cls, v: int) -> int:
        if v < 0:
            raise ValueError('Used value cannot be negative')
        return v

    @property
    def is_unlimited(self) -> bool:
        return self.allowed_value == UNLIMITED


class PrivilegeUsageSummary(BaseModel):
    """Usage statistics for one privilege. remaining is None when unlimited."""

    privilege_name: str
    used: int
    allowed: int
    remaining: Optional[int]
    usage_percentage: Decimal
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    @classmethod
    def build(
        cls,
        privilege_name: str,
        used: int,
        allowed: int,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> "PrivilegeUsageSummary":
        if allowed == UNLIMITED:
            remaining, percentage = None, Decimal("0")
        elif allowed == 0:
            remaining, percentage = 0, Decimal("100")
        else:
            remaining = max(0, allowed - used)
            percentage = Decimal(used) * 100 / Decimal(allowed)

        return cls(
            privilege_name=privilege_name,
            used=used,
            allowed=allowed,
            remaining=remaining,
            usage_percentage=percentage.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            period_start=period_start,
            period_end=period_end,
        )
