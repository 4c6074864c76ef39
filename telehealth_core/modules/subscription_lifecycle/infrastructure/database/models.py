# 📄 File: telehealth_core/modules/subscription_lifecycle/infrastructure/database/models.py
# 🧭 Purpose (Layman Explanation):
# Defines the database tables that hold subscriptions, their status diary and their
# privilege usage counters.
#
# 🧪 Purpose (Technical Summary):
# SQLAlchemy ORM models for the subscription lifecycle with a version column for optimistic
# concurrency, plus mappers between rows and pydantic domain models. Timestamps are stored
# and returned as timezone-aware UTC on every backend.
#
# 🔗 Dependencies:
# - SQLAlchemy ORM
# - telehealth_core.shared.infrastructure.database.connection (declarative base)
# - Subscription lifecycle domain models
#
# 🔄 Connected Modules / Calls From:
# - subscription_store_impl.py (CRUD and versioned updates)
# - DatabaseConnectionManager.create_schema (table creation)

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator

from telehealth_core.shared.infrastructure.database.connection import DatabaseBase
from telehealth_core.shared.utils.clock import ensure_utc

from ...domain.models import (
    PrivilegeUsageRecord,
    Subscription,
    SubscriptionStatus,
    SubscriptionStatusHistory,
)


class UTCDateTime(TypeDecorator):
    """DateTime that always round-trips as an aware UTC value (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect):
        return ensure_utc(value)

    def process_result_value(self, value: Optional[datetime], dialect):
        return ensure_utc(value)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

class SubscriptionModel(DatabaseBase):
    """
    Subscription aggregate row. version is bumped on every update and checked
    in the WHERE clause of the UPDATE.
    """
    __tablename__ = "subscriptions"

    subscription_id = Column(String(64), primary_key=True, comment="Unique subscription identifier")
    user_id = Column(String(64), nullable=False, index=True)
    plan_id = Column(String(64), nullable=False, index=True)

    status = Column(String(20), nullable=False, index=True, comment="Lifecycle status")
    current_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    billing_cycle = Column(String(20), nullable=False, default="Monthly")
    auto_renew = Column(Boolean, nullable=False, default=True)

    start_date = Column(UTCDateTime, nullable=False)
    next_billing_date = Column(UTCDateTime, nullable=True, index=True)
    trial_start_date = Column(UTCDateTime, nullable=True)
    trial_end_date = Column(UTCDateTime, nullable=True)
    paused_date = Column(UTCDateTime, nullable=True)
    resumed_date = Column(UTCDateTime, nullable=True)
    cancelled_date = Column(UTCDateTime, nullable=True)
    suspended_date = Column(UTCDateTime, nullable=True)
    expiration_date = Column(UTCDateTime, nullable=True)

    last_payment_date = Column(UTCDateTime, nullable=True)
    last_payment_failed_date = Column(UTCDateTime, nullable=True)
    last_payment_error = Column(Text, nullable=True)
    failed_payment_attempts = Column(Integer, nullable=False, default=0)

    cancellation_reason = Column(Text, nullable=True)
    pause_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    version = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SubscriptionModel(id={self.subscription_id}, status={self.status}, v={self.version})>"


class SubscriptionStatusHistoryModel(DatabaseBase):
    """Append-only status history. id orders entries of the same instant."""
    __tablename__ = "subscription_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    history_id = Column(String(64), nullable=False, unique=True)
    subscription_id = Column(
        String(64),
        ForeignKey("subscriptions.subscription_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(String(255), nullable=True)
    changed_at = Column(UTCDateTime, nullable=False)


class PrivilegeUsageModel(DatabaseBase):
    """Per-period usage counter, one row per (subscription, privilege)."""
    __tablename__ = "privilege_usage"
    __table_args__ = (
        UniqueConstraint("subscription_id", "privilege_name", name="uq_privilege_usage_subscription_privilege"),
        Index("ix_privilege_usage_period_end", "usage_period_end"),
    )

    usage_id = Column(String(64), primary_key=True)
    subscription_id = Column(
        String(64),
        ForeignKey("subscriptions.subscription_id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_privilege_id = Column(String(64), nullable=False)
    privilege_name = Column(String(100), nullable=False)
    used_value = Column(Integer, nullable=False, default=0)
    allowed_value = Column(Integer, nullable=False)
    usage_period_start = Column(UTCDateTime, nullable=False)
    usage_period_end = Column(UTCDateTime, nullable=False)
    last_used_at = Column(UTCDateTime, nullable=True)
    reset_at = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False, default=0)


# =============================================================================
# MAPPERS
# =============================================================================

_SUBSCRIPTION_FIELDS = [
    "subscription_id", "user_id", "plan_id", "current_price", "billing_cycle", "auto_renew",
    "start_date", "next_billing_date", "trial_start_date", "trial_end_date", "paused_date",
    "resumed_date", "cancelled_date", "suspended_date", "expiration_date", "last_payment_date",
    "last_payment_failed_date", "last_payment_error", "failed_payment_attempts",
    "cancellation_reason", "pause_reason", "created_at", "updated_at", "version",
]

_USAGE_FIELDS = [
    "usage_id", "subscription_id", "plan_privilege_id", "privilege_name", "used_value",
    "allowed_value", "usage_period_start", "usage_period_end", "last_used_at", "reset_at", "version",
]


def subscription_to_values(subscription: Subscription) -> Dict[str, Any]:
    values = {name: getattr(subscription, name) for name in _SUBSCRIPTION_FIELDS}
    values["status"] = subscription.status.value
    return values


def subscription_from_row(row: SubscriptionModel) -> Subscription:
    data = {name: getattr(row, name) for name in _SUBSCRIPTION_FIELDS}
    data["status"] = SubscriptionStatus(row.status)
    return Subscription(**data)


def history_to_row(entry: SubscriptionStatusHistory) -> SubscriptionStatusHistoryModel:
    return SubscriptionStatusHistoryModel(
        history_id=entry.history_id,
        subscription_id=entry.subscription_id,
        from_status=entry.from_status.value if entry.from_status else None,
        to_status=entry.to_status.value,
        reason=entry.reason,
        changed_by=entry.changed_by,
        changed_at=entry.changed_at,
    )


def history_from_row(row: SubscriptionStatusHistoryModel) -> SubscriptionStatusHistory:
    return SubscriptionStatusHistory(
        history_id=row.history_id,
        subscription_id=row.subscription_id,
        from_status=SubscriptionStatus(row.from_status) if row.from_status else None,
        to_status=SubscriptionStatus(row.to_status),
        reason=row.reason,
        changed_by=row.changed_by,
        changed_at=row.changed_at,
    )


def usage_to_values(record: PrivilegeUsageRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in _USAGE_FIELDS}


def usage_from_row(row: PrivilegeUsageModel) -> PrivilegeUsageRecord:
    return PrivilegeUsageRecord(**{name: getattr(row, name) for name in _USAGE_FIELDS})
