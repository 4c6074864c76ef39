"""
Subscription status transition table.

The graph is fixed: every status maps to the set of statuses it may move to.
Cancelled is terminal.
"""

from typing import Dict, FrozenSet, List, Optional

from ..models.subscription import SubscriptionStatus

S = SubscriptionStatus

TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    S.PENDING: frozenset({S.ACTIVE, S.TRIAL_ACTIVE, S.CANCELLED}),
    S.ACTIVE: frozenset({S.PAUSED, S.CANCELLED, S.PAYMENT_FAILED, S.EXPIRED}),
    S.PAUSED: frozenset({S.ACTIVE, S.CANCELLED, S.EXPIRED}),
    S.PAYMENT_FAILED: frozenset({S.ACTIVE, S.CANCELLED, S.SUSPENDED}),
    S.SUSPENDED: frozenset({S.ACTIVE, S.CANCELLED}),
    S.TRIAL_ACTIVE: frozenset({S.ACTIVE, S.TRIAL_EXPIRED, S.CANCELLED}),
    S.TRIAL_EXPIRED: frozenset({S.ACTIVE, S.CANCELLED}),
    S.EXPIRED: frozenset({S.ACTIVE}),
    S.CANCELLED: frozenset(),
}

# States a subscription may be created in.
ENTRY_STATES: FrozenSet[SubscriptionStatus] = frozenset({S.PENDING, S.TRIAL_ACTIVE})

# Reasons recorded when the caller does not supply one.
DEFAULT_REASONS: Dict[SubscriptionStatus, str] = {
    S.ACTIVE: "Subscription activated",
    S.PAUSED: "Subscription paused",
    S.CANCELLED: "Subscription cancelled",
    S.SUSPENDED: "Subscription suspended",
    S.EXPIRED: "Subscription expired",
    S.PAYMENT_FAILED: "Payment failed",
    S.TRIAL_ACTIVE: "Trial started",
    S.TRIAL_EXPIRED: "Trial period expired",
    S.PENDING: "Subscription created",
}

RESUMED_REASON = "Subscription resumed"
REACTIVATED_REASON = "Subscription reactivated"
EXPIRED_NON_PAYMENT_REASON = "Subscription expired due to non-payment"
PAYMENT_RECEIVED_REASON = "Payment received"


def allowed_targets(status: SubscriptionStatus) -> List[SubscriptionStatus]:
    """Legal next statuses in declaration order of the enum."""
    targets = TRANSITIONS[status]
    return [s for s in SubscriptionStatus if s in targets]


def is_allowed(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in TRANSITIONS[current]


def is_terminal(status: SubscriptionStatus) -> bool:
    return not TRANSITIONS[status]


def default_reason(target: SubscriptionStatus, reason: Optional[str]) -> str:
    if reason and reason.strip():
        return reason.strip()
    return DEFAULT_REASONS[target]
