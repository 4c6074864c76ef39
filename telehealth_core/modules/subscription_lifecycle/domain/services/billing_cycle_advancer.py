# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/billing_cycle_advancer.py
# 🧭 Purpose (Layman Explanation):
# Works out when the next bill is due: tomorrow, next week, next month, next quarter or next year.
# 🧪 Purpose (Technical Summary):
# Calendar-aware date advancement per billing cycle kind using dateutil.relativedelta, with
# month-end clamping (Jan 31 + 1 month = Feb 28/29). Unknown kinds fall back to monthly.
# 🔗 Dependencies:
# python-dateutil (relativedelta), datetime
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py (reactivation, renewal), privilege_quota_tracker.py (usage windows),
# proration_calculator.py (nominal cycle length)

import logging
from datetime import datetime
from typing import Dict, Optional

from dateutil.relativedelta import relativedelta

from ..models.subscription import BillingCycle

logger = logging.getLogger(__name__)

_STEPS: Dict[BillingCycle, relativedelta] = {
    BillingCycle.DAILY: relativedelta(days=1),
    BillingCycle.WEEKLY: relativedelta(weeks=1),
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.QUARTERLY: relativedelta(months=3),
    BillingCycle.ANNUAL: relativedelta(years=1),
}

# Nominal lengths used for proration.
_NOMINAL_DAYS: Dict[BillingCycle, int] = {
    BillingCycle.DAILY: 1,
    BillingCycle.WEEKLY: 7,
    BillingCycle.MONTHLY: 30,
    BillingCycle.QUARTERLY: 90,
    BillingCycle.ANNUAL: 365,
}

_ALIASES: Dict[str, BillingCycle] = {
    "day": BillingCycle.DAILY,
    "week": BillingCycle.WEEKLY,
    "month": BillingCycle.MONTHLY,
    "quarter": BillingCycle.QUARTERLY,
    "year": BillingCycle.ANNUAL,
    "yearly": BillingCycle.ANNUAL,
    "annually": BillingCycle.ANNUAL,
}


class BillingCycleAdvancer:
    """Maps a billing cycle kind to its calendar step."""

    @staticmethod
    def normalize(kind: Optional[str]) -> Optional[BillingCycle]:
        """Case-insensitive lookup; None when the kind is not recognized."""
        if not kind:
            return None
        key = kind.strip().lower()
        for cycle in BillingCycle:
            if cycle.value.lower() == key:
                return cycle
        return _ALIASES.get(key)

    def is_recognized(self, kind: Optional[str]) -> bool:
        return self.normalize(kind) is not None

    def _resolve(self, kind: Optional[str]) -> BillingCycle:
        cycle = self.normalize(kind)
        if cycle is None:
            logger.warning(f"Unrecognized billing cycle '{kind}', falling back to Monthly")
            return BillingCycle.MONTHLY
        return cycle

    def advance(self, from_date: datetime, kind: Optional[str]) -> datetime:
        """
        Next billing date one cycle after from_date.

        Args:
            from_date: Start of the period
            kind: Billing cycle kind, free text

        Returns:
            datetime: from_date plus one cycle
        """
        return from_date + _STEPS[self._resolve(kind)]

    def cycle_length_days(self, kind: Optional[str]) -> int:
        return _NOMINAL_DAYS[self._resolve(kind)]
