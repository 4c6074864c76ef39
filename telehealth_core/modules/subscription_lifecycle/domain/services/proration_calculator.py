# 📄 File: telehealth_core/modules/subscription_lifecycle/domain/services/proration_calculator.py
# 🧭 Purpose (Layman Explanation):
# When a patient switches plans mid-cycle, this works out how much of the old plan they have
# not used yet (their credit) and what they owe for the new plan after that credit.
# 🧪 Purpose (Technical Summary):
# Pure Decimal proration: credit = old_price * days_remaining / cycle_length, charge = max(0, new - credit).
# Amounts are quantized to cents with ROUND_HALF_UP; days_remaining never goes below 0.
# 🔗 Dependencies:
# decimal, datetime, billing_cycle_advancer.py
# 🔄 Connected Modules / Calls From:
# lifecycle_manager.py (quote_plan_change), API billing previews

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from telehealth_core.shared.core.exceptions import ValidationError

from ..models.plan import PlanDefinition
from ..models.result import PlanChangeQuote
from ..models.subscription import Subscription
from .billing_cycle_advancer import BillingCycleAdvancer

CENTS = Decimal("0.01")


def to_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class ProrationCalculator:
    """Prorated upgrade charges. No state, no I/O."""

    def __init__(self, advancer: Optional[BillingCycleAdvancer] = None):
        self._advancer = advancer or BillingCycleAdvancer()

    def days_remaining(self, subscription: Subscription, now: datetime) -> int:
        if subscription.next_billing_date is None:
            return 0
        return max(0, (subscription.next_billing_date - now).days)

    def _credit_and_charge(
        self,
        subscription: Subscription,
        old_price: Decimal,
        new_price: Decimal,
        now: datetime,
    ) -> Tuple[int, int, Decimal, Decimal]:
        if old_price < 0 or new_price < 0:
            raise ValidationError("Prices cannot be negative", field="price")

        cycle_days = self._advancer.cycle_length_days(subscription.billing_cycle)
        days = self.days_remaining(subscription, now)
        credit = to_money(Decimal(old_price) * days / cycle_days)
        charge = to_money(max(Decimal("0"), Decimal(new_price) - credit))
        return days, cycle_days, credit, charge

    def compute_upgrade_charge(
        self,
        subscription: Subscription,
        old_price: Decimal,
        new_price: Decimal,
        now: datetime,
    ) -> Decimal:
        """
        Amount due now when switching from old_price to new_price.

        Args:
            subscription: Supplies next_billing_date and billing_cycle
            old_price: Price of the current plan
            new_price: Price of the target plan
            now: Instant of the change

        Returns:
            Decimal: Non-negative charge in cents precision
        """
        return self._credit_and_charge(subscription, old_price, new_price, now)[3]

    def compute_quote(
        self,
        subscription: Subscription,
        new_plan: PlanDefinition,
        now: datetime,
    ) -> PlanChangeQuote:
        days, cycle_days, credit, charge = self._credit_and_charge(
            subscription, subscription.current_price, new_plan.price, now
        )
        return PlanChangeQuote(
            subscription_id=subscription.subscription_id,
            current_plan_id=subscription.plan_id,
            new_plan_id=new_plan.plan_id,
            old_price=to_money(subscription.current_price),
            new_price=to_money(new_plan.price),
            days_remaining=days,
            cycle_length_days=cycle_days,
            credit=credit,
            charge=charge,
        )
