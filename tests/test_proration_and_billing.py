"""
Billing cycle arithmetic and proration tests.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from telehealth_core.modules.subscription_lifecycle.domain.models import (
    BillingCycle,
    PlanDefinition,
    Subscription,
)
from telehealth_core.modules.subscription_lifecycle.domain.services.billing_cycle_advancer import (
    BillingCycleAdvancer,
)
from telehealth_core.modules.subscription_lifecycle.domain.services.proration_calculator import (
    ProrationCalculator,
    to_money,
)
from telehealth_core.shared.core.exceptions import ValidationError

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

advancer = BillingCycleAdvancer()
calculator = ProrationCalculator(advancer)


def subscription_due_in(days, price="30.00", cycle="Monthly"):
    return Subscription(
        subscription_id="sub-1",
        user_id="patient-1",
        plan_id="basic",
        current_price=Decimal(price),
        billing_cycle=cycle,
        next_billing_date=None if days is None else NOW + timedelta(days=days),
    )


class TestBillingCycleAdvancer:

    @pytest.mark.parametrize("kind, expected", [
        ("Daily", datetime(2025, 1, 16, 12, 0, tzinfo=timezone.utc)),
        ("Weekly", datetime(2025, 1, 22, 12, 0, tzinfo=timezone.utc)),
        ("Monthly", datetime(2025, 2, 15, 12, 0, tzinfo=timezone.utc)),
        ("Quarterly", datetime(2025, 4, 15, 12, 0, tzinfo=timezone.utc)),
        ("Annual", datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)),
    ])
    def test_advance_one_cycle(self, kind, expected):
        assert advancer.advance(NOW, kind) == expected

    def test_month_end_is_clamped(self):
        jan_31 = datetime(2025, 1, 31, tzinfo=timezone.utc)
        assert advancer.advance(jan_31, "Monthly") == datetime(2025, 2, 28, tzinfo=timezone.utc)

    def test_leap_day_annual(self):
        leap = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert advancer.advance(leap, "Annual") == datetime(2025, 2, 28, tzinfo=timezone.utc)

    def test_kinds_are_case_insensitive_with_aliases(self):
        assert advancer.normalize("MONTHLY") == BillingCycle.MONTHLY
        assert advancer.normalize(" yearly ") == BillingCycle.ANNUAL
        assert advancer.normalize("annually") == BillingCycle.ANNUAL
        assert advancer.normalize("fortnightly") is None
        assert not advancer.is_recognized(None)

    def test_unknown_kind_falls_back_to_monthly(self):
        assert advancer.advance(NOW, "fortnightly") == advancer.advance(NOW, "Monthly")
        assert advancer.cycle_length_days("fortnightly") == 30

    def test_nominal_cycle_lengths(self):
        lengths = [advancer.cycle_length_days(c.value) for c in BillingCycle]
        assert lengths == [1, 7, 30, 90, 365]


class TestProration:

    def test_half_cycle_upgrade(self):
        charge = calculator.compute_upgrade_charge(
            subscription_due_in(15), Decimal("30.00"), Decimal("60.00"), NOW
        )
        assert charge == Decimal("45.00")

    def test_downgrade_never_refunds(self):
        charge = calculator.compute_upgrade_charge(
            subscription_due_in(30), Decimal("60.00"), Decimal("10.00"), NOW
        )
        assert charge == Decimal("0.00")

    def test_no_billing_date_charges_full_price(self):
        charge = calculator.compute_upgrade_charge(
            subscription_due_in(None), Decimal("30.00"), Decimal("60.00"), NOW
        )
        assert charge == Decimal("60.00")

    def test_past_billing_date_gives_no_credit(self):
        assert calculator.days_remaining(subscription_due_in(-3), NOW) == 0

    def test_days_remaining_is_not_capped(self):
        assert calculator.days_remaining(subscription_due_in(31), NOW) == 31
        assert calculator.days_remaining(subscription_due_in(200), NOW) == 200

    def test_long_month_credits_every_remaining_day(self):
        # 60.00 - 30.00 * 31 / 30
        charge = calculator.compute_upgrade_charge(
            subscription_due_in(31), Decimal("30.00"), Decimal("60.00"), NOW
        )
        assert charge == Decimal("29.00")

    def test_credit_rounds_half_up_to_cents(self):
        # 10.00 * 1 / 30 = 0.3333...
        charge = calculator.compute_upgrade_charge(
            subscription_due_in(1), Decimal("10.00"), Decimal("20.00"), NOW
        )
        assert charge == Decimal("19.67")
        assert to_money(Decimal("0.125")) == Decimal("0.13")

    def test_negative_price_is_rejected(self):
        with pytest.raises(ValidationError):
            calculator.compute_upgrade_charge(subscription_due_in(10), Decimal("-1"), Decimal("5"), NOW)

    def test_quote_breakdown(self):
        plan = PlanDefinition(plan_id="premium", name="Premium", price=Decimal("60"))
        quote = calculator.compute_quote(subscription_due_in(10), plan, NOW)

        assert quote.current_plan_id == "basic"
        assert quote.new_plan_id == "premium"
        assert quote.days_remaining == 10
        assert quote.cycle_length_days == 30
        assert quote.credit == Decimal("10.00")
        assert quote.charge == Decimal("50.00")
        assert quote.new_price == Decimal("60.00")


money = st.decimals(min_value=0, max_value=10000, places=2, allow_nan=False, allow_infinity=False)


@given(old=money, new=money, days=st.integers(min_value=-60, max_value=400))
def test_charge_is_bounded_and_in_cents(old, new, days):
    subscription = subscription_due_in(days, price=str(old))
    charge = calculator.compute_upgrade_charge(subscription, old, new, NOW)

    assert Decimal("0") <= charge <= to_money(new)
    assert charge == to_money(charge)
    if days <= 0:
        assert charge == to_money(new)
