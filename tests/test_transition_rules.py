"""
Transition table tests: the graph itself, and the manager honouring it for
arbitrary sequences of requested statuses.
"""

import asyncio

from hypothesis import given, settings, strategies as st

from telehealth_core.modules.subscription_lifecycle.domain.models import SubscriptionStatus
from telehealth_core.modules.subscription_lifecycle.domain.services import transition_rules as rules
from telehealth_core.shared.core.exceptions import ErrorKind

from conftest import build_services, create_subscription

S = SubscriptionStatus


class TestTransitionTable:

    def test_every_status_has_an_entry(self):
        assert set(rules.TRANSITIONS) == set(SubscriptionStatus)

    def test_cancelled_is_the_only_terminal_status(self):
        terminal = [s for s in SubscriptionStatus if rules.is_terminal(s)]
        assert terminal == [S.CANCELLED]

    def test_expired_only_reactivates(self):
        assert rules.allowed_targets(S.EXPIRED) == [S.ACTIVE]

    def test_active_targets(self):
        assert set(rules.allowed_targets(S.ACTIVE)) == {S.PAUSED, S.CANCELLED, S.PAYMENT_FAILED, S.EXPIRED}

    def test_no_self_transitions(self):
        for status in SubscriptionStatus:
            assert not rules.is_allowed(status, status)

    def test_entry_states(self):
        assert rules.ENTRY_STATES == {S.PENDING, S.TRIAL_ACTIVE}

    def test_default_reason_prefers_caller_text(self):
        assert rules.default_reason(S.CANCELLED, "  moving abroad ") == "moving abroad"
        assert rules.default_reason(S.CANCELLED, "   ") == "Subscription cancelled"
        assert rules.default_reason(S.TRIAL_EXPIRED, None) == "Trial period expired"


@settings(max_examples=60, deadline=None)
@given(
    start=st.sampled_from([S.PENDING, S.TRIAL_ACTIVE]),
    targets=st.lists(st.sampled_from(list(SubscriptionStatus)), min_size=1, max_size=8),
)
def test_manager_accepts_exactly_the_table_edges(start, targets):
    """Each request succeeds iff the edge is in the table; history grows only on success."""

    async def scenario():
        services = build_services()
        await create_subscription(services, status=start)
        current = start
        successes = 0

        for target in targets:
            result = await services.manager.request_transition("sub-1", target, reason="requested by test")
            if rules.is_allowed(current, target):
                assert result.success, result.message
                assert result.subscription.status == target
                current = target
                successes += 1
            else:
                assert not result.success
                assert result.error_kind == ErrorKind.INVALID_TRANSITION

            stored = await services.store.get("sub-1")
            assert stored.status == current

        history = await services.manager.get_status_history("sub-1")
        assert len(history) == successes + 1
        for previous, entry in zip(history, history[1:]):
            assert entry.from_status == previous.to_status
            assert rules.is_allowed(entry.from_status, entry.to_status)

    asyncio.run(scenario())
