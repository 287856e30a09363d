"""
Tests for SubscriptionService.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from revenue_ledger.exceptions import (
    InvalidAmountError,
    InvalidFilterError,
    InvalidStateTransitionError,
    MissingRequiredFieldError,
    SubscriptionNotActiveError,
    SubscriptionNotFoundError,
    ValidationError,
    is_retryable,
)
from revenue_ledger.schemas.transaction import TransactionData


def run(coro):
    return asyncio.run(coro)


def create_subscription(ledger, at, amount=2000, plan_key="monthly", **kwargs):
    return run(ledger.subscriptions.create(
        TransactionData(organization_id="org_1", customer_id="cus_1"),
        plan_key=plan_key,
        amount=amount,
        at=at,
        gateway="fake",
        **kwargs,
    ))


@pytest.fixture
def active(ledger, at):
    subscription = create_subscription(ledger, at).subscription
    return run(ledger.subscriptions.activate(subscription.id, at=at))


class TestCreate:

    def test_paid_plan_is_pending_with_charge(self, ledger, notifier, at):
        result = create_subscription(ledger, at)

        subscription = result.subscription
        assert subscription.status == "pending"
        assert subscription.current_period_end is None
        assert subscription.transaction_id == result.transaction.id
        assert result.transaction.reference_model == "Subscription"
        assert result.transaction.reference_id == subscription.id
        assert result.transaction.idempotency_key.startswith("sub_")
        assert result.transaction.metadata["plan_key"] == "monthly"
        assert result.payment_intent is not None
        assert notifier.names() == ["transaction.created", "subscription.created"]

    def test_free_plan_is_active_immediately(self, ledger, notifier, at):
        result = create_subscription(ledger, at, amount=0)

        subscription = result.subscription
        assert result.transaction is None
        assert subscription.status == "active"
        assert subscription.currency == "USD"
        assert subscription.current_period_start == at
        assert subscription.current_period_end == datetime(2025, 2, 15, 12, tzinfo=timezone.utc)
        assert notifier.events[-1].is_free is True

    def test_organization_is_required(self, ledger, at):
        with pytest.raises(MissingRequiredFieldError):
            run(ledger.subscriptions.create(
                TransactionData(), plan_key="monthly", amount=2000, at=at
            ))

    def test_replayed_request_returns_existing(self, ledger, subscription_repo, at):
        first = create_subscription(ledger, at, idempotency_key="signup-1")

        second = create_subscription(ledger, at, idempotency_key="signup-1")

        assert second.subscription.id == first.subscription.id
        assert second.transaction.id == first.transaction.id
        assert len(subscription_repo.all()) == 1


    def test_replayed_free_plan_returns_existing(
        self, ledger, subscription_repo, notifier, at
    ):
        first = create_subscription(ledger, at, amount=0, idempotency_key="free-1")

        second = create_subscription(
            ledger, at + timedelta(minutes=1), amount=0, idempotency_key="free-1"
        )

        assert second.subscription.id == first.subscription.id
        assert second.subscription.idempotency_key == "free-1"
        assert second.transaction is None
        assert len(subscription_repo.all()) == 1
        assert notifier.names() == ["subscription.created"]


class TestActivate:

    def test_month_end_clamps(self, ledger, at):
        jan_31 = datetime(2025, 1, 31, 9, tzinfo=timezone.utc)
        subscription = create_subscription(ledger, at).subscription

        activated = run(ledger.subscriptions.activate(subscription.id, at=jan_31))

        assert activated.status == "active"
        assert activated.activated_at == jan_31
        assert activated.current_period_start == jan_31
        assert activated.current_period_end == datetime(2025, 2, 28, 9, tzinfo=timezone.utc)

    def test_activating_twice_is_a_no_op(self, ledger, active, at):
        again = run(ledger.subscriptions.activate(active.id, at=at + timedelta(days=3)))

        assert again.version == active.version
        assert again.activated_at == active.activated_at

    def test_cancelled_cannot_be_activated(self, ledger, active, at):
        run(ledger.subscriptions.cancel(active.id, at=at, immediate=True))

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.subscriptions.activate(active.id, at=at))


class TestRenew:

    def test_renewal_creates_linked_charge(self, ledger, active, at):
        result = run(ledger.subscriptions.renew(active.id, at=at + timedelta(days=28)))

        assert result.subscription.renewal_count == 1
        assert result.subscription.renewal_transaction_id == result.transaction.id
        assert result.subscription.status == "active"
        assert result.subscription.current_period_end == active.current_period_end
        assert result.transaction.amount == 2000
        assert result.transaction.metadata["is_renewal"] is True
        assert result.transaction.idempotency_key.startswith("renewal_")
        assert result.transaction.reference_id == active.id

    def test_free_plan_cannot_be_renewed(self, ledger, at):
        subscription = create_subscription(ledger, at, amount=0).subscription

        with pytest.raises(InvalidAmountError) as exc_info:
            run(ledger.subscriptions.renew(subscription.id, at=at))

        assert isinstance(exc_info.value, ValidationError)
        assert not is_retryable(exc_info.value)

    def test_cancelled_cannot_be_renewed(self, ledger, active, at):
        run(ledger.subscriptions.cancel(active.id, at=at, immediate=True))

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.subscriptions.renew(active.id, at=at))


class TestExtendPeriod:

    def test_early_renewal_keeps_remaining_days(self, ledger, active, at):
        extended = run(ledger.subscriptions.extend_period(
            active.id, at=at + timedelta(days=20)
        ))

        assert extended.current_period_start == active.current_period_end
        assert extended.current_period_end == datetime(2025, 3, 15, 12, tzinfo=timezone.utc)

    def test_late_renewal_starts_now(self, ledger, active, at):
        late = at + timedelta(days=45)

        extended = run(ledger.subscriptions.extend_period(active.id, at=late))

        assert extended.current_period_start == late
        assert extended.status == "active"

    def test_paused_cannot_be_extended(self, ledger, active, at):
        run(ledger.subscriptions.pause(active.id, at=at))

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.subscriptions.extend_period(active.id, at=at))


class TestPauseResume:

    def test_pause_and_resume_with_extension(self, ledger, active, notifier, at):
        paused = run(ledger.subscriptions.pause(active.id, at=at, reason="holiday"))
        assert paused.status == "paused"
        assert paused.pause_reason == "holiday"

        resumed = run(ledger.subscriptions.resume(
            active.id, at=at + timedelta(days=10), extend_period=True
        ))

        assert resumed.status == "active"
        assert resumed.paused_at is None
        assert resumed.current_period_end == active.current_period_end + timedelta(days=10)
        assert notifier.events[-1].period_extended is True

    def test_resume_without_extension(self, ledger, active, at):
        run(ledger.subscriptions.pause(active.id, at=at))

        resumed = run(ledger.subscriptions.resume(active.id, at=at + timedelta(days=10)))

        assert resumed.current_period_end == active.current_period_end

    def test_pending_cannot_be_paused(self, ledger, at):
        subscription = create_subscription(ledger, at).subscription

        with pytest.raises(SubscriptionNotActiveError):
            run(ledger.subscriptions.pause(subscription.id, at=at))

    def test_active_cannot_be_resumed(self, ledger, active, at):
        with pytest.raises(InvalidStateTransitionError):
            run(ledger.subscriptions.resume(active.id, at=at))


class TestCancelExpire:

    def test_immediate_cancel(self, ledger, active, at):
        cancelled = run(ledger.subscriptions.cancel(
            active.id, at=at, immediate=True, reason="too expensive"
        ))

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at == at
        assert cancelled.cancellation_reason == "too expensive"

    def test_scheduled_cancel_waits_for_period_end(self, ledger, active, notifier, at):
        scheduled = run(ledger.subscriptions.cancel(active.id, at=at))

        assert scheduled.status == "active"
        assert scheduled.cancel_at == active.current_period_end
        assert notifier.events[-1].effective_at == active.current_period_end

    def test_cancel_twice_rejected(self, ledger, active, at):
        run(ledger.subscriptions.cancel(active.id, at=at, immediate=True))

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.subscriptions.cancel(active.id, at=at, immediate=True))

    def test_expire(self, ledger, active, at):
        expired = run(ledger.subscriptions.expire(active.id, at=at + timedelta(days=32)))

        assert expired.status == "expired"

    def test_only_active_can_expire(self, ledger, at):
        subscription = create_subscription(ledger, at).subscription

        with pytest.raises(SubscriptionNotActiveError):
            run(ledger.subscriptions.expire(subscription.id, at=at))

    def test_get_unknown(self, ledger):
        with pytest.raises(SubscriptionNotFoundError):
            run(ledger.subscriptions.get("missing"))


class TestList:

    def test_filters_by_plan_and_status(self, ledger, active, at):
        create_subscription(ledger, at + timedelta(minutes=1), plan_key="yearly")
        create_subscription(ledger, at + timedelta(minutes=2))

        monthly = run(ledger.subscriptions.list({"plan_key": "monthly"}))
        active_only = run(ledger.subscriptions.list({"status": "active"}))

        assert monthly.total == 2
        assert monthly.items[0].created_at == at + timedelta(minutes=2)
        assert [s.id for s in active_only.items] == [active.id]

    def test_unknown_filter_rejected(self, ledger):
        with pytest.raises(InvalidFilterError):
            run(ledger.subscriptions.list({"amount": 0}))
