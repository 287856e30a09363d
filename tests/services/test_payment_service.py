"""
Tests for PaymentService: verification, status, refunds and webhooks.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from revenue_ledger.exceptions import (
    AlreadyVerifiedError,
    ConcurrentModificationError,
    InvalidStateTransitionError,
    InvalidWebhookEventError,
    PaymentMismatchError,
    PaymentVerificationError,
    ProviderCapabilityError,
    RefundAmountError,
    RefundError,
    RefundNotSupportedError,
    TransactionNotFoundError,
    ValidationError,
    WebhookProcessingError,
    is_retryable,
)
from revenue_ledger.providers.base import PaymentResult, ProviderCapabilities
from revenue_ledger.schemas.transaction import TransactionData


def run(coro):
    return asyncio.run(coro)


def create_purchase(ledger, at, amount=1000, gateway="fake"):
    return run(ledger.transactions.create(
        TransactionData(organization_id="org_1", customer_id="cus_1"),
        amount=amount,
        at=at,
        gateway=gateway,
    )).transaction


def create_verified(ledger, at, amount=1000):
    txn = create_purchase(ledger, at, amount)
    return run(ledger.payments.verify(txn.id, at=at)).transaction


# --- Verify ---

class TestVerify:

    def test_verify_by_session_id(self, ledger, notifier, at):
        txn = create_purchase(ledger, at)
        later = at + timedelta(minutes=5)

        result = run(ledger.payments.verify("cs_1", at=later, verified_by="admin_1"))

        assert result.status == "verified"
        assert result.transaction.id == txn.id
        assert result.transaction.verified_at == later
        assert result.transaction.verified_by == "admin_1"
        assert result.transaction.version == txn.version + 1
        assert notifier.names()[-1] == "payment.verified"

    def test_verify_by_payment_intent_id(self, ledger, at):
        txn = create_purchase(ledger, at)

        result = run(ledger.payments.verify("pi_1", at=at))

        assert result.transaction.id == txn.id
        assert result.transaction.verified_by == "system"

    def test_verify_by_transaction_id(self, ledger, at):
        txn = create_purchase(ledger, at)

        result = run(ledger.payments.verify(txn.id, at=at))

        assert result.transaction.status == "verified"

    def test_paid_at_from_provider_wins(self, ledger, fake_provider, at):
        txn = create_purchase(ledger, at)
        paid_at = at - timedelta(hours=1)
        fake_provider.verify_result = PaymentResult(
            id="pi_1", provider="fake", status="succeeded",
            amount=1000, currency="USD", paid_at=paid_at,
        )

        result = run(ledger.payments.verify(txn.id, at=at))

        assert result.transaction.verified_at == paid_at

    def test_already_verified_rejected(self, ledger, at):
        txn = create_verified(ledger, at)

        with pytest.raises(AlreadyVerifiedError):
            run(ledger.payments.verify(txn.id, at=at))

    def test_unknown_reference_rejected(self, ledger, at):
        with pytest.raises(TransactionNotFoundError):
            run(ledger.payments.verify("nope", at=at))

    def test_provider_failure_is_retryable_and_leaves_status(
        self, ledger, fake_provider, notifier, transaction_repo, at
    ):
        txn = create_purchase(ledger, at)
        fake_provider.verify_error = TimeoutError("gateway timeout")

        with pytest.raises(PaymentVerificationError) as exc_info:
            run(ledger.payments.verify(txn.id, at=at))

        assert is_retryable(exc_info.value)
        assert exc_info.value.metadata["transaction_id"] == txn.id
        assert run(transaction_repo.find_by_id(txn.id)).status == "pending"
        assert notifier.names()[-1] == "payment.failed"

    def test_amount_mismatch_rejected(self, ledger, fake_provider, transaction_repo, at):
        txn = create_purchase(ledger, at)
        fake_provider.verify_result = PaymentResult(
            id="pi_1", provider="fake", status="succeeded", amount=900, currency="USD"
        )

        with pytest.raises(PaymentMismatchError) as exc_info:
            run(ledger.payments.verify(txn.id, at=at))

        assert exc_info.value.metadata["field"] == "amount"
        assert not is_retryable(exc_info.value)
        assert run(transaction_repo.find_by_id(txn.id)).status == "pending"

    def test_currency_mismatch_rejected(self, ledger, fake_provider, at):
        txn = create_purchase(ledger, at)
        fake_provider.verify_result = PaymentResult(
            id="pi_1", provider="fake", status="succeeded", amount=1000, currency="EUR"
        )

        with pytest.raises(PaymentMismatchError) as exc_info:
            run(ledger.payments.verify(txn.id, at=at))
        assert exc_info.value.metadata["field"] == "currency"

    def test_mismatch_rejected_even_when_not_succeeded(self, ledger, fake_provider, at):
        txn = create_purchase(ledger, at)
        fake_provider.verify_result = PaymentResult(
            id="pi_1", provider="fake", status="processing", amount=1, currency="USD"
        )

        with pytest.raises(PaymentMismatchError):
            run(ledger.payments.verify(txn.id, at=at))

    def test_other_provider_status_stored_verbatim(self, ledger, fake_provider, at):
        txn = create_purchase(ledger, at)
        fake_provider.verify_result = PaymentResult(
            id="pi_1", provider="fake", status="processing"
        )

        result = run(ledger.payments.verify(txn.id, at=at))

        assert result.transaction.status == "processing"
        assert result.transaction.verified_at is None

        # Still verifiable afterwards
        fake_provider.verify_result = None
        assert run(ledger.payments.verify(txn.id, at=at)).status == "verified"

    def test_failed_transaction_cannot_be_verified(self, ledger, fake_provider, at):
        txn = create_purchase(ledger, at)
        fake_provider.verify_result = PaymentResult(
            id="pi_1", provider="fake", status="failed"
        )
        run(ledger.payments.verify(txn.id, at=at))
        fake_provider.verify_result = None

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.payments.verify(txn.id, at=at))

    def test_manual_payment_awaits_approval(self, ledger, manual_provider, at):
        txn = create_purchase(ledger, at, gateway="manual")

        pending = run(ledger.payments.verify(txn.id, at=at))
        assert pending.status == "requires_manual_approval"

        manual_provider.approve(txn.gateway.payment_intent_id, 1000, "USD")
        verified = run(ledger.payments.verify(txn.id, at=at, verified_by="admin_1"))
        assert verified.status == "verified"

    def test_webhook_landing_during_verify_wins(
        self, ledger, fake_provider, transaction_repo, at
    ):
        txn = create_purchase(ledger, at)
        verify_payment = fake_provider.verify_payment

        async def verify_while_webhook_arrives(intent_id):
            # The gateway webhook is applied while verify awaits the gateway
            await ledger.payments.handle_webhook(
                "fake", webhook("payment.succeeded", payment_intent_id="pi_1"), at=at
            )
            return await verify_payment(intent_id)

        fake_provider.verify_payment = verify_while_webhook_arrives

        with pytest.raises(ConcurrentModificationError):
            run(ledger.payments.verify(txn.id, at=at, verified_by="admin_1"))

        stored = run(transaction_repo.find_by_id(txn.id))
        assert stored.status == "verified"
        assert stored.verified_by == "system"
        assert stored.version == txn.version + 1


class TestApprove:

    def test_approve_manual_payment(self, ledger, notifier, at):
        txn = create_purchase(ledger, at, gateway="manual")
        paid_at = at - timedelta(hours=2)

        result = run(ledger.payments.approve(
            txn.id, at=at, approved_by="admin_1", paid_at=paid_at
        ))

        assert result.status == "verified"
        assert result.transaction.verified_by == "admin_1"
        assert result.transaction.verified_at == paid_at
        assert result.payment_result.amount == 1000
        assert notifier.names()[-1] == "payment.verified"

    def test_approve_after_awaiting_approval(self, ledger, at):
        txn = create_purchase(ledger, at, gateway="manual")
        run(ledger.payments.verify(txn.id, at=at))

        result = run(ledger.payments.approve(txn.gateway.payment_intent_id, at=at))

        assert result.status == "verified"
        assert result.transaction.verified_by == "system"

    def test_gateway_without_manual_verification_rejected(self, ledger, at):
        txn = create_purchase(ledger, at)

        with pytest.raises(ProviderCapabilityError):
            run(ledger.payments.approve(txn.id, at=at))

    def test_approve_settled_payment_rejected(self, ledger, at):
        txn = create_purchase(ledger, at, gateway="manual")
        run(ledger.payments.approve(txn.id, at=at))

        with pytest.raises(AlreadyVerifiedError):
            run(ledger.payments.approve(txn.id, at=at))


class TestGetStatus:

    def test_live_status_from_provider(self, ledger, at):
        txn = create_purchase(ledger, at)

        result = run(ledger.payments.get_status(txn.id))

        assert result.status == "succeeded"
        assert result.provider == "fake"
        assert result.payment_result is not None

    def test_falls_back_to_stored_status(self, ledger, fake_provider, at):
        txn = create_purchase(ledger, at)
        fake_provider.status_error = ConnectionError("down")

        result = run(ledger.payments.get_status(txn.id))

        assert result.status == "pending"
        assert result.payment_result is None


# --- Refund ---

class TestRefund:

    def test_partial_refund(self, ledger, notifier, fake_provider, at):
        txn = create_verified(ledger, at)

        result = run(ledger.payments.refund(txn.id, at=at, amount=500, reason="damaged"))

        assert result.status == "partially_refunded"
        assert result.transaction.refunded_amount == 500
        assert result.transaction.refunded_at == at
        assert result.transaction.amount == 1000
        assert result.transaction.metadata["refund_transaction_id"] == result.refund_transaction.id

        refund_txn = result.refund_transaction
        assert refund_txn.direction == "expense"
        assert refund_txn.status == "completed"
        assert refund_txn.amount == 500
        assert refund_txn.currency == "USD"
        assert refund_txn.related_transaction_id == txn.id
        assert refund_txn.commission.gross_amount == Decimal("50.00")
        assert refund_txn.commission.gateway_fee_amount == Decimal("9.00")
        assert refund_txn.commission.net_amount == Decimal("41.00")
        assert refund_txn.commission.status == "waived"

        assert fake_provider.refunds == [("pi_1", 500, "damaged")]
        event = notifier.events[-1]
        assert event.name == "payment.refunded"
        assert event.is_partial is True

    def test_refunds_repeat_until_balance_is_zero(self, ledger, at):
        txn = create_verified(ledger, at)

        run(ledger.payments.refund(txn.id, at=at, amount=300))
        run(ledger.payments.refund(txn.id, at=at, amount=200))
        final = run(ledger.payments.refund(txn.id, at=at))

        assert final.status == "refunded"
        assert final.transaction.refunded_amount == 1000
        assert final.refund_transaction.amount == 500

        related = run(ledger.transactions.list_related(txn.id))
        assert sorted(r.amount for r in related) == [200, 300, 500]
        assert len({r.idempotency_key for r in related}) == 3

    def test_full_refund_by_default(self, ledger, notifier, at):
        txn = create_verified(ledger, at)

        result = run(ledger.payments.refund(txn.id, at=at))

        assert result.status == "refunded"
        assert result.refund_transaction.amount == 1000
        assert notifier.events[-1].is_partial is False

    def test_over_refund_rejected(self, ledger, at):
        txn = create_verified(ledger, at)
        run(ledger.payments.refund(txn.id, at=at, amount=600))

        with pytest.raises(RefundAmountError) as exc_info:
            run(ledger.payments.refund(txn.id, at=at, amount=500))

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.metadata["refundable"] == "400"

    def test_zero_refund_rejected(self, ledger, at):
        txn = create_verified(ledger, at)

        with pytest.raises(RefundAmountError):
            run(ledger.payments.refund(txn.id, at=at, amount=0))

    def test_refunded_transaction_cannot_be_refunded_again(self, ledger, at):
        txn = create_verified(ledger, at)
        run(ledger.payments.refund(txn.id, at=at))

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.payments.refund(txn.id, at=at, amount=1))

    def test_pending_transaction_cannot_be_refunded(self, ledger, at):
        txn = create_purchase(ledger, at)

        with pytest.raises(InvalidStateTransitionError):
            run(ledger.payments.refund(txn.id, at=at))

    def test_provider_without_refunds(self, ledger, fake_provider, at):
        txn = create_verified(ledger, at)
        fake_provider.capabilities = ProviderCapabilities(supports_refunds=False)

        with pytest.raises(RefundNotSupportedError):
            run(ledger.payments.refund(txn.id, at=at))

    def test_partial_refund_needs_partial_support(self, ledger, fake_provider, at):
        txn = create_verified(ledger, at)
        fake_provider.capabilities = ProviderCapabilities(
            supports_refunds=True, supports_partial_refunds=False
        )

        with pytest.raises(ProviderCapabilityError):
            run(ledger.payments.refund(txn.id, at=at, amount=100))

        # A full refund is still allowed
        assert run(ledger.payments.refund(txn.id, at=at)).status == "refunded"

    def test_provider_refund_failure_leaves_transaction(
        self, ledger, fake_provider, transaction_repo, at
    ):
        txn = create_verified(ledger, at)
        fake_provider.refund_error = ConnectionError("down")

        with pytest.raises(RefundError) as exc_info:
            run(ledger.payments.refund(txn.id, at=at))

        assert is_retryable(exc_info.value)
        stored = run(transaction_repo.find_by_id(txn.id))
        assert stored.status == "verified"
        assert stored.refunded_amount == 0
        assert run(transaction_repo.find_related(txn.id)) == []


# --- Webhooks ---

def webhook(event_type, event_id="evt_1", **data):
    return {"id": event_id, "type": event_type, "data": data}


class TestWebhook:

    def test_payment_succeeded_verifies(self, ledger, notifier, at):
        txn = create_purchase(ledger, at)

        result = run(ledger.payments.handle_webhook(
            "fake",
            webhook("payment.succeeded", payment_intent_id="pi_1", amount=1000, currency="USD"),
            at=at,
        ))

        assert result.status == "processed"
        assert result.transaction.id == txn.id
        assert result.transaction.status == "verified"
        assert result.transaction.verified_by == "system"
        assert result.transaction.webhook.event_id == "evt_1"
        assert result.transaction.webhook.received_at == at
        assert notifier.names()[-1] == "payment.webhook"

    def test_duplicate_delivery_is_ignored(self, ledger, at):
        create_purchase(ledger, at)
        payload = webhook("payment.succeeded", payment_intent_id="pi_1")
        first = run(ledger.payments.handle_webhook("fake", payload, at=at))

        second = run(ledger.payments.handle_webhook("fake", payload, at=at))

        assert second.status == "already_processed"
        assert second.transaction.version == first.transaction.version

    def test_payment_failed(self, ledger, at):
        create_purchase(ledger, at)

        result = run(ledger.payments.handle_webhook(
            "fake", webhook("payment.failed", session_id="cs_1"), at=at
        ))

        assert result.transaction.status == "failed"

    def test_missing_session_id_is_backfilled(self, ledger, fake_provider, at):
        fake_provider.with_session = False
        txn = create_purchase(ledger, at)
        assert txn.gateway.session_id is None

        result = run(ledger.payments.handle_webhook(
            "fake",
            webhook("payment.succeeded", session_id="cs_late", payment_intent_id="pi_1"),
            at=at,
        ))

        assert result.transaction.gateway.session_id == "cs_late"
        assert result.transaction.gateway.payment_intent_id == "pi_1"

    def test_refund_event_does_not_change_status(self, ledger, at):
        create_verified(ledger, at)

        result = run(ledger.payments.handle_webhook(
            "fake", webhook("refund.succeeded", payment_intent_id="pi_1", amount=10), at=at
        ))

        assert result.transaction.status == "verified"
        assert result.transaction.webhook.event_type == "refund.succeeded"

    def test_amount_mismatch_rejected(self, ledger, transaction_repo, at):
        txn = create_purchase(ledger, at)

        with pytest.raises(PaymentMismatchError):
            run(ledger.payments.handle_webhook(
                "fake",
                webhook("payment.succeeded", payment_intent_id="pi_1", amount=1),
                at=at,
            ))

        assert run(transaction_repo.find_by_id(txn.id)).status == "pending"

    def test_event_without_ids_rejected(self, ledger, at):
        with pytest.raises(InvalidWebhookEventError):
            run(ledger.payments.handle_webhook(
                "fake", webhook("payment.succeeded"), at=at
            ))

    def test_unknown_transaction(self, ledger, at):
        with pytest.raises(TransactionNotFoundError):
            run(ledger.payments.handle_webhook(
                "fake", webhook("payment.succeeded", payment_intent_id="pi_404"), at=at
            ))

    def test_provider_without_webhooks(self, ledger, at):
        with pytest.raises(ProviderCapabilityError):
            run(ledger.payments.handle_webhook("manual", {}, at=at))

    def test_provider_parse_failure(self, ledger, fake_provider, at):
        fake_provider.webhook_error = ValueError("bad signature")

        with pytest.raises(WebhookProcessingError) as exc_info:
            run(ledger.payments.handle_webhook("fake", {}, at=at))
        assert is_retryable(exc_info.value)
