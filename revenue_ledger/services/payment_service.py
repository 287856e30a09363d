"""
Payment service: verification, refunds and gateway webhooks.

Status transitions handled here:
    pending -> verified | failed | <provider status>
    verified | completed -> partially_refunded -> refunded
    cancelled (hold cancelled) -> partially_refunded -> refunded

Refunds never touch the original amount. Each refund is its own
expense transaction pointing back at the charge, and the charge only
tracks how much of it has been refunded.
"""

import logging
from datetime import datetime
from typing import Any

from revenue_ledger.calculators import reverse_commission, reverse_splits
from revenue_ledger.events import (
    PaymentFailed,
    PaymentRefunded,
    PaymentVerified,
    WebhookProcessed,
)
from revenue_ledger.exceptions import (
    AlreadyVerifiedError,
    InvalidStateTransitionError,
    InvalidWebhookEventError,
    PaymentMismatchError,
    PaymentVerificationError,
    ProviderCapabilityError,
    RefundAmountError,
    RefundError,
    RefundNotSupportedError,
    TransactionNotFoundError,
    WebhookProcessingError,
)
from revenue_ledger.models.enums import (
    ACTIVE_HOLD_STATUSES,
    REFUNDABLE_STATUSES,
    SETTLED_STATUSES,
    VERIFIABLE_STATUSES,
    HoldStatus,
    TransactionDirection,
    TransactionStatus,
)
from revenue_ledger.schemas.results import (
    PaymentStatusResult,
    RefundOutcome,
    VerifyResult,
    WebhookOutcome,
)
from revenue_ledger.schemas.transaction import (
    GatewayInfo,
    Transaction,
    WebhookRecord,
)
from revenue_ledger.services.base import LedgerServiceBase

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
WEBHOOK_PAYMENT_SUCCEEDED = "payment.succeeded"
WEBHOOK_PAYMENT_FAILED = "payment.failed"


def _check_reported_payment(
    transaction: Transaction, amount: int | None, currency: str | None
) -> None:
    """Reject a gateway report that disagrees with the stored charge."""
    if amount is not None and amount != transaction.amount:
        raise PaymentMismatchError(transaction.id, "amount", transaction.amount, amount)
    if currency is not None and currency.upper() != transaction.currency.upper():
        raise PaymentMismatchError(
            transaction.id, "currency", transaction.currency, currency
        )


class PaymentService(LedgerServiceBase):

    async def verify(
        self,
        reference: str,
        *,
        at: datetime,
        verified_by: str | None = None,
    ) -> VerifyResult:
        """
        Confirm a payment with its gateway.

        ``reference`` may be a checkout session id, a payment intent id
        or the transaction id. A gateway failure leaves the transaction
        untouched and raises a retryable error, so the caller can try
        again later.
        """
        transaction = await self._resolve_transaction(reference)

        if transaction.status in SETTLED_STATUSES:
            raise AlreadyVerifiedError(transaction.id)
        if transaction.status not in VERIFIABLE_STATUSES:
            raise InvalidStateTransitionError(
                "Transaction",
                transaction.id,
                transaction.status,
                TransactionStatus.VERIFIED.value,
            )

        provider_name = transaction.provider_name
        provider = self._get_provider(provider_name)

        try:
            result = await provider.verify_payment(transaction.gateway_reference)
        except Exception as exc:
            logger.error(
                "Payment verification failed for transaction %s: %s",
                transaction.id, exc,
            )
            self._emit(PaymentFailed(
                transaction=transaction, error=str(exc), provider=provider_name
            ))
            raise PaymentVerificationError(transaction.id, provider_name, exc) from exc

        _check_reported_payment(transaction, result.amount, result.currency)

        if result.status == SUCCEEDED:
            changes = {
                "status": TransactionStatus.VERIFIED.value,
                "verified_at": result.paid_at or at,
                "verified_by": verified_by or "system",
            }
        else:
            # Provider vocabulary is stored as-is, e.g. requires_manual_approval
            changes = {"status": result.status}

        updated = await self._update_transaction(
            transaction, changes, expected_status=VERIFIABLE_STATUSES
        )

        if updated.status == TransactionStatus.VERIFIED.value:
            logger.info("Transaction %s verified", updated.id)
            self._emit(PaymentVerified(
                transaction=updated, payment_result=result, verified_by=verified_by
            ))
        elif updated.status == TransactionStatus.FAILED.value:
            self._emit(PaymentFailed(
                transaction=updated,
                error=f"Provider reported {result.status}",
                provider=provider_name,
            ))
        else:
            logger.info(
                "Transaction %s not settled yet (provider status %s)",
                updated.id, result.status,
            )

        return VerifyResult(
            transaction=updated, payment_result=result, status=updated.status
        )

    async def approve(
        self,
        reference: str,
        *,
        at: datetime,
        approved_by: str | None = None,
        paid_at: datetime | None = None,
    ) -> VerifyResult:
        """
        Record an admin-confirmed offline payment, then verify it.

        Only providers that need manual verification and expose an
        ``approve`` hook accept this.
        """
        transaction = await self._resolve_transaction(reference)
        provider_name = transaction.provider_name
        provider = self._get_provider(provider_name)

        approve = getattr(provider, "approve", None)
        if approve is None or not provider.get_capabilities().requires_manual_verification:
            raise ProviderCapabilityError(provider_name, "manual approval")
        if transaction.status in SETTLED_STATUSES:
            raise AlreadyVerifiedError(transaction.id)

        approve(
            transaction.gateway_reference,
            transaction.amount,
            transaction.currency,
            paid_at,
        )
        logger.info(
            "Manual payment approved for transaction %s by %s",
            transaction.id, approved_by or "system",
        )
        return await self.verify(reference, at=at, verified_by=approved_by)

    async def get_status(self, reference: str) -> PaymentStatusResult:
        """Live status from the gateway, or the stored one if it is unreachable."""
        transaction = await self._resolve_transaction(reference)
        provider_name = transaction.provider_name
        provider = self._get_provider(provider_name)

        try:
            result = await provider.get_status(transaction.gateway_reference)
        except Exception as exc:
            logger.warning(
                "Could not fetch status for transaction %s from %s: %s",
                transaction.id, provider_name, exc,
            )
            return PaymentStatusResult(
                transaction=transaction,
                status=transaction.status,
                provider=provider_name,
            )

        return PaymentStatusResult(
            transaction=transaction,
            status=result.status,
            provider=provider_name,
            payment_result=result,
        )

    async def refund(
        self,
        reference: str,
        *,
        at: datetime,
        amount: int | None = None,
        reason: str | None = None,
    ) -> RefundOutcome:
        """
        Refund all or part of a settled charge.

        Defaults to the whole refundable balance. May be repeated until
        the balance reaches zero.
        """
        transaction = await self._resolve_transaction(reference)
        hold = transaction.hold

        if hold is not None and hold.status in ACTIVE_HOLD_STATUSES:
            raise InvalidStateTransitionError(
                "Escrow",
                transaction.id,
                hold.status,
                TransactionStatus.REFUNDED.value,
                "funds are held in escrow, cancel the hold before refunding",
            )
        # A cancelled hold leaves the remaining funds to be returned
        cancelled_hold = (
            transaction.status == TransactionStatus.CANCELLED.value
            and hold is not None
            and hold.status == HoldStatus.CANCELLED.value
        )
        if transaction.status not in REFUNDABLE_STATUSES and not cancelled_hold:
            raise InvalidStateTransitionError(
                "Transaction",
                transaction.id,
                transaction.status,
                TransactionStatus.REFUNDED.value,
                "only verified or completed transactions can be refunded",
            )

        refundable = transaction.refundable_amount
        refund_amount = refundable if amount is None else amount
        if refund_amount <= 0 or refund_amount > refundable:
            raise RefundAmountError(transaction.id, refund_amount, refundable)

        provider_name = transaction.provider_name
        provider = self._get_provider(provider_name)
        capabilities = provider.get_capabilities()
        if not capabilities.supports_refunds:
            raise RefundNotSupportedError(provider_name)
        if refund_amount < transaction.amount and not capabilities.supports_partial_refunds:
            raise ProviderCapabilityError(provider_name, "partial refunds")

        try:
            refund_result = await provider.refund(
                transaction.gateway_reference, refund_amount, reason
            )
        except Exception as exc:
            logger.error("Refund failed for transaction %s: %s", transaction.id, exc)
            raise RefundError(transaction.id, provider_name, str(exc)) from exc

        refunded_total = transaction.refunded_amount + refund_amount
        refund_transaction = await self.transactions.create(Transaction(
            # Deterministic, so a retried refund of the same slice coalesces
            idempotency_key=f"refund_{transaction.id}_{refunded_total}",
            organization_id=transaction.organization_id,
            customer_id=transaction.customer_id,
            direction=TransactionDirection.EXPENSE.value,
            category=transaction.category,
            status=TransactionStatus.COMPLETED.value,
            amount=refund_amount,
            currency=transaction.currency,
            method=transaction.method,
            gateway=GatewayInfo(
                provider=provider_name, payment_intent_id=refund_result.id
            ),
            commission=reverse_commission(
                transaction.commission, transaction.amount, refund_amount
            ),
            splits=reverse_splits(
                transaction.splits, transaction.amount, refund_amount
            ),
            reference_id=transaction.reference_id,
            reference_model=transaction.reference_model,
            related_transaction_id=transaction.id,
            metadata={
                "is_refund": True,
                "refund_reason": reason,
                "provider_refund_status": refund_result.status,
            },
            created_at=at,
        ))

        fully_refunded = refund_amount == refundable
        updated = await self._update_transaction(
            transaction,
            {
                "refunded_amount": refunded_total,
                "refunded_at": refund_result.refunded_at or at,
                "status": (
                    TransactionStatus.REFUNDED.value if fully_refunded
                    else TransactionStatus.PARTIALLY_REFUNDED.value
                ),
                "metadata": {
                    **transaction.metadata,
                    "refund_transaction_id": refund_transaction.id,
                },
            },
            expected_status={transaction.status},
        )

        logger.info(
            "Refunded %s of transaction %s (%s)",
            refund_amount, updated.id, updated.status,
        )
        self._emit(PaymentRefunded(
            transaction=updated,
            refund_transaction=refund_transaction,
            refund_amount=refund_amount,
            reason=reason,
            is_partial=not fully_refunded,
        ))
        return RefundOutcome(
            transaction=updated,
            refund_transaction=refund_transaction,
            refund_result=refund_result,
            status=updated.status,
        )

    async def handle_webhook(
        self,
        provider_name: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        *,
        at: datetime,
    ) -> WebhookOutcome:
        """
        Apply a gateway event to its transaction.

        Signatures are checked by the provider. Redelivery of an event
        already applied returns status "already_processed" and changes
        nothing.
        """
        provider = self._get_provider(provider_name)
        if not provider.get_capabilities().supports_webhooks:
            raise ProviderCapabilityError(provider_name, "webhooks")

        try:
            event = await provider.handle_webhook(payload, headers or {})
        except Exception as exc:
            logger.error("Webhook processing failed for %s: %s", provider_name, exc)
            raise WebhookProcessingError(provider_name, exc) from exc

        data = event.data
        if not data.session_id and not data.payment_intent_id:
            raise InvalidWebhookEventError(
                "Webhook event carries no session or payment intent id",
                metadata={"provider": provider_name, "event_id": event.id},
            )

        transaction = None
        if data.session_id:
            transaction = await self.transactions.find_by_gateway_id(
                session_id=data.session_id
            )
        if transaction is None and data.payment_intent_id:
            transaction = await self.transactions.find_by_gateway_id(
                payment_intent_id=data.payment_intent_id
            )
        if transaction is None:
            logger.warning(
                "No transaction for webhook event %s from %s", event.id, provider_name
            )
            raise TransactionNotFoundError(data.payment_intent_id or data.session_id)

        if (
            event.id
            and transaction.webhook is not None
            and transaction.webhook.event_id == event.id
        ):
            logger.warning(
                "Webhook event %s already processed for transaction %s",
                event.id, transaction.id,
            )
            return WebhookOutcome(
                transaction=transaction, event=event, status="already_processed"
            )

        gateway = transaction.gateway or GatewayInfo(provider=provider_name)
        changes: dict[str, Any] = {
            "webhook": WebhookRecord(
                event_id=event.id, event_type=event.type, received_at=at
            ),
            "gateway": gateway.model_copy(update={
                "session_id": gateway.session_id or data.session_id,
                "payment_intent_id": gateway.payment_intent_id or data.payment_intent_id,
            }),
        }

        if event.type.startswith("payment."):
            _check_reported_payment(transaction, data.amount, data.currency)

        pending = transaction.status in VERIFIABLE_STATUSES
        if event.type == WEBHOOK_PAYMENT_SUCCEEDED and pending:
            changes.update({
                "status": TransactionStatus.VERIFIED.value,
                "verified_at": event.created_at or at,
                "verified_by": "system",
            })
        elif event.type == WEBHOOK_PAYMENT_FAILED and pending:
            changes["status"] = TransactionStatus.FAILED.value

        updated = await self._update_transaction(
            transaction, changes, expected_status={transaction.status}
        )

        logger.info(
            "Applied webhook %s (%s) to transaction %s",
            event.id, event.type, updated.id,
        )
        self._emit(WebhookProcessed(transaction=updated, event=event))
        return WebhookOutcome(transaction=updated, event=event, status="processed")
