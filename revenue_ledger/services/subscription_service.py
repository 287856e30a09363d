"""
Subscription service.

States:
    pending -> active <-> paused
    active | paused -> cancelled
    active -> expired (detected by the caller's scheduler)

A subscription owns no money. Every charge for it goes through
TransactionService.create and is linked back with
reference_model="Subscription".
"""

import logging
from datetime import datetime
from typing import Any

from revenue_ledger.calculators import calculate_period_end, calculate_period_range
from revenue_ledger.events import (
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionCreated,
    SubscriptionExpired,
    SubscriptionPaused,
    SubscriptionPeriodExtended,
    SubscriptionRenewed,
    SubscriptionResumed,
)
from revenue_ledger.exceptions import (
    ConcurrentModificationError,
    InvalidAmountError,
    InvalidStateTransitionError,
    MissingRequiredFieldError,
    SubscriptionNotActiveError,
    SubscriptionNotFoundError,
)
from revenue_ledger.models.enums import MonetizationType, SubscriptionStatus
from revenue_ledger.notifier import Notifier, NullNotifier
from revenue_ledger.repositories.base import SUBSCRIPTION_FILTERS, SubscriptionRepository
from revenue_ledger.schemas.results import SubscriptionPage, SubscriptionResult
from revenue_ledger.schemas.subscription import Subscription
from revenue_ledger.schemas.transaction import TransactionData, new_id
from revenue_ledger.services.base import check_page
from revenue_ledger.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

REFERENCE_MODEL = "Subscription"

ACTIVE = SubscriptionStatus.ACTIVE.value
PAUSED = SubscriptionStatus.PAUSED.value
CANCELLED = SubscriptionStatus.CANCELLED.value


class SubscriptionService:

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        transaction_service: TransactionService,
        notifier: Notifier | None = None,
    ):
        self.subscriptions = subscriptions
        self.transaction_service = transaction_service
        self.notifier = notifier or NullNotifier()

    async def _get(self, subscription_id: str) -> Subscription:
        subscription = await self.subscriptions.find_by_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    async def _update(
        self,
        subscription: Subscription,
        changes: dict[str, Any],
    ) -> Subscription:
        updated = await self.subscriptions.conditional_update(
            subscription.id,
            changes,
            expected_status={subscription.status},
            expected_version=subscription.version,
        )
        if updated is None:
            raise ConcurrentModificationError("Subscription", subscription.id)
        return updated

    async def create(
        self,
        data: TransactionData,
        *,
        plan_key: str,
        amount: int,
        at: datetime,
        currency: str | None = None,
        gateway: str = "manual",
        entity: str | None = None,
        monetization_type: str = MonetizationType.SUBSCRIPTION.value,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> SubscriptionResult:
        """
        Start a subscription.

        Paid plans get a pending subscription plus a charge to verify.
        Free plans are active immediately with their first period.
        """
        if not data.organization_id:
            raise MissingRequiredFieldError("organization_id")
        if not plan_key:
            raise MissingRequiredFieldError("plan_key")
        if amount < 0:
            raise InvalidAmountError(amount)

        if idempotency_key:
            existing = await self.subscriptions.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    "Idempotency key reused, returning subscription %s", existing.id
                )
                transaction = None
                if existing.transaction_id:
                    transaction = await self.transaction_service.transactions.find_by_id(
                        existing.transaction_id
                    )
                return SubscriptionResult(subscription=existing, transaction=transaction)

        subscription_id = new_id()
        metadata = dict(metadata or {})
        result = await self.transaction_service.create(
            data.model_copy(update={
                "reference_id": subscription_id,
                "reference_model": REFERENCE_MODEL,
            }),
            amount=amount,
            at=at,
            currency=currency,
            gateway=gateway,
            entity=entity,
            monetization_type=monetization_type,
            metadata={**metadata, "plan_key": plan_key},
            idempotency_key=idempotency_key,
            key_prefix="sub",
        )
        transaction = result.transaction

        if transaction is not None and not result.created:
            # Replayed request: hand back what the first call created
            existing = None
            if transaction.reference_model == REFERENCE_MODEL and transaction.reference_id:
                existing = await self.subscriptions.find_by_id(transaction.reference_id)
            if existing is not None:
                return SubscriptionResult(subscription=existing, transaction=transaction)

        is_free = amount == 0
        fields: dict[str, Any] = {}
        if is_free:
            fields = {
                "status": ACTIVE,
                "activated_at": at,
                "current_period_start": at,
                "current_period_end": calculate_period_end(plan_key, at),
            }

        subscription = await self.subscriptions.create(Subscription(
            id=subscription_id,
            idempotency_key=idempotency_key,
            organization_id=data.organization_id,
            customer_id=data.customer_id,
            plan_key=plan_key,
            amount=amount,
            currency=(
                transaction.currency if transaction
                else (currency or self.transaction_service.config.default_currency).upper()
            ),
            gateway=gateway,
            entity=entity,
            monetization_type=monetization_type,
            transaction_id=transaction.id if transaction else None,
            metadata=metadata,
            created_at=at,
            **fields,
        ))
        if subscription.id != subscription_id:
            # Lost a race on the idempotency key
            return SubscriptionResult(subscription=subscription, transaction=transaction)

        logger.info(
            "Created subscription %s (%s, %s)",
            subscription.id, plan_key, subscription.status,
        )
        self._emit(SubscriptionCreated(
            subscription=subscription, transaction=transaction, is_free=is_free
        ))
        return SubscriptionResult(
            subscription=subscription,
            transaction=transaction,
            payment_intent=result.payment_intent,
        )

    async def activate(self, subscription_id: str, *, at: datetime) -> Subscription:
        """Start the first period at ``at``. Activating twice is a no-op."""
        subscription = await self._get(subscription_id)

        if subscription.status == ACTIVE:
            logger.warning("Subscription %s already active", subscription.id)
            return subscription
        if subscription.status == CANCELLED:
            raise InvalidStateTransitionError(
                "Subscription", subscription.id, subscription.status, ACTIVE
            )

        updated = await self._update(subscription, {
            "status": ACTIVE,
            "activated_at": at,
            "current_period_start": at,
            "current_period_end": calculate_period_end(subscription.plan_key, at),
            "paused_at": None,
            "pause_reason": None,
        })
        self._emit(SubscriptionActivated(subscription=updated, activated_at=at))
        return updated

    async def renew(
        self,
        subscription_id: str,
        *,
        at: datetime,
        gateway: str | None = None,
        entity: str | None = None,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> SubscriptionResult:
        """
        Charge for the next period.

        The period is not extended here. Once the renewal charge is
        verified the caller calls extend_period.
        """
        subscription = await self._get(subscription_id)

        if subscription.is_free:
            raise InvalidAmountError(0, "Free subscriptions do not require renewal")
        if subscription.status == CANCELLED:
            raise InvalidStateTransitionError(
                "Subscription",
                subscription.id,
                subscription.status,
                "renewed",
                "cancelled subscriptions cannot be renewed",
            )

        result = await self.transaction_service.create(
            TransactionData(
                organization_id=subscription.organization_id,
                customer_id=subscription.customer_id,
                reference_id=subscription.id,
                reference_model=REFERENCE_MODEL,
            ),
            amount=subscription.amount,
            at=at,
            currency=subscription.currency,
            gateway=gateway or subscription.gateway,
            entity=entity or subscription.entity,
            monetization_type=subscription.monetization_type,
            metadata={
                **(metadata or {}),
                "plan_key": subscription.plan_key,
                "is_renewal": True,
            },
            idempotency_key=idempotency_key,
            key_prefix="renewal",
        )
        transaction = result.transaction

        if not result.created:
            return SubscriptionResult(subscription=subscription, transaction=transaction)

        updated = await self._update(subscription, {
            "renewal_count": subscription.renewal_count + 1,
            "renewal_transaction_id": transaction.id,
        })

        logger.info(
            "Renewal %d for subscription %s, transaction %s",
            updated.renewal_count, updated.id, transaction.id,
        )
        self._emit(SubscriptionRenewed(
            subscription=updated,
            transaction=transaction,
            renewal_count=updated.renewal_count,
        ))
        return SubscriptionResult(
            subscription=updated,
            transaction=transaction,
            payment_intent=result.payment_intent,
        )

    async def extend_period(self, subscription_id: str, *, at: datetime) -> Subscription:
        """
        Move to the next billing period after a verified renewal.

        The new period starts at the current period end if that is
        still ahead of ``at``, so paying early loses nothing.
        """
        subscription = await self._get(subscription_id)

        if subscription.status in (CANCELLED, PAUSED):
            raise InvalidStateTransitionError(
                "Subscription",
                subscription.id,
                subscription.status,
                ACTIVE,
                "period can only be extended for a running subscription",
            )

        start, end = calculate_period_range(
            subscription.plan_key, at, subscription.current_period_end
        )
        updated = await self._update(subscription, {
            "status": ACTIVE,
            "activated_at": subscription.activated_at or at,
            "current_period_start": start,
            "current_period_end": end,
        })
        self._emit(SubscriptionPeriodExtended(
            subscription=updated, period_start=start, period_end=end
        ))
        return updated

    async def pause(
        self,
        subscription_id: str,
        *,
        at: datetime,
        reason: str | None = None,
    ) -> Subscription:
        subscription = await self._get(subscription_id)
        if subscription.status != ACTIVE:
            raise SubscriptionNotActiveError(subscription.id, subscription.status)

        updated = await self._update(subscription, {
            "status": PAUSED,
            "paused_at": at,
            "pause_reason": reason,
        })
        self._emit(SubscriptionPaused(subscription=updated, reason=reason, paused_at=at))
        return updated

    async def resume(
        self,
        subscription_id: str,
        *,
        at: datetime,
        extend_period: bool = False,
    ) -> Subscription:
        """Resume a paused subscription, optionally pushing the period end by the pause length."""
        subscription = await self._get(subscription_id)
        if subscription.paused_at is None or subscription.status != PAUSED:
            raise InvalidStateTransitionError(
                "Subscription",
                subscription.id,
                subscription.status,
                ACTIVE,
                "subscription is not paused",
            )

        paused_for = at - subscription.paused_at
        changes: dict[str, Any] = {
            "status": ACTIVE,
            "paused_at": None,
            "pause_reason": None,
        }
        extended = extend_period and subscription.current_period_end is not None
        if extended:
            changes["current_period_end"] = subscription.current_period_end + paused_for

        updated = await self._update(subscription, changes)
        self._emit(SubscriptionResumed(
            subscription=updated,
            resumed_at=at,
            pause_seconds=paused_for.total_seconds(),
            period_extended=extended,
        ))
        return updated

    async def cancel(
        self,
        subscription_id: str,
        *,
        at: datetime,
        immediate: bool = False,
        reason: str | None = None,
    ) -> Subscription:
        """
        Cancel now, or schedule cancellation for the end of the period.

        A scheduled cancellation only records cancel_at; the caller's
        scheduler acts on it.
        """
        subscription = await self._get(subscription_id)
        if subscription.status == CANCELLED:
            raise InvalidStateTransitionError(
                "Subscription", subscription.id, subscription.status, CANCELLED
            )

        if immediate:
            changes = {
                "status": CANCELLED,
                "cancelled_at": at,
                "cancellation_reason": reason,
            }
            effective_at = at
        else:
            effective_at = subscription.current_period_end or at
            changes = {"cancel_at": effective_at, "cancellation_reason": reason}

        updated = await self._update(subscription, changes)
        logger.info(
            "Subscription %s cancelled (immediate=%s)", updated.id, immediate
        )
        self._emit(SubscriptionCancelled(
            subscription=updated,
            immediate=immediate,
            reason=reason,
            effective_at=effective_at,
        ))
        return updated

    async def expire(self, subscription_id: str, *, at: datetime) -> Subscription:
        """Record that the current period ran out without renewal."""
        subscription = await self._get(subscription_id)
        if subscription.status != ACTIVE:
            raise SubscriptionNotActiveError(subscription.id, subscription.status)

        updated = await self._update(
            subscription, {"status": SubscriptionStatus.EXPIRED.value}
        )
        self._emit(SubscriptionExpired(subscription=updated, expired_at=at))
        return updated

    async def get(self, subscription_id: str) -> Subscription:
        return await self._get(subscription_id)

    async def list(
        self,
        filters: dict[str, Any] | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> SubscriptionPage:
        filters = check_page(filters or {}, SUBSCRIPTION_FILTERS, limit, offset)
        return SubscriptionPage(
            items=await self.subscriptions.search(filters, limit=limit, offset=offset),
            total=await self.subscriptions.count(filters),
            limit=limit,
            offset=offset,
        )

    def _emit(self, event) -> None:
        self.notifier.emit(event)
