"""
Typed notification events.

Ledger operations emit these after their writes succeed. The set
is closed: ``RevenueEvent`` is a union discriminated on ``name``, so
a consumer can parse any serialized event back into its variant.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from revenue_ledger.providers.base import PaymentIntent, PaymentResult, WebhookEvent
from revenue_ledger.schemas.subscription import Subscription
from revenue_ledger.schemas.transaction import SplitEntry, Transaction


class TransactionCreated(BaseModel):
    name: Literal["transaction.created"] = "transaction.created"
    transaction: Transaction
    payment_intent: PaymentIntent | None = None


class TransactionUpdated(BaseModel):
    name: Literal["transaction.updated"] = "transaction.updated"
    transaction: Transaction
    changed_fields: list[str]


class PaymentVerified(BaseModel):
    name: Literal["payment.verified"] = "payment.verified"
    transaction: Transaction
    payment_result: PaymentResult
    verified_by: str | None = None


class PaymentFailed(BaseModel):
    name: Literal["payment.failed"] = "payment.failed"
    transaction: Transaction
    error: str
    provider: str


class PaymentRefunded(BaseModel):
    name: Literal["payment.refunded"] = "payment.refunded"
    transaction: Transaction
    refund_transaction: Transaction
    refund_amount: int
    reason: str | None = None
    is_partial: bool


class WebhookProcessed(BaseModel):
    name: Literal["payment.webhook"] = "payment.webhook"
    transaction: Transaction
    event: WebhookEvent


class EscrowHeld(BaseModel):
    name: Literal["escrow.held"] = "escrow.held"
    transaction: Transaction
    held_amount: int
    reason: str


class EscrowSplit(BaseModel):
    name: Literal["escrow.split"] = "escrow.split"
    transaction: Transaction
    splits: list[SplitEntry]
    split_transactions: list[Transaction]
    organization_payout: Decimal


class EscrowReleased(BaseModel):
    name: Literal["escrow.released"] = "escrow.released"
    transaction: Transaction
    release_transaction: Transaction | None = None
    release_amount: int
    recipient_id: str
    recipient_type: str
    is_full_release: bool


class EscrowCancelled(BaseModel):
    name: Literal["escrow.cancelled"] = "escrow.cancelled"
    transaction: Transaction
    reason: str


class SubscriptionCreated(BaseModel):
    name: Literal["subscription.created"] = "subscription.created"
    subscription: Subscription
    transaction: Transaction | None = None
    is_free: bool


class SubscriptionActivated(BaseModel):
    name: Literal["subscription.activated"] = "subscription.activated"
    subscription: Subscription
    activated_at: datetime


class SubscriptionRenewed(BaseModel):
    name: Literal["subscription.renewed"] = "subscription.renewed"
    subscription: Subscription
    transaction: Transaction
    renewal_count: int


class SubscriptionPeriodExtended(BaseModel):
    name: Literal["subscription.extended"] = "subscription.extended"
    subscription: Subscription
    period_start: datetime
    period_end: datetime


class SubscriptionPaused(BaseModel):
    name: Literal["subscription.paused"] = "subscription.paused"
    subscription: Subscription
    reason: str | None = None
    paused_at: datetime


class SubscriptionResumed(BaseModel):
    name: Literal["subscription.resumed"] = "subscription.resumed"
    subscription: Subscription
    resumed_at: datetime
    pause_seconds: float
    period_extended: bool


class SubscriptionCancelled(BaseModel):
    name: Literal["subscription.cancelled"] = "subscription.cancelled"
    subscription: Subscription
    immediate: bool
    reason: str | None = None
    effective_at: datetime | None = None


class SubscriptionExpired(BaseModel):
    name: Literal["subscription.expired"] = "subscription.expired"
    subscription: Subscription
    expired_at: datetime


RevenueEvent = Annotated[
    Union[
        TransactionCreated,
        TransactionUpdated,
        PaymentVerified,
        PaymentFailed,
        PaymentRefunded,
        WebhookProcessed,
        EscrowHeld,
        EscrowSplit,
        EscrowReleased,
        EscrowCancelled,
        SubscriptionCreated,
        SubscriptionActivated,
        SubscriptionRenewed,
        SubscriptionPeriodExtended,
        SubscriptionPaused,
        SubscriptionResumed,
        SubscriptionCancelled,
        SubscriptionExpired,
    ],
    Field(discriminator="name"),
]
