"""
Return values of the ledger operations.

Also used as API response models.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from revenue_ledger.providers.base import (
    PaymentIntent,
    PaymentResult,
    RefundResult,
    WebhookEvent,
)
from revenue_ledger.schemas.subscription import Subscription
from revenue_ledger.schemas.transaction import Hold, SplitEntry, Transaction


class CreateTransactionResult(BaseModel):
    """transaction is None for zero-amount requests."""
    transaction: Transaction | None = None
    payment_intent: PaymentIntent | None = None
    created: bool = False


class VerifyResult(BaseModel):
    transaction: Transaction
    payment_result: PaymentResult
    status: str


class PaymentStatusResult(BaseModel):
    transaction: Transaction
    status: str
    provider: str
    payment_result: PaymentResult | None = None


class RefundOutcome(BaseModel):
    transaction: Transaction
    refund_transaction: Transaction
    refund_result: RefundResult
    status: str


class WebhookOutcome(BaseModel):
    transaction: Transaction
    event: WebhookEvent
    status: str


class SplitOutcome(BaseModel):
    transaction: Transaction
    splits: list[SplitEntry]
    split_transactions: list[Transaction] = Field(default_factory=list)
    organization_payout: Decimal


class ReleaseOutcome(BaseModel):
    transaction: Transaction
    release_transaction: Transaction | None = None
    release_amount: int
    is_full_release: bool


class EscrowStatus(BaseModel):
    transaction_id: str
    transaction_status: str
    hold: Hold | None = None
    splits: list[SplitEntry] = Field(default_factory=list)
    remaining_amount: int = 0
    has_hold: bool = False
    has_splits: bool = False


class SubscriptionResult(BaseModel):
    subscription: Subscription
    transaction: Transaction | None = None
    payment_intent: PaymentIntent | None = None


class TransactionPage(BaseModel):
    items: list[Transaction]
    total: int
    limit: int
    offset: int


class SubscriptionPage(BaseModel):
    items: list[Subscription]
    total: int
    limit: int
    offset: int
