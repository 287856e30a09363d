"""
Pydantic models for the ledger's Transaction entity.

The Transaction is the universal ledger row: charges, refunds,
split payouts and escrow releases are all Transactions. Embedded
documents (commission, hold, splits) travel with the row so that
a single conditional update keeps them consistent.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, model_validator

from revenue_ledger.models.enums import (
    CommissionStatus,
    SplitStatus,
    SplitType,
    TransactionDirection,
    TransactionStatus,
)


def new_id() -> str:
    return uuid.uuid4().hex


class GatewayInfo(BaseModel):
    """Link to the payment gateway. Either identifier may be absent."""
    provider: str
    session_id: str | None = None
    payment_intent_id: str | None = None


class Commission(BaseModel):
    rate: Decimal
    gross_amount: Decimal
    gateway_fee_rate: Decimal = Decimal("0")
    gateway_fee_amount: Decimal = Decimal("0")
    net_amount: Decimal
    status: str = CommissionStatus.PENDING.value


class Release(BaseModel):
    amount: int = Field(gt=0)
    recipient_id: str
    recipient_type: str
    reason: str
    released_at: datetime
    released_by: str | None = None
    transaction_id: str | None = None


class Hold(BaseModel):
    status: str
    held_amount: int = Field(ge=0)
    released_amount: int = Field(default=0, ge=0)
    reason: str
    held_at: datetime
    hold_until: datetime | None = None
    releases: list[Release] = Field(default_factory=list)
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    @model_validator(mode="after")
    def released_within_held(self):
        if self.released_amount > self.held_amount:
            raise ValueError("released_amount cannot exceed held_amount")
        return self

    @property
    def remaining(self) -> int:
        return self.held_amount - self.released_amount


class SplitRule(BaseModel):
    """Caller-supplied allocation rule for one split recipient."""
    type: str = SplitType.CUSTOM.value
    recipient_id: str
    recipient_type: str = "user"
    rate: Decimal
    metadata: dict[str, Any] = Field(default_factory=dict)


class SplitEntry(BaseModel):
    type: str
    recipient_id: str
    recipient_type: str
    rate: Decimal
    gross_amount: Decimal
    gateway_fee_rate: Decimal = Decimal("0")
    gateway_fee_amount: Decimal = Decimal("0")
    net_amount: Decimal
    status: str = SplitStatus.PENDING.value
    payout_transaction_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookRecord(BaseModel):
    """The last webhook delivery applied to a transaction."""
    event_id: str | None = None
    event_type: str
    received_at: datetime


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    idempotency_key: str
    organization_id: str | None = None
    customer_id: str | None = None
    direction: str = TransactionDirection.INCOME.value
    category: str
    status: str = TransactionStatus.PENDING.value
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    method: str = "manual"
    gateway: GatewayInfo | None = None
    commission: Commission | None = None
    hold: Hold | None = None
    splits: list[SplitEntry] = Field(default_factory=list)
    refunded_amount: int = Field(default=0, ge=0)
    refunded_at: datetime | None = None
    reference_id: str | None = None
    reference_model: str | None = None
    related_transaction_id: str | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    webhook: WebhookRecord | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int = 1
    created_at: datetime | None = None

    @model_validator(mode="after")
    def refunds_within_amount(self):
        if self.refunded_amount > self.amount:
            raise ValueError("refunded_amount cannot exceed amount")
        return self

    @property
    def refundable_amount(self) -> int:
        """Balance that can still go back to the customer. Released escrow funds cannot."""
        released = self.hold.released_amount if self.hold else 0
        return max(0, self.amount - released - self.refunded_amount)

    @property
    def gateway_reference(self) -> str:
        """Identifier the provider knows this payment by."""
        if self.gateway:
            return (
                self.gateway.payment_intent_id
                or self.gateway.session_id
                or self.id
            )
        return self.id

    @property
    def provider_name(self) -> str:
        return self.gateway.provider if self.gateway else "manual"


class TransactionData(BaseModel):
    """Caller context copied onto a new transaction."""
    organization_id: str | None = None
    customer_id: str | None = None
    reference_id: str | None = None
    reference_model: str | None = None
    method: str = "manual"


# --- API request schemas ---

class CreatePaymentRequest(BaseModel):
    data: TransactionData = Field(default_factory=TransactionData)
    amount: int = Field(ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    gateway: str = "manual"
    entity: str | None = None
    monetization_type: str = "purchase"
    metadata: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str | None = Field(default=None, max_length=100)


class VerifyRequest(BaseModel):
    verified_by: str | None = None


class ApproveRequest(BaseModel):
    approved_by: str | None = None
    paid_at: datetime | None = None


class RefundRequest(BaseModel):
    amount: int | None = Field(default=None, gt=0)
    reason: str | None = Field(default=None, max_length=255)
