"""
Pydantic models for subscriptions.

A subscription owns no money. Every charge for it is a linked
Transaction; the subscription only tracks plan, status and period.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from revenue_ledger.models.enums import MonetizationType, SubscriptionStatus
from revenue_ledger.schemas.transaction import TransactionData, new_id


class Subscription(BaseModel):
    id: str = Field(default_factory=new_id)
    idempotency_key: str | None = None
    organization_id: str | None = None
    customer_id: str | None = None
    plan_key: str
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    gateway: str = "manual"
    entity: str | None = None
    monetization_type: str = MonetizationType.SUBSCRIPTION.value
    status: str = SubscriptionStatus.PENDING.value
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    activated_at: datetime | None = None
    paused_at: datetime | None = None
    pause_reason: str | None = None
    cancelled_at: datetime | None = None
    cancel_at: datetime | None = None
    cancellation_reason: str | None = None
    renewal_count: int = 0
    transaction_id: str | None = None
    renewal_transaction_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int = 1
    created_at: datetime | None = None

    @property
    def is_free(self) -> bool:
        return self.amount == 0

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE.value


# --- API request schemas ---

class SubscriptionCreate(BaseModel):
    data: TransactionData = Field(default_factory=TransactionData)
    plan_key: str = Field(min_length=1)
    amount: int = Field(ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    gateway: str = "manual"
    entity: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str | None = Field(default=None, max_length=100)


class SubscriptionRenew(BaseModel):
    gateway: str | None = None
    entity: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str | None = Field(default=None, max_length=100)


class SubscriptionPause(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class SubscriptionResume(BaseModel):
    extend_period: bool = False


class SubscriptionCancel(BaseModel):
    immediate: bool = False
    reason: str | None = Field(default=None, max_length=255)
