"""
Payment provider contract.

A provider wraps one payment gateway. The ledger only talks to
gateways through this interface and the standardized result models
below; raw gateway payloads stay inside the provider.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PaymentIntent(BaseModel):
    id: str
    provider: str
    status: str
    amount: int
    currency: str
    session_id: str | None = None
    payment_intent_id: str | None = None
    client_secret: str | None = None
    payment_url: str | None = None
    instructions: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentResult(BaseModel):
    """Result of verify_payment / get_status. Status is provider vocabulary."""
    id: str
    provider: str
    status: str
    amount: int | None = None
    currency: str | None = None
    paid_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundResult(BaseModel):
    id: str
    provider: str
    status: str
    amount: int
    currency: str | None = None
    refunded_at: datetime | None = None
    reason: str | None = None


class WebhookData(BaseModel):
    session_id: str | None = None
    payment_intent_id: str | None = None
    amount: int | None = None
    currency: str | None = None


class WebhookEvent(BaseModel):
    id: str | None = None
    provider: str
    type: str
    data: WebhookData = Field(default_factory=WebhookData)
    created_at: datetime | None = None


class ProviderCapabilities(BaseModel):
    supports_webhooks: bool = False
    supports_refunds: bool = False
    supports_partial_refunds: bool = False
    requires_manual_verification: bool = True


class PaymentProvider(ABC):
    """Base class every payment provider implements."""

    name = "base"

    @abstractmethod
    async def create_intent(
        self, amount: int, currency: str, metadata: dict[str, Any] | None = None
    ) -> PaymentIntent:
        ...

    @abstractmethod
    async def verify_payment(self, intent_id: str) -> PaymentResult:
        ...

    @abstractmethod
    async def get_status(self, intent_id: str) -> PaymentResult:
        ...

    @abstractmethod
    async def refund(
        self, payment_id: str, amount: int | None = None, reason: str | None = None
    ) -> RefundResult:
        ...

    @abstractmethod
    async def handle_webhook(
        self, payload: dict[str, Any], headers: dict[str, str] | None = None
    ) -> WebhookEvent:
        ...

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities()
