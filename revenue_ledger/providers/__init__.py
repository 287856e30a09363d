"""Payment provider contract and the built-in manual provider."""

from revenue_ledger.providers.base import (
    PaymentIntent,
    PaymentProvider,
    PaymentResult,
    ProviderCapabilities,
    RefundResult,
    WebhookData,
    WebhookEvent,
)
from revenue_ledger.providers.manual import ManualProvider

__all__ = [
    "PaymentIntent",
    "PaymentProvider",
    "PaymentResult",
    "ProviderCapabilities",
    "RefundResult",
    "WebhookData",
    "WebhookEvent",
    "ManualProvider",
]
