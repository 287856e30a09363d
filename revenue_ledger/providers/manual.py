"""
Manual payment provider.

For cash, bank transfers and mobile money without an API. An admin
checks the payment proof and records it with ``approve``; until then
verification reports ``requires_manual_approval``.
"""

import uuid
from datetime import datetime
from typing import Any

from revenue_ledger.exceptions import ProviderCapabilityError
from revenue_ledger.providers.base import (
    PaymentIntent,
    PaymentProvider,
    PaymentResult,
    ProviderCapabilities,
    RefundResult,
    WebhookEvent,
)

AWAITING_APPROVAL = "requires_manual_approval"


class ManualProvider(PaymentProvider):

    name = "manual"

    def __init__(self, instructions: str | None = None):
        self.instructions = instructions
        self._approvals: dict[str, PaymentResult] = {}

    async def create_intent(self, amount, currency, metadata=None) -> PaymentIntent:
        return PaymentIntent(
            id=f"manual_{uuid.uuid4().hex[:16]}",
            provider=self.name,
            status="pending",
            amount=amount,
            currency=currency,
            instructions=self._payment_instructions(amount, currency, metadata or {}),
            metadata=metadata or {},
        )

    def approve(
        self,
        intent_id: str,
        amount: int,
        currency: str,
        paid_at: datetime | None = None,
    ) -> PaymentResult:
        """Record an admin-confirmed payment for a later verify call."""
        result = PaymentResult(
            id=intent_id,
            provider=self.name,
            status="succeeded",
            amount=amount,
            currency=currency,
            paid_at=paid_at,
        )
        self._approvals[intent_id] = result
        return result

    async def verify_payment(self, intent_id: str) -> PaymentResult:
        approved = self._approvals.get(intent_id)
        if approved is not None:
            return approved
        return PaymentResult(
            id=intent_id,
            provider=self.name,
            status=AWAITING_APPROVAL,
            metadata={"message": "Manual payment requires admin verification"},
        )

    async def get_status(self, intent_id: str) -> PaymentResult:
        return await self.verify_payment(intent_id)

    async def refund(self, payment_id, amount=None, reason=None) -> RefundResult:
        # Manual refunds are settled outside the system, so they succeed immediately
        return RefundResult(
            id=f"refund_{uuid.uuid4().hex[:16]}",
            provider=self.name,
            status="succeeded",
            amount=amount or 0,
            reason=reason or "Manual refund",
        )

    async def handle_webhook(self, payload, headers=None) -> WebhookEvent:
        raise ProviderCapabilityError(self.name, "webhooks")

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_webhooks=False,
            supports_refunds=True,
            supports_partial_refunds=True,
            requires_manual_verification=True,
        )

    def _payment_instructions(
        self, amount: int, currency: str, metadata: dict[str, Any]
    ) -> str:
        lines = [f"Payment amount: {amount} {currency}"]
        method = metadata.get("method")
        if method == "cash":
            lines.append("Pay at the organization's office and keep the receipt.")
        elif method == "bank":
            lines.append("Transfer to the organization's bank account and upload proof.")
        else:
            lines.append("Contact the organization for payment details.")
        if self.instructions:
            lines.extend(["", self.instructions])
        return "\n".join(lines)
