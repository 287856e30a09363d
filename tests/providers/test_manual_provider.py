"""
Tests for ManualProvider.
"""

import asyncio

import pytest

from revenue_ledger.exceptions import OperationError, ProviderCapabilityError
from revenue_ledger.providers.manual import AWAITING_APPROVAL, ManualProvider


def run(coro):
    return asyncio.run(coro)


class TestManualProvider:

    def test_intent_carries_instructions(self):
        provider = ManualProvider(instructions="Account 123")

        intent = run(provider.create_intent(1500, "USD", {"method": "bank"}))

        assert intent.id.startswith("manual_")
        assert intent.status == "pending"
        assert "1500 USD" in intent.instructions
        assert "bank account" in intent.instructions
        assert intent.instructions.endswith("Account 123")

    def test_unapproved_payment_awaits_approval(self):
        provider = ManualProvider()

        result = run(provider.verify_payment("manual_1"))

        assert result.status == AWAITING_APPROVAL
        assert result.amount is None

    def test_approved_payment_verifies(self, at):
        provider = ManualProvider()

        provider.approve("manual_1", 1500, "USD", paid_at=at)
        result = run(provider.verify_payment("manual_1"))

        assert result.status == "succeeded"
        assert result.amount == 1500
        assert result.paid_at == at
        assert run(provider.get_status("manual_1")).status == "succeeded"

    def test_refund_succeeds_immediately(self):
        result = run(ManualProvider().refund("manual_1", 400))

        assert result.status == "succeeded"
        assert result.amount == 400
        assert result.reason == "Manual refund"

    def test_webhooks_not_supported(self):
        provider = ManualProvider()

        assert provider.get_capabilities().supports_webhooks is False
        with pytest.raises(ProviderCapabilityError) as exc_info:
            run(provider.handle_webhook({"id": "evt_1", "type": "payment.succeeded"}))

        assert isinstance(exc_info.value, OperationError)
        assert exc_info.value.metadata["capability"] == "webhooks"
