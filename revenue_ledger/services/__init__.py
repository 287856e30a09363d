"""Business logic services."""

from revenue_ledger.services.transaction_service import TransactionService
from revenue_ledger.services.payment_service import PaymentService
from revenue_ledger.services.escrow_service import EscrowService
from revenue_ledger.services.subscription_service import SubscriptionService

__all__ = [
    "TransactionService",
    "PaymentService",
    "EscrowService",
    "SubscriptionService",
]
