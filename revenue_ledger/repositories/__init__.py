"""Storage adapters for transactions and subscriptions."""

from revenue_ledger.repositories.base import (
    SubscriptionRepository,
    TransactionRepository,
)
from revenue_ledger.repositories.memory import (
    InMemorySubscriptionRepository,
    InMemoryTransactionRepository,
)
from revenue_ledger.repositories.sql import (
    SqlSubscriptionRepository,
    SqlTransactionRepository,
)

__all__ = [
    "SubscriptionRepository",
    "TransactionRepository",
    "InMemorySubscriptionRepository",
    "InMemoryTransactionRepository",
    "SqlSubscriptionRepository",
    "SqlTransactionRepository",
]
