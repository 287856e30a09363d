"""
Database models package.

All record models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from revenue_ledger.models.base import Base
from revenue_ledger.models.enums import (
    TransactionDirection,
    TransactionStatus,
    HoldStatus,
    SplitType,
    SubscriptionStatus,
)
from revenue_ledger.models.transaction import TransactionRecord
from revenue_ledger.models.subscription import SubscriptionRecord

__all__ = [
    "Base",
    "TransactionDirection",
    "TransactionStatus",
    "HoldStatus",
    "SplitType",
    "SubscriptionStatus",
    "TransactionRecord",
    "SubscriptionRecord",
]
