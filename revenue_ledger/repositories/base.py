"""
Storage contracts.

The services are storage-agnostic: they read entities, compute the
changes a transition needs, and hand them to ``conditional_update``.
The repository applies the changes only if the stored row still has
the expected status and version, which is what makes racing
operations on one record safe.
"""

from typing import Any, Collection, Protocol

from revenue_ledger.schemas.subscription import Subscription
from revenue_ledger.schemas.transaction import Transaction

# Fields search() and count() may filter on. A collection value matches any of it.
TRANSACTION_FILTERS = frozenset({
    "organization_id",
    "customer_id",
    "status",
    "category",
    "direction",
    "reference_id",
    "reference_model",
})
SUBSCRIPTION_FILTERS = frozenset({
    "organization_id",
    "customer_id",
    "status",
    "plan_key",
})


class TransactionRepository(Protocol):

    async def find_by_id(self, transaction_id: str) -> Transaction | None:
        ...

    async def find_by_gateway_id(
        self,
        *,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> Transaction | None:
        """Look up by exactly one gateway identifier."""
        ...

    async def find_by_idempotency_key(self, key: str) -> Transaction | None:
        ...

    async def find_related(self, transaction_id: str) -> list[Transaction]:
        """Satellite entries pointing back at ``transaction_id``."""
        ...

    async def search(
        self,
        filters: dict[str, Any] | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        """Newest first."""
        ...

    async def count(self, filters: dict[str, Any] | None = None) -> int:
        ...

    async def create(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        When another row already holds the same idempotency key the
        existing row is returned instead.
        """
        ...

    async def conditional_update(
        self,
        transaction_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[str] | None = None,
        expected_version: int | None = None,
    ) -> Transaction | None:
        """
        Apply ``changes`` atomically and bump the version.

        Returns None when the row is missing or the guards no longer
        hold.
        """
        ...


class SubscriptionRepository(Protocol):

    async def find_by_id(self, subscription_id: str) -> Subscription | None:
        ...

    async def find_by_idempotency_key(self, key: str) -> Subscription | None:
        ...

    async def search(
        self,
        filters: dict[str, Any] | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Subscription]:
        """Newest first."""
        ...

    async def count(self, filters: dict[str, Any] | None = None) -> int:
        ...

    async def create(self, subscription: Subscription) -> Subscription:
        """Persist a new subscription, or return the one holding its idempotency key."""
        ...

    async def conditional_update(
        self,
        subscription_id: str,
        changes: dict[str, Any],
        *,
        expected_status: Collection[str] | None = None,
        expected_version: int | None = None,
    ) -> Subscription | None:
        ...
