"""
Plumbing shared by the ledger services.

Services receive every collaborator in __init__. They never hold
entities between calls: each operation reads fresh state, validates
it, and writes through a conditional update guarded on the version it
read.
"""

import logging
from typing import Any, Collection

from revenue_ledger.config import RevenueConfig
from revenue_ledger.exceptions import (
    ConcurrentModificationError,
    InvalidAmountError,
    InvalidFilterError,
    ProviderNotFoundError,
    TransactionNotFoundError,
)
from revenue_ledger.notifier import Notifier, NullNotifier
from revenue_ledger.providers.base import PaymentProvider
from revenue_ledger.repositories.base import TransactionRepository
from revenue_ledger.schemas.transaction import Transaction

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500


def check_page(
    filters: dict[str, Any], allowed: Collection[str], limit: int, offset: int
) -> dict[str, Any]:
    """Validate list arguments and drop filters left unset."""
    for field in filters:
        if field not in allowed:
            raise InvalidFilterError(field, allowed)
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidAmountError(
            limit, f"Page limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}"
        )
    if offset < 0:
        raise InvalidAmountError(offset, f"Page offset must not be negative, got {offset}")
    return {field: value for field, value in filters.items() if value is not None}


class LedgerServiceBase:

    def __init__(
        self,
        transactions: TransactionRepository,
        providers: dict[str, PaymentProvider],
        notifier: Notifier | None = None,
        config: RevenueConfig | None = None,
    ):
        self.transactions = transactions
        self.providers = providers
        self.notifier = notifier or NullNotifier()
        self.config = config or RevenueConfig()

    def _get_provider(self, name: str) -> PaymentProvider:
        provider = self.providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(name, list(self.providers))
        return provider

    async def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = await self.transactions.find_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    async def _resolve_transaction(self, reference: str) -> Transaction:
        """Find a transaction by session id, then payment intent id, then id."""
        transaction = (
            await self.transactions.find_by_gateway_id(session_id=reference)
            or await self.transactions.find_by_gateway_id(payment_intent_id=reference)
            or await self.transactions.find_by_id(reference)
        )
        if transaction is None:
            raise TransactionNotFoundError(reference)
        return transaction

    async def _update_transaction(
        self,
        transaction: Transaction,
        changes: dict[str, Any],
        expected_status: Collection[str] | None = None,
    ) -> Transaction:
        updated = await self.transactions.conditional_update(
            transaction.id,
            changes,
            expected_status=expected_status,
            expected_version=transaction.version,
        )
        if updated is None:
            logger.warning(
                "Conditional update lost for transaction %s (version %s)",
                transaction.id,
                transaction.version,
            )
            raise ConcurrentModificationError("Transaction", transaction.id)
        return updated

    def _emit(self, event) -> None:
        self.notifier.emit(event)
