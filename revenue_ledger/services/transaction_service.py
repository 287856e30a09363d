"""
Transaction service: creating charges and reading the ledger.

create() is the single entry point that turns a billing request into
a ledger row:
1. Zero amounts create nothing (free access)
2. A known idempotency key returns the existing transaction
3. The gateway is asked for a payment intent
4. Category and commission are resolved from configuration
5. The transaction is stored pending, or verified when the gateway
   settled synchronously
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from revenue_ledger.calculators import compute_commission, resolve_category
from revenue_ledger.events import TransactionCreated, TransactionUpdated
from revenue_ledger.exceptions import (
    FieldUpdateNotAllowedError,
    InvalidAmountError,
    PaymentIntentCreationError,
)
from revenue_ledger.models.enums import (
    MonetizationType,
    TransactionDirection,
    TransactionStatus,
)
from revenue_ledger.repositories.base import TRANSACTION_FILTERS
from revenue_ledger.schemas.results import CreateTransactionResult, TransactionPage
from revenue_ledger.schemas.transaction import (
    GatewayInfo,
    Transaction,
    TransactionData,
)
from revenue_ledger.services.base import LedgerServiceBase, check_page

logger = logging.getLogger(__name__)

PENDING_ONLY_FIELDS = {"customer_id", "method"}
EDITABLE_FIELDS = PENDING_ONLY_FIELDS | {"metadata"}
# Written by the ledger operations themselves
LEDGER_METADATA_KEYS = {
    "entity",
    "monetization_type",
    "plan_key",
    "refund_transaction_id",
}


def generate_idempotency_key(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class TransactionService(LedgerServiceBase):

    async def create(
        self,
        data: TransactionData,
        *,
        amount: int,
        at: datetime,
        currency: str | None = None,
        gateway: str = "manual",
        entity: str | None = None,
        monetization_type: str = MonetizationType.PURCHASE.value,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        key_prefix: str = "txn",
    ) -> CreateTransactionResult:
        if amount < 0:
            raise InvalidAmountError(amount)
        if amount == 0:
            logger.info("Zero amount, no transaction created")
            return CreateTransactionResult()

        if idempotency_key:
            existing = await self.transactions.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    "Idempotency key reused, returning transaction %s", existing.id
                )
                return CreateTransactionResult(transaction=existing)

        provider = self._get_provider(gateway)
        currency = (currency or self.config.default_currency).upper()
        metadata = dict(metadata or {})

        try:
            intent = await provider.create_intent(
                amount,
                currency,
                {**metadata, "method": data.method, "monetization_type": monetization_type},
            )
        except Exception as exc:
            logger.error("Payment intent creation failed with %s: %s", gateway, exc)
            raise PaymentIntentCreationError(gateway, exc) from exc

        category = resolve_category(
            entity, monetization_type, self.config.category_mappings
        )
        commission = compute_commission(
            amount,
            self.config.commission_rate_for(category),
            self.config.gateway_fee_rate_for(gateway),
        )

        settled = intent.status == "succeeded"
        transaction = Transaction(
            idempotency_key=idempotency_key or generate_idempotency_key(key_prefix),
            organization_id=data.organization_id,
            customer_id=data.customer_id,
            direction=TransactionDirection.INCOME.value,
            category=category,
            status=(
                TransactionStatus.VERIFIED.value if settled
                else TransactionStatus.PENDING.value
            ),
            amount=amount,
            currency=currency,
            method=data.method,
            gateway=GatewayInfo(
                provider=gateway,
                session_id=intent.session_id,
                payment_intent_id=intent.payment_intent_id or intent.id,
            ),
            commission=commission,
            reference_id=data.reference_id,
            reference_model=data.reference_model,
            verified_at=at if settled else None,
            verified_by="system" if settled else None,
            metadata={
                **metadata,
                "entity": entity,
                "monetization_type": monetization_type,
            },
            created_at=at,
        )
        stored = await self.transactions.create(transaction)
        created = stored.id == transaction.id

        if created:
            logger.info(
                "Created transaction %s (%s %s, %s)",
                stored.id, stored.amount, stored.currency, stored.status,
            )
            self._emit(TransactionCreated(transaction=stored, payment_intent=intent))

        return CreateTransactionResult(
            transaction=stored, payment_intent=intent, created=created
        )

    async def get(self, transaction_id: str) -> Transaction:
        return await self._get_transaction(transaction_id)

    async def list_related(self, transaction_id: str) -> list[Transaction]:
        """Refunds, split payouts and releases recorded against a transaction."""
        await self._get_transaction(transaction_id)
        return await self.transactions.find_related(transaction_id)

    async def update(self, transaction_id: str, changes: dict[str, Any]) -> Transaction:
        """
        Edit the descriptive fields of a transaction.

        Money, status and audit fields are owned by the ledger
        operations and never change here. customer_id and method may
        be corrected while the charge is pending; metadata is merged
        into the existing document at any time, except for the keys
        the ledger itself writes.
        """
        transaction = await self._get_transaction(transaction_id)

        for field in changes:
            if field not in EDITABLE_FIELDS:
                raise FieldUpdateNotAllowedError(field)
            if (
                field in PENDING_ONLY_FIELDS
                and transaction.status != TransactionStatus.PENDING.value
            ):
                raise FieldUpdateNotAllowedError(
                    field,
                    f"Field {field} can only be updated while the transaction is pending",
                )

        update = {k: v for k, v in changes.items() if k != "metadata"}
        if "metadata" in changes:
            metadata = changes["metadata"] or {}
            for key in metadata:
                if key in LEDGER_METADATA_KEYS:
                    raise FieldUpdateNotAllowedError(f"metadata.{key}")
            update["metadata"] = {**transaction.metadata, **metadata}

        if not update:
            return transaction

        updated = await self._update_transaction(
            transaction, update, expected_status={transaction.status}
        )
        logger.info(
            "Updated transaction %s: %s", updated.id, ", ".join(sorted(update))
        )
        self._emit(TransactionUpdated(
            transaction=updated, changed_fields=sorted(update)
        ))
        return updated

    async def list(
        self,
        filters: dict[str, Any] | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> TransactionPage:
        """Newest first. Filters are exact matches on TRANSACTION_FILTERS fields."""
        filters = check_page(filters or {}, TRANSACTION_FILTERS, limit, offset)
        return TransactionPage(
            items=await self.transactions.search(filters, limit=limit, offset=offset),
            total=await self.transactions.count(filters),
            limit=limit,
            offset=offset,
        )
