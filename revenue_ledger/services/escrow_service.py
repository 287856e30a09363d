"""
Escrow service: hold verified funds, split them, release or cancel.

Hold lifecycle, layered on a verified transaction:
    none -> held -> partially_released -> released
                 -> cancelled

Escrow is bookkeeping only. Holding, splitting and releasing record
who is owed what; no money moves through the gateway here.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP

from revenue_ledger.calculators import compute_organization_payout, compute_splits
from revenue_ledger.events import EscrowCancelled, EscrowHeld, EscrowReleased, EscrowSplit
from revenue_ledger.exceptions import (
    InvalidAmountError,
    InvalidStateTransitionError,
    MissingRequiredFieldError,
)
from revenue_ledger.models.enums import (
    ACTIVE_HOLD_STATUSES,
    SETTLED_STATUSES,
    HoldReason,
    HoldStatus,
    ReleaseReason,
    SplitStatus,
    SplitType,
    TransactionDirection,
    TransactionStatus,
)
from revenue_ledger.schemas.results import EscrowStatus, ReleaseOutcome, SplitOutcome
from revenue_ledger.schemas.transaction import (
    GatewayInfo,
    Hold,
    Release,
    SplitRule,
    Transaction,
    new_id,
)
from revenue_ledger.services.base import LedgerServiceBase

logger = logging.getLogger(__name__)

NO_HOLD = "none"


def _hold_status(transaction: Transaction) -> str:
    return transaction.hold.status if transaction.hold else NO_HOLD


def _provider_only(transaction: Transaction) -> GatewayInfo | None:
    # Gateway ids identify the charge itself, so payouts keep only the provider
    if transaction.gateway is None:
        return None
    return GatewayInfo(provider=transaction.gateway.provider)


class EscrowService(LedgerServiceBase):

    async def hold(
        self,
        transaction_id: str,
        *,
        at: datetime,
        reason: str = HoldReason.PAYMENT_VERIFICATION.value,
        hold_until: datetime | None = None,
    ) -> Transaction:
        transaction = await self._get_transaction(transaction_id)

        if transaction.status not in SETTLED_STATUSES:
            raise InvalidStateTransitionError(
                "Transaction",
                transaction.id,
                transaction.status,
                HoldStatus.HELD.value,
                "only verified or completed transactions can be held",
            )
        if transaction.hold is not None:
            raise InvalidStateTransitionError(
                "Escrow",
                transaction.id,
                transaction.hold.status,
                HoldStatus.HELD.value,
                "transaction already has a hold",
            )

        hold = Hold(
            status=HoldStatus.HELD.value,
            held_amount=transaction.amount,
            released_amount=0,
            reason=reason,
            held_at=at,
            hold_until=hold_until,
        )
        updated = await self._update_transaction(
            transaction, {"hold": hold}, expected_status=SETTLED_STATUSES
        )

        logger.info("Held %s on transaction %s", hold.held_amount, updated.id)
        self._emit(EscrowHeld(
            transaction=updated, held_amount=hold.held_amount, reason=reason
        ))
        return updated

    async def split(
        self,
        transaction_id: str,
        rules: list[SplitRule],
        *,
        at: datetime,
    ) -> SplitOutcome:
        """
        Allocate a held charge among recipients.

        Every split except the platform's own commission gets a pending
        payout transaction. The hold is not released: the organization
        remainder and the split shares are paid out by later release
        calls.
        """
        if not rules:
            raise MissingRequiredFieldError("rules")

        transaction = await self._get_transaction(transaction_id)

        if _hold_status(transaction) != HoldStatus.HELD.value:
            raise InvalidStateTransitionError(
                "Escrow",
                transaction.id,
                _hold_status(transaction),
                "split",
                "transaction must be held before splitting",
            )
        if transaction.splits:
            raise InvalidStateTransitionError(
                "Escrow",
                transaction.id,
                HoldStatus.HELD.value,
                "split",
                "transaction is already split",
            )

        splits = compute_splits(
            transaction.amount,
            rules,
            self.config.gateway_fee_rate_for(transaction.provider_name),
        )
        # Raises before anything is written when the rules overclaim
        organization_payout = compute_organization_payout(transaction.amount, splits)

        payouts = []
        for index, split in enumerate(splits):
            if split.type == SplitType.PLATFORM_COMMISSION.value:
                continue
            payout = Transaction(
                id=new_id(),
                idempotency_key=f"split_{transaction.id}_{index}",
                organization_id=transaction.organization_id,
                customer_id=split.recipient_id,
                direction=TransactionDirection.INCOME.value,
                category=split.type,
                status=TransactionStatus.PENDING.value,
                amount=int(split.net_amount.to_integral_value(rounding=ROUND_HALF_UP)),
                currency=transaction.currency,
                method=transaction.method,
                gateway=_provider_only(transaction),
                reference_id=transaction.reference_id,
                reference_model=transaction.reference_model,
                related_transaction_id=transaction.id,
                metadata={
                    "is_split": True,
                    "split_type": split.type,
                    "recipient_type": split.recipient_type,
                    "gross_amount": str(split.gross_amount),
                    "gateway_fee_amount": str(split.gateway_fee_amount),
                },
                created_at=at,
            )
            splits[index] = split.model_copy(update={
                "payout_transaction_id": payout.id,
                "status": SplitStatus.DUE.value,
            })
            payouts.append(payout)

        updated = await self._update_transaction(
            transaction,
            {"splits": splits},
            expected_status={transaction.status},
        )
        split_transactions = [
            await self.transactions.create(payout) for payout in payouts
        ]

        logger.info(
            "Split transaction %s into %d shares, organization payout %s",
            updated.id, len(splits), organization_payout,
        )
        self._emit(EscrowSplit(
            transaction=updated,
            splits=updated.splits,
            split_transactions=split_transactions,
            organization_payout=organization_payout,
        ))
        return SplitOutcome(
            transaction=updated,
            splits=updated.splits,
            split_transactions=split_transactions,
            organization_payout=organization_payout,
        )

    async def release(
        self,
        transaction_id: str,
        *,
        recipient_id: str,
        at: datetime,
        recipient_type: str = "organization",
        amount: int | None = None,
        reason: str = ReleaseReason.PAYMENT_VERIFIED.value,
        released_by: str | None = None,
        create_transaction: bool = True,
    ) -> ReleaseOutcome:
        """Release all or part of the remaining held balance to a recipient."""
        transaction = await self._get_transaction(transaction_id)
        hold = transaction.hold

        if hold is None or hold.status not in ACTIVE_HOLD_STATUSES:
            raise InvalidStateTransitionError(
                "Escrow",
                transaction.id,
                _hold_status(transaction),
                HoldStatus.RELEASED.value,
                "no active hold to release from",
            )

        remaining = hold.remaining
        release_amount = remaining if amount is None else amount
        if release_amount <= 0 or release_amount > remaining:
            raise InvalidAmountError(
                release_amount,
                f"Release amount {release_amount} must be between 1 and "
                f"the remaining held balance {remaining}",
            )

        released_total = hold.released_amount + release_amount
        is_full_release = released_total == hold.held_amount
        release_transaction_id = new_id() if create_transaction else None

        new_hold = hold.model_copy(update={
            "status": (
                HoldStatus.RELEASED.value if is_full_release
                else HoldStatus.PARTIALLY_RELEASED.value
            ),
            "released_amount": released_total,
            "releases": [
                *hold.releases,
                Release(
                    amount=release_amount,
                    recipient_id=recipient_id,
                    recipient_type=recipient_type,
                    reason=reason,
                    released_at=at,
                    released_by=released_by,
                    transaction_id=release_transaction_id,
                ),
            ],
        })
        updated = await self._update_transaction(
            transaction, {"hold": new_hold}, expected_status={transaction.status}
        )

        release_transaction = None
        if create_transaction:
            release_transaction = await self.transactions.create(Transaction(
                id=release_transaction_id,
                idempotency_key=f"release_{transaction.id}_{released_total}",
                organization_id=transaction.organization_id,
                customer_id=recipient_id,
                direction=TransactionDirection.INCOME.value,
                category=transaction.category,
                status=TransactionStatus.COMPLETED.value,
                amount=release_amount,
                currency=transaction.currency,
                method=transaction.method,
                gateway=_provider_only(transaction),
                reference_id=transaction.reference_id,
                reference_model=transaction.reference_model,
                related_transaction_id=transaction.id,
                metadata={
                    "is_release": True,
                    "release_reason": reason,
                    "recipient_type": recipient_type,
                },
                created_at=at,
            ))

        logger.info(
            "Released %s of transaction %s to %s %s",
            release_amount, updated.id, recipient_type, recipient_id,
        )
        self._emit(EscrowReleased(
            transaction=updated,
            release_transaction=release_transaction,
            release_amount=release_amount,
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            is_full_release=is_full_release,
        ))
        return ReleaseOutcome(
            transaction=updated,
            release_transaction=release_transaction,
            release_amount=release_amount,
            is_full_release=is_full_release,
        )

    async def cancel(
        self,
        transaction_id: str,
        *,
        at: datetime,
        reason: str = "Hold cancelled",
    ) -> Transaction:
        """Cancel an active hold. Refunding the customer is a separate call."""
        transaction = await self._get_transaction(transaction_id)
        hold = transaction.hold

        if hold is None or hold.status not in ACTIVE_HOLD_STATUSES or hold.remaining <= 0:
            raise InvalidStateTransitionError(
                "Escrow",
                transaction.id,
                _hold_status(transaction),
                HoldStatus.CANCELLED.value,
                "no active hold with a remaining balance",
            )

        new_hold = hold.model_copy(update={
            "status": HoldStatus.CANCELLED.value,
            "cancelled_at": at,
            "cancel_reason": reason,
        })
        updated = await self._update_transaction(
            transaction,
            {"hold": new_hold, "status": TransactionStatus.CANCELLED.value},
            expected_status={transaction.status},
        )

        logger.info("Cancelled hold on transaction %s: %s", updated.id, reason)
        self._emit(EscrowCancelled(transaction=updated, reason=reason))
        return updated

    async def get_status(self, transaction_id: str) -> EscrowStatus:
        transaction = await self._get_transaction(transaction_id)
        hold = transaction.hold
        return EscrowStatus(
            transaction_id=transaction.id,
            transaction_status=transaction.status,
            hold=hold,
            splits=transaction.splits,
            remaining_amount=hold.remaining if hold else 0,
            has_hold=hold is not None,
            has_splits=bool(transaction.splits),
        )
