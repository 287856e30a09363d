"""
Multi-party split calculation.

Splits allocate a share of a charge to affiliates, partners or the
platform. Whatever the splits do not claim is the organization's
payout.
"""

from decimal import Decimal

from revenue_ledger.calculators.commission import (
    ZERO,
    round2,
    to_decimal,
    validate_rate,
)
from revenue_ledger.exceptions import InvalidAmountError, SplitConfigurationError
from revenue_ledger.models.enums import SplitStatus
from revenue_ledger.schemas.transaction import SplitEntry, SplitRule


def compute_splits(
    amount, rules: list[SplitRule], gateway_fee_rate=0
) -> list[SplitEntry]:
    """
    Compute one split entry per rule, in input order.

    The gateway fee is charged on each split's gross share. Entries
    are never reordered: callers display them positionally.
    """
    if not rules:
        return []

    amount = to_decimal(amount)
    if amount < ZERO:
        raise InvalidAmountError(amount)
    fee_rate = validate_rate("gateway fee rate", gateway_fee_rate or 0)

    entries = []
    for index, rule in enumerate(rules):
        rate = validate_rate(f"split rate [{index}]", rule.rate)
        gross = round2(amount * rate)
        fee = round2(gross * fee_rate)
        entries.append(SplitEntry(
            type=rule.type,
            recipient_id=rule.recipient_id,
            recipient_type=rule.recipient_type,
            rate=rate,
            gross_amount=gross,
            gateway_fee_rate=fee_rate if fee > ZERO else ZERO,
            gateway_fee_amount=fee,
            net_amount=max(ZERO, gross - fee),
            status=SplitStatus.PENDING.value,
            metadata=rule.metadata,
        ))
    return entries


def compute_organization_payout(amount, splits: list[SplitEntry]) -> Decimal:
    """
    Remainder of the charge after all split gross amounts.

    A negative remainder means the split rules claim more than the
    charge, which is a caller configuration error.
    """
    total = sum((split.gross_amount for split in splits), ZERO)
    payout = to_decimal(amount) - total
    if payout < ZERO:
        raise SplitConfigurationError(
            f"Splits total {total} exceeds transaction amount {amount}",
            metadata={"amount": str(amount), "split_total": str(total)},
        )
    return payout


def reverse_splits(
    splits: list[SplitEntry], original_amount, refund_amount
) -> list[SplitEntry]:
    """Scale splits down in proportion to a refund; all become waived."""
    if not splits:
        return []

    original_amount = to_decimal(original_amount)
    if original_amount <= ZERO:
        raise InvalidAmountError(
            original_amount, "Original amount must be positive to reverse splits"
        )
    ratio = to_decimal(refund_amount) / original_amount

    return [
        split.model_copy(update={
            "gross_amount": round2(split.gross_amount * ratio),
            "gateway_fee_amount": round2(split.gateway_fee_amount * ratio),
            "net_amount": round2(split.net_amount * ratio),
            "status": SplitStatus.WAIVED.value,
        })
        for split in splits
    ]
