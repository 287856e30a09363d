"""
Platform commission calculation.

Commission is the platform's share of a charge, net of the gateway's
processing fee. All arithmetic is done in Decimal and rounded to two
places with ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal

from revenue_ledger.exceptions import InvalidAmountError, InvalidRateError
from revenue_ledger.models.enums import CommissionStatus
from revenue_ledger.schemas.transaction import Commission

CENT = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.018 as 0.018 instead of its binary float expansion
    return Decimal(str(value))


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_rate(name: str, rate) -> Decimal:
    rate = to_decimal(rate)
    if rate < ZERO or rate > ONE:
        raise InvalidRateError(name, rate)
    return rate


def compute_commission(amount, rate, gateway_fee_rate=0) -> Commission | None:
    """
    Build the commission breakdown for a charge.

    Returns None when the rate is zero or negative, in which case the
    transaction carries no commission at all. The net amount is
    clamped at zero so a gateway fee larger than the commission never
    produces a negative platform share.
    """
    rate = to_decimal(rate or 0)
    if rate <= ZERO:
        return None

    amount = to_decimal(amount)
    if amount < ZERO:
        raise InvalidAmountError(amount)
    rate = validate_rate("commission rate", rate)
    fee_rate = validate_rate("gateway fee rate", gateway_fee_rate or 0)

    gross = round2(amount * rate)
    fee = round2(amount * fee_rate)
    net = max(ZERO, round2(gross - fee))

    return Commission(
        rate=rate,
        gross_amount=gross,
        gateway_fee_rate=fee_rate,
        gateway_fee_amount=fee,
        net_amount=net,
        status=CommissionStatus.PENDING.value,
    )


def reverse_commission(
    original: Commission | None, original_amount, refund_amount
) -> Commission | None:
    """
    Scale a commission down in proportion to a refund.

    Each monetary field is scaled and rounded on its own rather than
    recomputing net from the scaled gross and fee, so the reversed net
    can differ by one minor unit from gross - fee.
    """
    if original is None:
        return None

    original_amount = to_decimal(original_amount)
    if original_amount <= ZERO:
        raise InvalidAmountError(
            original_amount, "Original amount must be positive to reverse commission"
        )
    ratio = to_decimal(refund_amount) / original_amount

    return Commission(
        rate=original.rate,
        gross_amount=round2(original.gross_amount * ratio),
        gateway_fee_rate=original.gateway_fee_rate,
        gateway_fee_amount=round2(original.gateway_fee_amount * ratio),
        net_amount=round2(original.net_amount * ratio),
        status=CommissionStatus.WAIVED.value,
    )
