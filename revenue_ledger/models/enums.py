"""
Shared enumerations for the ledger.

Statuses are stored as plain strings so that a provider-reported
status can be kept verbatim. These enums name the values the
ledger itself produces and checks against; being str enums, they
compare equal to the stored strings.
"""

import enum


class TransactionDirection(str, enum.Enum):
    """Income for charges, expense for refunds."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PAYMENT_INITIATED = "payment_initiated"
    PROCESSING = "processing"
    REQUIRES_ACTION = "requires_action"
    VERIFIED = "verified"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


# Statuses a payment can still be verified from. Anything else is
# either settled or terminal.
VERIFIABLE_STATUSES = frozenset({
    TransactionStatus.PENDING.value,
    TransactionStatus.PAYMENT_INITIATED.value,
    TransactionStatus.PROCESSING.value,
    TransactionStatus.REQUIRES_ACTION.value,
    "requires_manual_approval",
})

SETTLED_STATUSES = frozenset({
    TransactionStatus.VERIFIED.value,
    TransactionStatus.COMPLETED.value,
})

REFUNDABLE_STATUSES = frozenset({
    TransactionStatus.VERIFIED.value,
    TransactionStatus.COMPLETED.value,
    TransactionStatus.PARTIALLY_REFUNDED.value,
})


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    DUE = "due"
    PAID = "paid"
    WAIVED = "waived"


class HoldStatus(str, enum.Enum):
    HELD = "held"
    PARTIALLY_RELEASED = "partially_released"
    RELEASED = "released"
    CANCELLED = "cancelled"


ACTIVE_HOLD_STATUSES = frozenset({
    HoldStatus.HELD.value,
    HoldStatus.PARTIALLY_RELEASED.value,
})


class HoldReason(str, enum.Enum):
    PAYMENT_VERIFICATION = "payment_verification"
    FRAUD_CHECK = "fraud_check"
    MANUAL_REVIEW = "manual_review"
    DISPUTE = "dispute"
    COMPLIANCE = "compliance"


class ReleaseReason(str, enum.Enum):
    PAYMENT_VERIFIED = "payment_verified"
    MANUAL_RELEASE = "manual_release"
    AUTO_RELEASE = "auto_release"
    DISPUTE_RESOLVED = "dispute_resolved"


class SplitType(str, enum.Enum):
    PLATFORM_COMMISSION = "platform_commission"
    AFFILIATE_COMMISSION = "affiliate_commission"
    REFERRAL_COMMISSION = "referral_commission"
    PARTNER_COMMISSION = "partner_commission"
    CUSTOM = "custom"


class SplitStatus(str, enum.Enum):
    PENDING = "pending"
    DUE = "due"
    PAID = "paid"
    WAIVED = "waived"
    CANCELLED = "cancelled"


class SubscriptionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PlanKey(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class MonetizationType(str, enum.Enum):
    FREE = "free"
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"


class LibraryCategory(str, enum.Enum):
    """Fallback categories when no entity mapping applies."""
    SUBSCRIPTION = "subscription"
    PURCHASE = "purchase"
