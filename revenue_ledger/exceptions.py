"""
Typed errors for the revenue ledger.

Every error carries a stable machine-readable code, a retryable
flag and structured metadata (the ids involved). Callers catch by
type and decide on retries from the flag, never from the message.

    RevenueError
    +-- ConfigurationError      (fatal, surfaced immediately)
    +-- ValidationError         (bad input, never retried)
    +-- NotFoundError           (unknown id, never retried)
    +-- StateError              (operation invalid for current status)
    +-- ProviderError           (gateway call failed, retryable)
    +-- OperationError          (unsupported by the provider)
"""

from typing import Any


class RevenueError(Exception):
    """Base class for all ledger errors."""

    code = "REVENUE_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        *,
        retryable: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.metadata = metadata or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }


# --- Configuration ---

class ConfigurationError(RevenueError):
    code = "CONFIGURATION_ERROR"


class ProviderNotFoundError(ConfigurationError):
    code = "PROVIDER_NOT_FOUND"

    def __init__(self, provider_name: str, available: list[str] | None = None):
        available = sorted(available or [])
        super().__init__(
            f"Payment provider '{provider_name}' not found. "
            f"Available: {', '.join(available) or 'none'}",
            metadata={"provider": provider_name, "available": available},
        )


class InvalidRateError(ConfigurationError):
    code = "INVALID_RATE"

    def __init__(self, name: str, value):
        super().__init__(
            f"{name} must be between 0 and 1, got {value}",
            metadata={"rate": name, "value": str(value)},
        )


class SplitConfigurationError(ConfigurationError):
    code = "INVALID_SPLIT_CONFIGURATION"


# --- Validation ---

class ValidationError(RevenueError):
    code = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    code = "INVALID_AMOUNT"

    def __init__(self, amount, reason: str | None = None):
        super().__init__(
            reason or f"Invalid amount: {amount}. Amount must be non-negative",
            metadata={"amount": str(amount)},
        )


class MissingRequiredFieldError(ValidationError):
    code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field_name: str):
        super().__init__(
            f"Missing required field: {field_name}",
            metadata={"field": field_name},
        )


class InvalidFilterError(ValidationError):
    code = "INVALID_FILTER"

    def __init__(self, field_name: str, allowed=None):
        super().__init__(
            f"Cannot filter on {field_name}",
            metadata={"field": field_name, "allowed": sorted(allowed or [])},
        )


class FieldUpdateNotAllowedError(ValidationError):
    code = "FIELD_UPDATE_NOT_ALLOWED"

    def __init__(self, field_name: str, reason: str | None = None):
        super().__init__(
            reason or f"Field {field_name} cannot be updated",
            metadata={"field": field_name},
        )


class PaymentMismatchError(ValidationError):
    """Provider-reported amount or currency differs from the ledger."""

    code = "PAYMENT_MISMATCH"

    def __init__(self, transaction_id: str, field: str, expected, reported):
        super().__init__(
            f"Provider reported {field} {reported} for transaction "
            f"{transaction_id}, ledger has {expected}",
            metadata={
                "transaction_id": transaction_id,
                "field": field,
                "expected": str(expected),
                "reported": str(reported),
            },
        )


class RefundAmountError(ValidationError):
    code = "INVALID_REFUND_AMOUNT"

    def __init__(self, transaction_id: str, requested, refundable):
        super().__init__(
            f"Refund amount {requested} is not within the refundable "
            f"balance {refundable} of transaction {transaction_id}",
            metadata={
                "transaction_id": transaction_id,
                "requested": str(requested),
                "refundable": str(refundable),
            },
        )


class InvalidWebhookEventError(ValidationError):
    code = "INVALID_WEBHOOK_EVENT"


# --- Not found ---

class NotFoundError(RevenueError):
    code = "NOT_FOUND"


class TransactionNotFoundError(NotFoundError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, reference: str | None):
        super().__init__(
            f"Transaction not found: {reference}",
            metadata={"transaction_id": reference},
        )


class SubscriptionNotFoundError(NotFoundError):
    code = "SUBSCRIPTION_NOT_FOUND"

    def __init__(self, subscription_id: str):
        super().__init__(
            f"Subscription not found: {subscription_id}",
            metadata={"subscription_id": subscription_id},
        )


# --- State ---

class StateError(RevenueError):
    code = "INVALID_STATE"


class AlreadyVerifiedError(StateError):
    code = "ALREADY_VERIFIED"

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction {transaction_id} is already verified",
            metadata={"transaction_id": transaction_id},
        )


class InvalidStateTransitionError(StateError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        from_state,
        to_state,
        reason: str | None = None,
    ):
        message = (
            f"Invalid state transition for {resource_type} {resource_id}: "
            f"{from_state} -> {to_state}"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            metadata={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "from_state": str(from_state),
                "to_state": str(to_state),
            },
        )


class SubscriptionNotActiveError(StateError):
    code = "SUBSCRIPTION_NOT_ACTIVE"

    def __init__(self, subscription_id: str, status=None):
        super().__init__(
            f"Subscription {subscription_id} is not active (status: {status})",
            metadata={"subscription_id": subscription_id, "status": str(status)},
        )


class ConcurrentModificationError(StateError):
    """The record changed between read and conditional write."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} {resource_id} was modified concurrently",
            metadata={"resource_type": resource_type, "resource_id": resource_id},
        )


# --- Provider ---

class ProviderError(RevenueError):
    code = "PROVIDER_ERROR"
    retryable = True


class PaymentIntentCreationError(ProviderError):
    code = "PAYMENT_INTENT_CREATION_FAILED"

    def __init__(self, provider_name: str, cause: Exception):
        super().__init__(
            f"Failed to create payment intent with provider "
            f"'{provider_name}': {cause}",
            metadata={"provider": provider_name},
        )


class PaymentVerificationError(ProviderError):
    code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self, transaction_id: str, provider_name: str, cause: Exception):
        super().__init__(
            f"Payment verification failed for transaction "
            f"{transaction_id}: {cause}",
            metadata={"transaction_id": transaction_id, "provider": provider_name},
        )


class RefundError(ProviderError):
    code = "REFUND_FAILED"

    def __init__(self, transaction_id: str, provider_name: str, reason: str):
        super().__init__(
            f"Refund failed for transaction {transaction_id}: {reason}",
            metadata={"transaction_id": transaction_id, "provider": provider_name},
        )


class WebhookProcessingError(ProviderError):
    code = "WEBHOOK_PROCESSING_FAILED"

    def __init__(self, provider_name: str, cause: Exception):
        super().__init__(
            f"Webhook processing failed for provider '{provider_name}': {cause}",
            metadata={"provider": provider_name},
        )


# --- Operation ---

class OperationError(RevenueError):
    code = "OPERATION_ERROR"


class RefundNotSupportedError(OperationError):
    code = "REFUND_NOT_SUPPORTED"

    def __init__(self, provider_name: str):
        super().__init__(
            f"Refunds are not supported by provider '{provider_name}'",
            metadata={"provider": provider_name},
        )


class ProviderCapabilityError(OperationError):
    code = "PROVIDER_CAPABILITY_NOT_SUPPORTED"

    def __init__(self, provider_name: str, capability: str):
        super().__init__(
            f"Provider '{provider_name}' does not support {capability}",
            metadata={"provider": provider_name, "capability": capability},
        )


def is_retryable(error: BaseException) -> bool:
    """True when a calling layer may retry the failed operation."""
    return isinstance(error, RevenueError) and error.retryable


def is_revenue_error(error: BaseException) -> bool:
    return isinstance(error, RevenueError)
