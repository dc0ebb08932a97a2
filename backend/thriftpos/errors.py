# Overview: Typed failures raised by the sale, payment and gift card services.

"""
Error taxonomy.

Every failure carries a machine-readable ``code`` and an HTTP ``status_code``
so the route layer can surface a distinct condition instead of a generic 500.

CATEGORIES:
- InputValidationError: caller supplied a malformed request
- NotFoundError: referenced entity does not exist (or is inactive)
- StateConflictError: request is well-formed but violates a business rule
- ExternalDependencyError: the card processor declined or could not respond
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for all domain failures."""

    code = "POS_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# CATEGORIES
# =============================================================================

class InputValidationError(PosError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PosError):
    code = "NOT_FOUND"
    status_code = 404


class StateConflictError(PosError):
    code = "STATE_CONFLICT"
    status_code = 409


class ExternalDependencyError(PosError):
    code = "EXTERNAL_DEPENDENCY_ERROR"
    status_code = 502


# =============================================================================
# INPUT / VALIDATION
# =============================================================================

class EmptyTransaction(InputValidationError):
    code = "EMPTY_TRANSACTION"


class InvalidAmount(InputValidationError):
    code = "INVALID_AMOUNT"


class InvalidQuantity(InputValidationError):
    code = "INVALID_QUANTITY"


class InvalidPaymentMethod(InputValidationError):
    code = "INVALID_PAYMENT_METHOD"


class PaymentDetailsRequired(InputValidationError):
    code = "PAYMENT_DETAILS_REQUIRED"


class CheckNumberRequired(InputValidationError):
    code = "CHECK_NUMBER_REQUIRED"


# =============================================================================
# NOT FOUND
# =============================================================================

class TerminalNotFound(NotFoundError):
    code = "TERMINAL_NOT_FOUND"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class TransactionNotFound(NotFoundError):
    code = "TRANSACTION_NOT_FOUND"


class GiftCardNotFound(NotFoundError):
    code = "GIFT_CARD_NOT_FOUND"


class AccountNotFound(NotFoundError):
    code = "ACCOUNT_NOT_FOUND"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


class ProcessorNotFound(NotFoundError):
    code = "PROCESSOR_NOT_FOUND"
    status_code = 400


# =============================================================================
# STATE CONFLICTS
# =============================================================================

class InsufficientStock(StateConflictError):
    code = "INSUFFICIENT_STOCK"


class InsufficientCash(StateConflictError):
    code = "INSUFFICIENT_CASH"


class InsufficientBalance(StateConflictError):
    code = "INSUFFICIENT_BALANCE"


class InsufficientStoreCredit(StateConflictError):
    code = "INSUFFICIENT_STORE_CREDIT"


class PaymentMismatch(StateConflictError):
    code = "PAYMENT_MISMATCH"


class InvalidVoidState(StateConflictError):
    code = "INVALID_VOID_STATE"


class GiftCardInactive(StateConflictError):
    code = "GIFT_CARD_INACTIVE"


class GiftCardExpired(StateConflictError):
    code = "GIFT_CARD_EXPIRED"


class NegativeBalanceNotAllowed(StateConflictError):
    code = "NEGATIVE_BALANCE_NOT_ALLOWED"


# =============================================================================
# EXTERNAL DEPENDENCIES
# =============================================================================

class CardDeclined(ExternalDependencyError):
    code = "CARD_DECLINED"
    status_code = 402


class PaymentProcessorUnavailable(ExternalDependencyError):
    """Processor timed out or could not be reached."""
    code = "PAYMENT_PROCESSOR_UNAVAILABLE"
    status_code = 502
