# Overview: Uniform interface over card-authorization backends.

"""
Payment processor adapter contract.

Every backend (mock, Square, Stripe, ...) implements the same operation set
and returns normalized result objects. Business declines are reported as
``success=False`` with a human-readable ``message``; only transport-level
failures (timeouts, unreachable backend) raise PaymentProcessorUnavailable.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class AuthorizationResult:
    success: bool
    status: str  # authorized | declined
    authorization_id: str = ""
    authorization_code: str | None = None
    message: str | None = None
    card_brand: str | None = None
    card_last4: str | None = None
    amount: Decimal | None = None
    processor_response: dict = field(default_factory=dict)


@dataclass
class CaptureResult:
    success: bool
    status: str  # captured | failed
    payment_id: str = ""
    capture_id: str = ""
    amount: Decimal | None = None
    message: str | None = None
    processor_response: dict = field(default_factory=dict)


@dataclass
class VoidResult:
    success: bool
    status: str  # voided | failed
    void_id: str = ""
    message: str | None = None
    processor_response: dict = field(default_factory=dict)


@dataclass
class RefundResult:
    success: bool
    status: str  # refunded | failed
    refund_id: str = ""
    amount: Decimal | None = None
    message: str | None = None
    processor_response: dict = field(default_factory=dict)


_NON_DIGITS = re.compile(r"[\s-]")


def clean_card_number(card_number: str) -> str:
    return _NON_DIGITS.sub("", card_number or "")


def validate_card(card_number: str) -> bool:
    """Luhn checksum over the digits of a card number (spaces/dashes ignored)."""
    cleaned = clean_card_number(card_number)
    if not cleaned.isdigit():
        return False

    total = 0
    for i, ch in enumerate(reversed(cleaned)):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def get_card_brand(card_number: str) -> str:
    cleaned = clean_card_number(card_number)

    if re.match(r"^4", cleaned):
        return "visa"
    if re.match(r"^5[1-5]", cleaned):
        return "mastercard"
    if re.match(r"^3[47]", cleaned):
        return "amex"
    if re.match(r"^6(?:011|5)", cleaned):
        return "discover"
    return "unknown"


class PaymentProcessor(ABC):
    """Adapter base class; subclasses talk to one card backend."""

    name: str = "base"

    @abstractmethod
    def authorize_payment(
        self,
        *,
        amount: Decimal,
        card_token: str,
        idempotency_key: str,
        currency: str = "USD",
        metadata: dict | None = None,
    ) -> AuthorizationResult:
        ...

    @abstractmethod
    def capture_payment(self, authorization_id: str, amount: Decimal) -> CaptureResult:
        ...

    @abstractmethod
    def void_payment(self, authorization_id: str) -> VoidResult:
        ...

    @abstractmethod
    def refund_payment(self, payment_id: str, amount: Decimal) -> RefundResult:
        ...

    def validate_card(self, card_number: str) -> bool:
        return validate_card(card_number)

    def get_card_brand(self, card_number: str) -> str:
        return get_card_brand(card_number)
