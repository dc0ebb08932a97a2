# Overview: Service-layer operations for payment; per-method handlers and aggregate validation.

"""
Payment Processing Service

WHY: A sale can be paid with cash, cards, checks, gift cards, store credit
or a digital wallet, and split across several of them. Each method has its
own validation rules behind one uniform call shape.

DESIGN PRINCIPLES:
- Handlers receive (amount, details, context) and return a PaymentOutcome
- Handlers never open or commit a transaction; they run inside the sale's
- Dispatch is a lookup table keyed by method (no if/elif chains)
- validate_payments() is pure: no I/O, no side effects
- Card handlers only authorize. Captures happen once every tender has
  succeeded; any failure voids open authorizations and refunds captures
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from flask import current_app

from ..extensions import db
from ..errors import (
    AccountNotFound,
    CardDeclined,
    CheckNumberRequired,
    InsufficientCash,
    InsufficientStoreCredit,
    InvalidAmount,
    InvalidPaymentMethod,
    PaymentDetailsRequired,
    PaymentMismatch,
    PaymentProcessorUnavailable,
)
from ..models import Payment, PaymentDetail, StoreCreditAccount
from ..money import ZERO, amounts_match, to_money
from thriftpos.time_utils import utcnow
from .concurrency import lock_for_update
from .gift_card_service import apply_redemption, validate_redemption
from .payment_processor import PaymentProcessor, get_processor


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CREDIT_CARD = "credit_card"
METHOD_DEBIT_CARD = "debit_card"
METHOD_CHECK = "check"
METHOD_GIFT_CARD = "gift_card"
METHOD_STORE_CREDIT = "store_credit"
METHOD_DIGITAL_WALLET = "digital_wallet"

VALID_PAYMENT_METHODS = (
    METHOD_CASH,
    METHOD_CREDIT_CARD,
    METHOD_DEBIT_CARD,
    METHOD_CHECK,
    METHOD_GIFT_CARD,
    METHOD_STORE_CREDIT,
    METHOD_DIGITAL_WALLET,
)

# Methods that talk to the external processor
PROCESSOR_METHODS = (METHOD_CREDIT_CARD, METHOD_DEBIT_CARD, METHOD_DIGITAL_WALLET)

PAYMENT_STATUS_COMPLETED = "completed"

AUTH_AUTHORIZED = "authorized"
AUTH_CAPTURED = "captured"
AUTH_VOIDED = "voided"
AUTH_REFUNDED = "refunded"


def new_operation_id() -> str:
    return uuid.uuid4().hex


@dataclass
class PaymentRequest:
    """One validated entry from a sale's payments list."""
    sequence: int
    payment_method: str
    amount: Decimal
    details: dict = field(default_factory=dict)


@dataclass
class PaymentContext:
    """
    Where a payment is being applied; passed to every handler.

    operation_id is unique per sale attempt. Transaction numbers are
    reused after a rollback, so they can't key processor requests.
    """
    transaction_id: int
    transaction_number: str
    cashier_id: int
    sequence: int = 0
    operation_id: str = field(default_factory=new_operation_id)


@dataclass
class CardAuthorization:
    """An approved card hold, tracked until it is captured or released."""
    processor: PaymentProcessor
    authorization_id: str
    amount: Decimal
    status: str = AUTH_AUTHORIZED
    payment: Payment | None = None
    payment_id: str | None = None


@dataclass
class PaymentOutcome:
    """Normalized handler result, persisted as Payment + PaymentDetail."""
    payment_method: str
    amount: Decimal
    success: bool = True
    status: str = PAYMENT_STATUS_COMPLETED
    payment_processor: str | None = None
    processor_transaction_id: str | None = None
    processor_payment_id: str | None = None
    gift_card_id: int | None = None
    store_credit_account_id: int | None = None
    details: dict = field(default_factory=dict)
    authorization: CardAuthorization | None = None


# =============================================================================
# REQUEST PARSING / AGGREGATE VALIDATION
# =============================================================================

def parse_payment_requests(raw_payments) -> list[PaymentRequest]:
    """
    Validate the shape of a payments list: known method, amount > 0.

    Raises:
        PaymentDetailsRequired: list missing or empty
        InvalidPaymentMethod: unknown method
        InvalidAmount: amount missing, non-numeric or <= 0
    """
    if not raw_payments:
        raise PaymentDetailsRequired("At least one payment is required")

    requests: list[PaymentRequest] = []
    for index, raw in enumerate(raw_payments):
        if not isinstance(raw, dict):
            raise PaymentDetailsRequired("Each payment must be an object", details={"index": index})

        method = raw.get("payment_method")
        if method not in VALID_PAYMENT_METHODS:
            raise InvalidPaymentMethod(
                f"Invalid payment method: {method}. Must be one of {list(VALID_PAYMENT_METHODS)}",
                details={"index": index, "payment_method": method},
            )

        try:
            amount = to_money(raw.get("amount"))
        except ValueError:
            raise InvalidAmount("Payment amount must be a number", details={"index": index})
        if amount <= ZERO:
            raise InvalidAmount("Payment amount must be positive", details={"index": index})

        details = raw.get("payment_details") or {}
        if not isinstance(details, dict):
            raise PaymentDetailsRequired("payment_details must be an object", details={"index": index})

        requests.append(PaymentRequest(sequence=index, payment_method=method, amount=amount, details=details))
    return requests


def validate_payments(payments, total_amount) -> Decimal:
    """
    Check that payment amounts reconcile to the sale total within $0.01.

    Accepts PaymentRequest objects or plain dicts with an "amount" key.
    Returns the summed amount.

    Raises:
        PaymentMismatch: |sum - total| > 0.01
    """
    total = to_money(total_amount)
    paid = sum(
        (to_money(p.amount if isinstance(p, PaymentRequest) else p["amount"]) for p in payments),
        ZERO,
    )

    if not amounts_match(paid, total):
        raise PaymentMismatch(
            f"Payment total (${paid:.2f}) does not match transaction total (${total:.2f})",
            details={"payment_total": float(paid), "transaction_total": float(total)},
        )
    return paid


# =============================================================================
# HANDLERS
# =============================================================================

def handle_cash(amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    if details.get("cash_received") is None:
        raise PaymentDetailsRequired("cash_received is required for cash payments")
    try:
        received = to_money(details["cash_received"])
    except ValueError:
        raise InvalidAmount("cash_received must be a number")

    if received < amount:
        raise InsufficientCash(
            f"Cash received (${received:.2f}) is less than payment amount (${amount:.2f})",
            details={"cash_received": float(received), "amount": float(amount)},
        )

    return PaymentOutcome(
        payment_method=METHOD_CASH,
        amount=amount,
        details={"cash_received": received, "cash_change": received - amount},
    )


def handle_card(amount: Decimal, details: dict, context: PaymentContext, method: str = METHOD_CREDIT_CARD) -> PaymentOutcome:
    """
    Authorize through the configured processor; capture comes later.

    A declined authorization fails CardDeclined with the processor's
    message. The returned outcome carries the open CardAuthorization;
    whoever applies the payment must capture or release it.
    """
    card_token = details.get("card_token")
    if not card_token:
        raise PaymentDetailsRequired(f"card_token is required for {method} payments")

    processor = get_processor(details.get("processor"))
    idempotency_key = details.get("idempotency_key") or f"{context.operation_id}:{context.sequence}"

    auth = processor.authorize_payment(
        amount=amount,
        card_token=card_token,
        idempotency_key=idempotency_key,
        metadata={"transaction_number": context.transaction_number, "payment_method": method},
    )
    if not auth.success:
        raise CardDeclined(
            auth.message or "Card declined",
            details={"payment_method": method, "processor": processor.name},
        )

    return PaymentOutcome(
        payment_method=method,
        amount=amount,
        payment_processor=processor.name,
        processor_transaction_id=auth.authorization_id,
        details={
            "card_type": auth.card_brand,
            "card_last_four": auth.card_last4,
            "authorization_code": auth.authorization_code,
        },
        authorization=CardAuthorization(
            processor=processor,
            authorization_id=auth.authorization_id,
            amount=amount,
        ),
    )


def handle_debit_card(amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    return handle_card(amount, details, context, method=METHOD_DEBIT_CARD)


def handle_digital_wallet(amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    # Wallet tokens (Apple Pay, Google Pay) go through the same card rails
    wallet_details = dict(details)
    wallet_details.setdefault("card_token", details.get("wallet_token"))
    return handle_card(amount, wallet_details, context, method=METHOD_DIGITAL_WALLET)


def handle_gift_card(amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    gift_card_number = details.get("gift_card_number")
    if not gift_card_number:
        raise PaymentDetailsRequired("gift_card_number is required for gift card payments")

    # Ledger errors (not found, inactive, expired, insufficient) propagate unchanged
    redemption = validate_redemption(gift_card_number, amount, lock=True)
    apply_redemption(
        redemption,
        transaction_id=context.transaction_id,
        user_id=context.cashier_id,
    )

    return PaymentOutcome(
        payment_method=METHOD_GIFT_CARD,
        amount=amount,
        gift_card_id=redemption.gift_card.id,
        details={
            "previous_balance": redemption.previous_balance,
            "new_balance": redemption.new_balance,
        },
    )


def handle_check(amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    check_number = details.get("check_number")
    if not check_number or not str(check_number).strip():
        raise CheckNumberRequired("Check number is required")

    return PaymentOutcome(
        payment_method=METHOD_CHECK,
        amount=amount,
        details={"check_number": str(check_number).strip(), "bank_name": details.get("bank_name")},
    )


def handle_store_credit(amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    account_id = details.get("store_credit_account_id")
    if not account_id:
        raise PaymentDetailsRequired("store_credit_account_id is required for store credit payments")

    account = lock_for_update(
        db.session.query(StoreCreditAccount).filter_by(id=account_id)
    ).first()
    if not account or not account.is_active:
        raise AccountNotFound(
            "Store credit account not found",
            details={"store_credit_account_id": account_id},
        )

    balance = to_money(account.balance)
    if balance < amount:
        raise InsufficientStoreCredit(
            f"Store credit balance (${balance:.2f}) is less than payment amount (${amount:.2f})",
            details={"balance": float(balance), "amount": float(amount)},
        )

    account.balance = balance - amount

    return PaymentOutcome(
        payment_method=METHOD_STORE_CREDIT,
        amount=amount,
        store_credit_account_id=account.id,
        details={"previous_balance": balance, "new_balance": balance - amount},
    )


PaymentHandler = Callable[[Decimal, dict, PaymentContext], PaymentOutcome]

PAYMENT_HANDLERS: dict[str, PaymentHandler] = {
    METHOD_CASH: handle_cash,
    METHOD_CREDIT_CARD: handle_card,
    METHOD_DEBIT_CARD: handle_debit_card,
    METHOD_CHECK: handle_check,
    METHOD_GIFT_CARD: handle_gift_card,
    METHOD_STORE_CREDIT: handle_store_credit,
    METHOD_DIGITAL_WALLET: handle_digital_wallet,
}


def process_payment(payment_method: str, amount: Decimal, details: dict, context: PaymentContext) -> PaymentOutcome:
    handler = PAYMENT_HANDLERS.get(payment_method)
    if handler is None:
        raise InvalidPaymentMethod(f"Invalid payment method: {payment_method}")
    return handler(to_money(amount), details or {}, context)


# =============================================================================
# CARD CAPTURE / RELEASE
# =============================================================================

def capture_authorization(authorization: CardAuthorization) -> None:
    """
    Capture one open authorization.

    If the capture is refused or the processor can't be reached, the
    authorization is voided before the error propagates, so no hold is
    left on the card.

    Raises:
        CardDeclined: capture refused
        PaymentProcessorUnavailable: capture timed out
    """
    processor = authorization.processor
    try:
        capture = processor.capture_payment(authorization.authorization_id, authorization.amount)
    except PaymentProcessorUnavailable:
        _void_authorization(authorization)
        raise

    if not capture.success:
        _void_authorization(authorization)
        raise CardDeclined(
            capture.message or "Payment capture failed",
            details={"processor": processor.name, "authorization_id": authorization.authorization_id},
        )

    authorization.status = AUTH_CAPTURED
    authorization.payment_id = capture.payment_id
    if authorization.payment is not None:
        authorization.payment.processor_payment_id = capture.payment_id


def release_authorizations(authorizations: list[CardAuthorization]) -> None:
    """
    Undo card activity for a sale that did not commit.

    Open authorizations are voided and captured ones refunded. Failures
    here are logged, never raised: the caller is already propagating the
    error that aborted the sale.
    """
    for authorization in authorizations:
        if authorization.status == AUTH_AUTHORIZED:
            _void_authorization(authorization)
        elif authorization.status == AUTH_CAPTURED:
            _refund_capture(authorization)


def _void_authorization(authorization: CardAuthorization) -> None:
    try:
        result = authorization.processor.void_payment(authorization.authorization_id)
    except PaymentProcessorUnavailable as e:
        current_app.logger.warning(
            "Could not reach processor to void authorization %s: %s",
            authorization.authorization_id, e.message,
        )
        return

    if result.success:
        authorization.status = AUTH_VOIDED
    else:
        current_app.logger.warning(
            "Failed to void authorization %s: %s",
            authorization.authorization_id, result.message,
        )


def _refund_capture(authorization: CardAuthorization) -> None:
    try:
        result = authorization.processor.refund_payment(authorization.payment_id, authorization.amount)
    except PaymentProcessorUnavailable as e:
        current_app.logger.warning(
            "Could not reach processor to refund payment %s: %s",
            authorization.payment_id, e.message,
        )
        return

    if result.success:
        authorization.status = AUTH_REFUNDED
    else:
        current_app.logger.warning(
            "Failed to refund payment %s: %s",
            authorization.payment_id, result.message,
        )


# =============================================================================
# PERSISTENCE
# =============================================================================

def record_payment(transaction_id: int, sequence: int, outcome: PaymentOutcome) -> Payment:
    """Write a Payment and its PaymentDetail row (no commit)."""
    now = utcnow()
    payment = Payment(
        transaction_id=transaction_id,
        sequence=sequence,
        payment_method=outcome.payment_method,
        amount=outcome.amount,
        status=outcome.status,
        payment_processor=outcome.payment_processor,
        processor_transaction_id=outcome.processor_transaction_id,
        processor_payment_id=outcome.processor_payment_id,
        gift_card_id=outcome.gift_card_id,
        store_credit_account_id=outcome.store_credit_account_id,
        payment_date=now,
        completed_at=now if outcome.status == PAYMENT_STATUS_COMPLETED else None,
    )
    db.session.add(payment)
    db.session.flush()

    db.session.add(PaymentDetail(payment_id=payment.id, **outcome.details))
    db.session.flush()
    return payment


@dataclass
class PaymentBatch:
    """Payments written for one sale plus the card holds behind them."""
    payments: list[Payment]
    authorizations: list[CardAuthorization] = field(default_factory=list)

    def capture(self) -> None:
        for authorization in self.authorizations:
            capture_authorization(authorization)

    def release(self) -> None:
        release_authorizations(self.authorizations)


def apply_payments(
    payment_requests: list[PaymentRequest],
    *,
    transaction_id: int,
    transaction_number: str,
    cashier_id: int,
    operation_id: str | None = None,
) -> PaymentBatch:
    """
    Run every payment through its handler and persist the results.

    Local tenders run first and processor-backed tenders last, so a local
    failure aborts the sale before any card is authorized. Card
    authorizations are left open for the caller to capture (batch.capture())
    once the rest of the sale has succeeded. If a handler fails, holds
    already taken are voided before the error propagates.

    Payment rows keep the caller's order via their sequence column.
    """
    operation_id = operation_id or new_operation_id()
    ordered = sorted(
        payment_requests,
        key=lambda p: (p.payment_method in PROCESSOR_METHODS, p.sequence),
    )

    payments = []
    authorizations = []
    try:
        for request in ordered:
            context = PaymentContext(
                transaction_id=transaction_id,
                transaction_number=transaction_number,
                cashier_id=cashier_id,
                sequence=request.sequence,
                operation_id=operation_id,
            )
            outcome = process_payment(request.payment_method, request.amount, request.details, context)
            if outcome.authorization is not None:
                authorizations.append(outcome.authorization)

            payment = record_payment(transaction_id, request.sequence, outcome)
            if outcome.authorization is not None:
                outcome.authorization.payment = payment
            payments.append(payment)
    except Exception:
        release_authorizations(authorizations)
        raise

    return PaymentBatch(
        payments=sorted(payments, key=lambda p: p.sequence),
        authorizations=authorizations,
    )
