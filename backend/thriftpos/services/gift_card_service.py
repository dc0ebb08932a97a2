# Overview: Service-layer operations for gift cards; encapsulates the stored-value ledger.

"""
Gift Card Ledger

WHY: Gift cards are stored-value instruments sold at the counter and
redeemed as a tender. Every balance change is paired with an append-only
GiftCardTransaction row carrying the before/after balance.

DESIGN PRINCIPLES:
- current_balance never goes below zero
- validate_redemption() is a pure read: it computes the new balance but
  does not persist it, so the sale engine can still roll back safely
- apply_redemption() persists a validated debit inside the caller's
  transaction (no commit here)
- adjust_balance() is its own atomic unit: balance write + audit row
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import (
    CustomerNotFound,
    GiftCardExpired,
    GiftCardInactive,
    GiftCardNotFound,
    InputValidationError,
    InsufficientBalance,
    InvalidAmount,
    NegativeBalanceNotAllowed,
)
from ..models import Customer, GiftCard, GiftCardTransaction
from ..models.gift_cards import (
    GIFT_CARD_TXN_ADJUSTMENT,
    GIFT_CARD_TXN_PURCHASE,
    GIFT_CARD_TXN_REDEMPTION,
)
from ..money import ZERO, to_money
from thriftpos.time_utils import utcnow, to_utc_naive, to_utc_z
from .audit_service import append_audit_event
from .concurrency import atomic, lock_for_update
from .sequence_service import next_gift_card_number


@dataclass
class Redemption:
    """Computed (not yet persisted) debit against a gift card."""
    previous_balance: Decimal
    amount_redeemed: Decimal
    new_balance: Decimal
    gift_card: GiftCard

    def to_dict(self) -> dict:
        return {
            "success": True,
            "previous_balance": float(self.previous_balance),
            "amount_redeemed": float(self.amount_redeemed),
            "new_balance": float(self.new_balance),
            "gift_card": self.gift_card.to_dict(),
        }


def _parse_amount(value, field: str = "amount") -> Decimal:
    try:
        return to_money(value)
    except ValueError:
        raise InvalidAmount(f"{field} must be a valid monetary amount", details={"field": field})


# =============================================================================
# CREATION
# =============================================================================

def create_gift_card(
    *,
    initial_balance,
    recipient_name: str | None = None,
    recipient_email: str | None = None,
    recipient_phone: str | None = None,
    expires_at: datetime | None = None,
    purchased_by_customer_id: int | None = None,
    purchased_transaction_id: int | None = None,
    user_id: int | None = None,
) -> GiftCard:
    """
    Issue a new gift card with current_balance = initial_balance.

    Raises:
        InvalidAmount: initial_balance <= 0
        CustomerNotFound: purchaser does not exist
    """
    amount = _parse_amount(initial_balance, "initial_balance")
    if amount <= ZERO:
        raise InvalidAmount(
            "Initial balance must be greater than zero",
            details={"initial_balance": float(amount)},
        )

    with atomic():
        if purchased_by_customer_id is not None:
            if not db.session.get(Customer, purchased_by_customer_id):
                raise CustomerNotFound(f"Customer {purchased_by_customer_id} not found")

        now = utcnow()
        card = GiftCard(
            gift_card_number=next_gift_card_number(),
            initial_balance=amount,
            current_balance=amount,
            is_active=True,
            recipient_name=recipient_name,
            recipient_email=recipient_email,
            recipient_phone=recipient_phone,
            expires_at=to_utc_naive(expires_at),
            purchased_by_customer_id=purchased_by_customer_id,
            purchased_transaction_id=purchased_transaction_id,
            purchased_at=now,
        )
        db.session.add(card)
        db.session.flush()

        _append_ledger_entry(
            card,
            transaction_type=GIFT_CARD_TXN_PURCHASE,
            amount=amount,
            balance_before=ZERO,
            balance_after=amount,
            notes="Gift card issued",
            user_id=user_id,
        )
        append_audit_event(
            action="gift_card.created",
            entity_type="gift_card",
            entity_id=card.id,
            user_id=user_id,
            payload={"gift_card_number": card.gift_card_number, "initial_balance": str(amount)},
        )

    current_app.logger.info(
        "Gift card issued: %s (initial_balance=%s)", card.gift_card_number, amount
    )
    return card


# =============================================================================
# LOOKUPS
# =============================================================================

def get_gift_card(gift_card_id: int) -> GiftCard:
    card = db.session.get(GiftCard, gift_card_id)
    if not card:
        raise GiftCardNotFound("Gift card not found", details={"gift_card_id": gift_card_id})
    return card


def get_gift_card_by_number(gift_card_number: str, *, lock: bool = False) -> GiftCard | None:
    query = db.session.query(GiftCard).filter_by(gift_card_number=gift_card_number)
    if lock:
        query = lock_for_update(query)
    return query.first()


def check_balance(gift_card_number: str) -> dict:
    card = get_gift_card_by_number(gift_card_number)
    if not card:
        raise GiftCardNotFound("Gift card not found", details={"gift_card_number": gift_card_number})

    if not card.is_active:
        raise GiftCardInactive("Gift card is inactive", details={"gift_card_number": gift_card_number})

    return {
        "gift_card_number": card.gift_card_number,
        "current_balance": float(card.current_balance),
        "is_active": card.is_active,
        "expires_at": to_utc_z(card.expires_at),
    }


def is_expired(card: GiftCard, now: datetime | None = None) -> bool:
    expires_at = to_utc_naive(card.expires_at)
    if expires_at is None:
        return False
    return expires_at < (now or utcnow())


# =============================================================================
# REDEMPTION
# =============================================================================

def validate_redemption(gift_card_number: str, amount, *, lock: bool = False) -> Redemption:
    """
    Check that a card can cover `amount` and compute the resulting balance.

    Pure computation over current state: calling it twice without a
    persisted debit returns the same new_balance both times.

    Args:
        lock: take a row lock on the card (used by the sale engine so the
            validated balance cannot change before the debit is written)

    Raises:
        GiftCardNotFound, GiftCardInactive, GiftCardExpired, InsufficientBalance
    """
    redeem_amount = _parse_amount(amount)
    if redeem_amount <= ZERO:
        raise InvalidAmount("Redemption amount must be greater than zero")

    card = get_gift_card_by_number(gift_card_number, lock=lock)
    if not card:
        raise GiftCardNotFound("Gift card not found", details={"gift_card_number": gift_card_number})

    if not card.is_active:
        raise GiftCardInactive("Gift card is inactive", details={"gift_card_number": gift_card_number})

    if is_expired(card):
        raise GiftCardExpired("Gift card has expired", details={"gift_card_number": gift_card_number})

    current_balance = to_money(card.current_balance)
    if redeem_amount > current_balance:
        raise InsufficientBalance(
            f"Gift card balance (${current_balance:.2f}) is less than redemption amount (${redeem_amount:.2f})",
            details={
                "gift_card_number": gift_card_number,
                "current_balance": float(current_balance),
                "requested_amount": float(redeem_amount),
            },
        )

    return Redemption(
        previous_balance=current_balance,
        amount_redeemed=redeem_amount,
        new_balance=current_balance - redeem_amount,
        gift_card=card,
    )


def apply_redemption(
    redemption: Redemption,
    *,
    transaction_id: int | None = None,
    user_id: int | None = None,
) -> GiftCardTransaction:
    """
    Persist a validated debit within the caller's transaction (no commit).
    """
    card = redemption.gift_card
    balance_before = to_money(card.current_balance)
    balance_after = balance_before - redemption.amount_redeemed
    if balance_after < ZERO:
        raise InsufficientBalance(
            "Gift card balance changed since validation",
            details={"gift_card_number": card.gift_card_number, "current_balance": float(balance_before)},
        )

    card.current_balance = balance_after
    card.last_used_at = utcnow()

    return _append_ledger_entry(
        card,
        transaction_type=GIFT_CARD_TXN_REDEMPTION,
        amount=-redemption.amount_redeemed,
        balance_before=balance_before,
        balance_after=balance_after,
        notes="Redeemed as payment",
        user_id=user_id,
        transaction_id=transaction_id,
    )


# =============================================================================
# ADJUSTMENTS / LIFECYCLE
# =============================================================================

def adjust_balance(*, gift_card_id: int, amount, reason: str | None, user_id: int | None) -> GiftCard:
    """
    Signed manual adjustment (positive = credit, negative = debit).

    Raises:
        GiftCardNotFound: card does not exist
        NegativeBalanceNotAllowed: resulting balance would be < 0
    """
    delta = _parse_amount(amount)
    if delta == ZERO:
        raise InvalidAmount("Adjustment amount must be non-zero")

    with atomic():
        card = lock_for_update(db.session.query(GiftCard).filter_by(id=gift_card_id)).first()
        if not card:
            raise GiftCardNotFound("Gift card not found", details={"gift_card_id": gift_card_id})

        balance_before = to_money(card.current_balance)
        balance_after = balance_before + delta
        if balance_after < ZERO:
            raise NegativeBalanceNotAllowed(
                "Adjustment would result in negative balance",
                details={"current_balance": float(balance_before), "amount": float(delta)},
            )

        card.current_balance = balance_after

        _append_ledger_entry(
            card,
            transaction_type=GIFT_CARD_TXN_ADJUSTMENT,
            amount=delta,
            balance_before=balance_before,
            balance_after=balance_after,
            notes=reason,
            user_id=user_id,
        )
        append_audit_event(
            action="gift_card.adjusted",
            entity_type="gift_card",
            entity_id=card.id,
            user_id=user_id,
            note=reason,
            payload={"amount": str(delta), "balance_before": str(balance_before), "balance_after": str(balance_after)},
        )

    current_app.logger.info(
        "Gift card %s adjusted by %s (%s -> %s)",
        card.gift_card_number, delta, balance_before, balance_after,
    )
    return card


def deactivate_gift_card(gift_card_id: int, user_id: int | None = None) -> GiftCard:
    with atomic():
        card = lock_for_update(db.session.query(GiftCard).filter_by(id=gift_card_id)).first()
        if not card:
            raise GiftCardNotFound("Gift card not found", details={"gift_card_id": gift_card_id})

        card.is_active = False
        append_audit_event(
            action="gift_card.deactivated",
            entity_type="gift_card",
            entity_id=card.id,
            user_id=user_id,
        )
    return card


UPDATABLE_FIELDS = ("recipient_name", "recipient_email", "recipient_phone", "expires_at", "is_active")


def update_gift_card(gift_card_id: int, changes: dict) -> GiftCard:
    """Update recipient info, expiry or active flag. Balance is not editable here."""
    updates = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InputValidationError(
            "Unknown or read-only fields",
            details={"fields": sorted(unknown)},
        )
    if not updates:
        raise InputValidationError("No fields to update")

    with atomic():
        card = lock_for_update(db.session.query(GiftCard).filter_by(id=gift_card_id)).first()
        if not card:
            raise GiftCardNotFound("Gift card not found", details={"gift_card_id": gift_card_id})

        for key, value in updates.items():
            if key == "expires_at":
                value = to_utc_naive(value)
            setattr(card, key, value)
    return card


# =============================================================================
# HISTORY / LISTING
# =============================================================================

def get_gift_card_history(gift_card_id: int) -> list[GiftCardTransaction]:
    """Append-only audit trail for a card, oldest first."""
    get_gift_card(gift_card_id)
    return (
        db.session.query(GiftCardTransaction)
        .filter_by(gift_card_id=gift_card_id)
        .order_by(GiftCardTransaction.created_at, GiftCardTransaction.id)
        .all()
    )


def list_gift_cards(
    *,
    is_active: bool | None = None,
    purchased_by_customer_id: int | None = None,
    min_balance=None,
    max_balance=None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), 100)

    query = db.session.query(GiftCard)
    if is_active is not None:
        query = query.filter(GiftCard.is_active == is_active)
    if purchased_by_customer_id:
        query = query.filter(GiftCard.purchased_by_customer_id == purchased_by_customer_id)
    if min_balance is not None:
        query = query.filter(GiftCard.current_balance >= _parse_amount(min_balance, "min_balance"))
    if max_balance is not None:
        query = query.filter(GiftCard.current_balance <= _parse_amount(max_balance, "max_balance"))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                GiftCard.gift_card_number.ilike(pattern),
                GiftCard.recipient_name.ilike(pattern),
            )
        )

    total = query.count()
    cards = (
        query.order_by(GiftCard.created_at.desc(), GiftCard.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "gift_cards": cards,
        "total": total,
        "page": page,
        "limit": limit,
    }


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _append_ledger_entry(
    card: GiftCard,
    *,
    transaction_type: str,
    amount: Decimal,
    balance_before: Decimal,
    balance_after: Decimal,
    notes: str | None = None,
    user_id: int | None = None,
    transaction_id: int | None = None,
) -> GiftCardTransaction:
    entry = GiftCardTransaction(
        gift_card_id=card.id,
        transaction_id=transaction_id,
        transaction_type=transaction_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        notes=notes,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry
