from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from thriftpos.time_utils import to_utc_z


GIFT_CARD_TXN_PURCHASE = "purchase"
GIFT_CARD_TXN_REDEMPTION = "redemption"
GIFT_CARD_TXN_ADJUSTMENT = "adjustment"


class GiftCard(db.Model):
    """
    Stored-value card.

    INVARIANT: current_balance >= 0. The balance may exceed initial_balance
    after a positive adjustment. Balance changes only through the gift card
    ledger service, each one paired with a GiftCardTransaction row.
    """
    __tablename__ = "gift_cards"
    __table_args__ = (
        db.CheckConstraint("current_balance >= 0", name="ck_gift_cards_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Format: GC-0000000001
    gift_card_number = db.Column(db.String(20), nullable=False, unique=True, index=True)

    initial_balance = db.Column(db.Numeric(10, 2), nullable=False)
    current_balance = db.Column(db.Numeric(10, 2), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    purchased_by_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    purchased_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=True)

    recipient_name = db.Column(db.String(100), nullable=True)
    recipient_email = db.Column(db.String(255), nullable=True)
    recipient_phone = db.Column(db.String(20), nullable=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gift_card_number": self.gift_card_number,
            "initial_balance": money_to_json(self.initial_balance),
            "current_balance": money_to_json(self.current_balance),
            "is_active": self.is_active,
            "purchased_by_customer_id": self.purchased_by_customer_id,
            "purchased_transaction_id": self.purchased_transaction_id,
            "purchased_at": to_utc_z(self.purchased_at) if self.purchased_at else None,
            "recipient_name": self.recipient_name,
            "recipient_email": self.recipient_email,
            "recipient_phone": self.recipient_phone,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "last_used_at": to_utc_z(self.last_used_at) if self.last_used_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class GiftCardTransaction(db.Model):
    """
    Append-only ledger of gift card balance changes.

    TRANSACTION TYPES:
    - purchase: Card issued with its initial balance
    - redemption: Balance spent as a sale payment (negative amount)
    - adjustment: Manual signed correction by staff

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "gift_card_transactions"
    __table_args__ = (
        db.Index("ix_gift_card_txns_card_created", "gift_card_id", "created_at"),
        db.CheckConstraint(
            "transaction_type IN ('purchase', 'redemption', 'adjustment')",
            name="ck_gift_card_txns_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=False, index=True)
    # Sale that redeemed the card; NULL for purchases and adjustments
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(20), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    balance_before = db.Column(db.Numeric(10, 2), nullable=False)
    balance_after = db.Column(db.Numeric(10, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    gift_card = db.relationship("GiftCard", backref=db.backref("ledger_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gift_card_id": self.gift_card_id,
            "transaction_id": self.transaction_id,
            "transaction_type": self.transaction_type,
            "amount": money_to_json(self.amount),
            "balance_before": money_to_json(self.balance_before),
            "balance_after": money_to_json(self.balance_after),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
